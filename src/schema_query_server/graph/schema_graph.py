"""
Schema Graph

In-memory directed graph of TABLE and COLUMN nodes used to answer the
structural questions query synthesis needs: which columns a table has,
which tables it references or is referenced by, and how to join two tables.

Node ids
--------
- Tables:  ``table:<namespace>.<name>``
- Columns: ``column:<namespace>.<table>.<name>``

Edges
-----
- TABLE_COLUMN  table  -> column (containment, carries `position`)
- PRIMARY_KEY   table  -> column
- FOREIGN_KEY   column -> referenced table
- RELATIONSHIP  child table -> parent table (derived from child relationships
                that no FOREIGN_KEY edge already covers)

The graph is a single-writer structure. It is built once per introspection
cycle (or restored from a snapshot) and then only read.
"""

from __future__ import annotations

import logging
import re
from collections import defaultdict, deque
from typing import Any, Deque, Dict, Iterable, List, Optional, Tuple

from pydantic import ValidationError

from .models import (
    ChildRelationshipInfo,
    ChildRelationshipSchema,
    ColumnInfo,
    ColumnSchema,
    EdgeType,
    ForeignKeyInfo,
    ForeignKeySchema,
    GraphEdge,
    GraphNode,
    JoinPath,
    JoinStep,
    NodeType,
    TableInfo,
    TableRelationship,
    TableSchema,
)

logger = logging.getLogger("sqs.graph")


SNAPSHOT_VERSION = 1


class SchemaGraphError(RuntimeError):
    """Raised on structural graph violations or malformed serialized graphs."""


def table_node_id(namespace: str, name: str) -> str:
    return f"table:{namespace}.{name}"


def column_node_id(namespace: str, table: str, name: str) -> str:
    return f"column:{namespace}.{table}.{name}"


def _wildcard_regex(pattern: str) -> re.Pattern:
    parts = [re.escape(p) for p in re.split(r"[*%]", pattern)]
    return re.compile("^" + ".*".join(parts) + "$", re.IGNORECASE)


def _has_wildcard(pattern: str) -> bool:
    return "*" in pattern or "%" in pattern


class SchemaGraph:
    """
    Typed graph of tables, columns and the relationships between them.
    """

    def __init__(self) -> None:
        self._nodes: Dict[str, GraphNode] = {}
        self._edges: Dict[str, GraphEdge] = {}
        self._out_edges: Dict[str, List[str]] = defaultdict(list)
        self._in_edges: Dict[str, List[str]] = defaultdict(list)
        self._by_name: Dict[str, List[str]] = defaultdict(list)
        self._edge_counter = 0

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_tables(cls, tables: Iterable[TableSchema]) -> "SchemaGraph":
        """
        Build a graph from table definitions.

        Pass one adds every table with its columns, pass two resolves foreign
        keys and child relationships, so references may point at tables that
        appear later in the input.
        """
        graph = cls()
        accepted: List[TableSchema] = []

        for table in tables:
            if graph.get_node(table_node_id(table.namespace, table.name)) is not None:
                logger.warning("Duplicate table definition ignored: %s", table.name)
                continue
            graph._add_table(table)
            accepted.append(table)

        for table in accepted:
            graph._add_relationships(table)

        return graph

    def _add_table(self, table: TableSchema) -> None:
        tid = table_node_id(table.namespace, table.name)

        references: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        for fk in table.foreign_keys:
            references[fk.column_name].append({
                "table": fk.referenced_table,
                "column": fk.referenced_column,
                "relationship_name": fk.relationship_name,
            })

        self.add_node(GraphNode(
            id=tid,
            type=NodeType.TABLE,
            name=table.name,
            namespace=table.namespace,
            metadata={
                "label": table.label,
                "child_relationships": [r.model_dump() for r in table.child_relationships],
            },
        ))

        position = 0
        for col in table.columns:
            cid = column_node_id(table.namespace, table.name, col.name)
            if cid in self._nodes:
                logger.warning("Duplicate column %s.%s ignored", table.name, col.name)
                continue

            self.add_node(GraphNode(
                id=cid,
                type=NodeType.COLUMN,
                name=col.name,
                namespace=table.namespace,
                table_name=table.name,
                data_type=col.data_type or "unknown",
                is_nullable=col.is_nullable,
                is_primary_key=col.is_primary_key,
                max_length=col.max_length,
                position=position,
                metadata={
                    "label": col.label,
                    "precision": col.precision,
                    "picklist_values": list(col.picklist_values),
                    "relationship_name": col.relationship_name,
                    "references": references.get(col.name, []),
                },
            ))
            self._link(EdgeType.TABLE_COLUMN, tid, cid, position=position)
            if col.is_primary_key:
                self._link(EdgeType.PRIMARY_KEY, tid, cid, column_name=col.name)
            position += 1

    def _add_relationships(self, table: TableSchema) -> None:
        tid = table_node_id(table.namespace, table.name)

        for fk in table.foreign_keys:
            cid = column_node_id(table.namespace, table.name, fk.column_name)
            target = self._resolve_table(fk.referenced_table, table.namespace)
            if cid not in self._nodes or target is None:
                continue
            self._link(
                EdgeType.FOREIGN_KEY,
                cid,
                target.id,
                column_name=fk.column_name,
                referenced_table=target.name,
                referenced_column=fk.referenced_column,
                metadata={"relationship_name": fk.relationship_name},
            )

        for rel in table.child_relationships:
            child = self._resolve_table(rel.child_table, table.namespace)
            if child is None:
                continue
            if self._has_foreign_key(child, rel.field, tid):
                continue
            self._link(
                EdgeType.RELATIONSHIP,
                child.id,
                tid,
                column_name=rel.field,
                referenced_table=table.name,
                referenced_column="Id",
                metadata={"relationship_name": rel.relationship_name},
            )

    def _has_foreign_key(self, child: GraphNode, field: str, parent_id: str) -> bool:
        cid = column_node_id(child.namespace, child.name, field)
        return any(
            self._edges[eid].type == EdgeType.FOREIGN_KEY and self._edges[eid].target_id == parent_id
            for eid in self._out_edges.get(cid, [])
        )

    def _link(self, edge_type: EdgeType, source_id: str, target_id: str, **attrs: Any) -> GraphEdge:
        self._edge_counter += 1
        edge = GraphEdge(
            id=f"edge_{self._edge_counter}",
            type=edge_type,
            source_id=source_id,
            target_id=target_id,
            **attrs,
        )
        self.add_edge(edge)
        return edge

    def add_node(self, node: GraphNode) -> None:
        if node.id in self._nodes:
            raise SchemaGraphError(f"Duplicate node id: {node.id}")
        self._nodes[node.id] = node
        self._by_name[node.name].append(node.id)

    def add_edge(self, edge: GraphEdge) -> None:
        if edge.id in self._edges:
            raise SchemaGraphError(f"Duplicate edge id: {edge.id}")
        if edge.source_id not in self._nodes:
            raise SchemaGraphError(f"Edge {edge.id} source does not exist: {edge.source_id}")
        if edge.target_id not in self._nodes:
            raise SchemaGraphError(f"Edge {edge.id} target does not exist: {edge.target_id}")

        self._edges[edge.id] = edge
        self._out_edges[edge.source_id].append(edge.id)
        self._in_edges[edge.target_id].append(edge.id)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get_node(self, node_id: str) -> Optional[GraphNode]:
        return self._nodes.get(node_id)

    def get_edge(self, edge_id: str) -> Optional[GraphEdge]:
        return self._edges.get(edge_id)

    def get_nodes_by_type(self, node_type: NodeType) -> List[GraphNode]:
        return [n for n in self._nodes.values() if n.type == node_type]

    def get_nodes_by_name(
        self,
        name: str,
        node_type: Optional[NodeType] = None,
    ) -> List[GraphNode]:
        """
        Nodes whose name matches `name`.

        `*` and `%` act as wildcards and make the match case-insensitive.
        An exact name with no case-sensitive hit falls back to a
        case-insensitive comparison. Several nodes may share a name (a table
        and a column, or tables in different namespaces); filter with
        `node_type` to disambiguate.
        """
        if _has_wildcard(name):
            regex = _wildcard_regex(name)
            nodes = [n for n in self._nodes.values() if regex.match(n.name)]
        else:
            nodes = [self._nodes[i] for i in self._by_name.get(name, [])]
            if not nodes:
                lowered = name.lower()
                nodes = [n for n in self._nodes.values() if n.name.lower() == lowered]

        if node_type is not None:
            nodes = [n for n in nodes if n.type == node_type]
        return nodes

    def _resolve_table(self, name: str, namespace: Optional[str] = None) -> Optional[GraphNode]:
        if namespace is not None:
            node = self._nodes.get(table_node_id(namespace, name))
            if node is not None:
                return node

        candidates = [
            self._nodes[i] for i in self._by_name.get(name, [])
            if self._nodes[i].type == NodeType.TABLE
        ]
        if not candidates:
            lowered = name.lower()
            candidates = [
                n for n in self.get_nodes_by_type(NodeType.TABLE)
                if n.name.lower() == lowered
            ]
        if namespace is not None:
            same_ns = [n for n in candidates if n.namespace == namespace]
            candidates = same_ns or candidates
        return candidates[0] if candidates else None

    def has_table(self, name: str, namespace: Optional[str] = None) -> bool:
        return self._resolve_table(name, namespace) is not None

    def get_all_table_names(self, namespace: Optional[str] = None) -> List[str]:
        return [
            n.name for n in self.get_nodes_by_type(NodeType.TABLE)
            if namespace is None or n.namespace == namespace
        ]

    def get_table_columns(self, table: str) -> List[GraphNode]:
        """
        Columns contained by `table`, in definition order.

        `table` is a table node id or a table name.
        """
        node = self._nodes.get(table)
        if node is None or node.type != NodeType.TABLE:
            node = self._resolve_table(table)
        if node is None:
            return []

        contained = [
            self._edges[eid] for eid in self._out_edges.get(node.id, [])
            if self._edges[eid].type == EdgeType.TABLE_COLUMN
        ]
        contained.sort(key=lambda e: e.position if e.position is not None else 0)
        return [self._nodes[e.target_id] for e in contained]

    def find_columns(self, pattern: str, table: Optional[str] = None) -> List[GraphNode]:
        if table is not None:
            columns = self.get_table_columns(table)
        else:
            columns = self.get_nodes_by_type(NodeType.COLUMN)

        if _has_wildcard(pattern):
            regex = _wildcard_regex(pattern)
            return [c for c in columns if regex.match(c.name)]

        lowered = pattern.lower()
        return [c for c in columns if lowered in c.name.lower()]

    def get_table_info(self, name: str, namespace: Optional[str] = None) -> Optional[TableInfo]:
        """
        Aggregate projection of one table.

        Foreign keys include references whose target table is not part of
        the graph (`resolved=False`). Returns None for unknown tables.
        """
        node = self._resolve_table(name, namespace)
        if node is None:
            return None

        columns: List[ColumnInfo] = []
        foreign_keys: List[ForeignKeyInfo] = []
        primary_key: List[str] = []

        for col in self.get_table_columns(node.id):
            meta = col.metadata
            columns.append(ColumnInfo(
                name=col.name,
                data_type=col.data_type or "unknown",
                is_nullable=bool(col.is_nullable) if col.is_nullable is not None else True,
                is_primary_key=bool(col.is_primary_key),
                max_length=col.max_length,
                label=meta.get("label"),
                picklist_values=list(meta.get("picklist_values") or []),
                relationship_name=meta.get("relationship_name"),
            ))
            if col.is_primary_key:
                primary_key.append(col.name)

            for ref in meta.get("references") or []:
                foreign_keys.append(ForeignKeyInfo(
                    column_name=col.name,
                    referenced_table=ref["table"],
                    referenced_column=ref.get("column") or "Id",
                    relationship_name=ref.get("relationship_name"),
                    resolved=self._resolve_table(ref["table"], node.namespace) is not None,
                ))

        child_relationships = [
            ChildRelationshipInfo(**r) for r in node.metadata.get("child_relationships") or []
        ]

        return TableInfo(
            name=node.name,
            namespace=node.namespace,
            label=node.metadata.get("label"),
            columns=columns,
            foreign_keys=foreign_keys,
            child_relationships=child_relationships,
            primary_key=primary_key,
        )

    def get_table_schema(self, name: str, namespace: Optional[str] = None) -> Optional[TableSchema]:
        """
        Rebuild the immutable `TableSchema` of a table held by the graph.
        """
        info = self.get_table_info(name, namespace)
        if info is None:
            return None

        return TableSchema(
            name=info.name,
            namespace=info.namespace,
            label=info.label,
            columns=tuple(
                ColumnSchema(
                    name=c.name,
                    data_type=c.data_type,
                    is_nullable=c.is_nullable,
                    is_primary_key=c.is_primary_key,
                    max_length=c.max_length,
                    label=c.label,
                    picklist_values=tuple(c.picklist_values),
                    relationship_name=c.relationship_name,
                )
                for c in info.columns
            ),
            foreign_keys=tuple(
                ForeignKeySchema(
                    column_name=fk.column_name,
                    referenced_table=fk.referenced_table,
                    referenced_column=fk.referenced_column,
                    relationship_name=fk.relationship_name,
                )
                for fk in info.foreign_keys
            ),
            child_relationships=tuple(
                ChildRelationshipSchema(**r.model_dump()) for r in info.child_relationships
            ),
        )

    # ------------------------------------------------------------------
    # Relationships and join paths
    # ------------------------------------------------------------------

    def _table_hops(self, table: GraphNode) -> List[JoinStep]:
        """
        Every one-hop table-to-table move from `table`.

        Outgoing hops (this table holds the reference) come first, in column
        order, followed by incoming hops in edge insertion order.
        """
        hops: List[JoinStep] = []

        for eid in self._out_edges.get(table.id, []):
            contained = self._edges[eid]
            if contained.type != EdgeType.TABLE_COLUMN:
                continue
            for fk_id in self._out_edges.get(contained.target_id, []):
                fk = self._edges[fk_id]
                if fk.type != EdgeType.FOREIGN_KEY:
                    continue
                hops.append(JoinStep(
                    from_table=table.name,
                    to_table=self._nodes[fk.target_id].name,
                    column_name=fk.column_name,
                    referenced_table=fk.referenced_table,
                    referenced_column=fk.referenced_column,
                    direction="outgoing",
                    edge_id=fk.id,
                ))

        for eid in self._out_edges.get(table.id, []):
            rel = self._edges[eid]
            if rel.type != EdgeType.RELATIONSHIP:
                continue
            hops.append(JoinStep(
                from_table=table.name,
                to_table=self._nodes[rel.target_id].name,
                column_name=rel.column_name,
                referenced_table=rel.referenced_table,
                referenced_column=rel.referenced_column,
                direction="outgoing",
                edge_id=rel.id,
            ))

        for eid in self._in_edges.get(table.id, []):
            edge = self._edges[eid]
            if edge.type == EdgeType.FOREIGN_KEY:
                source = self._nodes[edge.source_id]
                owner = self._resolve_table(source.table_name or "", source.namespace)
                if owner is None:
                    continue
            elif edge.type == EdgeType.RELATIONSHIP:
                owner = self._nodes[edge.source_id]
            else:
                continue
            hops.append(JoinStep(
                from_table=table.name,
                to_table=owner.name,
                column_name=edge.column_name,
                referenced_table=edge.referenced_table,
                referenced_column=edge.referenced_column,
                direction="incoming",
                edge_id=edge.id,
            ))

        return hops

    def analyze_table_relationships(
        self,
        table: str,
        namespace: Optional[str] = None,
    ) -> List[TableRelationship]:
        """
        One-hop relationships of `table` in both directions.

        Unknown tables yield an empty list.
        """
        node = self._resolve_table(table, namespace)
        if node is None:
            return []

        return [
            TableRelationship(
                table=node.name,
                related_table=hop.to_table,
                column_name=hop.column_name,
                referenced_column=hop.referenced_column,
                direction=hop.direction,
                edge_type=self._edges[hop.edge_id].type,
            )
            for hop in self._table_hops(node)
        ]

    def find_join_path(
        self,
        from_table: str,
        to_table: str,
        namespace: Optional[str] = None,
        max_depth: Optional[int] = None,
    ) -> JoinPath:
        """
        Shortest join path between two tables by edge count.

        Breadth-first over table-level hops; the first path discovered wins
        among equal lengths. Visited tables are never re-entered, so cyclic
        and self-referencing schemas terminate. Unknown or disconnected
        tables produce `found=False` rather than an exception.

        Parameters
        ----------
        max_depth : Optional[int]
            Maximum number of hops to consider. None means unbounded.
        """
        start = self._resolve_table(from_table, namespace)
        goal = self._resolve_table(to_table, namespace)

        if start is None or goal is None:
            missing = from_table if start is None else to_table
            return JoinPath(
                from_table=from_table,
                to_table=to_table,
                found=False,
                reason=f"Unknown table: {missing}",
            )

        if start.id == goal.id:
            return JoinPath(from_table=start.name, to_table=goal.name, found=True)

        visited = {start.id}
        queue: Deque[Tuple[GraphNode, List[JoinStep]]] = deque([(start, [])])

        while queue:
            current, path = queue.popleft()
            if max_depth is not None and len(path) >= max_depth:
                continue

            for hop in self._table_hops(current):
                nxt = self._resolve_table(hop.to_table, current.namespace)
                if nxt is None or nxt.id in visited:
                    continue

                steps = path + [hop]
                if nxt.id == goal.id:
                    return JoinPath(
                        from_table=start.name,
                        to_table=goal.name,
                        found=True,
                        steps=steps,
                    )
                visited.add(nxt.id)
                queue.append((nxt, steps))

        return JoinPath(
            from_table=start.name,
            to_table=goal.name,
            found=False,
            reason=f"No join path found between {start.name} and {goal.name}",
        )

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def statistics(self) -> Dict[str, Any]:
        by_type: Dict[str, int] = {t.value: 0 for t in EdgeType}
        for edge in self._edges.values():
            by_type[edge.type.value] += 1

        return {
            "tables": len(self.get_nodes_by_type(NodeType.TABLE)),
            "columns": len(self.get_nodes_by_type(NodeType.COLUMN)),
            "edges": len(self._edges),
            "edges_by_type": by_type,
        }

    def __len__(self) -> int:
        return len(self._nodes)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def to_json(self) -> Dict[str, Any]:
        return {
            "version": SNAPSHOT_VERSION,
            "nodes": [n.model_dump(mode="json") for n in self._nodes.values()],
            "edges": [e.model_dump(mode="json") for e in self._edges.values()],
        }

    @classmethod
    def from_json(cls, data: Any) -> "SchemaGraph":
        """
        Restore a graph produced by `to_json`.

        Nodes are loaded before edges so edge order in the payload does not
        matter.

        Raises
        ------
        SchemaGraphError
            If the payload is not a graph snapshot or any node or edge is
            invalid.
        """
        if not isinstance(data, dict):
            raise SchemaGraphError("Schema graph snapshot must be a JSON object.")

        raw_nodes = data.get("nodes")
        raw_edges = data.get("edges")
        if not isinstance(raw_nodes, list) or not isinstance(raw_edges, list):
            raise SchemaGraphError("Schema graph snapshot requires 'nodes' and 'edges' lists.")

        graph = cls()
        try:
            for raw in raw_nodes:
                graph.add_node(GraphNode.model_validate(raw))
            for raw in raw_edges:
                graph.add_edge(GraphEdge.model_validate(raw))
        except ValidationError as exc:
            raise SchemaGraphError(f"Invalid schema graph snapshot: {exc}") from exc

        graph._edge_counter = _max_edge_number(graph._edges.keys())
        return graph


def _max_edge_number(edge_ids: Iterable[str]) -> int:
    highest = 0
    for eid in edge_ids:
        match = re.fullmatch(r"edge_(\d+)", eid)
        if match:
            highest = max(highest, int(match.group(1)))
    return highest
