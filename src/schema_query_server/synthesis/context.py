"""
Schema Context Builder

Assembles the bounded schema subset handed to the generation capability.

Sources
-------
graph
    Full definitions of the requested tables from a `SchemaGraph`.
    Authoritative and exhaustive for the tables it covers.
vector
    Top-K fields most similar to the request text from a `FieldVectorStore`.
    Exploratory; used for tables the graph does not cover.

Fields are deduplicated per (table, field). Optional attributes
(labels, picklist values, relationship names, child relationships) are
emitted only when present.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from pydantic import BaseModel, Field

from ..config import settings
from ..embeddings.embedder import Embedder
from ..embeddings.models import FieldMatch
from ..embeddings.store import FieldVectorStore
from ..graph.schema_graph import SchemaGraph

logger = logging.getLogger("sqs.context")


# ---------------------------------------------------------------------
# Context models
# ---------------------------------------------------------------------

class FieldContext(BaseModel):
    name: str
    type: str = "unknown"
    label: Optional[str] = None
    nullable: Optional[bool] = None
    primary_key: Optional[bool] = None
    picklist_values: Optional[List[str]] = None
    relationship_name: Optional[str] = None
    references: Optional[List[str]] = None


class ChildRelationshipContext(BaseModel):
    child_table: str
    field: Optional[str] = None
    relationship_name: Optional[str] = None


class TableContext(BaseModel):
    fields: List[FieldContext] = Field(default_factory=list)
    child_relationships: List[ChildRelationshipContext] = Field(default_factory=list)


class SchemaContext(BaseModel):
    tables: Dict[str, TableContext] = Field(default_factory=dict)
    source: str = "empty"

    @property
    def field_count(self) -> int:
        return sum(len(t.fields) for t in self.tables.values())

    @property
    def table_names(self) -> List[str]:
        return list(self.tables.keys())

    def is_empty(self) -> bool:
        return self.field_count == 0

    def to_prompt_dict(self) -> Dict[str, Any]:
        """
        Nested ``{table: {fields: [...], childRelationships: [...]}}`` with
        empty optional attributes omitted.
        """
        out: Dict[str, Any] = {}
        for name, table in self.tables.items():
            entry: Dict[str, Any] = {
                "fields": [f.model_dump(exclude_none=True) for f in table.fields],
            }
            if table.child_relationships:
                entry["childRelationships"] = [
                    r.model_dump(exclude_none=True) for r in table.child_relationships
                ]
            out[name] = entry
        return out


# ---------------------------------------------------------------------
# Payload normalisation
# ---------------------------------------------------------------------

def _first(payload: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = payload.get(key)
        if value not in (None, "", []):
            return value
    return None


def _picklist_values(raw: Any) -> Optional[List[str]]:
    if not raw:
        return None
    values = []
    for item in raw:
        value = item.get("value") if isinstance(item, Mapping) else item
        if value not in (None, ""):
            values.append(str(value))
    return values or None


def normalize_field_payload(payload: Mapping[str, Any]) -> Optional[FieldContext]:
    """
    Accept both snake_case payloads and describe-style camelCase keys
    (``apiName``, ``type``/``dataType``, ``relationshipName``,
    ``picklistValues``).
    """
    name = _first(payload, "field_name", "apiName", "name")
    if not name:
        return None

    return FieldContext(
        name=str(name),
        type=str(_first(payload, "type", "data_type", "dataType") or "unknown"),
        label=_first(payload, "label"),
        picklist_values=_picklist_values(_first(payload, "picklist_values", "picklistValues")),
        relationship_name=_first(payload, "relationship_name", "relationshipName"),
    )


# ---------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------

class SchemaContextBuilder:
    """
    Builds a `SchemaContext` from a graph, a field vector store, or both.
    """

    def __init__(
        self,
        graph: Optional[SchemaGraph] = None,
        field_store: Optional[FieldVectorStore] = None,
        embedder: Optional[Embedder] = None,
        top_k: Optional[int] = None,
        max_fields_per_table: Optional[int] = None,
    ) -> None:
        self.graph = graph
        self.field_store = field_store
        self.embedder = embedder
        self.top_k = top_k or settings.context_top_k
        self.max_fields_per_table = max_fields_per_table or settings.context_max_fields_per_table

    @property
    def has_vector_source(self) -> bool:
        return (
            self.field_store is not None
            and self.embedder is not None
            and self.field_store.size() > 0
        )

    def from_graph(self, tables: Sequence[str]) -> Dict[str, TableContext]:
        if self.graph is None:
            return {}

        out: Dict[str, TableContext] = {}
        for requested in tables:
            info = self.graph.get_table_info(requested)
            if info is None or info.name in out:
                continue

            refs: Dict[str, List[str]] = {}
            for fk in info.foreign_keys:
                refs.setdefault(fk.column_name, []).append(fk.referenced_table)

            fields: List[FieldContext] = []
            for col in info.columns:
                fields.append(FieldContext(
                    name=col.name,
                    type=col.data_type,
                    label=col.label if col.label and col.label != col.name else None,
                    nullable=None if col.is_nullable else False,
                    primary_key=True if col.is_primary_key else None,
                    picklist_values=col.picklist_values or None,
                    relationship_name=col.relationship_name,
                    references=refs.get(col.name),
                ))

            out[info.name] = TableContext(
                fields=self._cap(fields),
                child_relationships=[
                    ChildRelationshipContext(**r.model_dump()) for r in info.child_relationships
                ],
            )
        return out

    def from_matches(
        self,
        matches: Iterable[FieldMatch],
        exclude_tables: Iterable[str] = (),
    ) -> Dict[str, TableContext]:
        """
        Group vector matches by table, skipping tables already covered.
        """
        excluded = {t.lower() for t in exclude_tables}
        out: Dict[str, TableContext] = {}
        seen: set = set()

        for match in matches:
            payload = match.payload
            table = _first(payload, "table", "sobject", "table_name")
            if not table or str(table).lower() in excluded:
                continue
            table = str(table)
            ctx = out.setdefault(table, TableContext())

            child = _first(payload, "child_table", "childSObject", "childTable")
            if child:
                key = (table, "child", str(child), payload.get("relationship_name"))
                if key in seen:
                    continue
                seen.add(key)
                ctx.child_relationships.append(ChildRelationshipContext(
                    child_table=str(child),
                    field=_first(payload, "child_field", "field"),
                    relationship_name=_first(payload, "relationship_name", "relationshipName"),
                ))
                continue

            field = normalize_field_payload(payload)
            if field is None:
                continue
            key = (table, field.name)
            if key in seen:
                continue
            seen.add(key)
            if len(ctx.fields) < self.max_fields_per_table:
                ctx.fields.append(field)

        return out

    async def from_vectors(
        self,
        description: str,
        exclude_tables: Iterable[str] = (),
    ) -> Dict[str, TableContext]:
        if not self.has_vector_source or not description.strip():
            return {}

        query_vec = await self.embedder.embed_one(description)
        matches = self.field_store.query(query_vec, self.top_k)
        return self.from_matches(matches, exclude_tables)

    def _cap(self, fields: List[FieldContext]) -> List[FieldContext]:
        if len(fields) <= self.max_fields_per_table:
            return fields
        # Primary keys always survive; the rest fill the remaining slots in
        # definition order.
        budget = max(self.max_fields_per_table - sum(1 for f in fields if f.primary_key), 0)
        kept: List[FieldContext] = []
        for f in fields:
            if f.primary_key:
                kept.append(f)
            elif budget > 0:
                kept.append(f)
                budget -= 1
        return kept

    async def build(self, description: str, tables: Sequence[str] = ()) -> SchemaContext:
        """
        Build the context for a request.

        Graph definitions win for every requested table the graph knows.
        Vector matches fill in tables the graph does not cover.
        """
        graph_tables = self.from_graph(tables)
        vector_tables = await self.from_vectors(description, exclude_tables=graph_tables.keys())

        merged: Dict[str, TableContext] = dict(graph_tables)
        for name, ctx in vector_tables.items():
            if ctx.fields or ctx.child_relationships:
                merged.setdefault(name, ctx)

        if graph_tables and len(merged) > len(graph_tables):
            source = "mixed"
        elif graph_tables:
            source = "graph"
        elif merged:
            source = "vector"
        else:
            source = "empty"

        context = SchemaContext(tables=merged, source=source)
        logger.debug(
            "Built %s schema context: %d tables, %d fields",
            source,
            len(context.tables),
            context.field_count,
        )
        return context
