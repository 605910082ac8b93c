"""
Schema Introspection Tools

Read-only views over a `SchemaGraph`, shaped as JSON-friendly dicts for the
model. Unknown tables raise `ValueError`; the tool loop reports that back to
the model instead of failing the request.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from ..graph.schema_graph import SchemaGraph


def tool_list_tables(
    graph: SchemaGraph,
    pattern: Optional[str] = None,
    limit: int = 100,
) -> Dict[str, Any]:
    names = graph.get_all_table_names()
    if pattern:
        if "*" not in pattern and "%" not in pattern:
            pattern = f"*{pattern}*"
        matched = {n.name for n in graph.get_nodes_by_name(pattern)}
        names = [n for n in names if n in matched]

    return {"tables": names[:limit], "total": len(names)}


def tool_get_table_info(graph: SchemaGraph, table: str) -> Dict[str, Any]:
    info = graph.get_table_info(table)
    if info is None:
        raise ValueError(f"Unknown table: {table}")
    return info.model_dump(exclude_none=True)


def tool_analyze_table_relationships(graph: SchemaGraph, table: str) -> Dict[str, Any]:
    if not graph.has_table(table):
        raise ValueError(f"Unknown table: {table}")

    relationships = graph.analyze_table_relationships(table)
    return {
        "table": table,
        "relationships": [r.model_dump(mode="json", exclude_none=True) for r in relationships],
    }


def tool_find_join_path(
    graph: SchemaGraph,
    from_table: str,
    to_table: str,
    max_depth: Optional[int] = None,
) -> Dict[str, Any]:
    path = graph.find_join_path(from_table, to_table, max_depth=max_depth)
    return path.model_dump(exclude_none=True)
