"""
Tool Dispatch Layer

Central dispatch for model-invoked tool calls. It enforces:

- Explicit tool allow-listing
- Argument validation
- Injection of the schema graph the tools read from

This is a security boundary: no tool is callable unless it is registered
here, and every registered tool is read-only.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict

from .definitions import (
    TOOL_ANALYZE_TABLE_RELATIONSHIPS,
    TOOL_FIND_JOIN_PATH,
    TOOL_GET_TABLE_INFO,
    TOOL_LIST_TABLES,
)
from .schema_tools import (
    tool_analyze_table_relationships,
    tool_find_join_path,
    tool_get_table_info,
    tool_list_tables,
)
from ..graph.schema_graph import SchemaGraph


# ---------------------------------------------------------------------
# Tool Type Definitions
# ---------------------------------------------------------------------

ToolHandler = Callable[[Dict[str, Any], SchemaGraph], Awaitable[Any]]


def _require(args: Dict[str, Any], key: str, tool: str) -> str:
    value = args.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{tool} requires '{key}' argument.")
    return value.strip()


def _optional_int(args: Dict[str, Any], key: str, default: Any = None) -> Any:
    value = args.get(key, default)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValueError(f"'{key}' must be a positive integer.")
    return value


# ---------------------------------------------------------------------
# Tool Registry (AUTHORITATIVE)
# ---------------------------------------------------------------------

async def _handle_list_tables(args: Dict[str, Any], graph: SchemaGraph) -> Any:
    pattern = args.get("pattern")
    return tool_list_tables(
        graph,
        pattern=pattern if isinstance(pattern, str) and pattern.strip() else None,
        limit=_optional_int(args, "limit", 100),
    )


async def _handle_get_table_info(args: Dict[str, Any], graph: SchemaGraph) -> Any:
    table = _require(args, "table", TOOL_GET_TABLE_INFO)
    return tool_get_table_info(graph, table)


async def _handle_analyze_relationships(args: Dict[str, Any], graph: SchemaGraph) -> Any:
    table = _require(args, "table", TOOL_ANALYZE_TABLE_RELATIONSHIPS)
    return tool_analyze_table_relationships(graph, table)


async def _handle_find_join_path(args: Dict[str, Any], graph: SchemaGraph) -> Any:
    return tool_find_join_path(
        graph,
        from_table=_require(args, "from_table", TOOL_FIND_JOIN_PATH),
        to_table=_require(args, "to_table", TOOL_FIND_JOIN_PATH),
        max_depth=_optional_int(args, "max_depth"),
    )


TOOL_REGISTRY: Dict[str, ToolHandler] = {
    TOOL_LIST_TABLES: _handle_list_tables,
    TOOL_GET_TABLE_INFO: _handle_get_table_info,
    TOOL_ANALYZE_TABLE_RELATIONSHIPS: _handle_analyze_relationships,
    TOOL_FIND_JOIN_PATH: _handle_find_join_path,
}


# ---------------------------------------------------------------------
# Public Dispatch API
# ---------------------------------------------------------------------

async def dispatch_tool_call(
    tool_name: str,
    args: Dict[str, Any],
    graph: SchemaGraph,
) -> Any:
    """
    Dispatch a tool call requested by the model.

    Parameters
    ----------
    tool_name : str
        The symbolic tool name requested by the model.

    args : Dict[str, Any]
        Parsed JSON arguments for the tool.

    graph : SchemaGraph
        Schema graph the tool reads from.

    Returns
    -------
    Any
        JSON-serializable tool result.

    Raises
    ------
    ValueError
        If the tool name is unknown or required arguments are missing.
    """
    handler = TOOL_REGISTRY.get(tool_name)
    if not handler:
        raise ValueError(f"Unknown tool requested: {tool_name}")

    if not isinstance(args, dict):
        raise ValueError("Tool arguments must be a JSON object.")

    return await handler(args, graph)
