"""
LLM Tool Definitions

Function schemas for the read-only schema introspection tools offered to the
model during schema exploration. These definitions must stay synchronized
with `tools/base.py` (TOOL_REGISTRY); only tools defined here can ever be
invoked by the model.
"""

from __future__ import annotations

from typing import Dict, List, Any, Final


# ---------------------------------------------------------------------
# Tool Name Constants (Single Source of Truth)
# ---------------------------------------------------------------------

TOOL_LIST_TABLES: Final[str] = "list_tables"
TOOL_GET_TABLE_INFO: Final[str] = "get_table_info"
TOOL_ANALYZE_TABLE_RELATIONSHIPS: Final[str] = "analyze_table_relationships"
TOOL_FIND_JOIN_PATH: Final[str] = "find_join_path"


_TABLE_PARAM: Dict[str, Any] = {
    "type": "string",
    "description": "Exact table name as returned by list_tables.",
    "minLength": 1,
}


# ---------------------------------------------------------------------
# Tool Definitions
# ---------------------------------------------------------------------

TOOL_DEFINITIONS: List[Dict[str, Any]] = [
    {
        "type": "function",
        "function": {
            "name": TOOL_LIST_TABLES,
            "description": (
                "Lists the tables available in the discovered schema. "
                "Optionally filter by a name pattern using '*' as wildcard."
            ),
            "parameters": {
                "type": "object",
                "properties": {
                    "pattern": {
                        "type": "string",
                        "description": "Optional name pattern, e.g. 'Acc*'.",
                    },
                    "limit": {
                        "type": "integer",
                        "minimum": 1,
                        "maximum": 500,
                        "default": 100,
                    },
                },
                "required": [],
                "additionalProperties": False,
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": TOOL_GET_TABLE_INFO,
            "description": (
                "Returns the columns (name, type, nullability, primary key, "
                "picklist values) and foreign keys of one table."
            ),
            "parameters": {
                "type": "object",
                "properties": {"table": _TABLE_PARAM},
                "required": ["table"],
                "additionalProperties": False,
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": TOOL_ANALYZE_TABLE_RELATIONSHIPS,
            "description": (
                "Lists tables directly related to the given table, in both "
                "directions, with the connecting column."
            ),
            "parameters": {
                "type": "object",
                "properties": {"table": _TABLE_PARAM},
                "required": ["table"],
                "additionalProperties": False,
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": TOOL_FIND_JOIN_PATH,
            "description": (
                "Finds the shortest chain of relationships connecting two "
                "tables. Returns found=false when they are not connected."
            ),
            "parameters": {
                "type": "object",
                "properties": {
                    "from_table": _TABLE_PARAM,
                    "to_table": _TABLE_PARAM,
                    "max_depth": {
                        "type": "integer",
                        "minimum": 1,
                        "maximum": 10,
                    },
                },
                "required": ["from_table", "to_table"],
                "additionalProperties": False,
            },
        },
    },
]


def get_tool_names() -> List[str]:
    return [t["function"]["name"] for t in TOOL_DEFINITIONS]
