"""
Schema Graph Package

Structural model of discovered tables, columns and relationships, plus the
immutable table definitions it is built from.
"""

from .models import (
    ColumnSchema,
    ForeignKeySchema,
    ChildRelationshipSchema,
    TableSchema,
    NodeType,
    EdgeType,
    GraphNode,
    GraphEdge,
    TableInfo,
    TableRelationship,
    JoinStep,
    JoinPath,
)
from .schema_graph import SchemaGraph, SchemaGraphError

__all__ = [
    "ColumnSchema",
    "ForeignKeySchema",
    "ChildRelationshipSchema",
    "TableSchema",
    "NodeType",
    "EdgeType",
    "GraphNode",
    "GraphEdge",
    "TableInfo",
    "TableRelationship",
    "JoinStep",
    "JoinPath",
    "SchemaGraph",
    "SchemaGraphError",
]
