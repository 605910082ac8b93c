"""
Schema Graph Data Models

Two families of models live here:

Input schema (`TableSchema` and friends)
    Immutable values built once per introspection cycle (from a describe
    payload or a test fixture) and fed to `SchemaGraph.from_tables`. They are
    frozen so the same table can appear in several query contexts without
    aliasing surprises.

Graph structure and projections (`GraphNode`, `GraphEdge`, `TableInfo`, ...)
    What the graph stores and what its query methods return.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, ConfigDict


# ---------------------------------------------------------------------
# Input schema
# ---------------------------------------------------------------------

class ColumnSchema(BaseModel):
    name: str = Field(..., min_length=1)
    data_type: str = "unknown"
    is_nullable: bool = True
    is_primary_key: bool = False
    max_length: Optional[int] = None
    precision: Optional[int] = None
    label: Optional[str] = None
    picklist_values: Tuple[str, ...] = ()
    relationship_name: Optional[str] = None

    model_config = ConfigDict(extra="forbid", frozen=True)


class ForeignKeySchema(BaseModel):
    column_name: str = Field(..., min_length=1)
    referenced_table: str = Field(..., min_length=1)
    referenced_column: str = "Id"
    relationship_name: Optional[str] = None

    model_config = ConfigDict(extra="forbid", frozen=True)


class ChildRelationshipSchema(BaseModel):
    child_table: str = Field(..., min_length=1)
    field: str = Field(..., min_length=1)
    relationship_name: Optional[str] = None

    model_config = ConfigDict(extra="forbid", frozen=True)


class TableSchema(BaseModel):
    """
    Immutable definition of one table as discovered from a schema source.
    """

    name: str = Field(..., min_length=1)
    namespace: str = "public"
    label: Optional[str] = None
    columns: Tuple[ColumnSchema, ...] = ()
    foreign_keys: Tuple[ForeignKeySchema, ...] = ()
    child_relationships: Tuple[ChildRelationshipSchema, ...] = ()

    model_config = ConfigDict(extra="forbid", frozen=True)

    def column(self, name: str) -> Optional[ColumnSchema]:
        for col in self.columns:
            if col.name == name:
                return col
        lowered = name.lower()
        for col in self.columns:
            if col.name.lower() == lowered:
                return col
        return None

    @property
    def column_names(self) -> List[str]:
        return [c.name for c in self.columns]


# ---------------------------------------------------------------------
# Graph structure
# ---------------------------------------------------------------------

class NodeType(str, Enum):
    TABLE = "TABLE"
    COLUMN = "COLUMN"


class EdgeType(str, Enum):
    TABLE_COLUMN = "TABLE_COLUMN"
    PRIMARY_KEY = "PRIMARY_KEY"
    FOREIGN_KEY = "FOREIGN_KEY"
    RELATIONSHIP = "RELATIONSHIP"


class GraphNode(BaseModel):
    id: str = Field(..., min_length=1)
    type: NodeType
    name: str = Field(..., min_length=1)
    namespace: str = "public"

    # Column-only attributes
    table_name: Optional[str] = None
    data_type: Optional[str] = None
    is_nullable: Optional[bool] = None
    is_primary_key: Optional[bool] = None
    max_length: Optional[int] = None
    position: Optional[int] = None

    metadata: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid", frozen=True)


class GraphEdge(BaseModel):
    id: str = Field(..., min_length=1)
    type: EdgeType
    source_id: str
    target_id: str
    column_name: Optional[str] = None
    referenced_table: Optional[str] = None
    referenced_column: Optional[str] = None
    position: Optional[int] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid", frozen=True)


# ---------------------------------------------------------------------
# Query projections
# ---------------------------------------------------------------------

class ColumnInfo(BaseModel):
    name: str
    data_type: str = "unknown"
    is_nullable: bool = True
    is_primary_key: bool = False
    max_length: Optional[int] = None
    label: Optional[str] = None
    picklist_values: List[str] = Field(default_factory=list)
    relationship_name: Optional[str] = None


class ForeignKeyInfo(BaseModel):
    column_name: str
    referenced_table: str
    referenced_column: str = "Id"
    relationship_name: Optional[str] = None
    resolved: bool = True


class ChildRelationshipInfo(BaseModel):
    child_table: str
    field: str
    relationship_name: Optional[str] = None


class TableInfo(BaseModel):
    name: str
    namespace: str
    label: Optional[str] = None
    columns: List[ColumnInfo] = Field(default_factory=list)
    foreign_keys: List[ForeignKeyInfo] = Field(default_factory=list)
    child_relationships: List[ChildRelationshipInfo] = Field(default_factory=list)
    primary_key: List[str] = Field(default_factory=list)


class TableRelationship(BaseModel):
    """
    One-hop relationship seen from `table`.

    `direction` is "outgoing" when `table` holds the referencing column and
    "incoming" when `related_table` does.
    """
    table: str
    related_table: str
    column_name: Optional[str] = None
    referenced_column: Optional[str] = None
    direction: str
    edge_type: EdgeType


class JoinStep(BaseModel):
    from_table: str
    to_table: str
    column_name: Optional[str] = None
    referenced_table: Optional[str] = None
    referenced_column: Optional[str] = None
    direction: str
    edge_id: str


class JoinPath(BaseModel):
    """
    Result of `SchemaGraph.find_join_path`.

    A missing path is a normal outcome: `found` is False and `reason`
    explains why.
    """
    from_table: str
    to_table: str
    found: bool
    steps: List[JoinStep] = Field(default_factory=list)
    reason: Optional[str] = None

    @property
    def length(self) -> int:
        return len(self.steps)
