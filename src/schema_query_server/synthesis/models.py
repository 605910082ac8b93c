"""
Synthesis Data Models

Generation output schemas (`QueryPlan`, `FieldMappingSet`) and the explicit
result variants returned by the pipelines. Pipelines never raise for
expected failures; they return a `Rejection` tagged with the stage that
failed.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------
# Generation output schemas
# ---------------------------------------------------------------------

class QueryPlan(BaseModel):
    query: str = Field(
        ...,
        min_length=1,
        description="A single read-only SELECT statement.",
    )
    tables_used: List[str] = Field(
        ...,
        min_length=1,
        description="Tables referenced by the query.",
    )
    rationale: str = Field(
        ...,
        max_length=500,
        description="Short explanation of the field and filter choices.",
    )
    confidence: float = Field(
        ...,
        ge=0.0,
        le=1.0,
        description="Confidence that the query answers the request.",
    )

    model_config = ConfigDict(extra="forbid")


class FieldMapping(BaseModel):
    source_field: str = Field(..., min_length=1, description="CSV header, verbatim.")
    target_field: str = Field(..., min_length=1, description="Target column name.")
    target_type: str = Field(..., description="Data type of the target column.")
    confidence: float = Field(..., ge=0.0, le=1.0)

    model_config = ConfigDict(extra="forbid")


class FieldMappingSet(BaseModel):
    mappings: List[FieldMapping] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")


# ---------------------------------------------------------------------
# Pipeline state
# ---------------------------------------------------------------------

class SynthesisState(str, Enum):
    IDLE = "Idle"
    CONTEXT_BUILT = "ContextBuilt"
    GENERATION_REQUESTED = "GenerationRequested"
    VALIDATED = "Validated"
    EXECUTED = "Executed"
    REJECTED = "Rejected"


RejectionStage = Literal["input", "schema", "generation", "validation", "execution"]


class Rejection(BaseModel):
    status: Literal["rejected"] = "rejected"
    stage: RejectionStage
    reason: str
    suggestions: List[str] = Field(default_factory=list)
    details: Optional[Any] = None
    plan: Optional[QueryPlan] = None
    states: List[SynthesisState] = Field(default_factory=list)


# ---------------------------------------------------------------------
# Query synthesis results
# ---------------------------------------------------------------------

class QueryMetadata(BaseModel):
    description: str
    requested_tables: List[str] = Field(default_factory=list)
    tables_referenced: List[str] = Field(default_factory=list)
    fields_considered: int = 0
    context_source: str = "graph"
    exploration_steps: int = 0


class QueryExecuted(BaseModel):
    status: Literal["executed"] = "executed"
    plan: QueryPlan
    rows: List[Dict[str, Any]] = Field(default_factory=list)
    row_count: int = 0
    metadata: QueryMetadata
    warnings: List[str] = Field(default_factory=list)
    states: List[SynthesisState] = Field(default_factory=list)


SynthesisResult = Union[QueryExecuted, Rejection]


# ---------------------------------------------------------------------
# Field mapping results
# ---------------------------------------------------------------------

class CsvInfo(BaseModel):
    total_rows: int
    columns: List[str]
    types: Dict[str, str]
    sample: Optional[List[Dict[str, Any]]] = None


class MappingMetadata(BaseModel):
    total_csv_headers: int
    successful_mappings: int
    unmapped_headers: List[str] = Field(default_factory=list)
    file_size_bytes: int


class MappingSucceeded(BaseModel):
    status: Literal["mapped"] = "mapped"
    table: str
    mappings: List[FieldMapping] = Field(default_factory=list)
    unmapped_headers: List[str] = Field(default_factory=list)
    csv_info: CsvInfo
    metadata: MappingMetadata


MappingResult = Union[MappingSucceeded, Rejection]
