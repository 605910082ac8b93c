"""
API Models

Request and response envelopes for the HTTP surface. Pipeline results are
embedded unchanged so clients see the same variants the library returns.
"""

from __future__ import annotations

from typing import List, Optional, Union

from pydantic import BaseModel, Field, ConfigDict

from ..synthesis.models import MappingSucceeded, QueryExecuted, Rejection


class QueryRequest(BaseModel):
    description: str = Field(..., description="Natural-language data request.")
    tables: List[str] = Field(
        default_factory=list,
        description="Target table names whose schema should be discovered.",
    )
    snapshot_location: Optional[str] = Field(
        default=None,
        description="Location returned by a previous call, reused when it covers every table.",
    )
    user_id: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class QueryResponse(BaseModel):
    result: Union[QueryExecuted, Rejection] = Field(..., discriminator="status")
    snapshot_location: Optional[str] = None
    failed_tables: List[str] = Field(default_factory=list)


class MappingRequest(BaseModel):
    table: str = Field(..., description="Target table name.")
    csv: str = Field(
        ...,
        description="CSV attachment: inline text, base64, a data: URL or an http(s) URL.",
    )
    has_header: bool = True
    expected_columns: Optional[List[str]] = None
    return_sample: int = Field(default=5, ge=0, le=50)
    snapshot_location: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class MappingResponse(BaseModel):
    result: Union[MappingSucceeded, Rejection] = Field(..., discriminator="status")
    snapshot_location: Optional[str] = None
