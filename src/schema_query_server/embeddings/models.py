"""
Vector Data Models

This module defines the canonical data models stored alongside vectors in the
in-memory `VectorIndex` and returned from similarity search.

Each `VectorDocument` corresponds to ONE vector in ONE index.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, ConfigDict


class VectorDocument(BaseModel):
    """
    A document stored next to a vector.

    This model is the authoritative schema for:
    - VectorIndex storage
    - JSON persistence (`VectorIndex.to_json`)
    - Similarity search result mapping
    """

    id: str = Field(
        ...,
        min_length=1,
        description="Identifier of the vector this document belongs to.",
    )

    text: Optional[str] = Field(
        default=None,
        description="Optional textual content that was embedded.",
    )

    metadata: Dict[str, Any] = Field(
        default_factory=dict,
        description="Free-form payload (e.g. table and field names).",
    )

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
    )


class ScoredDocument(BaseModel):
    """
    A similarity search hit.
    """
    doc: VectorDocument
    score: float

    model_config = ConfigDict(extra="forbid")


class VectorStoreEntry(BaseModel):
    """
    Upsert input for `FieldVectorStore`.
    """
    id: str = Field(..., min_length=1)
    vector: List[float] = Field(..., min_length=1)
    payload: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid")


class FieldMatch(BaseModel):
    """
    Result row of `FieldVectorStore.query`.
    """
    id: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    score: float

    model_config = ConfigDict(extra="forbid")
