"""
Retrieval Data Models

Canonical types shared by the chunk stores, the hybrid ranker and the API
layer.

- DocumentChunk    one retrievable, immutable span of a source document
- RetrievalResult  a chunk with a modality-specific score and its origin
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


DEFAULT_SOURCE = "knowledge_base"


class RetrievalType(str, Enum):
    """Which modality produced a result."""

    KEYWORD = "keyword"
    VECTOR = "vector"
    HYBRID = "hybrid"


def normalize_metadata(raw: Any) -> Dict[str, Any]:
    """
    Coerce stored chunk metadata into a mapping.

    Storage may hand back a dict, a JSON string or nothing at all. Unparsable
    strings are preserved under ``raw``. The result always has a ``source``.
    """
    if raw is None:
        metadata: Dict[str, Any] = {}
    elif isinstance(raw, dict):
        metadata = dict(raw)
    elif isinstance(raw, str):
        try:
            parsed = json.loads(raw)
        except ValueError:
            parsed = {"raw": raw}
        metadata = parsed if isinstance(parsed, dict) else {"raw": parsed}
    else:
        metadata = {}

    metadata.setdefault("source", DEFAULT_SOURCE)
    return metadata


class DocumentChunk(BaseModel):
    """
    A single indexed document chunk.

    Chunks are never edited in place. Re-indexing a document deletes its
    chunks and inserts new ones under new ids.
    """

    id: str = Field(..., min_length=1)
    document_id: str = Field(..., min_length=1)
    tenant_id: str = Field(..., min_length=1)
    content: str
    embedding: Tuple[float, ...] = Field(
        default=(),
        description="Empty when the chunk was loaded without its vector.",
    )
    metadata: Dict[str, Any] = Field(default_factory=dict)
    position: Optional[int] = Field(default=None, ge=0)

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
    )

    @field_validator("metadata", mode="before")
    @classmethod
    def _coerce_metadata(cls, v: Any) -> Dict[str, Any]:
        return normalize_metadata(v)

    @field_validator("embedding", mode="before")
    @classmethod
    def _coerce_embedding(cls, v: Any) -> Tuple[float, ...]:
        if v is None:
            return ()
        return tuple(float(x) for x in v)


class RetrievalResult(BaseModel):
    """
    A scored chunk.

    `score` is on the producing modality's scale (cosine similarity for
    vector, rank for keyword) until the hybrid ranker rescales it.
    """

    chunk: DocumentChunk
    score: float = Field(..., ge=0.0)
    type: RetrievalType

    model_config = ConfigDict(frozen=True)


class HybridSearchOutcome(BaseModel):
    """
    Fused results plus the modalities that could not contribute.
    """

    results: List[RetrievalResult] = Field(default_factory=list)
    degraded_modalities: List[RetrievalType] = Field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return bool(self.degraded_modalities)


def ranking_key(result: RetrievalResult) -> Tuple[float, str]:
    """
    Sort key: score descending, then chunk id ascending.
    """
    return (-result.score, result.chunk.id)
