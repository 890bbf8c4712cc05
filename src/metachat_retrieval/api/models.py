"""
API Models

Pydantic request/response models for the retrieval and partition endpoints.

Range checks on top_k, min_similarity and the partition window are left to
the engine so that every surface reports them the same way (400
`invalid_input`); the models only enforce shape.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..partitions.models import (
    Partition,
    PartitionOutcome,
    PartitionReport,
    RetirementReport,
)
from ..retrieval.models import HybridSearchOutcome, RetrievalResult, RetrievalType


# ---------------------------------------------------------------------
# Retrieval
# ---------------------------------------------------------------------

class RetrieveRequest(BaseModel):
    """
    Hybrid retrieval request. The tenant comes from the caller's token.
    """
    query_text: str
    query_embedding: List[float]
    top_k: Optional[int] = None
    min_similarity: Optional[float] = None

    model_config = ConfigDict(extra="forbid")


class RetrievedChunk(BaseModel):
    chunk_id: str
    document_id: str
    content: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    position: Optional[int] = None
    score: float = Field(..., ge=0.0)
    type: RetrievalType

    @classmethod
    def from_result(cls, result: RetrievalResult) -> "RetrievedChunk":
        chunk = result.chunk
        return cls(
            chunk_id=chunk.id,
            document_id=chunk.document_id,
            content=chunk.content,
            metadata=dict(chunk.metadata),
            position=chunk.position,
            score=result.score,
            type=result.type,
        )


class RetrieveResponse(BaseModel):
    results: List[RetrievedChunk] = Field(default_factory=list)
    degraded_modalities: List[RetrievalType] = Field(default_factory=list)

    @classmethod
    def from_outcome(cls, outcome: HybridSearchOutcome) -> "RetrieveResponse":
        return cls(
            results=[RetrievedChunk.from_result(r) for r in outcome.results],
            degraded_modalities=list(outcome.degraded_modalities),
        )


# ---------------------------------------------------------------------
# Partitions
# ---------------------------------------------------------------------

class EnsurePartitionsRequest(BaseModel):
    months_back: Optional[int] = None
    months_forward: Optional[int] = None

    model_config = ConfigDict(extra="forbid")


class EnsurePartitionsResponse(BaseModel):
    ok: bool
    window_start: date
    window_end: date
    created: int = Field(..., ge=0)
    already_present: int = Field(..., ge=0)
    failed: int = Field(..., ge=0)
    outcomes: List[PartitionOutcome] = Field(default_factory=list)
    gaps: Dict[str, List[date]] = Field(default_factory=dict)
    verification_errors: Dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_report(cls, report: PartitionReport) -> "EnsurePartitionsResponse":
        return cls(
            ok=report.ok,
            window_start=report.window_start,
            window_end=report.window_end,
            created=len(report.created),
            already_present=len(report.already_present),
            failed=len(report.failed),
            outcomes=report.outcomes,
            gaps=report.gaps,
            verification_errors=report.verification_errors,
        )


class RetirePartitionsRequest(BaseModel):
    retain_months: Optional[int] = None
    dry_run: bool = True
    archive: Optional[bool] = None

    model_config = ConfigDict(extra="forbid")


class PartitionListing(BaseModel):
    table_family: str
    partitions: List[Partition] = Field(default_factory=list)
    gaps: List[date] = Field(default_factory=list)


class PartitionListResponse(BaseModel):
    tables: List[PartitionListing] = Field(default_factory=list)


# Re-exported for route signatures.
RetirePartitionsResponse = RetirementReport
