"""
Hybrid Retriever

Composes vector search, keyword search and the hybrid ranker into the single
`retrieve` operation exposed to the conversation layer.

Concurrency
-----------
Both modalities run as independent asyncio tasks and are joined with a
bounded timeout. A modality that fails or times out is cancelled, logged and
marked degraded; fusion proceeds with the other one. Only when both are
unavailable does the call fail with RetrievalUnavailable.

Cancelling the awaiting caller cancels both in-flight lookups.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional, Sequence

from ..config import settings
from ..core.errors import (
    InvalidInput,
    ModalityUnavailable,
    RetrievalUnavailable,
    TenantIsolationViolation,
)
from ..tenants import assert_tenant_scoped, validate_tenant_id
from .fusion import fuse, resolve_weights
from .models import HybridSearchOutcome, RetrievalResult, RetrievalType
from .store import ChunkStore
from .validation import (
    resolve_min_similarity,
    resolve_top_k,
    validate_embedding,
    validate_query_text,
)

logger = logging.getLogger("retrieval.hybrid")

# Errors that describe the request or a defect, not an outage.
_FATAL_ERRORS = (InvalidInput, TenantIsolationViolation)


class HybridRetriever:
    """
    Tenant-scoped hybrid retrieval over a ChunkStore.

    Stateless apart from configuration; one instance serves concurrent
    queries for any number of tenants.
    """

    def __init__(
        self,
        store: ChunkStore,
        vector_weight: Optional[float] = None,
        keyword_weight: Optional[float] = None,
        timeout_seconds: Optional[float] = None,
        candidate_multiplier: Optional[int] = None,
    ) -> None:
        self._store = store
        self._vector_weight, self._keyword_weight = resolve_weights(
            vector_weight, keyword_weight
        )
        self._timeout = (
            timeout_seconds if timeout_seconds is not None
            else settings.modality_timeout_seconds
        )
        self._candidate_multiplier = max(
            1, candidate_multiplier or settings.candidate_multiplier
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def retrieve(
        self,
        tenant_id: str,
        query_text: str,
        query_embedding: Sequence[float],
        top_k: Optional[int] = None,
        min_similarity: Optional[float] = None,
    ) -> List[RetrievalResult]:
        """
        Return the fused, ranked results for one query.

        Raises
        ------
        InvalidInput
            Malformed arguments; raised before any lookup starts.
        RetrievalUnavailable
            Neither modality produced results.
        TenantIsolationViolation
            A lookup returned another tenant's chunk.
        """
        outcome = await self.search(
            tenant_id=tenant_id,
            query_text=query_text,
            query_embedding=query_embedding,
            top_k=top_k,
            min_similarity=min_similarity,
        )
        return outcome.results

    async def search(
        self,
        tenant_id: str,
        query_text: str,
        query_embedding: Sequence[float],
        top_k: Optional[int] = None,
        min_similarity: Optional[float] = None,
    ) -> HybridSearchOutcome:
        """
        Same as `retrieve` but also reports which modalities were degraded.
        """
        tenant_id = validate_tenant_id(tenant_id)
        query_text = validate_query_text(query_text)
        embedding = validate_embedding(query_embedding, self._store.dimension)
        k = resolve_top_k(top_k, maximum=settings.max_top_k)
        threshold = resolve_min_similarity(min_similarity)

        candidates = k * self._candidate_multiplier

        lookups = {
            RetrievalType.VECTOR: self._store.vector_search(
                tenant_id, embedding, candidates, threshold
            ),
            RetrievalType.KEYWORD: self._store.keyword_search(
                tenant_id, query_text, candidates
            ),
        }

        gathered = await self._gather(lookups)

        degraded = [
            modality for modality, value in gathered.items()
            if isinstance(value, ModalityUnavailable)
        ]
        if len(degraded) == len(gathered):
            raise RetrievalUnavailable(
                "; ".join(str(gathered[m]) for m in degraded)
            )

        vector_results = self._results_or_empty(gathered[RetrievalType.VECTOR])
        keyword_results = self._results_or_empty(gathered[RetrievalType.KEYWORD])

        fused = fuse(
            vector_results,
            keyword_results,
            k,
            vector_weight=self._vector_weight,
            keyword_weight=self._keyword_weight,
        )
        assert_tenant_scoped(tenant_id, fused)

        logger.debug(
            "Hybrid retrieval for tenant %s: vector=%d keyword=%d fused=%d degraded=%s",
            tenant_id,
            len(vector_results),
            len(keyword_results),
            len(fused),
            [m.value for m in degraded],
        )

        return HybridSearchOutcome(results=fused, degraded_modalities=degraded)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _results_or_empty(value: object) -> List[RetrievalResult]:
        if isinstance(value, ModalityUnavailable):
            return []
        return list(value)  # type: ignore[arg-type]

    async def _gather(self, lookups: Dict[RetrievalType, object]) -> Dict[RetrievalType, object]:
        """
        Run all lookups concurrently and join them with the timeout.

        Each value of the returned mapping is either the lookup's result list
        or the ModalityUnavailable describing why it has none.
        """
        tasks = {
            asyncio.ensure_future(coro): modality  # type: ignore[arg-type]
            for modality, coro in lookups.items()
        }

        try:
            _, pending = await asyncio.wait(set(tasks), timeout=self._timeout)
        finally:
            # Runs on timeout and on caller cancellation alike.
            for task in tasks:
                if not task.done():
                    task.cancel()

        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        gathered: Dict[RetrievalType, object] = {}
        for task, modality in tasks.items():
            if task in pending:
                gathered[modality] = self._unavailable(
                    modality, f"timed out after {self._timeout}s"
                )
                continue

            if task.cancelled():
                gathered[modality] = self._unavailable(modality, "lookup was cancelled")
                continue

            exc = task.exception()
            if exc is None:
                gathered[modality] = task.result()
            elif isinstance(exc, _FATAL_ERRORS):
                raise exc
            else:
                gathered[modality] = self._unavailable(
                    modality, f"{type(exc).__name__}: {exc}", exc
                )

        return gathered

    @staticmethod
    def _unavailable(
        modality: RetrievalType,
        reason: str,
        exc: Optional[BaseException] = None,
    ) -> ModalityUnavailable:
        logger.warning(
            "%s search unavailable, continuing degraded: %s",
            modality.value,
            reason,
            exc_info=exc,
        )
        return ModalityUnavailable(modality.value, reason)
