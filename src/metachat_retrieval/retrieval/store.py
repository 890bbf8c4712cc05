"""
Chunk Store Contract

`ChunkStore` is the storage collaborator consumed by the hybrid retriever.
Concrete stores implement `_vector_search` and `_keyword_search`; the public
methods wrap them with the behaviour every store must share:

- input validation before any storage access
- the storage retry policy
- deterministic ordering (score desc, chunk id asc) and truncation
- the tenant isolation check on everything the backend returned

`InMemoryChunkStore` is the exact brute-force implementation: cosine
similarity against every chunk of the tenant, and TF-IDF keyword ranking. It
is the correctness baseline the PostgreSQL store is measured against.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from threading import RLock
from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np

from ..config import settings
from ..core.errors import InvalidInput
from ..core.retry import RetryPolicy
from ..tenants import assert_tenant_scoped, validate_tenant_id
from .models import DocumentChunk, RetrievalResult, RetrievalType, ranking_key
from .scoring import cosine_similarities, tfidf_scores
from .validation import (
    resolve_min_similarity,
    resolve_top_k,
    validate_embedding,
    validate_query_text,
)

logger = logging.getLogger("retrieval.store")


class ChunkStore(ABC):
    """
    Tenant-scoped, read-mostly access to indexed document chunks.
    """

    def __init__(
        self,
        dimension: Optional[int] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> None:
        self.dimension = dimension or settings.embedding_dimension
        self._retry = retry_policy or RetryPolicy.from_settings()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def vector_search(
        self,
        tenant_id: str,
        query_embedding: Sequence[float],
        top_k: Optional[int] = None,
        min_similarity: Optional[float] = None,
    ) -> List[RetrievalResult]:
        """
        Nearest chunks of `tenant_id` by cosine similarity.

        Parameters
        ----------
        tenant_id : str
            Isolation key. Only this tenant's chunks are considered.
        query_embedding : Sequence[float]
            Must have exactly `self.dimension` finite values.
        top_k : Optional[int]
            Maximum number of results; platform default when omitted.
        min_similarity : Optional[float]
            Results strictly below this similarity are excluded.

        Returns
        -------
        List[RetrievalResult]
            `type=vector`, `score` is the cosine similarity.

        Raises
        ------
        InvalidInput
            On malformed arguments. Raised before any storage access.
        """
        tenant_id = validate_tenant_id(tenant_id)
        embedding = validate_embedding(query_embedding, self.dimension)
        k = resolve_top_k(top_k)
        threshold = resolve_min_similarity(min_similarity)

        results = await self._retry.call(
            self._vector_search, tenant_id, embedding, k, threshold
        )
        assert_tenant_scoped(tenant_id, results)

        results = [r for r in results if r.score >= threshold]
        return sorted(results, key=ranking_key)[:k]

    async def keyword_search(
        self,
        tenant_id: str,
        query_text: str,
        top_k: Optional[int] = None,
    ) -> List[RetrievalResult]:
        """
        Lexically ranked chunks of `tenant_id`.

        Returns `type=keyword` results whose score is the backend's rank.
        Chunks sharing no term with the query are not returned.
        """
        tenant_id = validate_tenant_id(tenant_id)
        query_text = validate_query_text(query_text)
        k = resolve_top_k(top_k)

        results = await self._retry.call(self._keyword_search, tenant_id, query_text, k)
        assert_tenant_scoped(tenant_id, results)

        return sorted(results, key=ranking_key)[:k]

    # ------------------------------------------------------------------
    # Backend hooks
    # ------------------------------------------------------------------

    @abstractmethod
    async def _vector_search(
        self,
        tenant_id: str,
        embedding: List[float],
        top_k: int,
        min_similarity: float,
    ) -> List[RetrievalResult]:
        ...

    @abstractmethod
    async def _keyword_search(
        self,
        tenant_id: str,
        query_text: str,
        top_k: int,
    ) -> List[RetrievalResult]:
        ...


class InMemoryChunkStore(ChunkStore):
    """
    Exact in-process chunk store.

    Thread-safe; chunks are grouped per tenant so a lookup never touches
    another tenant's rows.
    """

    def __init__(
        self,
        dimension: Optional[int] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> None:
        super().__init__(dimension=dimension, retry_policy=retry_policy)
        self._chunks: Dict[str, Dict[str, DocumentChunk]] = {}
        self._lock = RLock()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def add_chunks(self, chunks: Iterable[DocumentChunk]) -> int:
        """
        Index new chunks. Existing ids are rejected, never overwritten.
        """
        chunks = list(chunks)
        seen: set = set()

        with self._lock:
            for chunk in chunks:
                validate_tenant_id(chunk.tenant_id)
                if len(chunk.embedding) != self.dimension:
                    raise InvalidInput(
                        f"Chunk {chunk.id} has dimension {len(chunk.embedding)}, "
                        f"expected {self.dimension}"
                    )
                if chunk.id in seen or self._find(chunk.id) is not None:
                    raise InvalidInput(f"Chunk {chunk.id} is already indexed")
                seen.add(chunk.id)

            for chunk in chunks:
                self._chunks.setdefault(chunk.tenant_id, {})[chunk.id] = chunk

        return len(chunks)

    def delete_document(self, tenant_id: str, document_id: str) -> int:
        """
        Remove every chunk of a document. Returns the number removed.
        """
        with self._lock:
            tenant_chunks = self._chunks.get(tenant_id, {})
            doomed = [cid for cid, c in tenant_chunks.items() if c.document_id == document_id]
            for cid in doomed:
                del tenant_chunks[cid]
            return len(doomed)

    def get_stats(self, tenant_id: str) -> dict:
        with self._lock:
            tenant_chunks = list(self._chunks.get(tenant_id, {}).values())
        return {
            "total_chunks": len(tenant_chunks),
            "total_documents": len({c.document_id for c in tenant_chunks}),
        }

    def _find(self, chunk_id: str) -> Optional[DocumentChunk]:
        for tenant_chunks in self._chunks.values():
            if chunk_id in tenant_chunks:
                return tenant_chunks[chunk_id]
        return None

    def _snapshot(self, tenant_id: str) -> List[DocumentChunk]:
        with self._lock:
            return list(self._chunks.get(tenant_id, {}).values())

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def _vector_search(
        self,
        tenant_id: str,
        embedding: List[float],
        top_k: int,
        min_similarity: float,
    ) -> List[RetrievalResult]:
        chunks = self._snapshot(tenant_id)
        if not chunks:
            return []

        matrix = np.asarray([c.embedding for c in chunks], dtype=np.float64)
        sims = cosine_similarities(embedding, matrix)

        results = [
            RetrievalResult(chunk=chunk, score=float(sim), type=RetrievalType.VECTOR)
            for chunk, sim in zip(chunks, sims)
            if sim >= min_similarity
        ]
        results.sort(key=ranking_key)
        return results[:top_k]

    async def _keyword_search(
        self,
        tenant_id: str,
        query_text: str,
        top_k: int,
    ) -> List[RetrievalResult]:
        chunks = {c.id: c for c in self._snapshot(tenant_id)}
        scores = tfidf_scores(query_text, {cid: c.content for cid, c in chunks.items()})

        results = [
            RetrievalResult(chunk=chunks[cid], score=score, type=RetrievalType.KEYWORD)
            for cid, score in scores.items()
        ]
        results.sort(key=ranking_key)
        return results[:top_k]
