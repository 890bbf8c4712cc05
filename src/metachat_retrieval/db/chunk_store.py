"""
PostgreSQL Chunk Store

PostgreSQL + pgvector implementation of the ChunkStore contract.

- Vector search uses pgvector's cosine distance operator (`<=>`).
- Keyword search uses `ts_rank` over `to_tsvector('english', content)` with
  the `@@ plainto_tsquery` match filter.
- Both filter by tenant on the chunk AND on its owning document, and only
  consider documents in `ready` status.

Each call opens its own session from the factory, so the vector and keyword
lookups of one query can run concurrently and a retried call starts from a
clean transaction.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from sqlalchemy import delete, func, literal_column, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.errors import InvalidInput
from ..core.retry import RetryPolicy
from ..retrieval.models import DocumentChunk, RetrievalResult, RetrievalType
from ..retrieval.store import ChunkStore
from ..tenants import validate_tenant_id
from .models import ChunkRecord, Document, DOCUMENT_STATUS_READY
from .session import AsyncSessionLocal

logger = logging.getLogger("retrieval.pg_store")

_TS_CONFIG = literal_column("'english'::regconfig")

_CHUNK_COLUMNS = (
    ChunkRecord.id.label("id"),
    ChunkRecord.document_id.label("document_id"),
    ChunkRecord.tenant_id.label("tenant_id"),
    ChunkRecord.content.label("content"),
    ChunkRecord.metadata_.label("metadata_"),
    ChunkRecord.position.label("position"),
)


class PgChunkStore(ChunkStore):
    """
    PostgreSQL-backed chunk store.
    """

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        dimension: Optional[int] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> None:
        """
        Parameters
        ----------
        session_factory : Optional[async_sessionmaker]
            Factory for per-call sessions. Defaults to AsyncSessionLocal.
        dimension : Optional[int]
            Embedding dimensionality; defaults to settings.embedding_dimension.
        retry_policy : Optional[RetryPolicy]
            Policy applied to every lookup.
        """
        super().__init__(dimension=dimension, retry_policy=retry_policy)
        self._session_factory = session_factory or AsyncSessionLocal

    # ------------------------------------------------------------------
    # Query builders
    # ------------------------------------------------------------------

    @staticmethod
    def _scoped(stmt, tenant_id: str):
        return (
            stmt.join(Document, ChunkRecord.document_id == Document.id)
            .where(
                ChunkRecord.tenant_id == tenant_id,
                Document.tenant_id == tenant_id,
                Document.status == DOCUMENT_STATUS_READY,
            )
        )

    def build_vector_query(
        self,
        tenant_id: str,
        embedding: List[float],
        top_k: int,
        min_similarity: float,
    ):
        cosine_distance = ChunkRecord.embedding.cosine_distance(embedding)

        stmt = select(
            *_CHUNK_COLUMNS,
            (1 - cosine_distance).label("score"),
        )
        return (
            self._scoped(stmt, tenant_id)
            .where(
                ChunkRecord.embedding.isnot(None),
                cosine_distance <= 1 - min_similarity,
            )
            .order_by(cosine_distance, ChunkRecord.id)
            .limit(top_k)
        )

    def build_keyword_query(self, tenant_id: str, query_text: str, top_k: int):
        ts_vector = func.to_tsvector(_TS_CONFIG, ChunkRecord.content)
        ts_query = func.plainto_tsquery(_TS_CONFIG, query_text)
        rank = func.ts_rank(ts_vector, ts_query)

        stmt = select(
            *_CHUNK_COLUMNS,
            rank.label("score"),
        )
        return (
            self._scoped(stmt, tenant_id)
            .where(ts_vector.op("@@")(ts_query))
            .order_by(rank.desc(), ChunkRecord.id)
            .limit(top_k)
        )

    @staticmethod
    def _to_result(row, kind: RetrievalType) -> RetrievalResult:
        chunk = DocumentChunk(
            id=row.id,
            document_id=row.document_id,
            tenant_id=row.tenant_id,
            content=row.content,
            metadata=row.metadata_,
            position=row.position,
        )
        # Rounding can push a boundary similarity a hair below zero.
        return RetrievalResult(chunk=chunk, score=max(0.0, float(row.score)), type=kind)

    # ------------------------------------------------------------------
    # ChunkStore hooks
    # ------------------------------------------------------------------

    async def _vector_search(
        self,
        tenant_id: str,
        embedding: List[float],
        top_k: int,
        min_similarity: float,
    ) -> List[RetrievalResult]:
        stmt = self.build_vector_query(tenant_id, embedding, top_k, min_similarity)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            rows = result.all()
        return [self._to_result(row, RetrievalType.VECTOR) for row in rows]

    async def _keyword_search(
        self,
        tenant_id: str,
        query_text: str,
        top_k: int,
    ) -> List[RetrievalResult]:
        stmt = self.build_keyword_query(tenant_id, query_text, top_k)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            rows = result.all()
        return [self._to_result(row, RetrievalType.KEYWORD) for row in rows]

    # ------------------------------------------------------------------
    # Writes and diagnostics
    # ------------------------------------------------------------------

    async def add_chunks(self, chunks: Iterable[DocumentChunk]) -> int:
        """
        Insert new chunk rows. Returns the number inserted.
        """
        records = []
        for chunk in chunks:
            validate_tenant_id(chunk.tenant_id)
            if len(chunk.embedding) != self.dimension:
                raise InvalidInput(
                    f"Chunk {chunk.id} has dimension {len(chunk.embedding)}, "
                    f"expected {self.dimension}"
                )
            records.append(
                ChunkRecord(
                    id=chunk.id,
                    document_id=chunk.document_id,
                    tenant_id=chunk.tenant_id,
                    content=chunk.content,
                    position=chunk.position,
                    metadata_=dict(chunk.metadata),
                    embedding=list(chunk.embedding),
                )
            )

        if not records:
            return 0

        async with self._session_factory() as session:
            session.add_all(records)
            await session.commit()

        return len(records)

    async def delete_document(self, tenant_id: str, document_id: str) -> int:
        """
        Remove all chunks of a document. Returns the number of deleted rows.
        """
        stmt = delete(ChunkRecord).where(
            ChunkRecord.tenant_id == tenant_id,
            ChunkRecord.document_id == document_id,
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            await session.commit()
        return result.rowcount

    async def get_stats(self, tenant_id: str) -> dict:
        """
        Return chunk and document counts for a tenant.
        """
        stmt = select(
            func.count(ChunkRecord.id),
            func.count(func.distinct(ChunkRecord.document_id)),
        ).where(ChunkRecord.tenant_id == tenant_id)

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            total_chunks, total_documents = result.one()

        return {
            "total_chunks": total_chunks or 0,
            "total_documents": total_documents or 0,
        }
