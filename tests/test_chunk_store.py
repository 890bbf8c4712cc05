"""
Vector and keyword search over the in-memory chunk store.
"""

from typing import List
from unittest.mock import AsyncMock

import pytest

from metachat_retrieval.core.errors import InvalidInput, TenantIsolationViolation
from metachat_retrieval.retrieval.models import RetrievalResult, RetrievalType
from metachat_retrieval.retrieval.store import ChunkStore, InMemoryChunkStore

from conftest import DIM, make_chunk


@pytest.fixture
def populated(store):
    store.add_chunks([
        make_chunk("a1", content="refund policy for orders", embedding=(1.0, 0.0, 0.0)),
        make_chunk("a2", content="shipping policy and delivery", embedding=(0.8, 0.6, 0.0)),
        make_chunk("a3", content="careers at the company", embedding=(0.0, 0.0, 1.0)),
        make_chunk("b1", tenant_id="tenant-b", content="refund policy", embedding=(1.0, 0.0, 0.0)),
    ])
    return store


class StaticStore(ChunkStore):
    """Backend returning canned rows, to exercise the shared wrapper."""

    def __init__(self, rows: List[RetrievalResult], **kwargs):
        super().__init__(dimension=DIM, **kwargs)
        self.rows = rows
        self.calls = 0

    async def _vector_search(self, tenant_id, embedding, top_k, min_similarity):
        self.calls += 1
        return list(self.rows)

    async def _keyword_search(self, tenant_id, query_text, top_k):
        self.calls += 1
        return list(self.rows)


# ---------------------------------------------------------------------
# Vector search
# ---------------------------------------------------------------------

class TestVectorSearch:

    async def test_ranks_by_cosine_similarity(self, populated):
        results = await populated.vector_search("tenant-a", [1.0, 0.0, 0.0], top_k=5, min_similarity=0.5)

        assert [r.chunk.id for r in results] == ["a1", "a2"]
        assert results[0].score == pytest.approx(1.0)
        assert results[1].score == pytest.approx(0.8)
        assert all(r.type is RetrievalType.VECTOR for r in results)

    async def test_min_similarity_excludes(self, populated):
        results = await populated.vector_search("tenant-a", [1.0, 0.0, 0.0], min_similarity=0.9)
        assert [r.chunk.id for r in results] == ["a1"]

    async def test_default_threshold_is_applied(self, populated):
        results = await populated.vector_search("tenant-a", [0.0, 0.0, 1.0])
        assert [r.chunk.id for r in results] == ["a3"]

    async def test_top_k_truncates(self, populated):
        results = await populated.vector_search("tenant-a", [1.0, 0.0, 0.0], top_k=1, min_similarity=0.0)
        assert len(results) == 1

    async def test_tenant_isolation(self, populated):
        results = await populated.vector_search("tenant-b", [1.0, 0.0, 0.0], min_similarity=0.0)
        assert [r.chunk.id for r in results] == ["b1"]
        assert all(r.chunk.tenant_id == "tenant-b" for r in results)

    async def test_unknown_tenant_is_empty(self, populated):
        assert await populated.vector_search("tenant-z", [1.0, 0.0, 0.0]) == []

    async def test_ties_broken_by_chunk_id(self, store):
        store.add_chunks([
            make_chunk("z", embedding=(1.0, 0.0, 0.0)),
            make_chunk("m", embedding=(2.0, 0.0, 0.0)),
        ])
        results = await store.vector_search("tenant-a", [1.0, 0.0, 0.0])
        assert [r.chunk.id for r in results] == ["m", "z"]

    async def test_wrong_dimension_does_no_work(self, no_retry):
        store = StaticStore([], retry_policy=no_retry)
        with pytest.raises(InvalidInput):
            await store.vector_search("tenant-a", [1.0, 0.0])
        assert store.calls == 0

    @pytest.mark.parametrize("embedding", [None, "abc", [1.0, float("nan"), 0.0], [1.0, float("inf"), 0.0]])
    async def test_malformed_embedding(self, populated, embedding):
        with pytest.raises(InvalidInput):
            await populated.vector_search("tenant-a", embedding)

    @pytest.mark.parametrize("top_k", [0, -3, True])
    async def test_invalid_top_k(self, populated, top_k):
        with pytest.raises(InvalidInput):
            await populated.vector_search("tenant-a", [1.0, 0.0, 0.0], top_k=top_k)

    @pytest.mark.parametrize("threshold", [-0.1, 1.5])
    async def test_invalid_min_similarity(self, populated, threshold):
        with pytest.raises(InvalidInput):
            await populated.vector_search("tenant-a", [1.0, 0.0, 0.0], min_similarity=threshold)

    @pytest.mark.parametrize("tenant_id", ["", "bad tenant!", "x" * 65])
    async def test_invalid_tenant(self, populated, tenant_id):
        with pytest.raises(InvalidInput):
            await populated.vector_search(tenant_id, [1.0, 0.0, 0.0])


# ---------------------------------------------------------------------
# Keyword search
# ---------------------------------------------------------------------

class TestKeywordSearch:

    async def test_only_matching_chunks(self, populated):
        results = await populated.keyword_search("tenant-a", "refund")
        assert [r.chunk.id for r in results] == ["a1"]
        assert results[0].type is RetrievalType.KEYWORD
        assert results[0].score > 0

    async def test_case_and_punctuation_insensitive(self, populated):
        results = await populated.keyword_search("tenant-a", "REFUND, please!")
        assert [r.chunk.id for r in results] == ["a1"]

    async def test_multiple_terms_rank(self, populated):
        results = await populated.keyword_search("tenant-a", "shipping policy")
        assert [r.chunk.id for r in results] == ["a2", "a1"]
        assert results[0].score > results[1].score

    async def test_no_match(self, populated):
        assert await populated.keyword_search("tenant-a", "kubernetes") == []

    async def test_tenant_isolation(self, populated):
        results = await populated.keyword_search("tenant-b", "refund policy")
        assert {r.chunk.tenant_id for r in results} == {"tenant-b"}

    @pytest.mark.parametrize("query", ["", "   ", None])
    async def test_empty_query_rejected(self, populated, query):
        with pytest.raises(InvalidInput):
            await populated.keyword_search("tenant-a", query)


# ---------------------------------------------------------------------
# Shared wrapper behaviour
# ---------------------------------------------------------------------

class TestChunkStoreContract:

    async def test_foreign_chunk_raises(self, no_retry):
        leaked = RetrievalResult(
            chunk=make_chunk("x", tenant_id="tenant-b"),
            score=0.9,
            type=RetrievalType.VECTOR,
        )
        store = StaticStore([leaked], retry_policy=no_retry)

        with pytest.raises(TenantIsolationViolation) as exc_info:
            await store.vector_search("tenant-a", [1.0, 0.0, 0.0])

        assert exc_info.value.chunk_id == "x"
        assert exc_info.value.actual_tenant == "tenant-b"

    async def test_backend_rows_are_sorted_and_filtered(self, no_retry):
        rows = [
            RetrievalResult(chunk=make_chunk("b"), score=0.75, type=RetrievalType.VECTOR),
            RetrievalResult(chunk=make_chunk("a"), score=0.95, type=RetrievalType.VECTOR),
            RetrievalResult(chunk=make_chunk("c"), score=0.5, type=RetrievalType.VECTOR),
        ]
        store = StaticStore(rows, retry_policy=no_retry)

        results = await store.vector_search("tenant-a", [1.0, 0.0, 0.0], min_similarity=0.7)
        assert [r.chunk.id for r in results] == ["a", "b"]

    async def test_transient_error_is_retried(self, fast_retry):
        store = InMemoryChunkStore(dimension=DIM, retry_policy=fast_retry)
        store._keyword_search = AsyncMock(side_effect=[ConnectionError("reset"), []])

        assert await store.keyword_search("tenant-a", "refund") == []
        assert store._keyword_search.await_count == 2


# ---------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------

class TestInMemoryWrites:

    def test_rejects_wrong_dimension(self, store):
        with pytest.raises(InvalidInput):
            store.add_chunks([make_chunk("a", embedding=(1.0, 0.0))])

    def test_rejects_duplicate_id(self, store):
        store.add_chunks([make_chunk("a")])
        with pytest.raises(InvalidInput):
            store.add_chunks([make_chunk("a", tenant_id="tenant-b")])

    def test_failed_batch_adds_nothing(self, store):
        with pytest.raises(InvalidInput):
            store.add_chunks([make_chunk("a"), make_chunk("a")])
        assert store.get_stats("tenant-a")["total_chunks"] == 0

    def test_delete_document_and_stats(self, store):
        store.add_chunks([
            make_chunk("a", document_id="d1"),
            make_chunk("b", document_id="d1"),
            make_chunk("c", document_id="d2"),
        ])
        assert store.get_stats("tenant-a") == {"total_chunks": 3, "total_documents": 2}

        assert store.delete_document("tenant-a", "d1") == 2
        assert store.get_stats("tenant-a") == {"total_chunks": 1, "total_documents": 1}

    def test_metadata_defaults_source(self):
        chunk = make_chunk("a", metadata={"position": 3})
        assert chunk.metadata["source"] == "knowledge_base"
        assert chunk.metadata["position"] == 3
