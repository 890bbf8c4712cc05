"""
Composed hybrid retrieval: concurrency, degradation, isolation.
"""

import asyncio

import pytest

from metachat_retrieval.core.errors import (
    InvalidInput,
    RetrievalUnavailable,
    TenantIsolationViolation,
)
from metachat_retrieval.retrieval.models import RetrievalResult, RetrievalType
from metachat_retrieval.retrieval.service import HybridRetriever
from metachat_retrieval.retrieval.store import ChunkStore

from conftest import DIM, make_chunk


class ScriptedStore(ChunkStore):
    """
    Store whose lookups follow a script: a list to return, an exception to
    raise, or "hang" to block until cancelled.
    """

    def __init__(self, vector=(), keyword=(), **kwargs):
        super().__init__(dimension=DIM, **kwargs)
        self.vector = vector
        self.keyword = keyword
        self.requested_top_k = {}
        self.cancelled = []
        self.started = asyncio.Event()
        self._running = 0

    async def _run(self, name, action, top_k):
        self.requested_top_k[name] = top_k
        self._running += 1
        if self._running == 2:
            self.started.set()
        if isinstance(action, BaseException):
            raise action
        if action == "hang":
            try:
                await asyncio.sleep(3600)
            except asyncio.CancelledError:
                self.cancelled.append(name)
                raise
        return list(action)

    async def _vector_search(self, tenant_id, embedding, top_k, min_similarity):
        return await self._run("vector", self.vector, top_k)

    async def _keyword_search(self, tenant_id, query_text, top_k):
        return await self._run("keyword", self.keyword, top_k)


def result(chunk_id, score, kind, tenant="tenant-a"):
    return RetrievalResult(chunk=make_chunk(chunk_id, tenant_id=tenant), score=score, type=kind)


QUERY = dict(tenant_id="tenant-a", query_text="refund", query_embedding=[1.0, 0.0, 0.0])


# ---------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------

async def test_refund_scenario(store):
    store.add_chunks([
        make_chunk("c1", tenant_id="T1", content="refund policy", embedding=(1.0, 0.0, 0.0)),
        make_chunk("c2", tenant_id="T1", content="shipping policy", embedding=(0.0, 1.0, 0.0)),
    ])
    retriever = HybridRetriever(store)

    results = await retriever.retrieve(
        tenant_id="T1",
        query_text="refund",
        query_embedding=[0.9, 0.1, 0.0],
        top_k=5,
        min_similarity=0.0,
    )

    assert [r.chunk.id for r in results] == ["c1", "c2"]
    assert results[0].type is RetrievalType.HYBRID
    assert results[1].type is RetrievalType.VECTOR
    assert results[0].score > results[1].score


async def test_fetches_candidate_multiple(no_retry):
    store = ScriptedStore(vector=[], keyword=[], retry_policy=no_retry)
    retriever = HybridRetriever(store, candidate_multiplier=2)

    await retriever.retrieve(**QUERY, top_k=4)

    assert store.requested_top_k == {"vector": 8, "keyword": 8}


async def test_truncates_to_top_k(no_retry):
    vector = [result(f"v{i}", 0.9 - i * 0.01, RetrievalType.VECTOR) for i in range(6)]
    store = ScriptedStore(vector=vector, keyword=[], retry_policy=no_retry)

    results = await HybridRetriever(store).retrieve(**QUERY, top_k=3)
    assert [r.chunk.id for r in results] == ["v0", "v1", "v2"]


async def test_lookups_run_concurrently(no_retry):
    # Each lookup waits for the other to start; sequential execution would hang.
    class Rendezvous(ScriptedStore):
        async def _run(self, name, action, top_k):
            self._running += 1
            if self._running == 2:
                self.started.set()
            await asyncio.wait_for(self.started.wait(), timeout=1)
            return []

    store = Rendezvous(retry_policy=no_retry)
    outcome = await HybridRetriever(store, timeout_seconds=2).search(**QUERY)
    assert not outcome.degraded


# ---------------------------------------------------------------------
# Degradation
# ---------------------------------------------------------------------

async def test_vector_failure_degrades_to_keyword(no_retry):
    store = ScriptedStore(
        vector=RuntimeError("index offline"),
        keyword=[result("k1", 0.4, RetrievalType.KEYWORD)],
        retry_policy=no_retry,
    )

    outcome = await HybridRetriever(store).search(**QUERY)

    assert outcome.degraded_modalities == [RetrievalType.VECTOR]
    assert [r.chunk.id for r in outcome.results] == ["k1"]
    assert outcome.results[0].type is RetrievalType.KEYWORD


async def test_timeout_cancels_and_degrades(no_retry):
    store = ScriptedStore(
        vector=[result("v1", 0.9, RetrievalType.VECTOR)],
        keyword="hang",
        retry_policy=no_retry,
    )

    outcome = await HybridRetriever(store, timeout_seconds=0.05).search(**QUERY)

    assert outcome.degraded_modalities == [RetrievalType.KEYWORD]
    assert [r.chunk.id for r in outcome.results] == ["v1"]
    assert store.cancelled == ["keyword"]


async def test_both_unavailable(no_retry):
    store = ScriptedStore(
        vector=RuntimeError("down"),
        keyword=ConnectionError("down"),
        retry_policy=no_retry,
    )
    with pytest.raises(RetrievalUnavailable):
        await HybridRetriever(store).retrieve(**QUERY)


async def test_caller_cancellation_cancels_lookups(no_retry):
    store = ScriptedStore(vector="hang", keyword="hang", retry_policy=no_retry)
    retriever = HybridRetriever(store, timeout_seconds=30)

    task = asyncio.ensure_future(retriever.retrieve(**QUERY))
    await asyncio.wait_for(store.started.wait(), timeout=1)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    for _ in range(5):
        await asyncio.sleep(0)

    assert sorted(store.cancelled) == ["keyword", "vector"]


# ---------------------------------------------------------------------
# Errors that are never degraded
# ---------------------------------------------------------------------

async def test_cross_tenant_result_is_fatal(no_retry):
    store = ScriptedStore(
        vector=[result("x", 0.9, RetrievalType.VECTOR, tenant="tenant-b")],
        keyword=[],
        retry_policy=no_retry,
    )
    with pytest.raises(TenantIsolationViolation):
        await HybridRetriever(store).retrieve(**QUERY)


@pytest.mark.parametrize(
    "overrides",
    [
        {"query_embedding": [1.0, 0.0]},
        {"query_text": ""},
        {"tenant_id": "no spaces allowed"},
        {"top_k": 0},
        {"top_k": 101},
        {"min_similarity": 2.0},
    ],
)
async def test_invalid_input_before_any_lookup(no_retry, overrides):
    store = ScriptedStore(vector=[], keyword=[], retry_policy=no_retry)

    with pytest.raises(InvalidInput):
        await HybridRetriever(store).retrieve(**{**QUERY, **overrides})

    assert store.requested_top_k == {}


def test_invalid_weights_rejected(store):
    with pytest.raises(InvalidInput):
        HybridRetriever(store, vector_weight=0.8, keyword_weight=0.8)
