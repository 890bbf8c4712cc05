from functools import lru_cache

from ..db import PgChunkStore, PgPartitionCatalog
from ..partitions.manager import PartitionManager
from ..retrieval.service import HybridRetriever
from ..retrieval.store import ChunkStore


@lru_cache
def get_chunk_store() -> ChunkStore:
    return PgChunkStore()


@lru_cache
def get_retriever() -> HybridRetriever:
    return HybridRetriever(get_chunk_store())


@lru_cache
def get_partition_manager() -> PartitionManager:
    return PartitionManager(PgPartitionCatalog())
