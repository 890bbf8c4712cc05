"""
Hybrid retrieval pipeline
"""

from .models import DocumentChunk, RetrievalResult, RetrievalType, HybridSearchOutcome
from .fusion import fuse, normalize_scores
from .store import ChunkStore, InMemoryChunkStore
from .service import HybridRetriever

__all__ = [
    "DocumentChunk",
    "RetrievalResult",
    "RetrievalType",
    "HybridSearchOutcome",
    "fuse",
    "normalize_scores",
    "ChunkStore",
    "InMemoryChunkStore",
    "HybridRetriever",
]
