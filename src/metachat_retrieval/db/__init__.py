"""
Database Package

Provides SQLAlchemy async session management, the knowledge-base model
definitions and the PostgreSQL implementations of the chunk store and the
partition catalog.
"""

from .session import async_engine, AsyncSessionLocal
from .models import Base, Document, ChunkRecord
from .chunk_store import PgChunkStore
from .partition_catalog import PgPartitionCatalog

__all__ = [
    "async_engine",
    "AsyncSessionLocal",
    "Base",
    "Document",
    "ChunkRecord",
    "PgChunkStore",
    "PgPartitionCatalog",
]
