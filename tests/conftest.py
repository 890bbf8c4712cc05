import time
from datetime import datetime, timezone
from typing import Dict, Optional, Sequence

import jwt
import pytest
from pydantic import SecretStr

from metachat_retrieval.config import settings
from metachat_retrieval.core.retry import RetryPolicy
from metachat_retrieval.retrieval.models import DocumentChunk
from metachat_retrieval.retrieval.store import InMemoryChunkStore


DIM = 3

FIXED_NOW = datetime(2026, 3, 15, 12, 30, tzinfo=timezone.utc)


def make_chunk(
    chunk_id: str,
    tenant_id: str = "tenant-a",
    content: str = "",
    embedding: Sequence[float] = (1.0, 0.0, 0.0),
    document_id: Optional[str] = None,
    metadata: Optional[Dict] = None,
) -> DocumentChunk:
    return DocumentChunk(
        id=chunk_id,
        document_id=document_id or f"doc-{chunk_id}",
        tenant_id=tenant_id,
        content=content,
        embedding=embedding,
        metadata=metadata,
    )


@pytest.fixture
def no_retry() -> RetryPolicy:
    return RetryPolicy(max_attempts=1, base_delay=0, max_delay=0, jitter=False)


@pytest.fixture
def fast_retry() -> RetryPolicy:
    return RetryPolicy(max_attempts=3, base_delay=0, max_delay=0, jitter=False)


@pytest.fixture
def store(no_retry) -> InMemoryChunkStore:
    return InMemoryChunkStore(dimension=DIM, retry_policy=no_retry)


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


# ---------------------------------------------------------------------
# Auth helpers
# ---------------------------------------------------------------------

TEST_JWT_SECRET = "test-secret-platform-to-retrieval-long-enough"
TEST_ADMIN_KEY = "test-admin-key"


def mint_token(
    tenant_id="tenant-a",
    scopes=("retrieve",),
    subject="chat-api",
    issuer=None,
    audience=None,
    expired=False,
    secret=TEST_JWT_SECRET,
    **extra,
) -> str:
    now = int(time.time())
    iat = now - 3600 if expired else now
    exp = iat - 10 if expired else now + 60

    payload = {
        "iss": issuer or settings.jwt_issuer,
        "aud": audience or settings.jwt_audience,
        "iat": iat,
        "exp": exp,
        "sub": subject,
        "tenant_id": tenant_id,
        "scope": list(scopes),
    }
    payload.update(extra)
    return jwt.encode(payload, secret, algorithm="HS256")


@pytest.fixture
def auth_settings(monkeypatch):
    monkeypatch.setattr(settings, "jwt_secret", SecretStr(TEST_JWT_SECRET))
    monkeypatch.setattr(settings, "admin_api_key", SecretStr(TEST_ADMIN_KEY))
    return settings
