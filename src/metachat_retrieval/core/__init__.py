from .errors import (
    RetrievalEngineError,
    InvalidInput,
    InvalidTenantError,
    ModalityUnavailable,
    RetrievalUnavailable,
    PartitionCreateFailed,
    TenantIsolationViolation,
)
from .retry import RetryPolicy

__all__ = [
    "RetrievalEngineError",
    "InvalidInput",
    "InvalidTenantError",
    "ModalityUnavailable",
    "RetrievalUnavailable",
    "PartitionCreateFailed",
    "TenantIsolationViolation",
    "RetryPolicy",
]
