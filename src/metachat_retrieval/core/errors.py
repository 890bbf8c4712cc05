"""
Error Taxonomy and Global Error Handling

This module defines the exceptions raised by the retrieval engine and the
partition manager, and the FastAPI exception handlers that map them onto
HTTP responses.

Taxonomy
--------
- InvalidInput              malformed query, dimension mismatch, bad window.
                            Surfaced to the caller, never retried.
- ModalityUnavailable       one search modality failed or timed out.
                            Recovered locally by degraded-mode fusion.
- RetrievalUnavailable      both modalities failed.
- PartitionCreateFailed     one month's partition could not be created.
                            Isolated per month and reported.
- TenantIsolationViolation  a result crossed the tenant boundary.
                            Fatal; never silently filtered.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import Request, status
from fastapi.responses import JSONResponse


logger = logging.getLogger("retrieval.errors")


# ---------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------

class RetrievalEngineError(RuntimeError):
    """Base class for all engine errors."""


class InvalidInput(RetrievalEngineError, ValueError):
    """Raised when a caller supplies malformed or out-of-range input."""


class InvalidTenantError(InvalidInput):
    """Raised when a tenant_id is missing or malformed."""


class ModalityUnavailable(RetrievalEngineError):
    """Raised when a single search modality fails or times out."""

    def __init__(self, modality: str, reason: str) -> None:
        super().__init__(f"{modality} search unavailable: {reason}")
        self.modality = modality
        self.reason = reason


class RetrievalUnavailable(RetrievalEngineError):
    """Raised when no search modality produced a result set."""


class PartitionCreateFailed(RetrievalEngineError):
    """Raised when a single partition could not be created."""

    def __init__(self, name: str, reason: str) -> None:
        super().__init__(f"Failed to create partition {name}: {reason}")
        self.name = name
        self.reason = reason


class TenantIsolationViolation(RetrievalEngineError):
    """Raised when a lookup returned a chunk owned by another tenant."""

    def __init__(self, expected_tenant: str, chunk_id: str, actual_tenant: str) -> None:
        super().__init__(
            f"Chunk {chunk_id} owned by tenant '{actual_tenant}' "
            f"returned for tenant '{expected_tenant}'"
        )
        self.expected_tenant = expected_tenant
        self.chunk_id = chunk_id
        self.actual_tenant = actual_tenant


# ---------------------------------------------------------------------
# Public Exception Handlers
# ---------------------------------------------------------------------

def _error_payload(error: str, detail: Optional[str] = None) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"error": error}
    if detail is not None:
        payload["detail"] = detail
    return payload


async def invalid_input_handler(
    request: Request,
    exc: InvalidInput,
) -> JSONResponse:
    """
    Map InvalidInput onto a 400 response.

    The message is safe to return: it only ever describes the caller's own
    input.
    """
    logger.info(
        "Rejected invalid input on %s %s: %s",
        request.method,
        request.url.path,
        exc,
    )
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=_error_payload("invalid_input", str(exc)),
    )


async def retrieval_unavailable_handler(
    request: Request,
    exc: RetrievalUnavailable,
) -> JSONResponse:
    """
    Map RetrievalUnavailable onto a 503 response without internal detail.
    """
    logger.error(
        "Retrieval unavailable on %s %s: %s",
        request.method,
        request.url.path,
        exc,
    )
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content=_error_payload("retrieval_unavailable", "Retrieval is temporarily unavailable"),
    )


async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """
    Catch-all handler for uncaught exceptions.

    Behavior
    --------
    - Logs the full exception stack trace for internal diagnostics.
    - Returns a generic 500 error to the client with no internal details.

    Parameters
    ----------
    request : Request
        The incoming HTTP request that triggered the exception.

    exc : Exception
        The uncaught exception instance.

    Returns
    -------
    JSONResponse
        A JSON 500 response with a minimal error payload.
    """
    logger.exception(
        "Unhandled exception during request: %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_payload("internal_server_error", "Internal server error"),
    )
