"""
Tenant Isolation

Every lookup in the engine takes an explicit `tenant_id`; there is no ambient
request context. This module validates tenant identifiers at the query
boundary and provides the post-query check that no result crossed it.

Security
--------
- tenant_id is 1-64 characters from [a-zA-Z0-9_-]
- a result owned by another tenant raises TenantIsolationViolation; it is
  never dropped silently
"""

from __future__ import annotations

import logging
import re
from typing import Iterable, TYPE_CHECKING

from .core.errors import InvalidTenantError, TenantIsolationViolation

if TYPE_CHECKING:
    from .retrieval.models import RetrievalResult


logger = logging.getLogger("retrieval.tenants")


# ---------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------

TENANT_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_-]{1,64}$")


def validate_tenant_id(tenant_id: str) -> str:
    """
    Return the normalised tenant_id or raise InvalidTenantError.
    """
    if not tenant_id or not isinstance(tenant_id, str):
        raise InvalidTenantError("tenant_id is required")

    tenant_id = tenant_id.strip()

    if not TENANT_ID_PATTERN.match(tenant_id):
        raise InvalidTenantError(
            f"Invalid tenant_id '{tenant_id}': must be 1-64 alphanumeric chars, hyphens, or underscores"
        )

    return tenant_id


def assert_tenant_scoped(
    tenant_id: str,
    results: Iterable["RetrievalResult"],
) -> None:
    """
    Raise TenantIsolationViolation if any result belongs to another tenant.
    """
    for result in results:
        owner = result.chunk.tenant_id
        if owner != tenant_id:
            logger.critical(
                "Tenant isolation violated: chunk %s (tenant %s) returned for tenant %s",
                result.chunk.id,
                owner,
                tenant_id,
            )
            raise TenantIsolationViolation(tenant_id, result.chunk.id, owner)
