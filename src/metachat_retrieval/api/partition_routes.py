"""
Partition Maintenance Routes

Operator endpoints for the monthly partition window.

Security
--------
All endpoints are protected by `verify_admin` which requires:
- `x-admin-key` header OR
- `key` query parameter
"""

import hmac
from typing import Annotated, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Header, status

from ..config import settings
from ..partitions.manager import PartitionManager
from ..partitions.models import add_months
from .dependencies import get_partition_manager
from .models import (
    EnsurePartitionsRequest,
    EnsurePartitionsResponse,
    PartitionListResponse,
    PartitionListing,
    RetirePartitionsRequest,
    RetirePartitionsResponse,
)

router = APIRouter(prefix="/partitions", tags=["partitions"])


# ---------------------------------------------------------------------
# Security Dependency
# ---------------------------------------------------------------------

async def verify_admin(
    x_admin_key: Optional[str] = Header(None, alias="x-admin-key"),
    key: Optional[str] = Query(None),
) -> None:
    """
    Verify the request is from an admin using the configured API key.
    Checks header first, then query param.
    """
    expected_key = settings.admin_api_key.get_secret_value() if settings.admin_api_key else None

    if not expected_key:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access is not configured (ADMIN_API_KEY missing)",
        )

    provided_key = x_admin_key or key

    if not provided_key or not hmac.compare_digest(provided_key, expected_key):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid or missing admin API key",
        )


# ---------------------------------------------------------------------
# API Endpoints
# ---------------------------------------------------------------------

@router.post(
    "/ensure",
    response_model=EnsurePartitionsResponse,
    dependencies=[Depends(verify_admin)],
)
async def ensure_partitions(
    manager: Annotated[PartitionManager, Depends(get_partition_manager)],
    req: Annotated[Optional[EnsurePartitionsRequest], Body()] = None,
) -> EnsurePartitionsResponse:
    """
    Create any missing partition of the window. Per-month failures are
    reported in the body; the request itself still succeeds.
    """
    req = req or EnsurePartitionsRequest()
    report = await manager.ensure_monthly_partitions(
        months_back=req.months_back,
        months_forward=req.months_forward,
    )
    return EnsurePartitionsResponse.from_report(report)


@router.get(
    "",
    response_model=PartitionListResponse,
    dependencies=[Depends(verify_admin)],
)
async def list_partitions(
    manager: Annotated[PartitionManager, Depends(get_partition_manager)],
) -> PartitionListResponse:
    """
    Existing partitions per managed family, with gaps in the default window.
    """
    current = manager.current_month()
    first = add_months(current, -settings.partition_months_back)
    last = add_months(current, settings.partition_months_forward)

    listings = []
    for table in manager.tables:
        listings.append(
            PartitionListing(
                table_family=table.name,
                partitions=await manager.list_partitions(table.name),
                gaps=await manager.find_gaps(table.name, first, last),
            )
        )
    return PartitionListResponse(tables=listings)


@router.post(
    "/retire",
    response_model=RetirePartitionsResponse,
    dependencies=[Depends(verify_admin)],
)
async def retire_partitions(
    req: RetirePartitionsRequest,
    manager: Annotated[PartitionManager, Depends(get_partition_manager)],
) -> RetirePartitionsResponse:
    """
    Report (dry run, the default), drop or archive partitions older than the
    retention window.
    """
    return await manager.retire_partitions(
        retain_months=req.retain_months,
        dry_run=req.dry_run,
        archive=req.archive,
    )
