from fastapi import APIRouter, Request

from ..config import settings

router = APIRouter(tags=["health"])


@router.get("/health")
def health(request: Request):
    """
    Liveness plus the state of the background partition scheduler.

    `status` is "degraded" when the scheduler's last run left a failed,
    missing or unverified month.
    """
    scheduler = getattr(request.app.state, "partition_scheduler", None)
    last_report = scheduler.last_report if scheduler is not None else None
    last_run_ok = last_report.ok if last_report is not None else None

    return {
        "status": "degraded" if last_run_ok is False else "ok",
        "embedding_dimension": settings.embedding_dimension,
        "partition_scheduler": {
            "enabled": scheduler is not None,
            "running": scheduler is not None and scheduler.running,
            "last_run_ok": last_run_ok,
        },
    }
