"""
Background partition maintenance.

Runs `ensure_monthly_partitions` once at start-up and then every
`partition_check_interval_hours`, so next month's partitions always exist
well before the first row for that month arrives.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from ..config import settings
from .manager import PartitionManager
from .models import PartitionReport

logger = logging.getLogger("retrieval.partitions.scheduler")


class PartitionScheduler:
    """Periodic driver around a PartitionManager."""

    def __init__(
        self,
        manager: PartitionManager,
        interval_seconds: Optional[float] = None,
        months_back: Optional[int] = None,
        months_forward: Optional[int] = None,
    ) -> None:
        self._manager = manager
        self._interval = (
            interval_seconds
            if interval_seconds is not None
            else settings.partition_check_interval_hours * 3600
        )
        self._months_back = months_back
        self._months_forward = months_forward
        self._task: Optional[asyncio.Task] = None
        self.last_report: Optional[PartitionReport] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> PartitionReport:
        report = await self._manager.ensure_monthly_partitions(
            months_back=self._months_back,
            months_forward=self._months_forward,
        )
        self.last_report = report
        if not report.ok:
            logger.warning(
                "Partition maintenance incomplete: %d failed, gaps=%s",
                len(report.failed),
                {k: [m.isoformat() for m in v] for k, v in report.gaps.items() if v},
            )
        return report

    async def _loop(self) -> None:
        logger.info("Partition scheduler started (interval=%ss)", self._interval)

        while True:
            try:
                await self.run_once()
                await asyncio.sleep(self._interval)
            except asyncio.CancelledError:
                logger.info("Partition scheduler cancelled.")
                break
            except Exception:
                logger.exception("Unexpected error in partition scheduler")
                await asyncio.sleep(self._interval)

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.ensure_future(self._loop())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
