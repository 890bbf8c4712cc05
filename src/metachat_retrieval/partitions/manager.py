"""
Partition Manager

Keeps a rolling window of monthly partitions in place for the append-heavy
table families (messages, api_logs).

For each family and each month in
    [current month - months_back, current month + months_forward]
the partition is created if it does not exist. Creation is idempotent and
safe when runs overlap; a month that fails is reported and the batch goes on.
After the batch, the catalog is re-read and any month of the window still
not covered is reported as a gap.

Retirement of partitions that fall wholly before a family's retention cutoff
is a separate, opt-in operation and defaults to a dry run. A retired
partition is either dropped or detached and moved into an archive schema.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from ..config import settings
from ..core.errors import InvalidInput, PartitionCreateFailed
from ..core.retry import RetryPolicy
from .catalog import PartitionCatalog
from .models import (
    DEFAULT_PARTITIONED_TABLES,
    Partition,
    PartitionOutcome,
    PartitionReport,
    PartitionStatus,
    PartitionedTable,
    RetirementOutcome,
    RetirementReport,
    RetirementStatus,
    add_months,
    iter_months,
    month_start,
    partition_name,
    validate_identifier,
)

logger = logging.getLogger("retrieval.partitions")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PartitionManager:
    """
    Ensures, lists and optionally retires monthly partitions.
    """

    def __init__(
        self,
        catalog: PartitionCatalog,
        tables: Optional[Sequence[PartitionedTable]] = None,
        retry_policy: Optional[RetryPolicy] = None,
        clock: Callable[[], datetime] = _utcnow,
        max_window: Optional[int] = None,
        archive_schema: Optional[str] = None,
    ) -> None:
        """
        Parameters
        ----------
        catalog : PartitionCatalog
            Where partitions are listed and created.
        tables : Optional[Sequence[PartitionedTable]]
            Managed families; defaults to messages and api_logs.
        retry_policy : Optional[RetryPolicy]
            Applied to every catalog call.
        clock : Callable[[], datetime]
            Source of "now"; the current month is taken from it in UTC.
        max_window : Optional[int]
            Upper bound for months_back / months_forward / retention.
        archive_schema : Optional[str]
            Schema retired partitions are moved into when archiving.
        """
        self._catalog = catalog
        self._tables = tuple(tables if tables is not None else DEFAULT_PARTITIONED_TABLES)
        self._retry = retry_policy or RetryPolicy.from_settings()
        self._clock = clock
        self._max_window = max_window if max_window is not None else settings.partition_max_window
        self._archive_schema = validate_identifier(
            archive_schema or settings.partition_archive_schema
        )

        names = [t.name for t in self._tables]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate partitioned table names: {names}")

    @property
    def tables(self) -> Tuple[PartitionedTable, ...]:
        return self._tables

    def current_month(self) -> date:
        now = self._clock()
        if now.tzinfo is not None:
            now = now.astimezone(timezone.utc)
        return month_start(now)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _resolve_window(self, label: str, value: Optional[int], default: int) -> int:
        if value is None:
            value = default
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidInput(f"{label} must be an integer")
        if not 0 <= value <= self._max_window:
            raise InvalidInput(
                f"{label} must be between 0 and {self._max_window}, got {value}"
            )
        return value

    def _table(self, table_family: str) -> PartitionedTable:
        for table in self._tables:
            if table.name == table_family:
                return table
        raise InvalidInput(f"Unknown partitioned table: {table_family!r}")

    # ------------------------------------------------------------------
    # Ensure
    # ------------------------------------------------------------------

    async def ensure_monthly_partitions(
        self,
        months_back: Optional[int] = None,
        months_forward: Optional[int] = None,
    ) -> PartitionReport:
        """
        Create every missing partition of the window.

        Parameters
        ----------
        months_back : Optional[int]
            Months before the current one to cover (0..max_window).
        months_forward : Optional[int]
            Months after the current one to cover (0..max_window).

        Returns
        -------
        PartitionReport
            One outcome per (family, month), plus coverage gaps.

        Raises
        ------
        InvalidInput
            If either window bound is out of range. Nothing is created.
        """
        back = self._resolve_window("months_back", months_back, settings.partition_months_back)
        forward = self._resolve_window(
            "months_forward", months_forward, settings.partition_months_forward
        )

        current = self.current_month()
        first = add_months(current, -back)
        last = add_months(current, forward)

        outcomes: List[PartitionOutcome] = []
        for table in self._tables:
            for month in iter_months(first, last):
                outcomes.append(await self._ensure_one(table, month))

        gaps: Dict[str, List[date]] = {}
        verification_errors: Dict[str, str] = {}
        for table in self._tables:
            try:
                gaps[table.name] = await self.find_gaps(table.name, first, last)
            except Exception as exc:
                logger.error("Could not verify partitions of %s", table.name, exc_info=exc)
                verification_errors[table.name] = f"{type(exc).__name__}: {exc}"

        report = PartitionReport(
            window_start=first,
            window_end=last,
            outcomes=outcomes,
            gaps=gaps,
            verification_errors=verification_errors,
        )

        logger.info(
            "Ensured monthly partitions for %s from %s to %s: created=%d present=%d failed=%d",
            [t.name for t in self._tables],
            first.isoformat(),
            last.isoformat(),
            len(report.created),
            len(report.already_present),
            len(report.failed),
        )
        return report

    async def _ensure_one(self, table: PartitionedTable, month: date) -> PartitionOutcome:
        name = partition_name(table.name, month)

        try:
            partition = Partition.for_month(table.name, month)
            created = await self._retry.call(self._catalog.create_partition, table, partition)
        except Exception as exc:
            failure = (
                exc if isinstance(exc, PartitionCreateFailed)
                else PartitionCreateFailed(name, f"{type(exc).__name__}: {exc}")
            )
            logger.error("%s", failure, exc_info=exc)
            return PartitionOutcome(
                table_family=table.name,
                month=month,
                name=name,
                status=PartitionStatus.FAILED,
                reason=failure.reason,
            )

        if created:
            logger.info("Created partition %s", name)

        return PartitionOutcome(
            table_family=table.name,
            month=month,
            name=name,
            status=PartitionStatus.CREATED if created else PartitionStatus.ALREADY_PRESENT,
        )

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    async def list_partitions(self, table_family: str) -> List[Partition]:
        """
        Existing partitions of a managed family, ordered by range_start.
        """
        self._table(table_family)
        partitions = await self._retry.call(self._catalog.list_partitions, table_family)
        return sorted(partitions, key=lambda p: (p.range_start, p.name))

    async def find_gaps(self, table_family: str, first: date, last: date) -> List[date]:
        """
        Months in [first, last] not wholly covered by any partition.
        """
        partitions = await self.list_partitions(table_family)
        return [
            month for month in iter_months(first, last)
            if not any(p.covers(month) for p in partitions)
        ]

    @staticmethod
    def check_contiguity(partitions: Sequence[Partition]) -> List[Tuple[Partition, Partition]]:
        """
        Neighbouring partitions that break end(m) == start(m + 1).

        A pair is returned when the two ranges overlap, or when the space
        between them does not fall on month boundaries. Whole missing months
        are not violations here; `find_gaps` reports those.
        """
        ordered = sorted(partitions, key=lambda p: (p.range_start, p.name))
        violations = []
        for a, b in zip(ordered, ordered[1:]):
            if a.range_end > b.range_start:
                violations.append((a, b))
            elif a.range_end != b.range_start and (a.range_end.day != 1 or b.range_start.day != 1):
                violations.append((a, b))
        return violations

    # ------------------------------------------------------------------
    # Retirement
    # ------------------------------------------------------------------

    def retention_cutoffs(self, retain_months: Optional[int] = None) -> Dict[str, date]:
        """
        First day of (current month - retention) for each family.

        An explicit `retain_months` applies to every family; otherwise each
        family's own `retention_months` is used, falling back to the default
        window.
        """
        current = self.current_month()
        cutoffs = {}
        for table in self._tables:
            if retain_months is not None:
                retain = self._resolve_window("retain_months", retain_months, 0)
            else:
                retain = self._resolve_window(
                    f"{table.name}.retention_months",
                    table.retention_months,
                    settings.partition_months_back,
                )
            cutoffs[table.name] = add_months(current, -retain)
        return cutoffs

    async def retire_partitions(
        self,
        retain_months: Optional[int] = None,
        dry_run: bool = True,
        archive: Optional[bool] = None,
    ) -> RetirementReport:
        """
        Drop or archive partitions lying wholly before the retention window.

        Only partitions with range_end <= the family's cutoff qualify, so no
        row inside the window is ever touched. Archiving detaches the
        partition and moves it into the archive schema instead of dropping it;
        `archive` overrides the per-family setting when given.

        Raises
        ------
        InvalidInput
            If a retention value is out of range. Nothing is retired.
        """
        cutoffs = self.retention_cutoffs(retain_months)

        outcomes: List[RetirementOutcome] = []
        listing_errors: Dict[str, str] = {}
        for table in self._tables:
            use_archive = table.archive if archive is None else archive
            try:
                partitions = await self.list_partitions(table.name)
            except Exception as exc:
                logger.error("Could not list partitions of %s", table.name, exc_info=exc)
                listing_errors[table.name] = f"{type(exc).__name__}: {exc}"
                continue

            for partition in partitions:
                if partition.range_end > cutoffs[table.name]:
                    continue
                outcomes.append(await self._retire_one(partition, dry_run, use_archive))

        logger.info(
            "Partition retirement (dry_run=%s, cutoffs=%s): %d candidate(s), %d failed",
            dry_run,
            {name: cutoff.isoformat() for name, cutoff in cutoffs.items()},
            len(outcomes),
            sum(1 for o in outcomes if o.status is RetirementStatus.FAILED),
        )
        return RetirementReport(
            cutoffs=cutoffs,
            dry_run=dry_run,
            outcomes=outcomes,
            listing_errors=listing_errors,
        )

    async def _retire_one(
        self,
        partition: Partition,
        dry_run: bool,
        archive: bool,
    ) -> RetirementOutcome:
        fields = dict(
            table_family=partition.table_family,
            name=partition.name,
            range_start=partition.range_start,
            range_end=partition.range_end,
            archive_schema=self._archive_schema if archive else None,
        )

        if dry_run:
            status = RetirementStatus.WOULD_ARCHIVE if archive else RetirementStatus.WOULD_RETIRE
            return RetirementOutcome(status=status, **fields)

        try:
            if archive:
                await self._retry.call(
                    self._catalog.archive_partition, partition, self._archive_schema
                )
            else:
                await self._retry.call(self._catalog.drop_partition, partition)
        except Exception as exc:
            logger.error("Failed to retire partition %s", partition.name, exc_info=exc)
            return RetirementOutcome(
                status=RetirementStatus.FAILED,
                reason=f"{type(exc).__name__}: {exc}",
                **fields,
            )

        if archive:
            logger.info("Archived partition %s into %s", partition.name, self._archive_schema)
            return RetirementOutcome(status=RetirementStatus.ARCHIVED, **fields)

        logger.info("Retired partition %s", partition.name)
        return RetirementOutcome(status=RetirementStatus.RETIRED, **fields)
