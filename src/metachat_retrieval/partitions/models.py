"""
Partition Data Models

- Partition         one physical table covering [range_start, range_end)
- PartitionedTable  a managed table family and its per-partition indexes
- PartitionReport   per-(family, month) outcome of an ensure run
- RetirementReport  per-partition outcome of a retirement run

Month values are `date` objects pinned to the first day of the month (UTC).
"""

from __future__ import annotations

import re
from datetime import date, datetime
from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}$")

# PostgreSQL truncates identifiers at 63 bytes; partition names add "_YYYY_MM".
MAX_FAMILY_NAME_LENGTH = 63 - len("_YYYY_MM")


# ---------------------------------------------------------------------
# Month arithmetic
# ---------------------------------------------------------------------

def month_start(value: Union[date, datetime]) -> date:
    """First day of the month containing `value`."""
    return date(value.year, value.month, 1)


def add_months(value: Union[date, datetime], months: int) -> date:
    """First day of the month `months` away from `value`'s month."""
    index = value.year * 12 + (value.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)


def iter_months(first: date, last: date) -> Iterator[date]:
    """Yield month starts from `first` to `last`, inclusive."""
    cursor = month_start(first)
    end = month_start(last)
    while cursor <= end:
        yield cursor
        cursor = add_months(cursor, 1)


def partition_name(table_family: str, month: Union[date, datetime]) -> str:
    """
    Deterministic partition name, e.g. ``messages_2026_03``.
    """
    start = month_start(month)
    return f"{table_family}_{start.year:04d}_{start.month:02d}"


def validate_identifier(name: str) -> str:
    if not isinstance(name, str) or not IDENTIFIER_PATTERN.match(name):
        raise ValueError(f"Invalid SQL identifier: {name!r}")
    return name


# ---------------------------------------------------------------------
# Partition
# ---------------------------------------------------------------------

class Partition(BaseModel):
    """
    One physical partition of a table family.

    Partitions created by the manager are always whole calendar months; the
    catalog may still report hand-made partitions with other bounds.
    """

    table_family: str
    name: str
    range_start: date
    range_end: date

    model_config = ConfigDict(frozen=True)

    @field_validator("table_family", "name")
    @classmethod
    def _check_identifier(cls, v: str) -> str:
        return validate_identifier(v)

    @model_validator(mode="after")
    def _check_range(self) -> "Partition":
        if self.range_end <= self.range_start:
            raise ValueError(
                f"Partition {self.name}: range_end must be after range_start"
            )
        return self

    @classmethod
    def for_month(cls, table_family: str, month: Union[date, datetime]) -> "Partition":
        start = month_start(month)
        return cls(
            table_family=table_family,
            name=partition_name(table_family, start),
            range_start=start,
            range_end=add_months(start, 1),
        )

    def covers(self, month: date) -> bool:
        """True when the whole month lies inside this partition."""
        return self.range_start <= month and add_months(month, 1) <= self.range_end


# ---------------------------------------------------------------------
# Managed table families
# ---------------------------------------------------------------------

class PartitionedTable(BaseModel):
    """
    A range-partitioned parent table and the indexes each partition gets.

    `retention_months` and `archive` set the family's own retirement policy;
    when unset, the manager's defaults apply.
    """

    name: str
    timestamp_column: str = "timestamp"
    index_columns: Tuple[Tuple[str, ...], ...] = ()
    retention_months: Optional[int] = Field(default=None, ge=0)
    archive: bool = False

    model_config = ConfigDict(frozen=True)

    @field_validator("name")
    @classmethod
    def _check_name(cls, v: str) -> str:
        validate_identifier(v)
        if len(v) > MAX_FAMILY_NAME_LENGTH:
            raise ValueError(
                f"Table family name {v!r} is longer than {MAX_FAMILY_NAME_LENGTH} characters"
            )
        return v

    @field_validator("timestamp_column")
    @classmethod
    def _check_identifier(cls, v: str) -> str:
        return validate_identifier(v)

    @field_validator("index_columns")
    @classmethod
    def _check_index_columns(cls, v: Tuple[Tuple[str, ...], ...]) -> Tuple[Tuple[str, ...], ...]:
        for columns in v:
            if not columns:
                raise ValueError("index column group must not be empty")
            for column in columns:
                validate_identifier(column)
        return v

    def index_name(self, partition: Partition, columns: Tuple[str, ...]) -> str:
        """
        e.g. ``messages_2026_03_conversationId_timestamp_idx``.
        """
        slug = re.sub(r"[^a-zA-Z]+", "_", "_".join(columns)).strip("_")
        return f"{partition.name}_{slug}_idx"[:63]


DEFAULT_PARTITIONED_TABLES: Tuple[PartitionedTable, ...] = (
    PartitionedTable(
        name="messages",
        timestamp_column="timestamp",
        index_columns=(
            ("conversationId", "timestamp"),
            ("externalId",),
            ("id",),
        ),
    ),
    PartitionedTable(
        name="api_logs",
        timestamp_column="timestamp",
        index_columns=(
            ("tenantId", "timestamp"),
            ("timestamp",),
            ("id",),
        ),
    ),
)


# ---------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------

class PartitionStatus(str, Enum):
    CREATED = "created"
    ALREADY_PRESENT = "already_present"
    FAILED = "failed"


class PartitionOutcome(BaseModel):
    table_family: str
    month: date
    name: str
    status: PartitionStatus
    reason: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class PartitionReport(BaseModel):
    """
    Full result of one ensure run. Always complete, even on partial failure.
    """

    window_start: date
    window_end: date
    outcomes: List[PartitionOutcome] = Field(default_factory=list)
    gaps: Dict[str, List[date]] = Field(
        default_factory=dict,
        description="Months inside the window still not covered, per family.",
    )
    verification_errors: Dict[str, str] = Field(
        default_factory=dict,
        description="Families whose coverage could not be checked, with the error.",
    )

    def _with_status(self, status: PartitionStatus) -> List[PartitionOutcome]:
        return [o for o in self.outcomes if o.status is status]

    @property
    def created(self) -> List[PartitionOutcome]:
        return self._with_status(PartitionStatus.CREATED)

    @property
    def already_present(self) -> List[PartitionOutcome]:
        return self._with_status(PartitionStatus.ALREADY_PRESENT)

    @property
    def failed(self) -> List[PartitionOutcome]:
        return self._with_status(PartitionStatus.FAILED)

    @property
    def ok(self) -> bool:
        return (
            not self.failed
            and not any(self.gaps.values())
            and not self.verification_errors
        )


class RetirementStatus(str, Enum):
    RETIRED = "retired"
    ARCHIVED = "archived"
    WOULD_RETIRE = "would_retire"
    WOULD_ARCHIVE = "would_archive"
    FAILED = "failed"


class RetirementOutcome(BaseModel):
    table_family: str
    name: str
    range_start: date
    range_end: date
    status: RetirementStatus
    archive_schema: Optional[str] = None
    reason: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class RetirementReport(BaseModel):
    """
    Result of one retirement run. `cutoffs` holds each family's cutoff: only
    partitions ending on or before it were considered.
    """

    cutoffs: Dict[str, date] = Field(default_factory=dict)
    dry_run: bool
    outcomes: List[RetirementOutcome] = Field(default_factory=list)
    listing_errors: Dict[str, str] = Field(default_factory=dict)

    @property
    def failed(self) -> List[RetirementOutcome]:
        return [o for o in self.outcomes if o.status is RetirementStatus.FAILED]
