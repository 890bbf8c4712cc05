"""
Monthly partition maintenance for time-series tables.
"""

from .models import (
    DEFAULT_PARTITIONED_TABLES,
    Partition,
    PartitionedTable,
    PartitionOutcome,
    PartitionReport,
    PartitionStatus,
    RetirementOutcome,
    RetirementReport,
    RetirementStatus,
    add_months,
    iter_months,
    month_start,
    partition_name,
)
from .catalog import PartitionCatalog, InMemoryPartitionCatalog
from .manager import PartitionManager
from .scheduler import PartitionScheduler

__all__ = [
    "DEFAULT_PARTITIONED_TABLES",
    "Partition",
    "PartitionedTable",
    "PartitionOutcome",
    "PartitionReport",
    "PartitionStatus",
    "RetirementOutcome",
    "RetirementReport",
    "RetirementStatus",
    "add_months",
    "iter_months",
    "month_start",
    "partition_name",
    "PartitionCatalog",
    "InMemoryPartitionCatalog",
    "PartitionManager",
    "PartitionScheduler",
]
