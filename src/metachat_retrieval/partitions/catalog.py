"""
Partition Catalog Contract

The catalog is the shared, mutable record of which partitions exist. Several
maintenance runs may touch it at once (a scheduled job overlapping an
operator run), so `create_partition` must be safe under concurrent duplicate
attempts for the same partition: exactly one caller creates it, the others
observe it as already present. Locking is per partition name; there is no
catalog-wide lock.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List

from .models import Partition, PartitionedTable


class PartitionCatalog(ABC):
    """
    Read/create/drop/archive access to the physical partitions of table families.
    """

    @abstractmethod
    async def list_partitions(self, table_family: str) -> List[Partition]:
        """Return the family's partitions in any order."""

    @abstractmethod
    async def create_partition(
        self,
        table: PartitionedTable,
        partition: Partition,
    ) -> bool:
        """
        Create `partition` (and its indexes) if it does not exist.

        Returns
        -------
        bool
            True if this call created it, False if it was already present.
        """

    @abstractmethod
    async def drop_partition(self, partition: Partition) -> bool:
        """
        Drop `partition` if it exists. Returns True if it was dropped.
        """

    @abstractmethod
    async def archive_partition(self, partition: Partition, archive_schema: str) -> bool:
        """
        Detach `partition` from its parent and move it into `archive_schema`,
        keeping its rows. Returns True if it was archived, False if it no
        longer exists.
        """


class InMemoryPartitionCatalog(PartitionCatalog):
    """
    In-process catalog with the same concurrency contract as PostgreSQL.

    Each partition name has its own asyncio.Lock; the check-then-create
    sequence runs under it.
    """

    def __init__(self, existing: Iterable[Partition] = ()) -> None:
        self._partitions: Dict[str, Dict[str, Partition]] = {}
        self._indexes: Dict[str, List[str]] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self.archived: Dict[str, Dict[str, Partition]] = {}
        self.create_calls = 0

        for partition in existing:
            self._partitions.setdefault(partition.table_family, {})[partition.name] = partition

    def _lock_for(self, name: str) -> asyncio.Lock:
        return self._locks.setdefault(name, asyncio.Lock())

    def indexes_for(self, partition_name: str) -> List[str]:
        return list(self._indexes.get(partition_name, []))

    async def list_partitions(self, table_family: str) -> List[Partition]:
        return list(self._partitions.get(table_family, {}).values())

    async def create_partition(
        self,
        table: PartitionedTable,
        partition: Partition,
    ) -> bool:
        async with self._lock_for(partition.name):
            self.create_calls += 1
            family = self._partitions.setdefault(partition.table_family, {})

            if partition.name in family:
                return False

            for other in family.values():
                if other.range_start < partition.range_end and partition.range_start < other.range_end:
                    raise ValueError(
                        f"Partition {partition.name} would overlap {other.name}"
                    )

            # Yield while holding the key lock, as a DDL round-trip would.
            await asyncio.sleep(0)

            family[partition.name] = partition
            self._indexes[partition.name] = [
                table.index_name(partition, columns) for columns in table.index_columns
            ]
            return True

    async def drop_partition(self, partition: Partition) -> bool:
        async with self._lock_for(partition.name):
            family = self._partitions.get(partition.table_family, {})
            self._indexes.pop(partition.name, None)
            return family.pop(partition.name, None) is not None

    async def archive_partition(self, partition: Partition, archive_schema: str) -> bool:
        async with self._lock_for(partition.name):
            family = self._partitions.get(partition.table_family, {})
            if partition.name not in family:
                return False

            schema = self.archived.setdefault(archive_schema, {})
            if partition.name in schema:
                raise ValueError(
                    f"Relation {partition.name} already exists in schema {archive_schema}"
                )

            schema[partition.name] = family.pop(partition.name)
            return True
