"""
PostgreSQL Partition Catalog

Lists, creates, drops and archives monthly range partitions of declaratively
partitioned parent tables.

Concurrency
-----------
Creation runs in one transaction holding a transaction-scoped advisory lock
keyed on the partition's qualified name. Two runs racing for the same month
serialize on that lock; the loser then sees the table through `to_regclass`
and reports it as already present. `CREATE TABLE IF NOT EXISTS` plus the
duplicate-table SQLSTATE (42P07) cover callers that do not take the lock.
"""

from __future__ import annotations

import logging
import re
from datetime import date
from typing import List, Optional

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..config import settings
from ..partitions.catalog import PartitionCatalog
from ..partitions.models import Partition, PartitionedTable, validate_identifier
from .session import AsyncSessionLocal

logger = logging.getLogger("retrieval.pg_partitions")

DUPLICATE_TABLE_SQLSTATE = "42P07"

_BOUND_RE = re.compile(r"FROM \('([^']+)'\) TO \('([^']+)'\)")

_LIST_SQL = text(
    """
    SELECT child.relname AS name,
           pg_get_expr(child.relpartbound, child.oid) AS bound
    FROM pg_inherits inh
    JOIN pg_class parent ON parent.oid = inh.inhparent
    JOIN pg_class child ON child.oid = inh.inhrelid
    JOIN pg_namespace ns ON ns.oid = parent.relnamespace
    WHERE parent.relname = :parent
      AND ns.nspname = :schema
    """
)

_LOCK_SQL = text("SELECT pg_advisory_xact_lock(hashtext(:key))")
_EXISTS_SQL = text("SELECT to_regclass(:qualified) IS NOT NULL")


# ---------------------------------------------------------------------
# DDL builders
# ---------------------------------------------------------------------

def quote_ident(name: str) -> str:
    """Double-quote a validated identifier."""
    return '"' + validate_identifier(name) + '"'


def qualified_name(schema: str, name: str) -> str:
    return f"{quote_ident(schema)}.{quote_ident(name)}"


def build_create_partition_sql(schema: str, partition: Partition) -> str:
    """
    e.g. CREATE TABLE IF NOT EXISTS "public"."messages_2026_03"
         PARTITION OF "public"."messages"
         FOR VALUES FROM ('2026-03-01') TO ('2026-04-01')
    """
    return (
        f"CREATE TABLE IF NOT EXISTS {qualified_name(schema, partition.name)} "
        f"PARTITION OF {qualified_name(schema, partition.table_family)} "
        f"FOR VALUES FROM ('{partition.range_start.isoformat()}') "
        f"TO ('{partition.range_end.isoformat()}')"
    )


def build_index_sql(schema: str, table: PartitionedTable, partition: Partition) -> List[str]:
    statements = []
    for columns in table.index_columns:
        column_list = ", ".join(quote_ident(c) for c in columns)
        statements.append(
            f"CREATE INDEX IF NOT EXISTS {quote_ident(table.index_name(partition, columns))} "
            f"ON {qualified_name(schema, partition.name)} ({column_list})"
        )
    return statements


def build_drop_partition_sql(schema: str, partition: Partition) -> str:
    return f"DROP TABLE IF EXISTS {qualified_name(schema, partition.name)}"


def build_archive_partition_sql(schema: str, archive_schema: str, partition: Partition) -> List[str]:
    """
    Detach the partition, then move the standalone table into the archive
    schema with its rows and indexes.
    """
    return [
        f"ALTER TABLE {qualified_name(schema, partition.table_family)} "
        f"DETACH PARTITION {qualified_name(schema, partition.name)}",
        f"CREATE SCHEMA IF NOT EXISTS {quote_ident(archive_schema)}",
        f"ALTER TABLE {qualified_name(schema, partition.name)} "
        f"SET SCHEMA {quote_ident(archive_schema)}",
    ]


def parse_partition_bound(table_family: str, name: str, bound: Optional[str]) -> Optional[Partition]:
    """
    Turn a `pg_get_expr(relpartbound)` string into a Partition.

    DEFAULT partitions and bounds using MINVALUE/MAXVALUE return None.
    """
    if not bound:
        return None
    match = _BOUND_RE.search(bound)
    if match is None:
        return None
    try:
        return Partition(
            table_family=table_family,
            name=name,
            range_start=date.fromisoformat(match.group(1)[:10]),
            range_end=date.fromisoformat(match.group(2)[:10]),
        )
    except ValueError:
        return None


def _is_duplicate_table(exc: DBAPIError) -> bool:
    orig = exc.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    return code == DUPLICATE_TABLE_SQLSTATE


# ---------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------

class PgPartitionCatalog(PartitionCatalog):
    """
    Partition catalog backed by the PostgreSQL system catalogs.
    """

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        schema: Optional[str] = None,
    ) -> None:
        self._session_factory = session_factory or AsyncSessionLocal
        self._schema = validate_identifier(schema or settings.db_schema)

    @property
    def schema(self) -> str:
        return self._schema

    async def list_partitions(self, table_family: str) -> List[Partition]:
        async with self._session_factory() as session:
            result = await session.execute(
                _LIST_SQL, {"parent": table_family, "schema": self._schema}
            )
            rows = result.all()

        partitions = []
        for row in rows:
            partition = parse_partition_bound(table_family, row.name, row.bound)
            if partition is None:
                logger.warning(
                    "Ignoring partition %s of %s with unsupported bound: %s",
                    row.name,
                    table_family,
                    row.bound,
                )
                continue
            partitions.append(partition)
        return partitions

    async def create_partition(
        self,
        table: PartitionedTable,
        partition: Partition,
    ) -> bool:
        qualified = qualified_name(self._schema, partition.name)

        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await session.execute(_LOCK_SQL, {"key": qualified})

                    exists = await session.execute(_EXISTS_SQL, {"qualified": qualified})
                    if exists.scalar():
                        return False

                    await session.execute(
                        text(build_create_partition_sql(self._schema, partition))
                    )
                    for statement in build_index_sql(self._schema, table, partition):
                        await session.execute(text(statement))
        except DBAPIError as exc:
            if _is_duplicate_table(exc):
                logger.info("Partition %s created concurrently", partition.name)
                return False
            raise

        return True

    async def drop_partition(self, partition: Partition) -> bool:
        qualified = qualified_name(self._schema, partition.name)

        async with self._session_factory() as session:
            async with session.begin():
                await session.execute(_LOCK_SQL, {"key": qualified})
                exists = await session.execute(_EXISTS_SQL, {"qualified": qualified})
                if not exists.scalar():
                    return False
                await session.execute(text(build_drop_partition_sql(self._schema, partition)))

        return True

    async def archive_partition(self, partition: Partition, archive_schema: str) -> bool:
        qualified = qualified_name(self._schema, partition.name)
        statements = build_archive_partition_sql(self._schema, archive_schema, partition)

        async with self._session_factory() as session:
            async with session.begin():
                await session.execute(_LOCK_SQL, {"key": qualified})
                exists = await session.execute(_EXISTS_SQL, {"qualified": qualified})
                if not exists.scalar():
                    return False
                for statement in statements:
                    await session.execute(text(statement))

        return True
