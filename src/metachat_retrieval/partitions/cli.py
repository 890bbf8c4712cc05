"""
Command-line partition maintenance.

    create-partitions [--months-back N] [--months-forward N] [--json]

Ensures the monthly window, then lists every partition of each managed
family so the operator can verify the result. Exits with status 1 on invalid
input or when any month failed, is still missing, or could not be verified.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Dict, List, Optional, Sequence

from ..config import settings
from ..core.errors import InvalidInput
from ..core.log import configure_logging
from .manager import PartitionManager
from .models import Partition, PartitionReport

logger = logging.getLogger("retrieval.partitions.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="create-partitions",
        description="Create missing monthly partitions for time-series tables.",
    )
    parser.add_argument(
        "--months-back",
        type=int,
        default=settings.partition_months_back,
        help="months before the current one to cover (default: %(default)s)",
    )
    parser.add_argument(
        "--months-forward",
        type=int,
        default=settings.partition_months_forward,
        help="months after the current one to cover (default: %(default)s)",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="print the report as JSON",
    )
    return parser


def _print_text(report: PartitionReport, listing: dict, listing_errors: dict) -> None:
    print(
        f"Window {report.window_start.isoformat()} .. {report.window_end.isoformat()}: "
        f"{len(report.created)} created, {len(report.already_present)} already present, "
        f"{len(report.failed)} failed"
    )
    for outcome in report.failed:
        print(f"  FAILED {outcome.name}: {outcome.reason}")
    for family, gaps in report.gaps.items():
        if gaps:
            print(f"  GAPS {family}: {', '.join(m.isoformat() for m in gaps)}")
    for family, error in report.verification_errors.items():
        print(f"  UNVERIFIED {family}: {error}")

    for family, error in listing_errors.items():
        print(f"\n{family}: listing failed: {error}")
    for family, partitions in listing.items():
        print(f"\n{family} ({len(partitions)} partitions)")
        for partition in partitions:
            print(
                f"  {partition.name}  "
                f"{partition.range_start.isoformat()} -> {partition.range_end.isoformat()}"
            )


def _print_json(report: PartitionReport, listing: dict, listing_errors: dict) -> None:
    payload = {
        "ok": report.ok and not listing_errors,
        "report": report.model_dump(mode="json"),
        "partitions": {
            family: [p.model_dump(mode="json") for p in partitions]
            for family, partitions in listing.items()
        },
        "listing_errors": listing_errors,
    }
    print(json.dumps(payload, indent=2))


async def run(args: argparse.Namespace, manager: PartitionManager) -> int:
    try:
        report = await manager.ensure_monthly_partitions(
            months_back=args.months_back,
            months_forward=args.months_forward,
        )
    except InvalidInput as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    listing: Dict[str, List[Partition]] = {}
    listing_errors: Dict[str, str] = {}
    for table in manager.tables:
        try:
            listing[table.name] = await manager.list_partitions(table.name)
        except Exception as exc:
            logger.error("Could not list partitions of %s", table.name, exc_info=exc)
            listing_errors[table.name] = f"{type(exc).__name__}: {exc}"

    if args.json:
        _print_json(report, listing, listing_errors)
    else:
        _print_text(report, listing, listing_errors)

    return 0 if report.ok and not listing_errors else 1


def main(
    argv: Optional[Sequence[str]] = None,
    manager: Optional[PartitionManager] = None,
) -> int:
    args = build_parser().parse_args(argv)
    configure_logging()

    if manager is None:
        from ..db import PgPartitionCatalog, async_engine

        async def _run_and_dispose() -> int:
            try:
                return await run(args, PartitionManager(PgPartitionCatalog()))
            finally:
                await async_engine.dispose()

        return asyncio.run(_run_and_dispose())

    return asyncio.run(run(args, manager))
