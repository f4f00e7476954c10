#!/usr/bin/env python3
"""
catalog-sync – command line entry point.

Usage:
    # Assign a tag to selected columns (merge keeps other tags in the category)
    catalog-sync tag --instance sql01 --database Sales --table Customers \
        --column Email --category "Information Type" --tag "Contact Info"

    # Replace a single-valued category's tag
    catalog-sync tag --instance sql01 --database Sales --table Customers \
        --category Sensitivity --tag Confidential --mode overwrite

    # Apply tags to every column of a table in bulk
    catalog-sync bulk --instance sql01 --database Sales --table Customers \
        --tag "Sensitivity=Confidential" --tag "Information Type=Contact Info"

    # Write catalog classifications into the live databases
    catalog-sync sync --instance sql01 --server sql01.contoso.local \
        --database Sales --database HR [--force]

    # Trigger a scan and wait for it
    catalog-sync scan --instance sql01 --database Sales --wait --timeout 600

Environment:
    All configuration via .env file or environment variables.
    See catalog_sync/config.py for details.
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from collections import OrderedDict
from pathlib import Path
from typing import Any, Dict, List, Optional

from .bulk import columns_for_tables, update_columns_bulk
from .config import configure_logging, get_settings
from .errors import CatalogSyncError
from .live_db import odbc_connection_factory, synchronize_databases
from .models import OperationStatus, UpdateMode
from .poller import run_scan
from .session import CatalogSession, connect
from .tags import requested_tag_names, update_columns_tags

logger = logging.getLogger("catalog_sync.cli")


def _parse_category_tags(pairs: List[str]) -> Dict[str, List[str]]:
    """``["Cat=Tag", "Cat=Other"]`` -> ``{"Cat": ["Tag", "Other"]}`` (order kept)."""
    categories: Dict[str, List[str]] = OrderedDict()
    for pair in pairs:
        if "=" not in pair:
            raise argparse.ArgumentTypeError(f"Expected CATEGORY=TAG, got {pair!r}")
        category, tag = (part.strip() for part in pair.split("=", 1))
        tags = categories.setdefault(category, [])
        if tag and tag not in tags:
            tags.append(tag)
    return categories


def _selected_columns(session: CatalogSession, args: argparse.Namespace):
    columns = session.fetch_classified_columns(args.instance, args.database)
    return columns_for_tables(columns, args.schema, args.table, args.column)


def _progress(fraction: float) -> None:
    logger.debug("  progress %.0f%%", fraction * 100)


# ---------------------------------------------------------------------------
# Subcommands
# ---------------------------------------------------------------------------

def cmd_tag(session: CatalogSession, args: argparse.Namespace) -> Dict[str, Any]:
    columns = _selected_columns(session, args)
    logger.info("Selected %d columns", len(columns))
    summary = update_columns_tags(
        session,
        columns,
        args.category,
        requested_tag_names(args.tag),
        mode=UpdateMode(args.mode),
        read_current=False,
    )
    return summary.to_dict()


def cmd_bulk(session: CatalogSession, args: argparse.Namespace) -> Dict[str, Any]:
    categories = _parse_category_tags(args.tag)
    columns = _selected_columns(session, args)
    batches = update_columns_bulk(session, columns, categories, batch_size=args.batch_size)
    return {"columns": len(columns), "batches": batches, "categories": categories}


def cmd_sync(session: CatalogSession, args: argparse.Namespace) -> Dict[str, Any]:
    factory = odbc_connection_factory(session.settings, args.server)
    reports = synchronize_databases(
        session, args.instance, args.database, factory, force=args.force, progress=_progress,
    )
    return {"databases": [report.to_dict() for report in reports]}


def cmd_scan(session: CatalogSession, args: argparse.Namespace) -> Dict[str, Any]:
    status = run_scan(
        session,
        args.instance,
        database_name=args.database,
        wait=args.wait,
        timeout_seconds=args.timeout,
    )
    return {"scan_status": status.value if status else "Accepted"}


# ---------------------------------------------------------------------------
# Main flow
# ---------------------------------------------------------------------------

def exit_code(command: str, summary: Dict[str, Any]) -> int:
    """1 when the report records failures the run carried on past, else 0."""
    if command == "scan":
        failed = summary["scan_status"] in (OperationStatus.FAILED.value, OperationStatus.TIMEOUT.value)
    elif command == "tag":
        failed = summary["failed"] > 0
    elif command == "sync":
        failed = any(db["aborted"] or db["errors"] for db in summary["databases"])
    else:
        failed = False
    return 1 if failed else 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="catalog-sync",
        description="Reconcile catalog column classifications and sync them into live SQL Server databases",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable DEBUG logging")
    parser.add_argument("--output-dir", default=".", help="Directory for report output files")
    sub = parser.add_subparsers(dest="command", required=True)

    def _column_selection(p: argparse.ArgumentParser) -> None:
        p.add_argument("--instance", required=True, help="Catalog instance id")
        p.add_argument("--database", required=True, help="Database name")
        p.add_argument("--schema", help="Restrict to one schema")
        p.add_argument("--table", help="Restrict to one table")
        p.add_argument("--column", action="append", help="Restrict to column(s); repeatable")

    p_tag = sub.add_parser("tag", help="Assign tags in one category to selected columns")
    _column_selection(p_tag)
    p_tag.add_argument("--category", required=True, help="Tag category name")
    p_tag.add_argument("--tag", action="append", default=[], help="Tag name; repeatable")
    p_tag.add_argument("--mode", choices=[m.value for m in UpdateMode], default=UpdateMode.MERGE.value)
    p_tag.set_defaults(handler=cmd_tag)

    p_bulk = sub.add_parser("bulk", help="Bulk-apply CATEGORY=TAG pairs to selected columns")
    _column_selection(p_bulk)
    p_bulk.add_argument("--tag", action="append", required=True, help="CATEGORY=TAG; repeatable")
    p_bulk.add_argument("--batch-size", type=int, default=None, help="Columns per bulk request")
    p_bulk.set_defaults(handler=cmd_bulk)

    p_sync = sub.add_parser("sync", help="Write catalog classifications into live databases")
    p_sync.add_argument("--instance", required=True, help="Catalog instance id")
    p_sync.add_argument("--server", required=True, help="SQL Server address for ODBC connections")
    p_sync.add_argument("--database", action="append", required=True, help="Database name; repeatable")
    p_sync.add_argument("--force", action="store_true",
                        help="Overwrite/drop existing extended properties instead of only adding")
    p_sync.set_defaults(handler=cmd_sync)

    p_scan = sub.add_parser("scan", help="Trigger an instance or database scan")
    p_scan.add_argument("--instance", required=True, help="Catalog instance id")
    p_scan.add_argument("--database", help="Scan only this database")
    p_scan.add_argument("--wait", action="store_true", help="Wait for scan completion")
    p_scan.add_argument("--timeout", type=float, default=600, help="Seconds to wait")
    p_scan.set_defaults(handler=cmd_scan)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)

    t0 = time.time()
    try:
        session = connect(get_settings())
        summary = args.handler(session, args)
    except (CatalogSyncError, argparse.ArgumentTypeError, ValueError) as exc:
        logger.error("%s", exc)
        return 1

    elapsed = time.time() - t0
    logger.info("=" * 60)
    logger.info("%s COMPLETE  (%.1fs)", args.command.upper(), elapsed)
    logger.info("=" * 60)

    out = Path(args.output_dir)
    out.mkdir(parents=True, exist_ok=True)
    report_path = out / f"catalog_sync_{args.command}_report.json"
    with open(report_path, "w") as f:
        json.dump(summary, f, indent=2, default=str)
    logger.info("Report written to %s", report_path)

    return exit_code(args.command, summary)


if __name__ == "__main__":
    sys.exit(main())
