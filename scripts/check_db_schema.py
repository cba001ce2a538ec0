#!/usr/bin/env python3
"""
Subscription Database Schema Check.

Inspects the email_subscriptions table and reports whether it exists,
which expected columns are missing, and how many rows it holds.

Usage:
    python scripts/check_db_schema.py [--db PATH] [--init] [--json]

Exit codes:
    0 - Schema is complete
    1 - Table missing, columns missing, or database unreadable
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from dataclasses import asdict
from pathlib import Path

# Add project root to path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from src.adapters.sqlite_db import TABLE_NAME, SchemaReport, ensure_schema, inspect_schema  # noqa: E402

logger = logging.getLogger("check_db_schema")

DEFAULT_DB_PATH = str(Path(os.environ.get("NEWSLETTER_DATA_DIR", "./data")) / "newsletter.db")


def run_check(db_path: str, init: bool = False) -> SchemaReport:
    """Optionally create the schema, then inspect it."""
    if init:
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        ensure_schema(db_path)
    return inspect_schema(db_path)


def format_report(report: SchemaReport, db_path: str) -> str:
    lines = [f"Database: {db_path}", f"Table:    {TABLE_NAME}"]
    if report.error:
        lines.append(f"Error:    {report.error}")
    elif not report.table_exists:
        lines.append("Status:   table does not exist (run with --init to create it)")
    else:
        lines.append(f"Columns:  {', '.join(report.columns)}")
        if report.missing_columns:
            lines.append(f"Missing:  {', '.join(report.missing_columns)}")
        lines.append(f"Rows:     {report.row_count} ({report.active_count} active)")
    lines.append("Result:   " + ("OK" if report.ok else "FAILED"))
    return "\n".join(lines)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Check the subscriptions database schema.")
    parser.add_argument(
        "--db",
        default=DEFAULT_DB_PATH,
        help=f"SQLite database path (default: {DEFAULT_DB_PATH})",
    )
    parser.add_argument(
        "--init",
        action="store_true",
        help="Create the table and indexes if missing before checking",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Emit the report as JSON",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")

    report = run_check(args.db, init=args.init)
    if args.json:
        print(json.dumps({**asdict(report), "ok": report.ok}, indent=2))
    else:
        print(format_report(report, args.db))

    if not report.ok:
        logger.error("Schema check failed for %s", args.db)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
