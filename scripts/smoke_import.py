#!/usr/bin/env python3
"""Run one import against real spreadsheets, configured from TEST_* environment variables."""

from __future__ import annotations

import json
import os
import re
import sys
import traceback

from stuckup_dashboard.config import configure_logging
from stuckup_dashboard.sheets import get_service, has_sheet_prefix, quote_sheet, read_values
from stuckup_dashboard.workflow import DestinationSpec, SourceSpec, resolve_sheet_name, run_import


def parse_json_env(name: str):
    raw = os.getenv(name)
    if not raw:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in {name}.") from e


def parse_bool_env(name: str, fallback: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return fallback
    if re.fullmatch(r"(?i)true|1|yes", raw):
        return True
    if re.fullmatch(r"(?i)false|0|no", raw):
        return False
    raise ValueError(f"Invalid boolean for {name}: {raw}")


def main() -> int:
    configure_logging()
    missing = []

    source_id = os.getenv("TEST_SOURCE_SPREADSHEET_ID")
    source_range = os.getenv("TEST_SOURCE_RANGE")
    source_ranges = parse_json_env("TEST_SOURCE_RANGES")
    source_sheet = os.getenv("TEST_SOURCE_SHEET_NAME")
    source_gid = os.getenv("TEST_SOURCE_GID")
    dest_id = os.getenv("TEST_DEST_SPREADSHEET_ID")
    dest_sheet = os.getenv("TEST_DEST_SHEET_NAME")
    dest_gid = os.getenv("TEST_DEST_GID")

    if not source_id:
        missing.append("TEST_SOURCE_SPREADSHEET_ID")
    if not source_range and not isinstance(source_ranges, list):
        missing.append("TEST_SOURCE_RANGE or TEST_SOURCE_RANGES")
    needs_sheet = (source_range and not has_sheet_prefix(source_range)) or (
        isinstance(source_ranges, list) and source_ranges and not all(has_sheet_prefix(r) for r in source_ranges)
    )
    if needs_sheet and not source_sheet and not source_gid:
        missing.append("TEST_SOURCE_SHEET_NAME or TEST_SOURCE_GID")
    if not dest_id:
        missing.append("TEST_DEST_SPREADSHEET_ID")
    if not dest_sheet and not dest_gid:
        missing.append("TEST_DEST_SHEET_NAME or TEST_DEST_GID")

    if missing:
        print("Missing required test environment variables:")
        for name in missing:
            print(f"- {name}")
        print("\nSet these in .env or your shell before running this test.")
        return 1

    try:
        service = get_service()
        source = SourceSpec(
            spreadsheet_id=source_id,
            range=source_range,
            ranges=source_ranges if isinstance(source_ranges, list) else [],
            import_range=os.getenv("TEST_SOURCE_IMPORT_RANGE"),
            gid=source_gid,
            sheet_name=source_sheet,
        )
        destination = DestinationSpec(
            spreadsheet_id=dest_id,
            sheet_name=dest_sheet,
            gid=dest_gid,
            start_cell=os.getenv("TEST_DEST_START_CELL", "A1"),
            dashboard_sheet_name=os.getenv("TEST_DASHBOARD_SHEET_NAME"),
        )
        result = run_import(
            service,
            source,
            destination,
            remove_columns=parse_json_env("TEST_REMOVE_COLUMNS") or [],
            keep_columns=parse_json_env("TEST_KEEP_COLUMNS") or [],
            header_row_index=int(os.getenv("TEST_HEADER_ROW_INDEX", "0")),
            clear_destination=parse_bool_env("TEST_CLEAR_DESTINATION", True),
        )
        print(f"✓ Import complete: {result.get('updatedRange')} ({result.get('updatedRows', 0)} rows)")

        sheet_name = resolve_sheet_name(service, dest_id, dest_sheet, dest_gid)
        preview = read_values(service, dest_id, f"{quote_sheet(sheet_name)}!A1:E5")
        print("Destination preview:")
        for row in preview:
            print(f"  {row}")
        return 0
    except Exception as e:
        print(f"✗ Import test failed: {e}")
        traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
