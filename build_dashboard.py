#!/usr/bin/env python3
"""Rebuild the stuck-up validation Dashboard sheet from its data sheet via the Sheets API."""

from __future__ import annotations

import argparse
import os
import time
import traceback

from googleapiclient.errors import HttpError

from stuckup_dashboard import sheets
from stuckup_dashboard.config import ConfigError, DashboardConfig, configure_logging
from stuckup_dashboard.dashboard import update_dashboard
from stuckup_dashboard.sheets import get_service


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--spreadsheet-id", default=os.getenv("DASHBOARD_SPREADSHEET_ID"))
    parser.add_argument("--data-sheet", default=os.getenv("DATA_SHEET", "Data"))
    parser.add_argument("--dashboard-sheet", default=os.getenv("DASHBOARD_SHEET", "Dashboard"))
    parser.add_argument("--header-row-index", type=int, default=int(os.getenv("HEADER_ROW_INDEX", "0")))
    return parser.parse_args(argv)


def main(argv=None) -> int:
    configure_logging()
    args = parse_args(argv)
    start_time = time.time()

    print("=" * 60)
    print("Stuck-up Validation Dashboard Builder")
    print("=" * 60)
    print("Configuration:")
    print(f"  • Data sheet: {args.data_sheet}")
    print(f"  • Dashboard sheet: {args.dashboard_sheet}")
    print(f"  • Max retries per call: {sheets.MAX_RETRIES}")
    print("=" * 60)

    if not args.spreadsheet_id:
        print("❌ DASHBOARD_SPREADSHEET_ID environment variable not set")
        return 1

    try:
        config = DashboardConfig.from_env()
        service = get_service()
        print("✓ Connected to Google Sheets API")

        result = update_dashboard(
            service,
            args.spreadsheet_id,
            data_sheet_name=args.data_sheet,
            dashboard_sheet_name=args.dashboard_sheet,
            header_row_index=args.header_row_index,
            config=config,
        )

        elapsed_time = time.time() - start_time
        print("\n📈 Performance Metrics:")
        print(f"  • Tables written: {result.tables_written}")
        print(f"  • Charts replaced: {result.charts_deleted} -> {result.charts_created}")
        print(f"  • Reference day for top hubs: {result.reference_date_key or 'n/a'}")
        print(f"  • Total API calls: {sheets.api_call_count}")
        print(f"  • Total execution time: {elapsed_time:.2f} seconds")
        print(f"\n📝 {result.summary}")
        print("\n✅ Dashboard update completed successfully!")

    except HttpError as e:
        print(f"\n✗ Google API Error: {e}")
        print(f"  Status: {e.resp.status}")
        traceback.print_exc()
        return 1
    except ConfigError as e:
        print(f"\n✗ Configuration error: {e}")
        return 1
    except Exception as e:
        print(f"\n✗ Error: {e}")
        traceback.print_exc()
        return 1

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
