"""Regenerate the Dashboard sheet on Google Sheets via the Sheets API."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .aggregate import aggregate_rows
from .config import ConfigError, DashboardConfig, LayoutConfig
from .layout import ChartKind, ChartSpec, LayoutGrid, RangeRef, TableWrite, plan_layout
from .rollups import build_rollups, summarize
from .sheets import (
    cell_to_a1,
    clear_sheet,
    column_index_to_letters,
    delete_sheet_charts,
    ensure_sheet_exists,
    execute_with_retry,
    quote_sheet,
    read_values,
)

logger = logging.getLogger(__name__)

MAX_REQUEST_SIZE_MB = 9  # Keep under 10MB limit
CHART_BATCH_SIZE = 6

HEX_COLORS = {
    "table_header": "EBF0F5",
    "accent_primary": "5C8DFF",
    "accent_secondary": "7BC5B2",
    "accent_tertiary": "9A8CFF",
}
SERIES_PALETTE = ("5C8DFF", "7BC5B2", "9A8CFF", "F4A261", "E76F51", "2A9D8F", "E9C46A")


@dataclass
class DashboardResult:
    summary: str
    reference_date_key: Optional[str]
    tables_written: int
    charts_created: int
    charts_deleted: int


def hex_to_rgb(color: str) -> Dict[str, float]:
    color = color.lstrip("#")
    return {
        "red": int(color[0:2], 16) / 255.0,
        "green": int(color[2:4], 16) / 255.0,
        "blue": int(color[4:6], 16) / 255.0,
    }


def estimate_request_size(data: Any) -> float:
    """Estimate request size in MB."""
    return len(json.dumps(data, default=str).encode("utf-8")) / (1024 * 1024)


def grid_range(ref: RangeRef, sheet_id: int) -> Dict[str, int]:
    return {
        "sheetId": sheet_id,
        "startRowIndex": ref.start.row,
        "endRowIndex": ref.end_row,
        "startColumnIndex": ref.start.column,
        "endColumnIndex": ref.end_column,
    }


def _source(ref: RangeRef, sheet_id: int) -> Dict[str, Any]:
    return {"sourceRange": {"sources": [grid_range(ref, sheet_id)]}}


def chart_spec_body(chart: ChartSpec, sheet_id: int) -> Dict[str, Any]:
    """Sheets API chart spec for one planned chart."""
    if chart.kind == ChartKind.PIE:
        return {
            "pieChart": {
                "legendPosition": "RIGHT_LEGEND",
                "domain": _source(chart.domain, sheet_id),
                "series": _source(chart.series[0], sheet_id),
                "pieHole": 0.5,
            }
        }

    if chart.kind == ChartKind.TREND_AREA:
        chart_type, legend, target_axis = "AREA", "TOP_LEGEND", "LEFT_AXIS"
    elif chart.kind == ChartKind.HORIZONTAL_BAR:
        chart_type, legend, target_axis = "BAR", "NO_LEGEND", "BOTTOM_AXIS"
    else:
        chart_type, legend, target_axis = "COLUMN", "NO_LEGEND", "LEFT_AXIS"

    series = []
    for index, ref in enumerate(chart.series):
        series.append({
            "series": _source(ref, sheet_id),
            "targetAxis": target_axis,
            "color": hex_to_rgb(SERIES_PALETTE[index % len(SERIES_PALETTE)]),
        })

    return {
        "basicChart": {
            "chartType": chart_type,
            "legendPosition": legend,
            "headerCount": chart.header_rows,
            "domains": [{"domain": _source(chart.domain, sheet_id)}],
            "series": series,
            "axis": [{"position": "BOTTOM_AXIS"}, {"position": "LEFT_AXIS"}],
        }
    }


def add_chart_request(chart: ChartSpec, sheet_id: int) -> Dict[str, Any]:
    width, height = chart.size
    return {
        "addChart": {
            "chart": {
                "spec": {
                    "title": chart.title,
                    "titleTextFormat": {"bold": True, "fontSize": 12},
                    **chart_spec_body(chart, sheet_id),
                },
                "position": {
                    "overlayPosition": {
                        "anchorCell": {
                            "sheetId": sheet_id,
                            "rowIndex": chart.anchor.row,
                            "columnIndex": chart.anchor.column,
                        },
                        "widthPixels": width,
                        "heightPixels": height,
                    }
                },
            }
        }
    }


def _repeat_cell(sheet_id: int, start_row: int, end_row: int, start_col: int, end_col: int, fmt: Dict, fields: str) -> Dict:
    return {
        "repeatCell": {
            "range": {
                "sheetId": sheet_id,
                "startRowIndex": start_row,
                "endRowIndex": end_row,
                "startColumnIndex": start_col,
                "endColumnIndex": end_col,
            },
            "cell": {"userEnteredFormat": fmt},
            "fields": fields,
        }
    }


def format_requests(table: TableWrite, sheet_id: int) -> List[Dict[str, Any]]:
    """Header, title and percentage formatting for one placed table."""
    row, col = table.anchor.row, table.anchor.column
    if table.style == "title":
        return [_repeat_cell(sheet_id, row, row + 1, col, col + 1,
                             {"textFormat": {"bold": True, "fontSize": 14}}, "userEnteredFormat.textFormat")]
    if table.style == "heading":
        return [_repeat_cell(sheet_id, row, row + 1, col, col + 1,
                             {"textFormat": {"bold": True}}, "userEnteredFormat.textFormat")]
    if table.style != "table":
        return []

    requests = []
    if table.header and table.columns:
        header_format = {
            "textFormat": {"bold": True},
            "backgroundColor": hex_to_rgb(HEX_COLORS["table_header"]),
        }
        requests.append(_repeat_cell(sheet_id, row, row + 1, col, table.end_column, header_format, "userEnteredFormat"))
    if table.percent_column is not None and table.data_rows > 0:
        percent_col = col + table.percent_column
        requests.append(_repeat_cell(
            sheet_id, row + (1 if table.header else 0), table.end_row, percent_col, percent_col + 1,
            {"numberFormat": {"type": "PERCENT", "pattern": "0.0%"}}, "userEnteredFormat.numberFormat",
        ))
    return requests


def value_data(grid: LayoutGrid, sheet_name: str) -> List[Dict[str, Any]]:
    return [
        {"range": f"{quote_sheet(sheet_name)}!{cell_to_a1(t.anchor.row, t.anchor.column)}", "values": t.values}
        for t in grid.ordered_tables()
    ]


def build_requests(grid: LayoutGrid, sheet_id: int) -> List[Dict[str, Any]]:
    requests: List[Dict[str, Any]] = []
    for table in grid.ordered_tables():
        requests.extend(format_requests(table, sheet_id))
    for chart in grid.ordered_charts():
        requests.append(add_chart_request(chart, sheet_id))
    return requests


def _batch_update(service, spreadsheet_id: str, requests: List[Dict], operation: str) -> None:
    payload = {"requests": requests}
    if estimate_request_size(payload) <= MAX_REQUEST_SIZE_MB:
        execute_with_retry(
            lambda: service.spreadsheets().batchUpdate(spreadsheetId=spreadsheet_id, body=payload).execute(),
            operation,
        )
        return

    logger.warning("⚠ Payload exceeds %sMB, splitting into batches...", MAX_REQUEST_SIZE_MB)
    for i in range(0, len(requests), CHART_BATCH_SIZE):
        batch = {"requests": requests[i:i + CHART_BATCH_SIZE]}
        execute_with_retry(
            lambda: service.spreadsheets().batchUpdate(spreadsheetId=spreadsheet_id, body=batch).execute(),
            f"{operation}_batch_{i // CHART_BATCH_SIZE + 1}",
        )


def render_grid(service, spreadsheet_id: str, sheet_name: str, sheet_id: int, grid: LayoutGrid) -> int:
    """Write every planned table, then formatting and charts. Returns the chart count."""
    data = value_data(grid, sheet_name)

    def _write():
        return service.spreadsheets().values().batchUpdate(
            spreadsheetId=spreadsheet_id,
            body={"valueInputOption": "USER_ENTERED", "data": data},
        ).execute()

    execute_with_retry(_write, f"write_dashboard({sheet_name})")

    requests = build_requests(grid, sheet_id)
    if requests:
        _batch_update(service, spreadsheet_id, requests, f"format_dashboard({sheet_name})")
    return len(grid.charts)


def update_dashboard(
    service,
    spreadsheet_id: str,
    data_sheet_name: str,
    dashboard_sheet_name: str = "Dashboard",
    header_row_index: int = 0,
    config: DashboardConfig = None,
    layout: LayoutConfig = None,
) -> DashboardResult:
    """Rebuild the dashboard sheet from the rows currently on the data sheet."""
    if not data_sheet_name:
        raise ConfigError("Missing data_sheet_name for dashboard generation.")
    config = config or DashboardConfig()

    logger.info("Rebuilding '%s' from '%s'...", dashboard_sheet_name, data_sheet_name)
    dashboard_id = ensure_sheet_exists(service, spreadsheet_id, dashboard_sheet_name)
    clear_sheet(service, spreadsheet_id, dashboard_sheet_name)
    deleted = delete_sheet_charts(service, spreadsheet_id, dashboard_id)

    if config.column_names:
        # named columns can sit anywhere, so read the whole sheet
        data_range = quote_sheet(data_sheet_name)
    else:
        data_range = f"{quote_sheet(data_sheet_name)}!A:{column_index_to_letters(config.columns.width)}"
    rows = read_values(service, spreadsheet_id, data_range, value_render_option="UNFORMATTED_VALUE")
    logger.info("✓ Loaded %d rows", len(rows))

    counts = aggregate_rows(rows, header_row_index, config.column_names or config.columns)
    rollups = build_rollups(counts, config)
    summary = summarize(rollups, config)
    grid = plan_layout(rollups, summary, config, layout)

    created = render_grid(service, spreadsheet_id, dashboard_sheet_name, dashboard_id, grid)
    logger.info("✓ Dashboard '%s' updated: %d tables, %d charts", dashboard_sheet_name, len(grid.tables), created)

    return DashboardResult(
        summary=summary,
        reference_date_key=rollups.reference_date_key,
        tables_written=len(grid.tables),
        charts_created=created,
        charts_deleted=deleted,
    )
