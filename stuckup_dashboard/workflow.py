"""Copy rows from a source range into a destination range, then refresh the dashboard."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional

from .config import ConfigError, DashboardConfig
from .dashboard import update_dashboard
from .sheets import (
    clear_range,
    column_index_to_letters,
    ensure_sheet_exists,
    get_sheet_title_by_id,
    has_sheet_prefix,
    keep_columns_from_rows,
    parse_cell_ref,
    quote_sheet,
    read_values,
    remove_columns_from_rows,
    write_values,
)

logger = logging.getLogger(__name__)


@dataclass
class SourceSpec:
    spreadsheet_id: str
    range: Optional[str] = None
    ranges: List[str] = field(default_factory=list)
    import_range: Optional[str] = None
    gid: Optional[Any] = None
    sheet_name: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SourceSpec":
        ranges = data.get("ranges")
        return cls(
            spreadsheet_id=data.get("spreadsheetId"),
            range=data.get("range"),
            ranges=list(ranges) if isinstance(ranges, list) else [],
            import_range=data.get("importRange"),
            gid=data.get("gid"),
            sheet_name=data.get("sheetName"),
        )

    def all_ranges(self) -> List[str]:
        if self.ranges:
            return list(self.ranges)
        if self.range:
            return [self.range]
        return []


@dataclass
class DestinationSpec:
    spreadsheet_id: str
    sheet_name: Optional[str] = None
    gid: Optional[Any] = None
    start_cell: str = "A1"
    clear_range: Optional[str] = None
    dashboard: Any = None
    dashboard_sheet_name: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DestinationSpec":
        return cls(
            spreadsheet_id=data.get("spreadsheetId"),
            sheet_name=data.get("sheetName"),
            gid=data.get("gid"),
            start_cell=data.get("startCell") or "A1",
            clear_range=data.get("clearRange"),
            dashboard=data.get("dashboard"),
            dashboard_sheet_name=data.get("dashboardSheetName"),
        )

    def dashboard_target(self) -> Optional[str]:
        """Name of the dashboard sheet to rebuild after a write, or None."""
        config = self.dashboard if isinstance(self.dashboard, dict) else None
        if config is None and self.dashboard is True:
            config = {"sheetName": "Dashboard"}
        name = self.dashboard_sheet_name or (config or {}).get("sheetName")
        if not name:
            return None
        if config is not None and config.get("enabled") is False:
            return None
        return name


@dataclass
class ResolvedRanges:
    ranges: List[str]
    import_range: str
    sheet_name: Optional[str] = None


def resolve_sheet_name(service, spreadsheet_id: str, sheet_name: Optional[str], gid: Any) -> str:
    if sheet_name:
        return sheet_name
    if gid is not None and gid != "":
        return get_sheet_title_by_id(service, spreadsheet_id, gid)
    raise ConfigError("Missing sheetName or gid.")


def normalize_range(range_str: str, sheet_name: str) -> str:
    if has_sheet_prefix(range_str):
        return range_str
    return f"{quote_sheet(sheet_name)}!{range_str}"


def resolve_source_ranges(service, source: SourceSpec) -> ResolvedRanges:
    """Qualify every source range with its sheet name, looking the sheet up only when needed."""
    ranges = source.all_ranges()
    if not ranges:
        raise ConfigError("Missing source range.")

    if all(has_sheet_prefix(r) for r in ranges):
        import_range = source.import_range or ranges[0]
        if not has_sheet_prefix(import_range):
            import_range = f"{ranges[0].split('!')[0]}!{import_range}"
        return ResolvedRanges(ranges=ranges, import_range=import_range)

    sheet_name = resolve_sheet_name(service, source.spreadsheet_id, source.sheet_name, source.gid)
    return ResolvedRanges(
        ranges=[normalize_range(r, sheet_name) for r in ranges],
        import_range=normalize_range(source.import_range or ranges[0], sheet_name),
        sheet_name=sheet_name,
    )


def infer_clear_range(sheet_name: str, start_cell: str, rows: List[List[Any]], keep_columns: List[str] = None) -> Optional[str]:
    """The block about to be written, so formulas beside it survive the clear."""
    row_count = len(rows) if rows else 0
    col_count = 0
    if rows:
        col_count = max((len(row) for row in rows if isinstance(row, list)), default=0)
    elif keep_columns:
        col_count = len(keep_columns)

    if row_count == 0 or col_count == 0:
        return None

    start_col, start_row = parse_cell_ref(start_cell or "A1")
    first = column_index_to_letters(start_col)
    last = column_index_to_letters(start_col + col_count - 1)
    return f"{quote_sheet(sheet_name)}!{first}{start_row}:{last}{start_row + row_count - 1}"


def filter_columns(rows: List[List[Any]], remove_columns: List[Any] = None, keep_columns: List[str] = None,
                   header_row_index: int = 0) -> List[List[Any]]:
    if keep_columns:
        return keep_columns_from_rows(rows, keep_columns, header_row_index=header_row_index)
    return remove_columns_from_rows(rows, remove_columns or [])


def import_rows(
    service,
    rows: List[List[Any]],
    destination: DestinationSpec,
    remove_columns: List[Any] = None,
    keep_columns: List[str] = None,
    header_row_index: int = 0,
    clear_destination: bool = True,
    dashboard_config: DashboardConfig = None,
) -> Dict[str, Any]:
    """Filter, clear and write rows to the destination; rebuild its dashboard if one is configured."""
    filtered = filter_columns(rows, remove_columns, keep_columns, header_row_index)

    sheet_name = resolve_sheet_name(service, destination.spreadsheet_id, destination.sheet_name, destination.gid)
    ensure_sheet_exists(service, destination.spreadsheet_id, sheet_name)

    if clear_destination:
        if destination.clear_range:
            clear_range(service, destination.spreadsheet_id, normalize_range(destination.clear_range, sheet_name))
        else:
            inferred = infer_clear_range(sheet_name, destination.start_cell, filtered, keep_columns)
            if inferred:
                clear_range(service, destination.spreadsheet_id, inferred)
            else:
                logger.warning(
                    "⚠ clearDestination requested but range could not be inferred; skipping clear to preserve formulas."
                )

    result = write_values(service, destination.spreadsheet_id, sheet_name, destination.start_cell or "A1", filtered)

    dashboard_sheet = destination.dashboard_target()
    if dashboard_sheet:
        try:
            update_dashboard(
                service,
                destination.spreadsheet_id,
                data_sheet_name=sheet_name,
                dashboard_sheet_name=dashboard_sheet,
                header_row_index=header_row_index,
                config=dashboard_config,
            )
        except Exception as e:
            logger.warning("⚠ Dashboard update failed: %s", e)

    return result


def run_import(
    service,
    source: SourceSpec,
    destination: DestinationSpec,
    remove_columns: List[Any] = None,
    keep_columns: List[str] = None,
    header_row_index: int = 0,
    clear_destination: bool = True,
    dashboard_config: DashboardConfig = None,
) -> Dict[str, Any]:
    resolved = resolve_source_ranges(service, source)
    rows = read_values(service, source.spreadsheet_id, resolved.import_range)
    logger.info("Read %d rows from %s", len(rows), resolved.import_range)
    if destination.sheet_name is None:
        destination = replace(
            destination,
            sheet_name=resolve_sheet_name(service, destination.spreadsheet_id, None, destination.gid),
        )
    return import_rows(
        service,
        rows,
        destination,
        remove_columns=remove_columns,
        keep_columns=keep_columns,
        header_row_index=header_row_index,
        clear_destination=clear_destination,
        dashboard_config=dashboard_config,
    )
