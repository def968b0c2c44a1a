"""Place the rollup tables and chart definitions on the dashboard grid.

Every anchor is computed from the size of the table before it plus the gaps
in ``LayoutConfig``, so changing the trend window or the status list moves
everything downstream along with it. Coordinates are 0-based.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .config import DashboardConfig, LayoutConfig
from .rollups import Rollups


class ChartKind(str, Enum):
    TREND_AREA = "trend-area"
    HORIZONTAL_BAR = "horizontal-bar"
    VERTICAL_BAR = "vertical-bar"
    PIE = "pie"


@dataclass(frozen=True, order=True)
class Cell:
    row: int
    column: int

    def offset(self, rows: int = 0, columns: int = 0) -> "Cell":
        return Cell(self.row + rows, self.column + columns)


@dataclass(frozen=True)
class RangeRef:
    start: Cell
    rows: int
    columns: int = 1

    @property
    def end_row(self) -> int:
        return self.start.row + self.rows

    @property
    def end_column(self) -> int:
        return self.start.column + self.columns


@dataclass(frozen=True)
class TableWrite:
    name: str
    anchor: Cell
    values: List[List[Any]]
    header: bool = True
    percent_column: Optional[int] = None
    style: str = "table"

    @property
    def rows(self) -> int:
        return len(self.values)

    @property
    def columns(self) -> int:
        return max((len(row) for row in self.values), default=0)

    @property
    def end_row(self) -> int:
        return self.anchor.row + self.rows

    @property
    def end_column(self) -> int:
        return self.anchor.column + self.columns

    @property
    def data_rows(self) -> int:
        return self.rows - 1 if self.header else self.rows

    def column_ref(self, column: int, include_header: bool = True) -> RangeRef:
        skip = 0 if include_header or not self.header else 1
        return RangeRef(self.anchor.offset(rows=skip, columns=column), self.rows - skip, 1)


@dataclass(frozen=True)
class ChartSpec:
    name: str
    title: str
    kind: ChartKind
    domain: RangeRef
    series: Tuple[RangeRef, ...]
    anchor: Cell
    size: Tuple[int, int]
    header_rows: int = 0


class LayoutGrid:
    """Sparse anchor maps for table writes and chart draws."""

    def __init__(self):
        self.tables: Dict[Cell, TableWrite] = {}
        self.charts: Dict[Cell, ChartSpec] = {}

    def place_table(self, table: TableWrite) -> TableWrite:
        if table.anchor in self.tables:
            raise ValueError(f"Cell {table.anchor} already holds table '{self.tables[table.anchor].name}'.")
        self.tables[table.anchor] = table
        return table

    def place_chart(self, chart: ChartSpec) -> ChartSpec:
        if chart.anchor in self.charts:
            raise ValueError(f"Cell {chart.anchor} already holds chart '{self.charts[chart.anchor].name}'.")
        self.charts[chart.anchor] = chart
        return chart

    def table(self, name: str) -> TableWrite:
        for table in self.tables.values():
            if table.name == name:
                return table
        raise KeyError(name)

    def chart(self, name: str) -> Optional[ChartSpec]:
        for chart in self.charts.values():
            if chart.name == name:
                return chart
        return None

    def ordered_tables(self) -> List[TableWrite]:
        return [self.tables[cell] for cell in sorted(self.tables)]

    def ordered_charts(self) -> List[ChartSpec]:
        return [self.charts[cell] for cell in sorted(self.charts)]


def columns_for(width_px: int, layout: LayoutConfig) -> int:
    return max(1, math.ceil(width_px / layout.column_width_px))


def _series_total(table: TableWrite, column: int) -> float:
    body = table.values[1:] if table.header else table.values
    return sum(row[column] for row in body if len(row) > column and isinstance(row[column], (int, float)))


def _side_chart(name: str, title: str, kind: ChartKind, table: TableWrite, size: Tuple[int, int]) -> Optional[ChartSpec]:
    # no chart over an all-zero series
    if table.data_rows < 1 or _series_total(table, 1) <= 0:
        return None
    return ChartSpec(
        name=name,
        title=title,
        kind=kind,
        domain=table.column_ref(0, include_header=False),
        series=(table.column_ref(1, include_header=False),),
        anchor=Cell(table.anchor.row, table.end_column),
        size=size,
    )


def _trend_chart(name: str, title: str, table: TableWrite, anchor: Cell, size: Tuple[int, int]) -> Optional[ChartSpec]:
    if table.data_rows < 1 or table.columns < 2:
        return None
    return ChartSpec(
        name=name,
        title=title,
        kind=ChartKind.TREND_AREA,
        domain=table.column_ref(0),
        series=tuple(table.column_ref(col) for col in range(1, table.columns)),
        anchor=anchor,
        size=size,
        header_rows=1,
    )


def plan_layout(
    rollups: Rollups,
    summary: str,
    config: DashboardConfig = None,
    layout: LayoutConfig = None,
) -> LayoutGrid:
    """Lay every table and chart out on a fresh grid."""
    config = config or DashboardConfig()
    layout = layout or LayoutConfig()
    grid = LayoutGrid()
    gap = layout.table_gap_rows
    band_gap = layout.band_gap_columns

    grid.place_table(TableWrite("title", Cell(0, 0), [[config.title]], header=False, style="title"))
    grid.place_table(TableWrite("summary", Cell(1, 0), [[summary]], header=False, style="summary"))

    def titled(name: str, title: str, values: List[List[Any]], anchor: Cell, percent_column: int = None) -> TableWrite:
        grid.place_table(TableWrite(f"{name}_title", anchor, [[title]], header=False, style="heading"))
        return grid.place_table(TableWrite(name, anchor.offset(rows=1), values, percent_column=percent_column))

    top = layout.band_top_row
    title_prefix = config.summary_title

    regional = titled("regional", "Regional Validation Summary", rollups.regional, Cell(top, 0))
    status_trend = titled(
        "status_trend", "Stuck Up Tagging Analysis", rollups.status_trend, Cell(regional.end_row + gap, 0)
    )

    second = max(regional.end_column, status_trend.end_column) + band_gap
    ageing = titled("ageing_bucket", "Ageing Bucket Analysis", rollups.ageing_bucket, Cell(top, second), 2)
    status_volume = titled("status_volume", "Status Volume", rollups.status_volume, Cell(ageing.end_row + gap, second), 2)

    third = (
        max(ageing.end_column, status_volume.end_column)
        + columns_for(layout.bucket_chart_size[0], layout)
        + band_gap
    )
    hubs = titled("top_hubs", "Top Hubs", rollups.top_hubs, Cell(top, third), 2)

    series_column = hubs.end_column + columns_for(layout.hub_chart_size[0], layout) + band_gap
    regional_series = titled("regional_series", "Validation Trend Data", rollups.regional_series, Cell(top, series_column))
    status_series = titled(
        "status_series", "Stuck Up Trend Data", rollups.status_series, Cell(regional_series.end_row + gap, series_column)
    )

    charts = [
        _side_chart("ageing_bucket_chart", "Ageing Bucket Analysis", ChartKind.HORIZONTAL_BAR, ageing, layout.bucket_chart_size),
        _side_chart("top_hubs_chart", "Top Hubs", ChartKind.PIE, hubs, layout.hub_chart_size),
    ]

    trend_row = status_trend.end_row + gap
    charts.append(
        _trend_chart(
            "regional_trend_chart", f"{title_prefix} Trend", regional_series, Cell(trend_row, 0), layout.trend_chart_size
        )
    )
    charts.append(
        _trend_chart(
            "status_trend_chart",
            "Stuck Up Tagging Trend",
            status_series,
            Cell(trend_row, columns_for(layout.trend_chart_size[0], layout) + band_gap),
            layout.trend_chart_size,
        )
    )

    if not rollups.window:
        return grid
    for chart in charts:
        if chart is not None:
            grid.place_chart(chart)
    return grid
