import pytest

from conftest import sample_rows
from stuckup_dashboard.aggregate import BucketedCounts, aggregate_rows
from stuckup_dashboard.config import DashboardConfig
from stuckup_dashboard.layout import Cell, ChartKind, LayoutGrid, RangeRef, TableWrite, plan_layout
from stuckup_dashboard.rollups import build_rollups, summarize


def _plan(counts=None, config=None):
    config = config or DashboardConfig()
    rollups = build_rollups(counts if counts is not None else aggregate_rows(sample_rows()), config)
    return plan_layout(rollups, summarize(rollups, config), config)


def test_title_and_summary_on_top():
    grid = _plan()
    assert grid.table("title").anchor == Cell(0, 0)
    assert grid.table("title").values == [["Daily Briefing"]]
    assert grid.table("summary").anchor == Cell(1, 0)


def test_first_band_stacks_down_column_a():
    grid = _plan()
    assert grid.table("regional_title").anchor == Cell(3, 0)
    regional = grid.table("regional")
    assert regional.anchor == Cell(4, 0)
    assert (regional.rows, regional.columns) == (5, 10)
    assert grid.table("status_trend_title").anchor == Cell(regional.end_row + 1, 0)
    assert grid.table("status_trend").anchor == Cell(11, 0)


def test_second_and_third_bands_follow_table_widths():
    grid = _plan()
    assert grid.table("ageing_bucket").anchor == Cell(4, 11)
    assert grid.table("status_volume_title").anchor == Cell(8, 11)
    assert grid.table("status_volume").percent_column == 2
    assert grid.table("top_hubs").anchor == Cell(4, 19)
    assert grid.table("regional_series").anchor == Cell(4, 26)
    assert grid.table("status_series").anchor == Cell(14, 26)


def test_charts_sit_beside_their_tables():
    grid = _plan()
    bucket = grid.chart("ageing_bucket_chart")
    assert bucket.kind is ChartKind.HORIZONTAL_BAR
    assert bucket.anchor == Cell(4, 14)
    assert bucket.domain == RangeRef(Cell(5, 11), 2, 1)
    assert bucket.series == (RangeRef(Cell(5, 12), 2, 1),)

    hubs = grid.chart("top_hubs_chart")
    assert hubs.kind is ChartKind.PIE
    assert hubs.anchor == Cell(4, 22)


def test_trend_charts_below_first_band():
    grid = _plan()
    regional = grid.chart("regional_trend_chart")
    status = grid.chart("status_trend_chart")
    assert regional.title == "20hrs - 1d Validation Trend"
    assert regional.anchor == Cell(21, 0)
    assert status.anchor == Cell(21, 5)
    assert regional.header_rows == 1
    assert len(regional.series) == 3
    assert regional.domain == RangeRef(Cell(4, 26), 8, 1)


def test_shorter_window_moves_second_band():
    grid = _plan(config=DashboardConfig(trend_days=3))
    assert grid.table("regional").columns == 6
    assert grid.table("ageing_bucket").anchor == Cell(4, 7)


def test_no_dates_drops_data_driven_charts():
    grid = _plan(counts=BucketedCounts())
    assert grid.chart("regional_trend_chart") is None
    assert grid.chart("status_trend_chart") is None
    assert grid.chart("top_hubs_chart") is None
    assert grid.chart("ageing_bucket_chart") is None
    assert grid.charts == {}


def test_ordered_tables_are_row_major():
    tables = _plan().ordered_tables()
    anchors = [t.anchor for t in tables]
    assert anchors == sorted(anchors)
    assert tables[0].name == "title"


def test_duplicate_anchor_rejected():
    grid = LayoutGrid()
    grid.place_table(TableWrite("a", Cell(2, 2), [["x"]]))
    with pytest.raises(ValueError):
        grid.place_table(TableWrite("b", Cell(2, 2), [["y"]]))
    with pytest.raises(KeyError):
        grid.table("missing")


def test_all_zero_bucket_series_has_no_chart():
    grid = _plan(config=DashboardConfig(bucket_labels=("l.30d+", "m.10d")))
    assert grid.table("ageing_bucket").values[1:] == [["l.30d+", 0, 0], ["m.10d", 0, 0]]
    assert grid.chart("ageing_bucket_chart") is None
    assert grid.chart("top_hubs_chart") is not None
