"""Turn bucketed counts into the fixed-shape dashboard tables and the summary line."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Collection, Dict, Iterable, List, Optional, Sequence, Tuple

from .aggregate import BucketedCounts, NestedCounter
from .config import DashboardConfig
from .dates import DateInfo, day_key

Table = List[List[Any]]

NO_DATA_SUMMARY = "No data available for the dashboard summary."


@dataclass
class Rollups:
    window: List[DateInfo]
    regional: Table
    status_trend: Table
    ageing_bucket: Table
    status_volume: Table
    top_hubs: Table
    regional_series: Table
    status_series: Table
    reference_date_key: Optional[str] = None
    trend_days: int = 7
    top_bucket: Optional[str] = field(default=None)

    @property
    def top_region_row(self) -> Optional[List[Any]]:
        # row 0 is the header, the last row is the synthetic total
        body = self.regional[1:-1]
        return body[0] if body else None

    @property
    def stuck_average(self) -> int:
        return self.status_trend[-1][1]


def round_half_up(total: int, count: int) -> int:
    """round(total / count) with halves going up, for non-negative integers."""
    if count <= 0:
        return 0
    return (2 * total + count) // (2 * count)


def ratio(part: int, whole: int) -> float:
    return part / whole if whole > 0 else 0


def sort_dates_desc(date_infos: Iterable[DateInfo]) -> List[DateInfo]:
    """Real dates newest first, then label-only entries in reverse key order."""
    infos = list(date_infos)
    dated = sorted((i for i in infos if i.is_dated), key=lambda i: i.instant, reverse=True)
    labels = sorted((i for i in infos if not i.is_dated), key=lambda i: i.key, reverse=True)
    return dated + labels


def pick_reference_day(date_infos: Sequence[DateInfo], available_keys: Collection[str]) -> Optional[str]:
    """
    Choose the day shown by the top-hubs leaderboard.

    Prefer the calendar day before the newest real date when hub data exists
    for it, otherwise the second entry in descending order, otherwise the
    only entry there is.
    """
    dated = [i for i in date_infos if i.is_dated]
    if dated:
        newest = max(i.instant for i in dated)
        key = day_key(newest - timedelta(days=1))
        if key in available_keys:
            return key

    ordered = sort_dates_desc(date_infos)
    if len(ordered) > 1:
        return ordered[1].key
    return ordered[0].key if ordered else None


def _trend_header(first: str, labels: List[str], days: int) -> List[Any]:
    return [first, f"Ave L{days}D", f"Total L{days}D", *labels]


def _trend_row(name: str, counter: NestedCounter, keys: List[str]) -> List[Any]:
    counts = [counter.get(name, key) for key in keys]
    total = sum(counts)
    return [name, round_half_up(total, len(keys)), total, *counts]


def _total_row(rows: List[List[Any]], keys: List[str]) -> List[Any]:
    by_date = [sum(row[3 + i] for row in rows) for i in range(len(keys))]
    total = sum(by_date)
    return ["Total", round_half_up(total, len(keys)), total, *by_date]


def _top(counts: Dict[str, int], size: int) -> List[Tuple[str, int]]:
    return sorted(counts.items(), key=lambda item: (-item[1], item[0]))[:size]


def _series_table(names: List[str], counter: NestedCounter, window: List[DateInfo]) -> Table:
    table: Table = [["Date", *names]]
    for info in window:
        table.append([info.label or info.key, *(counter.get(name, info.key) for name in names)])
    return table


def build_rollups(counts: BucketedCounts, config: DashboardConfig = None) -> Rollups:
    """Build every dashboard table from one aggregation pass."""
    if config is None:
        config = DashboardConfig()
    days = config.trend_days

    window = sort_dates_desc(counts.date_infos)[:days]
    keys = [info.key for info in window]
    labels = [info.label for info in window]

    region_rows = [_trend_row(region, counts.region_dates, keys) for region in counts.region_dates]
    region_rows.sort(key=lambda row: (-row[2], row[0]))
    regional = [
        _trend_header("Region", labels, days),
        *region_rows,
        _total_row(region_rows, keys),
    ]

    status_rows = [_trend_row(status, counts.status_dates, keys) for status in config.stuck_statuses]
    status_trend = [
        _trend_header("Status", labels, days),
        *status_rows,
        _total_row(status_rows, keys),
    ]

    bucket_counts = [(label, counts.bucket_totals.get(label, 0)) for label in config.bucket_labels]
    bucket_total = sum(count for _, count in bucket_counts)
    ageing_bucket = [["Ageing Bucket", "Volume", "Percentage"]]
    ageing_bucket.extend([label, count, ratio(count, bucket_total)] for label, count in bucket_counts)

    top_bucket = None
    best = -1
    for label, count in bucket_counts:
        if count > best:
            top_bucket, best = label, count

    status_total = sum(counts.status_totals.values())
    status_volume = [
        ["Status", "Volume", "Percentage"],
        ["Total", status_total, 1 if status_total > 0 else 0],
    ]
    status_volume.extend(
        [status, count, ratio(count, status_total)]
        for status, count in _top(dict(counts.status_totals), config.status_volume_size)
    )

    reference_key = pick_reference_day(counts.date_infos, set(counts.hub_dates.keys()))
    hub_counts = counts.hub_dates.sub_counts(reference_key) if reference_key else {}
    hub_total = sum(hub_counts.values())
    top_hubs = [["Hub", "Volume", "Percentage"]]
    top_hubs.extend([hub, count, ratio(count, hub_total)] for hub, count in _top(hub_counts, config.top_hubs_size))

    chart_regions = [row[0] for row in region_rows[: config.trend_chart_regions]]

    return Rollups(
        window=window,
        regional=regional,
        status_trend=status_trend,
        ageing_bucket=ageing_bucket,
        status_volume=status_volume,
        top_hubs=top_hubs,
        regional_series=_series_table(chart_regions, counts.region_dates, window),
        status_series=_series_table(list(config.stuck_statuses), counts.status_dates, window),
        reference_date_key=reference_key,
        trend_days=days,
        top_bucket=top_bucket,
    )


def build_summary_text(
    top_region: Optional[str],
    top_region_average: int,
    stuck_average: int,
    top_bucket: Optional[str],
    trend_days: int = 7,
    title: str = "20hrs - 1d Validation",
) -> str:
    if not top_region:
        return NO_DATA_SUMMARY
    bucket_label = top_bucket or "N/A"
    return (
        f"{title} Summary: {top_region} shows highest stuckup orders ({top_region_average} Ave L{trend_days}D). "
        f"{trend_days}-Day Average Stuck Up Tagging is {stuck_average} orders. "
        f"{bucket_label} Ageing Bucket is top contributor."
    )


def summarize(rollups: Rollups, config: DashboardConfig = None) -> str:
    """Summary line for a set of rollups."""
    if config is None:
        config = DashboardConfig()
    top = rollups.top_region_row
    return build_summary_text(
        top_region=top[0] if top else None,
        top_region_average=top[1] if top else 0,
        stuck_average=rollups.stuck_average,
        top_bucket=rollups.top_bucket,
        trend_days=rollups.trend_days,
        title=config.summary_title,
    )
