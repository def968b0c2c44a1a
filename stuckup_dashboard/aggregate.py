"""Single pass over the raw data rows, bucketing counts by date."""

from __future__ import annotations

import collections
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Sequence

from .config import ColumnMap
from .dates import DateInfo, normalize_date


class NestedCounter:
    """Two-level count map. ``increment`` is the only way to add to it."""

    def __init__(self):
        self._counts: Dict[str, Dict[str, int]] = {}

    def increment(self, key: str, sub_key: str, amount: int = 1) -> None:
        nested = self._counts.setdefault(key, {})
        nested[sub_key] = nested.get(sub_key, 0) + amount

    def get(self, key: str, sub_key: str) -> int:
        return self._counts.get(key, {}).get(sub_key, 0)

    def sub_counts(self, key: str) -> Dict[str, int]:
        return dict(self._counts.get(key, {}))

    def keys(self) -> List[str]:
        return list(self._counts)

    def __contains__(self, key: object) -> bool:
        return key in self._counts

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._counts))

    def __len__(self) -> int:
        return len(self._counts)

    def total(self, key: str) -> int:
        return sum(self._counts.get(key, {}).values())

    def __repr__(self) -> str:
        return f"NestedCounter({self._counts!r})"


@dataclass
class BucketedCounts:
    date_infos: List[DateInfo] = field(default_factory=list)
    region_dates: NestedCounter = field(default_factory=NestedCounter)
    status_dates: NestedCounter = field(default_factory=NestedCounter)
    # keyed date -> hub, the other way round from the two above
    hub_dates: NestedCounter = field(default_factory=NestedCounter)
    status_totals: collections.Counter = field(default_factory=collections.Counter)
    bucket_totals: collections.Counter = field(default_factory=collections.Counter)


def get_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _cell(row: Sequence[Any], index: int) -> Any:
    return row[index] if index < len(row) else None


def aggregate_rows(rows: Sequence[Sequence[Any]], header_row_index: int = 0, columns: ColumnMap = None) -> BucketedCounts:
    """
    Count every data row below the header by region, status, hub and ageing bucket.
    A {role: index-or-name} mapping may stand in for a ColumnMap; names are looked up in rows[header_row_index].
    """
    if columns is None:
        columns = ColumnMap()
    elif not isinstance(columns, ColumnMap):
        header = rows[header_row_index] if 0 <= header_row_index < len(rows) else None
        columns = ColumnMap.from_mapping(columns, header)

    counts = BucketedCounts()
    seen: Dict[str, DateInfo] = {}

    start = min(max(header_row_index + 1, 0), len(rows))
    for row in rows[start:]:
        if not row:
            continue
        info = normalize_date(_cell(row, columns.date))
        if info is None:
            continue
        seen.setdefault(info.key, info)

        hub = get_text(_cell(row, columns.hub))
        bucket = get_text(_cell(row, columns.bucket))
        region = get_text(_cell(row, columns.region))
        status = get_text(_cell(row, columns.status))

        if region:
            counts.region_dates.increment(region, info.key)
        if status:
            counts.status_dates.increment(status, info.key)
            counts.status_totals[status] += 1
        if bucket:
            counts.bucket_totals[bucket] += 1
        if hub:
            counts.hub_dates.increment(info.key, hub)

    counts.date_infos = list(seen.values())
    return counts
