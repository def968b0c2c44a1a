"""Environment-driven settings and the injected dashboard configuration."""

from __future__ import annotations

import json
import logging
import os
import sys
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional, Sequence, Tuple

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

STUCK_STATUSES = (
    "Moving Parcel",
    "SOC_Packed",
    "Delivered Parcel",
    "Lost",
    "SOC_Packing",
    "Disposed",
    "SOC_Received",
)
BUCKET_LABELS = ("l.15-20d+", "h.2d")

DEFAULT_POLL_INTERVAL_MS = 60000
DEFAULT_PING_INTERVAL_MS = 600000

PIVOT_RANGE_VARS = {
    "regional-validation": "PIVOT_RANGE",
    "stuckup-analysis": "PIVOT_STUCKUP_RANGE",
    "ageing-bucket": "PIVOT_AGEING_RANGE",
    "top-hubs": "PIVOT_TOP_HUBS_RANGE",
    "validation-trend": "PIVOT_VALIDATION_TREND_RANGE",
    "stuckup-trend": "PIVOT_STUCKUP_TREND_RANGE",
}


class ConfigError(ValueError):
    """Raised when the caller hands over configuration that cannot be used."""


def configure_logging(level: str = None) -> None:
    """Console logging for the CLI scripts and the server."""
    level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        stream=sys.stdout,
    )


def _json_env(name: str) -> Any:
    raw = os.getenv(name)
    if not raw:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {name}: {e}") from e


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class ColumnMap:
    """Positions of the columns the aggregator reads, 0-indexed."""

    date: int = 0
    hub: int = 6
    bucket: int = 11
    region: int = 13
    status: int = 14

    def __post_init__(self):
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ConfigError(f"Column '{f.name}' must be a non-negative integer, got {value!r}.")

    @property
    def width(self) -> int:
        """Number of leading columns needed to see every mapped cell."""
        return max(getattr(self, f.name) for f in fields(self)) + 1

    @classmethod
    def from_mapping(cls, mapping: Dict[str, Any], header: Optional[Sequence[Any]] = None) -> "ColumnMap":
        """
        Build a map from {role: index-or-header-name}.
        Header names are matched case-insensitively against the given header row.
        """
        known = {f.name for f in fields(cls)}
        unknown = set(mapping) - known
        if unknown:
            raise ConfigError(f"Unknown column roles: {', '.join(sorted(unknown))}")

        lookup: Dict[str, int] = {}
        if header is not None:
            for index, name in enumerate(header):
                lookup.setdefault(str(name).strip().lower(), index)

        resolved = {}
        for role, ref in mapping.items():
            if isinstance(ref, str) and not ref.strip().isdigit():
                if header is None:
                    raise ConfigError(f"Column '{role}' is given by name ({ref!r}) but no header row was supplied.")
                index = lookup.get(ref.strip().lower())
                if index is None:
                    raise ConfigError(f"Column '{role}' header {ref!r} not found in header row.")
                resolved[role] = index
            else:
                try:
                    resolved[role] = int(ref)
                except (TypeError, ValueError) as e:
                    raise ConfigError(f"Column '{role}' has an unusable reference {ref!r}.") from e
        return cls(**resolved)


@dataclass(frozen=True)
class DashboardConfig:
    stuck_statuses: Tuple[str, ...] = STUCK_STATUSES
    bucket_labels: Tuple[str, ...] = BUCKET_LABELS
    trend_days: int = 7
    status_volume_size: int = 7
    top_hubs_size: int = 5
    trend_chart_regions: int = 6
    title: str = "Daily Briefing"
    summary_title: str = "20hrs - 1d Validation"
    columns: ColumnMap = field(default_factory=ColumnMap)
    # {role: header name or index}; resolved against the data sheet's header row when set
    column_names: Optional[Dict[str, Any]] = field(default=None, hash=False)

    def __post_init__(self):
        for name in ("trend_days", "status_volume_size", "top_hubs_size", "trend_chart_regions"):
            value = getattr(self, name)
            if not isinstance(value, int) or value < 1:
                raise ConfigError(f"{name} must be a positive integer, got {value!r}.")
        object.__setattr__(self, "stuck_statuses", tuple(self.stuck_statuses))
        object.__setattr__(self, "bucket_labels", tuple(self.bucket_labels))

    @classmethod
    def from_env(cls) -> "DashboardConfig":
        overrides: Dict[str, Any] = {}
        statuses = _json_env("DASHBOARD_STUCK_STATUSES_JSON")
        if statuses is not None:
            overrides["stuck_statuses"] = tuple(str(s) for s in statuses)
        labels = _json_env("DASHBOARD_BUCKET_LABELS_JSON")
        if labels is not None:
            overrides["bucket_labels"] = tuple(str(s) for s in labels)
        columns = _json_env("DASHBOARD_COLUMNS_JSON")
        if columns is not None:
            if not isinstance(columns, dict):
                raise ConfigError("DASHBOARD_COLUMNS_JSON must be a JSON object of {role: column}.")
            if any(isinstance(ref, str) and not ref.strip().isdigit() for ref in columns.values()):
                ColumnMap.from_mapping({role: 0 for role in columns})  # rejects unknown roles
                overrides["column_names"] = dict(columns)
            else:
                overrides["columns"] = ColumnMap.from_mapping(columns)
        overrides["trend_days"] = _int_env("DASHBOARD_TREND_DAYS", 7)
        return cls(**overrides)


@dataclass(frozen=True)
class LayoutConfig:
    """Fixed offsets the layout planner adds on top of table sizes."""

    band_top_row: int = 3
    table_gap_rows: int = 1
    band_gap_columns: int = 1
    column_width_px: int = 100
    trend_chart_size: Tuple[int, int] = (380, 220)
    bucket_chart_size: Tuple[int, int] = (320, 180)
    hub_chart_size: Tuple[int, int] = (240, 200)


@dataclass(frozen=True)
class Settings:
    port: int = 3000
    pivot_spreadsheet_id: Optional[str] = None
    pivot_gid: Optional[str] = None
    pivot_ranges: Dict[str, Optional[str]] = field(default_factory=dict)
    poll_jobs: List[Dict[str, Any]] = field(default_factory=list)
    poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS
    poll_state_path: Optional[str] = None
    ping_url: Optional[str] = None
    ping_interval_ms: int = DEFAULT_PING_INTERVAL_MS
    dashboard: DashboardConfig = field(default_factory=DashboardConfig)
    # set when POLL_JOBS_JSON is present but unusable; polling stays off
    poll_jobs_error: Optional[str] = None

    @classmethod
    def from_env(cls) -> "Settings":
        jobs_error = None
        try:
            jobs = _json_env("POLL_JOBS_JSON")
        except ConfigError as e:
            jobs, jobs_error = None, str(e)
        return cls(
            port=_int_env("PORT", 3000),
            pivot_spreadsheet_id=os.getenv("PIVOT_SPREADSHEET_ID"),
            pivot_gid=os.getenv("PIVOT_GID"),
            pivot_ranges={name: os.getenv(var) for name, var in PIVOT_RANGE_VARS.items()},
            poll_jobs=jobs if isinstance(jobs, list) else [],
            poll_interval_ms=_int_env("POLL_INTERVAL_MS", DEFAULT_POLL_INTERVAL_MS),
            poll_state_path=os.getenv("POLL_STATE_PATH"),
            ping_url=os.getenv("PING_URL"),
            ping_interval_ms=_int_env("PING_INTERVAL_MS", DEFAULT_PING_INTERVAL_MS),
            dashboard=DashboardConfig.from_env(),
            poll_jobs_error=jobs_error,
        )
