"""
Poll source ranges on an interval and re-import them when their content changes.

Change detection hashes the fetched values; the last hash per job is kept in a
state store so restarts don't trigger a redundant import.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import threading
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence

from .config import DashboardConfig
from .sheets import batch_read_values, read_values
from .workflow import DestinationSpec, SourceSpec, import_rows, resolve_sheet_name, resolve_source_ranges

logger = logging.getLogger(__name__)

UPDATED = "updated"
UNCHANGED = "unchanged"
FAILED = "failed"
SKIPPED = "skipped"


def hash_rows(payload: Any) -> str:
    content = json.dumps(payload if payload is not None else [], separators=(",", ":"), ensure_ascii=False, default=str)
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def default_state_path() -> str:
    return os.path.join(os.getcwd(), "data", "poller-state.json")


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class PollJob:
    job_key: str
    job_name: str
    source: SourceSpec
    destination: DestinationSpec
    remove_columns: List[Any] = field(default_factory=list)
    keep_columns: List[str] = field(default_factory=list)
    header_row_index: int = 0
    clear_destination: bool = True
    poll_interval_ms: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Any) -> Optional["PollJob"]:
        """Normalise one job entry from POLL_JOBS_JSON. Returns None when it is unusable."""
        if not isinstance(data, dict):
            return None
        source = SourceSpec.from_dict(data.get("source") or {})
        destination = DestinationSpec.from_dict(data.get("destination") or {})
        ranges = source.all_ranges()
        if not source.spreadsheet_id or not ranges:
            return None
        if not destination.spreadsheet_id or (not destination.sheet_name and destination.gid is None):
            return None

        if source.gid is not None:
            suffix = f":{source.gid}"
        elif source.sheet_name:
            suffix = f":{source.sheet_name}"
        else:
            suffix = ""
        source_key = f"{source.spreadsheet_id}:{'|'.join(ranges)}{suffix}"

        header_row_index = data.get("headerRowIndex")
        interval = data.get("pollIntervalMs")
        clear = data.get("clearDestination")
        return cls(
            job_key=data.get("jobKey") or source_key,
            job_name=data.get("jobName") or source_key,
            source=replace(source, ranges=ranges),
            destination=destination,
            remove_columns=list(data.get("removeColumns") or []) if isinstance(data.get("removeColumns"), list) else [],
            keep_columns=list(data.get("keepColumns") or []) if isinstance(data.get("keepColumns"), list) else [],
            header_row_index=header_row_index if isinstance(header_row_index, int) and not isinstance(header_row_index, bool) else 0,
            clear_destination=clear if isinstance(clear, bool) else True,
            poll_interval_ms=interval if isinstance(interval, int) and not isinstance(interval, bool) and interval > 0 else None,
        )


@dataclass
class JobState:
    last_hash: Optional[str] = None
    last_run_at: Optional[str] = None
    last_updated_at: Optional[str] = None
    last_error: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> "JobState":
        if not isinstance(data, dict) or not isinstance(data.get("lastHash"), str):
            return cls()
        return cls(
            last_hash=data["lastHash"],
            last_run_at=data.get("lastRunAt"),
            last_updated_at=data.get("lastUpdatedAt"),
            last_error=data.get("lastError"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lastHash": self.last_hash,
            "lastRunAt": self.last_run_at,
            "lastUpdatedAt": self.last_updated_at,
            "lastError": self.last_error,
        }


class StateStore(Protocol):
    def load(self) -> Dict[str, Dict[str, Any]]: ...

    def save(self, job_key: str, state: Dict[str, Any]) -> None: ...


class MemoryStateStore:
    def __init__(self, initial: Dict[str, Dict[str, Any]] = None):
        self.data: Dict[str, Dict[str, Any]] = dict(initial or {})

    def load(self) -> Dict[str, Dict[str, Any]]:
        return {key: dict(value) for key, value in self.data.items()}

    def save(self, job_key: str, state: Dict[str, Any]) -> None:
        self.data[job_key] = dict(state)


class JsonFileStateStore:
    """Job state in one JSON file. Best effort: read and write failures are logged, not raised."""

    def __init__(self, path: str = None):
        self.path = path or default_state_path()
        self._lock = threading.Lock()

    def load(self) -> Dict[str, Dict[str, Any]]:
        try:
            if not os.path.exists(self.path):
                return {}
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return data if isinstance(data, dict) else {}
        except (OSError, ValueError) as e:
            logger.warning("⚠ Could not load poller state from %s: %s", self.path, e)
            return {}

    def save(self, job_key: str, state: Dict[str, Any]) -> None:
        with self._lock:
            snapshot = self.load()
            snapshot[job_key] = state
            try:
                os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
                with open(self.path, "w", encoding="utf-8") as f:
                    json.dump(snapshot, f, indent=2)
            except OSError as e:
                logger.warning("⚠ Could not save poller state to %s: %s", self.path, e)


class GspreadRangeReader:
    """Fetches source ranges in one batch call through gspread."""

    def __init__(self, client):
        self.client = client

    def read(self, spreadsheet_id: str, ranges: Sequence[str]) -> List[List[List[Any]]]:
        spreadsheet = self.client.open_by_key(spreadsheet_id)
        result = spreadsheet.values_batch_get(list(ranges))
        return [value_range.get("values", []) for value_range in result.get("valueRanges", [])]


@dataclass
class _Entry:
    job: PollJob
    state: JobState
    lock: threading.Lock = field(default_factory=threading.Lock)


class Poller:
    """Registry of polling jobs and their last-run state, plus the threads that drive them."""

    def __init__(
        self,
        service,
        jobs: Sequence[Any],
        reader=None,
        importer: Callable[..., Dict[str, Any]] = import_rows,
        store: StateStore = None,
        default_interval_ms: int = 60000,
        clock: Callable[[], str] = utc_now,
        dashboard_config: DashboardConfig = None,
    ):
        self.service = service
        self.reader = reader
        self.importer = importer
        self.dashboard_config = dashboard_config
        self.store = store if store is not None else MemoryStateStore()
        self.default_interval_ms = default_interval_ms
        self.clock = clock
        self._stop = threading.Event()
        self._threads: List[threading.Thread] = []
        self._entries: Dict[str, _Entry] = {}

        persisted = self.store.load()
        for raw in jobs or []:
            job = raw if isinstance(raw, PollJob) else PollJob.from_dict(raw)
            if job is None:
                logger.warning("⚠ Ignoring invalid polling job: %r", raw)
                continue
            self._entries[job.job_key] = _Entry(job=job, state=JobState.from_dict(persisted.get(job.job_key)))

    @property
    def count(self) -> int:
        return len(self._entries)

    @property
    def state_path(self) -> Optional[str]:
        return getattr(self.store, "path", None)

    def job_keys(self) -> List[str]:
        return list(self._entries)

    def state(self, job_key: str) -> JobState:
        return self._entries[job_key].state

    def _persist(self, entry: _Entry) -> None:
        self.store.save(entry.job.job_key, entry.state.to_dict())

    def _read(self, job: PollJob, ranges: List[str]) -> List[List[List[Any]]]:
        spreadsheet_id = job.source.spreadsheet_id
        if self.reader is not None:
            return self.reader.read(spreadsheet_id, ranges)
        if len(ranges) == 1:
            return [read_values(self.service, spreadsheet_id, ranges[0])]
        return batch_read_values(self.service, spreadsheet_id, ranges)

    def run_once(self, job_key: str) -> str:
        """One polling pass for a job. At most one pass per job runs at a time."""
        entry = self._entries[job_key]
        if not entry.lock.acquire(blocking=False):
            return SKIPPED
        job, state = entry.job, entry.state
        try:
            resolved = resolve_source_ranges(self.service, job.source)
            values = self._read(job, resolved.ranges)
            next_hash = hash_rows({"ranges": resolved.ranges, "values": values})
            state.last_run_at = self.clock()

            if state.last_hash and state.last_hash == next_hash:
                state.last_error = None
                self._persist(entry)
                return UNCHANGED

            if resolved.import_range in resolved.ranges:
                import_index = resolved.ranges.index(resolved.import_range)
            else:
                import_index = 0
                logger.warning("⚠ %s importRange not found; using %s", job.job_name, resolved.ranges[0])
            rows = values[import_index] if import_index < len(values) else []

            destination = replace(
                job.destination,
                sheet_name=resolve_sheet_name(
                    self.service, job.destination.spreadsheet_id, job.destination.sheet_name, job.destination.gid
                ),
            )
            result = self.importer(
                self.service,
                rows,
                destination,
                remove_columns=job.remove_columns,
                keep_columns=job.keep_columns,
                header_row_index=job.header_row_index,
                clear_destination=job.clear_destination,
                dashboard_config=self.dashboard_config,
            )

            state.last_hash = next_hash
            state.last_updated_at = self.clock()
            state.last_error = None
            self._persist(entry)
            updated_rows = (result or {}).get("updatedRows", "?")
            logger.info("✓ Updated %s (%s rows)", job.job_name, updated_rows)
            return UPDATED
        except Exception as e:
            state.last_error = str(e) or type(e).__name__
            state.last_run_at = self.clock()
            self._persist(entry)
            logger.error("✗ %s failed: %s", job.job_name, state.last_error)
            return FAILED
        finally:
            entry.lock.release()

    def run_all(self) -> Dict[str, str]:
        return {key: self.run_once(key) for key in self._entries}

    def interval_ms(self, job_key: str) -> int:
        return self._entries[job_key].job.poll_interval_ms or self.default_interval_ms

    def _loop(self, job_key: str) -> None:
        seconds = self.interval_ms(job_key) / 1000.0
        while not self._stop.wait(seconds):
            self.run_once(job_key)

    def start(self) -> None:
        if self._threads:
            return
        self._stop.clear()
        for key in self._entries:
            thread = threading.Thread(target=self._loop, args=(key,), name=f"poller:{key}", daemon=True)
            thread.start()
            self._threads.append(thread)
        if self._threads:
            logger.info("Started %d polling job(s).", len(self._threads))

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        for thread in self._threads:
            thread.join(timeout)
        self._threads = []

    def status(self) -> List[Dict[str, Any]]:
        jobs = []
        for entry in self._entries.values():
            job = entry.job
            jobs.append({
                "jobName": job.job_name,
                "jobKey": job.job_key,
                "source": asdict(job.source),
                "destination": asdict(job.destination),
                "pollIntervalMs": job.poll_interval_ms,
                **entry.state.to_dict(),
            })
        return jobs
