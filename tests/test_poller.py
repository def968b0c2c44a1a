import json

import pytest

from conftest import FakeSheetsService
from stuckup_dashboard.config import DashboardConfig
from stuckup_dashboard.poller import (
    FAILED,
    SKIPPED,
    UNCHANGED,
    UPDATED,
    JobState,
    JsonFileStateStore,
    MemoryStateStore,
    PollJob,
    Poller,
    hash_rows,
)

JOB = {
    "source": {"spreadsheetId": "src", "range": "Raw!A1:C3"},
    "destination": {"spreadsheetId": "dst", "sheetName": "Data"},
}
KEY = "src:Raw!A1:C3"
ROWS = [["Name", "Region"], ["a", "North"]]


class FakeReader:
    def __init__(self, values):
        self.values = values
        self.calls = []

    def read(self, spreadsheet_id, ranges):
        self.calls.append((spreadsheet_id, list(ranges)))
        return [self.values.get(r, []) for r in ranges]


class RecordingImporter:
    def __init__(self, error=None):
        self.calls = []
        self.error = error

    def __call__(self, service, rows, destination, **kwargs):
        self.calls.append((rows, destination, kwargs))
        if self.error:
            raise self.error
        return {"updatedRows": len(rows)}


def _poller(values=None, importer=None, store=None, jobs=(JOB,)):
    reader = FakeReader({"Raw!A1:C3": ROWS} if values is None else values)
    return Poller(
        FakeSheetsService(),
        list(jobs),
        reader=reader,
        importer=importer or RecordingImporter(),
        store=store,
        clock=lambda: "2024-06-01T00:00:00+00:00",
    )


def test_job_key_and_defaults():
    job = PollJob.from_dict({**JOB, "source": {"spreadsheetId": "src", "ranges": ["A:C", "E:E"], "gid": 5}})
    assert job.job_key == "src:A:C|E:E:5"
    assert job.job_name == job.job_key
    assert job.header_row_index == 0
    assert job.clear_destination is True
    assert job.poll_interval_ms is None


def test_job_options():
    job = PollJob.from_dict({
        **JOB,
        "jobName": "Daily",
        "headerRowIndex": 2,
        "clearDestination": False,
        "pollIntervalMs": 5000,
        "keepColumns": ["Region"],
    })
    assert job.job_name == "Daily"
    assert (job.header_row_index, job.clear_destination, job.poll_interval_ms) == (2, False, 5000)
    assert job.keep_columns == ["Region"]


@pytest.mark.parametrize("data", [
    None,
    {"source": {"spreadsheetId": "src"}, "destination": JOB["destination"]},
    {"source": JOB["source"], "destination": {"spreadsheetId": "dst"}},
    {"source": JOB["source"], "destination": {"sheetName": "Data"}},
])
def test_unusable_jobs_are_dropped(data):
    assert PollJob.from_dict(data) is None
    assert _poller(jobs=[data]).count == 0


def test_first_run_imports_then_unchanged():
    importer = RecordingImporter()
    poller = _poller(importer=importer)

    assert poller.run_once(KEY) == UPDATED
    rows, destination, kwargs = importer.calls[0]
    assert rows == ROWS
    assert destination.sheet_name == "Data"
    assert kwargs["clear_destination"] is True

    state = poller.state(KEY)
    assert state.last_hash == hash_rows({"ranges": ["Raw!A1:C3"], "values": [ROWS]})
    assert state.last_updated_at == "2024-06-01T00:00:00+00:00"

    assert poller.run_once(KEY) == UNCHANGED
    assert len(importer.calls) == 1


def test_changed_values_trigger_another_import():
    values = {"Raw!A1:C3": ROWS}
    importer = RecordingImporter()
    poller = _poller(values=values, importer=importer)
    poller.run_once(KEY)

    values["Raw!A1:C3"] = ROWS + [["b", "South"]]
    assert poller.run_once(KEY) == UPDATED
    assert len(importer.calls) == 2


def test_failure_is_recorded_and_retried():
    importer = RecordingImporter(error=RuntimeError("quota exceeded"))
    store = MemoryStateStore()
    poller = _poller(importer=importer, store=store)

    assert poller.run_once(KEY) == FAILED
    assert poller.state(KEY).last_error == "quota exceeded"
    assert poller.state(KEY).last_hash is None
    assert store.data[KEY]["lastError"] == "quota exceeded"

    importer.error = None
    assert poller.run_once(KEY) == UPDATED
    assert poller.state(KEY).last_error is None


def test_persisted_hash_prevents_reimport_after_restart():
    digest = hash_rows({"ranges": ["Raw!A1:C3"], "values": [ROWS]})
    importer = RecordingImporter()
    poller = _poller(importer=importer, store=MemoryStateStore({KEY: {"lastHash": digest}}))
    assert poller.run_once(KEY) == UNCHANGED
    assert importer.calls == []


def test_overlapping_pass_is_skipped():
    poller = _poller()
    entry = poller._entries[KEY]
    entry.lock.acquire()
    try:
        assert poller.run_once(KEY) == SKIPPED
    finally:
        entry.lock.release()
    assert poller.run_once(KEY) == UPDATED


def test_import_range_selects_rows():
    job = {
        "source": {"spreadsheetId": "src", "ranges": ["Raw!A1:A2", "Raw!C1:C2"], "importRange": "Raw!C1:C2"},
        "destination": {"spreadsheetId": "dst", "sheetName": "Data"},
    }
    importer = RecordingImporter()
    poller = _poller(values={"Raw!A1:A2": [["x"]], "Raw!C1:C2": [["y"]]}, importer=importer, jobs=[job])
    poller.run_all()
    assert importer.calls[0][0] == [["y"]]


def test_reads_through_sheets_service_without_reader():
    service = FakeSheetsService(values={"Raw!A1:C3": ROWS})
    importer = RecordingImporter()
    poller = Poller(service, [JOB], importer=importer)
    assert poller.run_once(KEY) == UPDATED
    assert service.calls_named("values.get")[0]["range"] == "Raw!A1:C3"
    assert importer.calls[0][0] == ROWS


def test_dashboard_config_reaches_the_importer():
    config = DashboardConfig(trend_days=3)
    importer = RecordingImporter()
    poller = Poller(
        FakeSheetsService(),
        [JOB],
        reader=FakeReader({"Raw!A1:C3": ROWS}),
        importer=importer,
        dashboard_config=config,
    )
    poller.run_once(KEY)
    assert importer.calls[0][2]["dashboard_config"] is config


def test_json_state_store_round_trip(tmp_path):
    path = tmp_path / "state" / "poller.json"
    store = JsonFileStateStore(str(path))
    assert store.load() == {}
    store.save("a", {"lastHash": "1"})
    store.save("b", {"lastHash": "2"})
    assert json.loads(path.read_text(encoding="utf-8")) == {"a": {"lastHash": "1"}, "b": {"lastHash": "2"}}


def test_json_state_store_tolerates_corrupt_file(tmp_path):
    path = tmp_path / "poller.json"
    path.write_text("{not json", encoding="utf-8")
    store = JsonFileStateStore(str(path))
    assert store.load() == {}
    store.save("a", {"lastHash": "1"})
    assert store.load() == {"a": {"lastHash": "1"}}


def test_job_state_requires_string_hash():
    assert JobState.from_dict({"lastHash": 5, "lastError": "x"}) == JobState()
    assert JobState.from_dict({"lastHash": "h"}).to_dict()["lastHash"] == "h"


def test_status_report(tmp_path):
    store = JsonFileStateStore(str(tmp_path / "s.json"))
    poller = _poller(store=store)
    poller.run_once(KEY)
    (status,) = poller.status()
    assert status["jobKey"] == KEY
    assert status["source"]["spreadsheet_id"] == "src"
    assert status["destination"]["sheet_name"] == "Data"
    assert status["lastUpdatedAt"] == "2024-06-01T00:00:00+00:00"
    assert poller.state_path == str(tmp_path / "s.json")


def test_interval_falls_back_to_default():
    poller = _poller(jobs=[{**JOB, "pollIntervalMs": 250}])
    assert poller.interval_ms(KEY) == 250
    assert _poller().interval_ms(KEY) == 60000
