from typing import Any, Dict, List

import pytest

from stuckup_dashboard.config import ColumnMap


class _Request:
    def __init__(self, fn):
        self._fn = fn

    def execute(self):
        return self._fn()


class FakeValues:
    def __init__(self, service: "FakeSheetsService"):
        self.service = service

    def get(self, spreadsheetId, range, valueRenderOption=None):
        self.service.calls.append(("values.get", {"range": range, "valueRenderOption": valueRenderOption}))
        return _Request(lambda: {"range": range, "values": self.service.values.get(range, [])})

    def batchGet(self, spreadsheetId, ranges):
        self.service.calls.append(("values.batchGet", {"ranges": ranges}))
        return _Request(lambda: {"valueRanges": [{"values": self.service.values.get(r, [])} for r in ranges]})

    def update(self, spreadsheetId, range, valueInputOption, body):
        self.service.calls.append(("values.update", {"range": range, "body": body}))
        rows = body["values"]
        cols = max((len(r) for r in rows), default=0)
        return _Request(lambda: {
            "updatedRange": range,
            "updatedRows": len(rows),
            "updatedColumns": cols,
            "updatedCells": sum(len(r) for r in rows),
        })

    def clear(self, spreadsheetId, range, body=None):
        self.service.calls.append(("values.clear", {"range": range}))
        return _Request(lambda: {"clearedRange": range})

    def batchUpdate(self, spreadsheetId, body):
        self.service.calls.append(("values.batchUpdate", {"body": body}))
        return _Request(lambda: {"totalUpdatedCells": 0})


class FakeSpreadsheets:
    def __init__(self, service: "FakeSheetsService"):
        self.service = service

    def get(self, spreadsheetId, fields=None, includeGridData=None):
        self.service.calls.append(("get", {"fields": fields}))

        def _result():
            return {
                "sheets": [
                    {
                        "properties": {"sheetId": sheet_id, "title": title},
                        "charts": [{"chartId": c} for c in self.service.charts.get(sheet_id, [])],
                    }
                    for title, sheet_id in self.service.sheets.items()
                ]
            }

        return _Request(_result)

    def batchUpdate(self, spreadsheetId, body):
        self.service.calls.append(("batchUpdate", {"body": body}))

        def _apply():
            replies = []
            for request in body["requests"]:
                if "addSheet" in request:
                    title = request["addSheet"]["properties"]["title"]
                    sheet_id = max(self.service.sheets.values(), default=0) + 1
                    self.service.sheets[title] = sheet_id
                    replies.append({"addSheet": {"properties": {"sheetId": sheet_id, "title": title}}})
                elif "deleteEmbeddedObject" in request:
                    object_id = request["deleteEmbeddedObject"]["objectId"]
                    for charts in self.service.charts.values():
                        if object_id in charts:
                            charts.remove(object_id)
                    replies.append({})
                elif "addChart" in request:
                    anchor = request["addChart"]["chart"]["position"]["overlayPosition"]["anchorCell"]
                    self.service.next_chart_id += 1
                    self.service.charts.setdefault(anchor["sheetId"], []).append(self.service.next_chart_id)
                    replies.append({"addChart": {"chart": {"chartId": self.service.next_chart_id}}})
                else:
                    replies.append({})
            return {"replies": replies}

        return _Request(_apply)

    def values(self):
        return FakeValues(self.service)


class FakeSheetsService:
    """Stands in for googleapiclient's sheets v4 resource; records every call."""

    def __init__(self, sheets: Dict[str, int] = None, values: Dict[str, List[List[Any]]] = None,
                 charts: Dict[int, List[int]] = None):
        self.sheets = dict(sheets or {})
        self.values = dict(values or {})
        self.charts = {k: list(v) for k, v in (charts or {}).items()}
        self.next_chart_id = 1000
        self.calls: List[tuple] = []

    def spreadsheets(self):
        return FakeSpreadsheets(self)

    def calls_named(self, name: str) -> List[dict]:
        return [params for call, params in self.calls if call == name]


def make_row(date, hub="", bucket="", region="", status="", columns: ColumnMap = None) -> List[Any]:
    """A raw data row with the given cells at their mapped positions."""
    columns = columns or ColumnMap()
    row: List[Any] = [""] * columns.width
    row[columns.date] = date
    row[columns.hub] = hub
    row[columns.bucket] = bucket
    row[columns.region] = region
    row[columns.status] = status
    return row


HEADER = ["Date", "", "", "", "", "", "Hub", "", "", "", "", "Bucket", "", "Region", "Status"]

WEEK = [f"2024-06-0{d}" for d in range(1, 8)]


def sample_rows() -> List[List[Any]]:
    """
    One week of data:
    North 2/day (HUB-A, h.2d, Lost), South 2/day (HUB-B, l.15-20d+, Disposed),
    East 1/day plus 2 extra on the newest day (HUB-C, h.2d, Moving Parcel),
    and a single unregioned row with a status outside the tracked list.
    """
    rows = [HEADER]
    for day in WEEK:
        rows += [make_row(day, "HUB-A", "h.2d", "North", "Lost")] * 2
        rows += [make_row(day, "HUB-B", "l.15-20d+", "South", "Disposed")] * 2
        rows.append(make_row(day, "HUB-C", "h.2d", "East", "Moving Parcel"))
    rows += [make_row(WEEK[-1], "HUB-C", "h.2d", "East", "Moving Parcel")] * 2
    rows.append(make_row(WEEK[-1], "", "x.other", "", "Unlisted"))
    return rows


@pytest.fixture
def fake_service():
    return FakeSheetsService(sheets={"Data": 1})
