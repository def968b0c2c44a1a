"""Google Sheets access: credentials, retrying API calls, A1 helpers and column filters."""

from __future__ import annotations

import json
import logging
import os
import random
import re
import time
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import gspread
from google.oauth2.service_account import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from .config import ConfigError

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]

# API rate limiting configuration
MAX_RETRIES = 5
INITIAL_BACKOFF = 1.0
RETRYABLE_STATUSES = (429, 500, 503)

# API call tracking
api_call_count = 0


def log_api_call(operation: str):
    """Track API calls for monitoring."""
    global api_call_count
    api_call_count += 1
    logger.debug("API Call #%d: %s", api_call_count, operation)


def _is_timeout(error: Exception) -> bool:
    if isinstance(error, TimeoutError):
        return True
    text = str(error).lower()
    return "timeout" in text or "timed out" in text


def execute_with_retry(func: Callable, operation_name: str, max_retries: int = MAX_RETRIES, sleep: Callable = time.sleep) -> Any:
    """
    Execute API call with exponential backoff retry logic.
    Retries rate limits and server errors (429/500/503) and timeouts; anything else is raised at once.
    """
    for attempt in range(max_retries):
        try:
            log_api_call(operation_name)
            return func()
        except HttpError as e:
            status = e.resp.status
            if status not in RETRYABLE_STATUSES:
                logger.error("✗ Error in %s: HTTP %s", operation_name, status)
                raise
            if attempt == max_retries - 1:
                logger.error("✗ Max retries reached for %s", operation_name)
                raise
            wait_time = (INITIAL_BACKOFF * (2 ** attempt)) + (random.random() * 0.1)
            logger.warning(
                "⚠ HTTP %s on %s (attempt %d/%d), waiting %.2fs...",
                status, operation_name, attempt + 1, max_retries, wait_time,
            )
            sleep(wait_time)
        except Exception as e:
            if not _is_timeout(e):
                logger.error("✗ Unexpected error in %s: %s", operation_name, e)
                raise
            if attempt == max_retries - 1:
                logger.error("✗ Max retries reached for %s after timeout", operation_name)
                raise
            wait_time = (INITIAL_BACKOFF * (2 ** attempt)) + (random.random() * 0.1)
            logger.warning(
                "⚠ Timeout on %s (attempt %d/%d), retrying in %.2fs...",
                operation_name, attempt + 1, max_retries, wait_time,
            )
            sleep(wait_time)

    raise RuntimeError(f"Failed to execute {operation_name} after {max_retries} attempts")


def load_service_account_info() -> Dict[str, Any]:
    """
    Service account key from GOOGLE_SERVICE_ACCOUNT_JSON (inline, e.g. in CI)
    or from the file named by GOOGLE_APPLICATION_CREDENTIALS / SERVICE_ACCOUNT_FILE.
    """
    inline_json = os.getenv("GOOGLE_SERVICE_ACCOUNT_JSON")
    if inline_json and inline_json.strip():
        try:
            return json.loads(inline_json)
        except json.JSONDecodeError:
            # keys pasted into env files often carry literal "\n" sequences
            return json.loads(inline_json.replace("\\n", "\n"))

    key_path = os.getenv("GOOGLE_APPLICATION_CREDENTIALS") or os.getenv("SERVICE_ACCOUNT_FILE")
    if not key_path or not os.path.exists(key_path):
        raise ConfigError(
            "No credentials found. Either set GOOGLE_SERVICE_ACCOUNT_JSON env var "
            "or provide GOOGLE_APPLICATION_CREDENTIALS / SERVICE_ACCOUNT_FILE path in .env"
        )
    with open(key_path, "r", encoding="utf-8") as f:
        return json.load(f)


def get_credentials(scopes: Sequence[str] = SCOPES) -> Credentials:
    return Credentials.from_service_account_info(load_service_account_info(), scopes=list(scopes))


def get_service(credentials: Credentials = None):
    """Google Sheets v4 service."""
    credentials = credentials or get_credentials()
    return build("sheets", "v4", credentials=credentials, cache_discovery=False)


def get_gspread_client(credentials: Credentials = None) -> gspread.Client:
    credentials = credentials or get_credentials()
    return gspread.authorize(credentials)


# ---------------------------------------------------------------------------
# A1 notation
# ---------------------------------------------------------------------------

_CELL_RE = re.compile(r"^([A-Za-z]+)(\d+)?$")


def column_letters_to_index(letters: str) -> Optional[int]:
    """'A' -> 1, 'AA' -> 27. None for anything that is not letters."""
    if not letters or not letters.isalpha() or not letters.isascii():
        return None
    index = 0
    for char in letters.upper():
        index = index * 26 + (ord(char) - 64)
    return index


def column_index_to_letters(index: int) -> Optional[str]:
    """1 -> 'A', 27 -> 'AA'."""
    if not isinstance(index, int) or isinstance(index, bool) or index <= 0:
        return None
    letters = ""
    value = index
    while value > 0:
        remainder = (value - 1) % 26
        letters = chr(65 + remainder) + letters
        value = (value - 1) // 26
    return letters


def parse_cell_ref(cell_ref: Optional[str]) -> Tuple[int, int]:
    """(column, row), both 1-based, for a reference like 'Sheet!C7'. Falls back to A1."""
    raw = str(cell_ref or "A1")
    without_sheet = raw.split("!")[-1]
    match = _CELL_RE.match(without_sheet)
    if not match:
        return 1, 1
    column = column_letters_to_index(match.group(1)) or 1
    row = int(match.group(2)) if match.group(2) else 1
    return column, row if row > 0 else 1


def cell_to_a1(row: int, column: int) -> str:
    """0-based row/column to A1 notation."""
    return f"{column_index_to_letters(column + 1)}{row + 1}"


def quote_sheet(sheet_name: str) -> str:
    if re.fullmatch(r"[A-Za-z0-9_]+", sheet_name):
        return sheet_name
    return "'" + sheet_name.replace("'", "''") + "'"


def has_sheet_prefix(range_str: Any) -> bool:
    return isinstance(range_str, str) and "!" in range_str


# ---------------------------------------------------------------------------
# Spreadsheet calls
# ---------------------------------------------------------------------------

def get_sheet_properties(service, spreadsheet_id: str) -> List[Dict[str, Any]]:
    def _get():
        return service.spreadsheets().get(
            spreadsheetId=spreadsheet_id, fields="sheets(properties(sheetId,title))"
        ).execute()

    spreadsheet = execute_with_retry(_get, f"get_sheets({spreadsheet_id})")
    return [sheet.get("properties", {}) for sheet in spreadsheet.get("sheets", [])]


def get_sheet_id(service, sheet_name: str, spreadsheet_id: str) -> int:
    """Get the sheet ID for a given sheet name in a spreadsheet."""
    for props in get_sheet_properties(service, spreadsheet_id):
        if props.get("title") == sheet_name:
            return props["sheetId"]
    raise ValueError(f"Sheet '{sheet_name}' not found in spreadsheet {spreadsheet_id}.")


def get_sheet_title_by_id(service, spreadsheet_id: str, sheet_id: Any) -> str:
    for props in get_sheet_properties(service, spreadsheet_id):
        if str(props.get("sheetId")) == str(sheet_id) and props.get("title"):
            return props["title"]
    raise ValueError(f"Sheet ID {sheet_id} not found in spreadsheet {spreadsheet_id}.")


def ensure_sheet_exists(service, spreadsheet_id: str, sheet_name: str) -> int:
    """Create a sheet if it doesn't exist and return its ID."""
    try:
        return get_sheet_id(service, sheet_name, spreadsheet_id)
    except ValueError:
        logger.info("Creating '%s' sheet...", sheet_name)
        request = {"requests": [{"addSheet": {"properties": {"title": sheet_name}}}]}

        def _create():
            return service.spreadsheets().batchUpdate(spreadsheetId=spreadsheet_id, body=request).execute()

        response = execute_with_retry(_create, f"create_sheet({sheet_name})")
        sheet_id = response["replies"][0]["addSheet"]["properties"]["sheetId"]
        logger.info("✓ Created '%s' sheet", sheet_name)
        return sheet_id


def read_values(service, spreadsheet_id: str, range_str: str, value_render_option: str = None) -> List[List[Any]]:
    params = {"spreadsheetId": spreadsheet_id, "range": range_str}
    if value_render_option:
        params["valueRenderOption"] = value_render_option

    def _get():
        return service.spreadsheets().values().get(**params).execute()

    return execute_with_retry(_get, f"read_values({range_str})").get("values", [])


def batch_read_values(service, spreadsheet_id: str, ranges: Sequence[str]) -> List[List[List[Any]]]:
    if not ranges:
        return []

    def _get():
        return service.spreadsheets().values().batchGet(spreadsheetId=spreadsheet_id, ranges=list(ranges)).execute()

    result = execute_with_retry(_get, f"batch_read_values({len(ranges)} ranges)")
    return [value_range.get("values", []) for value_range in result.get("valueRanges", [])]


def clear_range(service, spreadsheet_id: str, range_str: str) -> None:
    def _clear():
        return service.spreadsheets().values().clear(spreadsheetId=spreadsheet_id, range=range_str, body={}).execute()

    execute_with_retry(_clear, f"clear_range({range_str})")


def clear_sheet(service, spreadsheet_id: str, sheet_name: str) -> None:
    """Clear all content from a sheet."""
    clear_range(service, spreadsheet_id, quote_sheet(sheet_name))


def delete_sheet_charts(service, spreadsheet_id: str, sheet_id: int) -> int:
    """Delete every chart anchored on the given sheet. Returns how many went."""
    def _get_charts():
        return service.spreadsheets().get(
            spreadsheetId=spreadsheet_id, fields="sheets(charts(chartId),properties(sheetId,title))"
        ).execute()

    spreadsheet = execute_with_retry(_get_charts, f"get_charts({sheet_id})")
    requests = []
    for sheet in spreadsheet.get("sheets", []):
        if sheet.get("properties", {}).get("sheetId") != sheet_id:
            continue
        for chart in sheet.get("charts", []):
            requests.append({"deleteEmbeddedObject": {"objectId": chart["chartId"]}})

    if requests:
        def _delete_charts():
            return service.spreadsheets().batchUpdate(
                spreadsheetId=spreadsheet_id, body={"requests": requests}
            ).execute()

        execute_with_retry(_delete_charts, f"delete_charts({sheet_id})")
    return len(requests)


def write_values(service, spreadsheet_id: str, sheet_name: str, start_cell: str, values: List[List[Any]]) -> Dict[str, Any]:
    target = f"{quote_sheet(sheet_name)}!{start_cell}"
    if not values:
        return {"updatedRange": target, "updatedRows": 0, "updatedColumns": 0, "updatedCells": 0}

    def _write():
        return service.spreadsheets().values().update(
            spreadsheetId=spreadsheet_id,
            range=target,
            valueInputOption="RAW",
            body={"values": values},
        ).execute()

    return execute_with_retry(_write, f"write_values({target})") or {}


# ---------------------------------------------------------------------------
# Column filters
# ---------------------------------------------------------------------------

def remove_columns_from_rows(rows: List[List[Any]], columns_to_remove: Sequence[Any]) -> List[List[Any]]:
    """Drop the given 0-based column positions from every row. Non-integer entries are ignored."""
    if not rows:
        return []
    remove = set()
    for index in columns_to_remove or []:
        try:
            value = int(index)
        except (TypeError, ValueError):
            continue
        if value >= 0 and str(index).strip().lstrip("+").isdigit():
            remove.add(value)
    if not remove:
        return rows
    return [[value for i, value in enumerate(row) if i not in remove] for row in rows]


def keep_columns_from_rows(
    rows: List[List[Any]],
    columns_to_keep: Sequence[str],
    header_row_index: int = 0,
    case_insensitive: bool = True,
    trim: bool = True,
) -> List[List[Any]]:
    """Keep only the named columns, in the requested order, matching names against the header row."""
    if not rows:
        return []
    if not columns_to_keep:
        return rows
    if header_row_index < 0 or header_row_index >= len(rows):
        raise ValueError("Header row not found for keepColumns.")

    def normalize(value: Any) -> str:
        text = "" if value is None else str(value)
        if trim:
            text = text.strip()
        if case_insensitive:
            text = text.lower()
        return text

    header_index: Dict[str, int] = {}
    for index, name in enumerate(rows[header_row_index]):
        header_index.setdefault(normalize(name), index)

    requested = [normalize(name) for name in columns_to_keep]
    missing = [name for name in requested if name not in header_index]
    if missing:
        raise ValueError(f"Missing keepColumns in header row: {', '.join(missing)}")

    keep = [header_index[name] for name in requested]
    return [[row[i] if i < len(row) else "" for i in keep] for row in rows]
