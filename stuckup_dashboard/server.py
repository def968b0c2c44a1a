"""HTTP surface of the workflow server, plus its background pollers."""

from __future__ import annotations

import logging
import threading
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Callable, Optional
from urllib.parse import urlparse

import requests
import uvicorn
from fastapi import FastAPI
from fastapi.responses import FileResponse, JSONResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles

from .config import PIVOT_RANGE_VARS, Settings, configure_logging
from .poller import GspreadRangeReader, JsonFileStateStore, Poller
from .schemas import ImportRequest, ImportResponse, PivotResponse
from .sheets import get_credentials, get_gspread_client, get_service, get_sheet_title_by_id, quote_sheet, read_values
from .workflow import DestinationSpec, SourceSpec, run_import

logger = logging.getLogger(__name__)

STATIC_DIR = Path(__file__).resolve().parent / "static"


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


class KeepAlivePinger:
    """GETs a URL on an interval so free-tier hosts don't put the server to sleep."""

    def __init__(self, url: str, interval_ms: int, get: Callable[..., Any] = requests.get):
        self.url = url
        self.interval_ms = interval_ms
        self._get = get
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> Optional["KeepAlivePinger"]:
        if not settings.ping_url:
            return None
        if settings.ping_interval_ms <= 0:
            logger.warning("[ping] Invalid PING_INTERVAL_MS; skipping pings.")
            return None
        parsed = urlparse(settings.ping_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            logger.warning("[ping] Invalid PING_URL; skipping pings.")
            return None
        return cls(settings.ping_url, settings.ping_interval_ms)

    def ping_once(self) -> bool:
        try:
            self._get(self.url, timeout=10)
            return True
        except requests.RequestException as e:
            logger.warning("[ping] Failed: %s", e)
            return False

    def _loop(self) -> None:
        while not self._stop.wait(self.interval_ms / 1000.0):
            self.ping_once()

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._loop, name="keepalive-ping", daemon=True)
        self._thread.start()
        logger.info("[ping] Enabled %s every %dms.", self.url, self.interval_ms)

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(5.0)
            self._thread = None


def start_polling(app: FastAPI) -> Optional[Poller]:
    settings: Settings = app.state.settings
    if settings.poll_jobs_error:
        logger.error("✗ [poller] Polling disabled: %s", settings.poll_jobs_error)
        return None
    if not settings.poll_jobs:
        return None
    try:
        credentials = get_credentials()
        poller = Poller(
            service=get_app_service(app),
            jobs=settings.poll_jobs,
            reader=GspreadRangeReader(get_gspread_client(credentials)),
            store=JsonFileStateStore(settings.poll_state_path),
            default_interval_ms=settings.poll_interval_ms,
            dashboard_config=settings.dashboard,
        )
        poller.start()
        return poller
    except Exception as e:
        logger.error("[poller] Failed to start: %s", e)
        return None


def get_app_service(app: FastAPI):
    if app.state.service is None:
        app.state.service = get_service()
    return app.state.service


def create_app(settings: Settings = None, service=None, poller: Poller = None, start_background: bool = True) -> FastAPI:
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        pinger = None
        if start_background:
            if app.state.poller is None:
                app.state.poller = start_polling(app)
            pinger = KeepAlivePinger.from_settings(settings)
            if pinger is not None:
                pinger.start()
        logger.info("Workflow server listening on port %s", settings.port)
        yield
        if pinger is not None:
            pinger.stop()
        if app.state.poller is not None:
            app.state.poller.stop()

    app = FastAPI(title="Stuck-up Dashboard API", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.service = service
    app.state.poller = poller

    if STATIC_DIR.is_dir():
        app.mount("/public", StaticFiles(directory=STATIC_DIR), name="public")

    @app.get("/health")
    def health():
        return {"ok": True}

    @app.get("/")
    def index():
        return RedirectResponse(url="/dashboard")

    @app.get("/dashboard")
    def dashboard_page():
        return FileResponse(STATIC_DIR / "dashboard.html")

    @app.get("/polling/status")
    def polling_status():
        current: Optional[Poller] = app.state.poller
        return {
            "ok": True,
            "jobs": current.status() if current else [],
            "statePath": current.state_path if current else None,
        }

    def pivot_handler(name: str, env_var: str):
        def handler():
            spreadsheet_id = settings.pivot_spreadsheet_id
            gid = settings.pivot_gid
            pivot_range = settings.pivot_ranges.get(name)
            if not spreadsheet_id or not gid or not pivot_range:
                return _error(400, f"Missing PIVOT_SPREADSHEET_ID, PIVOT_GID, or {env_var}.")
            try:
                sheets = get_app_service(app)
                if "!" in pivot_range:
                    range_str = pivot_range
                else:
                    range_str = f"{quote_sheet(get_sheet_title_by_id(sheets, spreadsheet_id, gid))}!{pivot_range}"
                values = read_values(sheets, spreadsheet_id, range_str)
                headers = values[0] if values else []
                return PivotResponse(headers=headers, rows=values[1:], range=range_str).model_dump()
            except Exception as exc:
                logger.exception("%s failed", name)
                return _error(500, str(exc) or "Unknown error")

        handler.__name__ = f"pivot_{name.replace('-', '_')}"
        return handler

    for name, env_var in PIVOT_RANGE_VARS.items():
        app.add_api_route(f"/api/{name}", pivot_handler(name, env_var), methods=["GET"])

    @app.post("/import")
    def import_endpoint(request: ImportRequest):
        source, destination = request.source, request.destination
        if source is None or destination is None:
            return _error(400, "Missing source or destination object.")
        if not source.spreadsheet_id or (not source.range and not source.ranges):
            return _error(400, "source.spreadsheetId and source.range (or source.ranges) are required.")
        if not destination.spreadsheet_id or (not destination.sheet_name and destination.gid is None):
            return _error(400, "destination.spreadsheetId and destination.sheetName (or destination.gid) are required.")

        try:
            result = run_import(
                get_app_service(app),
                SourceSpec.from_dict(source.model_dump(by_alias=True)),
                DestinationSpec.from_dict(destination.model_dump(by_alias=True)),
                remove_columns=request.remove_columns,
                keep_columns=request.keep_columns,
                header_row_index=request.header_row_index,
                clear_destination=request.clear_destination,
                dashboard_config=settings.dashboard,
            )
        except Exception as exc:
            logger.exception("import failed")
            return _error(500, str(exc) or "Unknown error")

        return ImportResponse(
            updated_range=result.get("updatedRange"),
            updated_rows=result.get("updatedRows"),
            updated_columns=result.get("updatedColumns"),
            updated_cells=result.get("updatedCells"),
        ).model_dump(by_alias=True)

    return app


def main():
    configure_logging()
    settings = Settings.from_env()
    uvicorn.run(create_app(settings), host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    main()
