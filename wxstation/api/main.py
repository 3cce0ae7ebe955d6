"""
Weather Station - API Server

Provides endpoints for:
- Station uploads (Ecowitt, Wunderground and a generic JSON ingest)
- Latest / historical readings, raw and normalized
- CSV export and per-field statistics
- Health (reading staleness) and a manual archive trigger
"""

import logging
import secrets
import time
from contextlib import asynccontextmanager
from typing import Any

from fastapi import APIRouter, Depends, FastAPI, Header, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from sqlalchemy.exc import SQLAlchemyError

from wxstation.core.config import Settings, get_settings
from wxstation.core.database import build_engine, build_session_maker, create_tables
from wxstation.services import csv_export, ingest
from wxstation.services.archive_store import ContentStore, GitHubContentStore
from wxstation.services.archiver import ArchiveReconciler
from wxstation.services.health import health_report
from wxstation.services.normalizer import normalize
from wxstation.services.sample_log import RawReading, SampleLog, now_ms
from wxstation.services.stats import summarize

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
NO_STORE = {"Cache-Control": "no-store, no-cache, must-revalidate, max-age=0"}

router = APIRouter()


# ==================== DEPENDENCIES ====================

def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_log(request: Request) -> SampleLog:
    return request.app.state.log


def get_store(request: Request) -> ContentStore | None:
    return request.app.state.store


def _since(hours: float | None, default_hours: float | None) -> int | None:
    hours = default_hours if hours is None else hours
    if hours is None:
        return None
    return now_ms() - int(hours * 3600 * 1000)


def _raw_entry(reading: RawReading, tz: str) -> dict[str, Any]:
    return {
        "ts": reading.captured_at_ms,
        "ts_local": csv_export.format_local(reading.captured_at_ms, tz),
        "payload": reading.fields,
    }


# ==================== INGESTION ====================

async def _ingest(request: Request, protocol: str, settings: Settings, log: SampleLog) -> Response | RawReading:
    """Decode, authenticate and store one upload. Returns a Response on rejection."""
    query = dict(request.query_params)
    if request.method == "POST":
        body = await request.body()
        try:
            params = ingest.merge_params(query, ingest.decode_body(request.headers.get("content-type"), body))
        except ingest.UnsupportedMediaType as exc:
            logger.warning("Rejected %s upload: %s", protocol, exc)
            return PlainTextResponse("unsupported content-type", status_code=415)
    else:
        params = query

    if not ingest.is_authorized(params, protocol, settings):
        logger.warning("Rejected %s upload from %s: bad credentials",
                       protocol, request.client.host if request.client else "unknown")
        message = "unauthorized" if protocol == ingest.WUNDERGROUND else "bad passkey"
        return PlainTextResponse(message, status_code=401)

    fields = ingest.redact(params) if settings.redact_credentials else params

    if await request.is_disconnected():
        logger.info("Client went away before %s upload was stored", protocol)
        return Response(status_code=499)

    reading = await log.append(now_ms(), fields, source=protocol)
    logger.info("Ingested %s upload (%d fields)", protocol, len(fields))
    return reading


@router.api_route("/api/ecowitt", methods=["GET", "POST"])
@router.api_route("/api/ecowitt/{rest:path}", methods=["GET", "POST"])
async def ingest_ecowitt(
    request: Request,
    settings: Settings = Depends(get_app_settings),
    log: SampleLog = Depends(get_log),
):
    """Ecowitt "customized upload" protocol. Stations expect the literal body OK."""
    outcome = await _ingest(request, ingest.ECOWITT, settings, log)
    if isinstance(outcome, Response):
        return outcome
    return PlainTextResponse("OK")


@router.get("/weatherstation/latest")
async def legacy_latest(settings: Settings = Depends(get_app_settings), log: SampleLog = Depends(get_log)):
    """Latest raw payload at the path older dashboards poll."""
    reading = await log.latest()
    if reading is None:
        return PlainTextResponse("not found", status_code=404)
    return _raw_entry(reading, settings.tz)


@router.api_route("/weatherstation/updateweatherstation.php", methods=["GET", "POST"])
@router.api_route("/weatherstation/{rest:path}", methods=["GET", "POST"])
async def ingest_wunderground(
    request: Request,
    settings: Settings = Depends(get_app_settings),
    log: SampleLog = Depends(get_log),
):
    """Wunderground upload protocol. Stations expect the literal body success."""
    outcome = await _ingest(request, ingest.WUNDERGROUND, settings, log)
    if isinstance(outcome, Response):
        return outcome
    return PlainTextResponse("success")


@router.api_route("/api/ingest", methods=["GET", "POST"])
async def ingest_generic(
    request: Request,
    settings: Settings = Depends(get_app_settings),
    log: SampleLog = Depends(get_log),
):
    """Generic ingest with a JSON acknowledgment."""
    outcome = await _ingest(request, ingest.GENERIC, settings, log)
    if isinstance(outcome, Response):
        return outcome
    return JSONResponse(
        {"ok": True, "saved": True, "ts": outcome.captured_at_ms, "fields": len(outcome.fields)},
        headers={"Cache-Control": "no-store"},
    )


# ==================== READINGS ====================

@router.get("/api/latest")
async def latest(settings: Settings = Depends(get_app_settings), log: SampleLog = Depends(get_log)):
    """Most recent reading in SI units."""
    reading = await log.latest()
    if reading is None:
        return {}
    return {
        "ts": reading.captured_at_ms,
        "ts_local": csv_export.format_local(reading.captured_at_ms, settings.tz),
        "data": normalize(reading.fields).model_dump(),
    }


@router.get("/api/latest_raw")
async def latest_raw(settings: Settings = Depends(get_app_settings), log: SampleLog = Depends(get_log)):
    """Most recent payload as received."""
    reading = await log.latest()
    return _raw_entry(reading, settings.tz) if reading else {}


@router.get("/api/history")
async def history(
    hours: float | None = Query(None, gt=0),
    settings: Settings = Depends(get_app_settings),
    log: SampleLog = Depends(get_log),
):
    """Normalized series for the last N hours, oldest first."""
    readings = await log.query_range(_since(hours, settings.default_history_hours))
    return [
        {
            "t": r.captured_at_ms,
            "t_local": csv_export.format_local(r.captured_at_ms, settings.tz),
            **normalize(r.fields).model_dump(),
        }
        for r in readings
    ]


@router.get("/api/history_raw")
async def history_raw(
    hours: float | None = Query(None, gt=0),
    settings: Settings = Depends(get_app_settings),
    log: SampleLog = Depends(get_log),
):
    """Raw payloads for the last N hours, oldest first."""
    readings = await log.query_range(_since(hours, settings.default_history_hours))
    return [_raw_entry(r, settings.tz) for r in readings]


@router.get("/api/export.csv")
async def export_csv(
    hours: float | None = Query(None, gt=0),
    settings: Settings = Depends(get_app_settings),
    log: SampleLog = Depends(get_log),
):
    """Every stored reading (or the last N hours) as CSV."""
    readings = await log.query_range(_since(hours, None))
    return Response(
        content=csv_export.export_csv(readings, settings.tz),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="ecowitt_full.csv"'},
    )


@router.get("/api/stats")
async def stats(
    hours: float | None = Query(None, gt=0),
    settings: Settings = Depends(get_app_settings),
    log: SampleLog = Depends(get_log),
):
    """min / max / avg per normalized field over the last N hours."""
    hours = settings.default_history_hours if hours is None else hours
    readings = await log.query_range(_since(hours, None))
    return {
        "hours": hours,
        "count": len(readings),
        "first_ts": readings[0].captured_at_ms if readings else None,
        "last_ts": readings[-1].captured_at_ms if readings else None,
        "fields": summarize(normalize(r.fields) for r in readings),
    }


@router.get("/api/health")
async def reading_health(settings: Settings = Depends(get_app_settings), log: SampleLog = Depends(get_log)):
    """Staleness of the latest reading: ok, stale or no-data."""
    report = health_report(await log.latest(), now_ms(), settings.stale_after_seconds, settings.tz)
    return JSONResponse(report, headers=NO_STORE)


# ==================== ARCHIVE ====================

@router.post("/api/archive")
async def trigger_archive(
    hours: float | None = Query(None, gt=0),
    x_archive_token: str | None = Header(None),
    settings: Settings = Depends(get_app_settings),
    log: SampleLog = Depends(get_log),
    store: ContentStore | None = Depends(get_store),
):
    """Run the archiver now: the last closed window, or every window in the last N hours."""
    if not settings.archive_trigger_token:
        return JSONResponse({"detail": "Not Found"}, status_code=404)
    if not x_archive_token or not secrets.compare_digest(
        x_archive_token.encode(), settings.archive_trigger_token.encode()
    ):
        return JSONResponse({"ok": False, "message": "unauthorized"}, status_code=401)
    if store is None:
        return JSONResponse({"ok": False, "message": "archive store not configured"}, status_code=503)

    reconciler = ArchiveReconciler.from_settings(settings, log, store)
    if hours is None:
        result = await reconciler.archive_last_window(
            now_ms(), settings.archive_window_minutes, settings.archive_delay_seconds
        )
        return JSONResponse(result.as_dict(), status_code=200 if result.ok else 502)

    results = await reconciler.backfill(now_ms(), hours, settings.archive_window_minutes)
    ok = all(r.ok for r in results)
    return JSONResponse(
        {"ok": ok, "results": [r.as_dict() for r in results]},
        status_code=200 if ok else 502,
    )


# ==================== APP ====================

def create_app(
    settings: Settings | None = None,
    log: SampleLog | None = None,
    store: ContentStore | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    engine = None
    if log is None:
        engine = build_engine(settings.database_url)
        log = SampleLog(build_session_maker(engine))
    owns_store = store is None and settings.archive_enabled
    if owns_store:
        store = GitHubContentStore.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if engine is not None:
            await create_tables(engine)
        logger.info("%s %s started", settings.app_name, settings.app_version)
        yield
        if owns_store:
            await store.close()
        if engine is not None:
            await engine.dispose()

    app = FastAPI(
        title=settings.app_name,
        description="Weather station telemetry ingestion and retrieval",
        version=settings.app_version,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.log = log
    app.state.store = store

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
        max_age=86400,
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        dur_ms = (time.perf_counter() - start) * 1000.0
        logger.info("%s %s -> %s (%.1f ms)", request.method, request.url.path, response.status_code, dur_ms)
        return response

    @app.exception_handler(SQLAlchemyError)
    async def storage_error(request: Request, exc: SQLAlchemyError):
        logger.error("Storage error on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse({"ok": False, "message": "storage unavailable"}, status_code=503)

    @app.get("/", response_class=PlainTextResponse)
    async def root():
        return "wxstation api ready"

    @app.get("/health")
    async def health_check():
        """Process liveness."""
        return {"status": "ok", "version": settings.app_version}

    app.include_router(router)
    return app


# ==================== MAIN ====================

app = create_app()


def main():
    """Entry point: serve the API with uvicorn."""
    import uvicorn

    current = get_settings()
    logging.basicConfig(level=current.log_level, format=LOG_FORMAT)
    uvicorn.run(app, host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()
