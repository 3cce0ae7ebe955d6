"""
Health Service - staleness of the most recent reading
"""

from wxstation.services.csv_export import format_local
from wxstation.services.sample_log import RawReading


def reading_status(last_ts_ms: int | None, now_ms: int, stale_after_seconds: int = 120) -> tuple[str, int | None]:
    """("no-data" | "ok" | "stale", lag in whole seconds)."""
    if last_ts_ms is None:
        return "no-data", None
    lag_ms = now_ms - last_ts_ms
    status = "stale" if lag_ms > stale_after_seconds * 1000 else "ok"
    return status, round(lag_ms / 1000)


def health_report(
    last: RawReading | None,
    now_ms: int,
    stale_after_seconds: int = 120,
    tz: str = "UTC",
) -> dict:
    last_ts = last.captured_at_ms if last else None
    status, lag_s = reading_status(last_ts, now_ms, stale_after_seconds)
    return {
        "status": status,
        "now": now_ms,
        "now_local": format_local(now_ms, tz),
        "last_ts": last_ts,
        "last_ts_local": format_local(last_ts, tz) if last_ts is not None else None,
        "lag_s": lag_s,
        "stale_after_s": stale_after_seconds,
        "last": last.fields if last else None,
    }
