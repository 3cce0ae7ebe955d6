"""
CSV Export - flattens readings into delimited text

Shared by the export endpoint and the archiver. Column sets differ
between firmware versions, so the header is the union of every row's
keys rather than the first row's.
"""

import csv
import io
import json
import math
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping
from zoneinfo import ZoneInfo

from wxstation.services.normalizer import normalize
from wxstation.services.sample_log import RawReading

LEADING_COLUMNS = ("ts", "ts_local")
TRAILING_COLUMNS = ("raw_json",)

LOCAL_FORMAT = "%d/%m/%Y %H:%M"


def format_local(ts_ms: int, tz: str = "UTC") -> str:
    """Human-readable rendering of an epoch-ms timestamp, e.g. 05/03/2025 14:07."""
    moment = datetime.fromtimestamp(ts_ms / 1000, tz=timezone.utc)
    return moment.astimezone(ZoneInfo(tz)).strftime(LOCAL_FORMAT)


def cell(value: Any) -> str:
    """Render a single value; missing and non-finite values become empty."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return repr(value) if math.isfinite(value) else ""
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"), allow_nan=False, default=str)
    return str(value)


def flatten(reading: RawReading, tz: str = "UTC") -> dict[str, str]:
    """One CSV row: timestamps, normalized fields, raw fields, then the raw JSON."""
    row: dict[str, Any] = {
        "ts": reading.captured_at_ms,
        "ts_local": format_local(reading.captured_at_ms, tz),
    }
    row.update(normalize(reading.fields).model_dump())
    for key, value in reading.fields.items():
        row.setdefault(key, value)
    row["raw_json"] = json.dumps(reading.fields, separators=(",", ":"), allow_nan=False, default=str)
    return {key: cell(value) for key, value in row.items()}


def columns_for(rows: Iterable[Mapping[str, Any]], base: Iterable[str] = ()) -> list[str]:
    """Union of all row keys in first-seen order, with ts/ts_local first and raw_json last."""
    seen: dict[str, None] = dict.fromkeys(LEADING_COLUMNS)
    seen.update(dict.fromkeys(base))
    for row in rows:
        seen.update(dict.fromkeys(row))
    middle = [key for key in seen if key not in LEADING_COLUMNS and key not in TRAILING_COLUMNS]
    return [*LEADING_COLUMNS, *middle, *TRAILING_COLUMNS]


def render(columns: list[str], rows: Iterable[Mapping[str, Any]], header: bool = True) -> str:
    """Quote every value, double embedded quotes, leave missing columns empty."""
    buffer = io.StringIO()
    writer = csv.DictWriter(
        buffer,
        fieldnames=columns,
        restval="",
        extrasaction="ignore",
        quoting=csv.QUOTE_ALL,
        lineterminator="\n",
    )
    if header:
        writer.writeheader()
    for row in rows:
        writer.writerow(row)
    return buffer.getvalue()


def parse(text: str) -> tuple[list[str], list[dict[str, str]]]:
    """Read back text produced by render(): (columns, rows)."""
    reader = csv.DictReader(io.StringIO(text))
    rows = [
        {key: value or "" for key, value in row.items() if key is not None}
        for row in reader
    ]
    return list(reader.fieldnames or []), rows


def export_csv(readings: Iterable[RawReading], tz: str = "UTC") -> str:
    rows = [flatten(reading, tz) for reading in readings]
    return render(columns_for(rows), rows)
