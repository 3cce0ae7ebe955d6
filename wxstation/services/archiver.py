"""
Archiver Service - commits windows of raw readings to the archive store

Two destination policies are supported:

- partition: one file per window, written once. A window whose file
  already exists is treated as archived, so overlapping or repeated runs
  are no-ops.
- append: one continuously growing file. Existing content is read
  together with its sha, rows already present are skipped, and the
  merged text is written back conditioned on that sha. A concurrent
  writer makes the commit fail rather than overwrite.

Failures never raise out of archive(); they are returned as
ArchiveResult(ok=False) so a scheduled run has something to log.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import httpx
from sqlalchemy.exc import SQLAlchemyError

from wxstation.core.config import Settings
from wxstation.core.errors import ArchiveStoreError
from wxstation.services import csv_export
from wxstation.services.archive_store import ContentStore
from wxstation.services.sample_log import SampleLog

logger = logging.getLogger(__name__)

PARTITION = "partition"
APPEND = "append"


@dataclass(frozen=True)
class ArchiveResult:
    ok: bool
    path: str | None
    message: str
    rows: int = 0
    status: int | None = None

    def as_dict(self) -> dict:
        return {
            "ok": self.ok,
            "path": self.path,
            "message": self.message,
            "rows": self.rows,
            "status": self.status,
        }


def window_bounds(now_ms: int, window_minutes: int, delay_seconds: int = 0) -> tuple[int, int]:
    """Most recent closed window [start, end) aligned to window_minutes in UTC."""
    window_ms = window_minutes * 60_000
    end = ((now_ms - delay_seconds * 1000) // window_ms) * window_ms
    return end - window_ms, end


def partition_path(archive_dir: str, window_start_ms: int) -> str:
    """archives/ecowitt/2025/03/05/20250305-1400.csv"""
    start = datetime.fromtimestamp(window_start_ms / 1000, tz=timezone.utc)
    return f"{archive_dir.rstrip('/')}/{start:%Y/%m/%d}/{start:%Y%m%d-%H%M}.csv"


class ArchiveReconciler:
    """Renders a window of readings as CSV and commits it to the store."""

    def __init__(
        self,
        log: SampleLog,
        store: ContentStore,
        policy: str = PARTITION,
        archive_dir: str = "archives/ecowitt",
        archive_path: str = "archives/ecowitt/ecowitt_history.csv",
        tz: str = "UTC",
    ):
        if policy not in (PARTITION, APPEND):
            raise ValueError(f"unknown archive policy: {policy}")
        self.log = log
        self.store = store
        self.policy = policy
        self.archive_dir = archive_dir
        self.archive_path = archive_path
        self.tz = tz

    @classmethod
    def from_settings(cls, settings: Settings, log: SampleLog, store: ContentStore) -> "ArchiveReconciler":
        return cls(
            log=log,
            store=store,
            policy=settings.archive_policy,
            archive_dir=settings.archive_dir,
            archive_path=settings.archive_path,
            tz=settings.tz,
        )

    def destination(self, window_start_ms: int) -> str:
        if self.policy == PARTITION:
            return partition_path(self.archive_dir, window_start_ms)
        return self.archive_path

    async def archive(self, window_start_ms: int, window_end_ms: int) -> ArchiveResult:
        """Archive readings with window_start_ms <= ts < window_end_ms."""
        try:
            return await self._archive(window_start_ms, window_end_ms)
        except ArchiveStoreError as exc:
            logger.error("Archive store error: %s", exc)
            return ArchiveResult(ok=False, path=None, message=exc.message, status=exc.status)
        except (SQLAlchemyError, httpx.HTTPError, ValueError, KeyError) as exc:
            logger.exception("Archive run failed")
            return ArchiveResult(ok=False, path=None, message=f"{type(exc).__name__}: {exc}")

    async def _archive(self, window_start_ms: int, window_end_ms: int) -> ArchiveResult:
        readings = await self.log.query_range(window_start_ms, window_end_ms)
        if not readings:
            return ArchiveResult(ok=True, path=None, message="no data in window")

        rows = [csv_export.flatten(reading, self.tz) for reading in readings]
        path = self.destination(window_start_ms)
        existing = await self.store.get_content(path)

        if existing is None:
            text = csv_export.render(csv_export.columns_for(rows), rows)
            return await self._commit(path, text, None, len(rows))

        if self.policy == PARTITION:
            logger.info("Window already archived at %s", path)
            return ArchiveResult(ok=True, path=path, message="already archived")

        old_columns, old_rows = csv_export.parse(existing.text)
        seen = {(row.get("ts", ""), row.get("raw_json", "")) for row in old_rows}
        fresh = [row for row in rows if (row["ts"], row["raw_json"]) not in seen]
        if not fresh:
            return ArchiveResult(ok=True, path=path, message="already archived")

        columns = csv_export.columns_for(fresh, base=old_columns)
        if old_columns and set(columns) <= set(old_columns):
            prefix = existing.text if existing.text.endswith("\n") else existing.text + "\n"
            text = prefix + csv_export.render(old_columns, fresh, header=False)
        else:
            # New columns appeared; rewrite with the widened header
            text = csv_export.render(columns, old_rows + fresh)
        return await self._commit(path, text, existing.sha, len(fresh))

    async def _commit(self, path: str, text: str, sha: str | None, count: int) -> ArchiveResult:
        result = await self.store.put_content(
            path, text, sha=sha, message=f"archive {path} ({count} rows)"
        )
        if not result.ok:
            message = f"put failed {result.status}: {result.message}"
            if result.conflict:
                message = f"concurrent update, retry next run ({result.status}): {result.message}"
            return ArchiveResult(ok=False, path=path, message=message, status=result.status)

        logger.info("Archived %d rows to %s", count, path)
        return ArchiveResult(
            ok=True,
            path=path,
            message="created" if sha is None else "appended",
            rows=count,
            status=result.status,
        )

    async def archive_last_window(self, now_ms: int, window_minutes: int, delay_seconds: int = 0) -> ArchiveResult:
        start, end = window_bounds(now_ms, window_minutes, delay_seconds)
        return await self.archive(start, end)

    async def backfill(self, now_ms: int, hours: float, window_minutes: int) -> list[ArchiveResult]:
        """Archive every closed window in the last `hours`, oldest first."""
        window_ms = window_minutes * 60_000
        _, last_end = window_bounds(now_ms, window_minutes)
        first_start = last_end - int(timedelta(hours=hours).total_seconds() * 1000)
        first_start -= first_start % window_ms
        results = []
        for start in range(first_start, last_end, window_ms):
            results.append(await self.archive(start, start + window_ms))
        return results
