"""
Sample Log - append-only, time-ordered store of raw station payloads
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from wxstation.models.sample import Sample

logger = logging.getLogger(__name__)


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


@dataclass(frozen=True)
class RawReading:
    """Timestamped payload exactly as received from a station."""

    captured_at_ms: int
    fields: dict[str, Any] = field(default_factory=dict)
    source: str = "generic"


class SampleLog:
    """Log collaborator backed by the samples table."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    async def append(
        self,
        ts_ms: int,
        fields: dict[str, Any],
        source: str = "generic",
    ) -> RawReading:
        """Store a payload captured at ts_ms."""
        async with self._session_maker() as session:
            session.add(Sample(ts=ts_ms, source=source, payload=dict(fields)))
            await session.commit()
        logger.debug("Stored %s sample at %s (%d fields)", source, ts_ms, len(fields))
        return RawReading(captured_at_ms=ts_ms, fields=dict(fields), source=source)

    async def query_range(
        self,
        since: int | None = None,
        until: int | None = None,
    ) -> list[RawReading]:
        """Readings with since <= ts < until, oldest first. Either bound may be open."""
        stmt = select(Sample)
        if since is not None:
            stmt = stmt.where(Sample.ts >= since)
        if until is not None:
            stmt = stmt.where(Sample.ts < until)
        stmt = stmt.order_by(Sample.ts, Sample.id)

        async with self._session_maker() as session:
            result = await session.execute(stmt)
            return [_to_reading(row) for row in result.scalars().all()]

    async def latest(self) -> RawReading | None:
        """Most recently captured reading, if any."""
        stmt = select(Sample).order_by(Sample.ts.desc(), Sample.id.desc()).limit(1)
        async with self._session_maker() as session:
            result = await session.execute(stmt)
            row = result.scalar_one_or_none()
        return _to_reading(row) if row is not None else None


def _to_reading(row: Sample) -> RawReading:
    return RawReading(
        captured_at_ms=row.ts,
        fields=dict(row.payload or {}),
        source=row.source,
    )
