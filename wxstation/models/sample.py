"""
Sample model - raw payloads captured from weather stations
"""

from typing import Any

from sqlalchemy import JSON, BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from wxstation.core.database import Base


class Sample(Base):
    """Raw station payload, stored verbatim and never updated."""

    __tablename__ = "samples"

    id: Mapped[int] = mapped_column(primary_key=True)

    # Capture time, epoch milliseconds assigned by the receiver
    ts: Mapped[int] = mapped_column(BigInteger, index=True)

    # Endpoint that captured the payload (ecowitt / wunderground / generic)
    source: Mapped[str] = mapped_column(String(20), default="generic")

    payload: Mapped[dict[str, Any]] = mapped_column(JSON)

    def __repr__(self) -> str:
        return f"<Sample ts={self.ts} source={self.source} fields={len(self.payload or {})}>"
