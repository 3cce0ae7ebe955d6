"""
Stats Service - per-field aggregates over a window of readings
"""

from typing import Iterable

from wxstation.services.normalizer import NUMERIC_FIELDS, NormalizedReading


def summarize(readings: Iterable[NormalizedReading]) -> dict[str, dict]:
    """min/max/avg/count for every numeric field that has at least one value."""
    values: dict[str, list[float]] = {name: [] for name in NUMERIC_FIELDS}
    for reading in readings:
        for name in NUMERIC_FIELDS:
            value = getattr(reading, name)
            if value is not None:
                values[name].append(value)

    summary = {}
    for name, series in values.items():
        if not series:
            continue
        summary[name] = {
            "min": min(series),
            "max": max(series),
            "avg": sum(series) / len(series),
            "count": len(series),
        }
    return summary
