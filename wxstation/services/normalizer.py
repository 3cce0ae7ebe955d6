"""
Normalizer Service - converts vendor payloads into SI readings

Stations speak two overlapping protocols (Ecowitt and the older
Wunderground upload format) and firmware versions disagree on field
names and casing. Every logical quantity is resolved through an ordered
alias list: keys are lower-cased, the first alias carrying a non-empty
value wins, and a quantity with no usable alias is None.
"""

import math
from typing import Any, Mapping

from pydantic import BaseModel

# Unit conversion factors
MPH_TO_MS = 0.44704
IN_TO_MM = 25.4
INHG_TO_HPA = 33.8639

# Magnus coefficients (Sonntag 1990)
MAGNUS_A = 17.62
MAGNUS_B = 243.12

# Ordered alias lists, highest priority first
ALIASES: dict[str, tuple[str, ...]] = {
    # outdoor
    "outdoor_temp_f": ("tempf", "outtempf", "temperature"),
    "outdoor_humidity": ("humidity", "outhumidity"),
    "outdoor_feels_like_f": ("feelslikef", "heatindexf", "windchillf"),
    "outdoor_dewpoint_f": ("dewpointf", "dewptf"),
    # indoor
    "indoor_temp_f": ("indoortempf", "tempinf"),
    "indoor_humidity": ("indoorhumidity", "humidityin"),
    "indoor_feels_like_f": ("indoorfeelslikef", "feelslikeinf"),
    "indoor_dewpoint_f": ("indoordewpointf", "dewpointinf"),
    # solar & uv
    "solar": ("solarradiation", "solar"),
    "uv": ("uv",),
    # rain, inches
    "rain_rate_in": ("rainratein",),
    "rain_increment_in": ("rainin",),
    "rain_hourly_in": ("hourlyrainin",),
    "rain_daily_in": ("dailyrainin",),
    "rain_event_in": ("eventrainin",),
    "rain_24h_in": ("24hourrainin", "rain24hin"),
    "rain_weekly_in": ("weeklyrainin",),
    "rain_monthly_in": ("monthlyrainin",),
    "rain_yearly_in": ("yearlyrainin",),
    # wind
    "wind_speed_mph": ("windspeedmph",),
    "wind_gust_mph": ("windgustmph",),
    "wind_dir": ("winddir",),
    "wind_dir_avg10m": ("winddir_avg10m", "windavgdir", "winddir10m"),
    # pressure
    "pressure_rel_hpa": ("baromrelhpa",),
    "pressure_rel_inhg": ("baromrelin", "baromin"),
    "pressure_abs_hpa": ("baromabshpa",),
    "pressure_abs_inhg": ("baromabsin",),
    # metadata
    "station_id": ("id", "station"),
    "station_type": ("stationtype", "softwaretype"),
}


class NormalizedReading(BaseModel):
    """Unit-consistent view of one raw payload. Every value is optional."""

    # outdoor
    outdoor_temp_c: float | None = None
    outdoor_feels_like_c: float | None = None
    outdoor_dewpoint_c: float | None = None
    outdoor_humidity_pct: float | None = None
    # indoor
    indoor_temp_c: float | None = None
    indoor_feels_like_c: float | None = None
    indoor_dewpoint_c: float | None = None
    indoor_humidity_pct: float | None = None
    # solar & uv
    solar_wm2: float | None = None
    uv_index: float | None = None
    # rain
    rain_rate_mm_hr: float | None = None
    rain_hourly_mm: float | None = None
    rain_daily_mm: float | None = None
    rain_event_mm: float | None = None
    rain_24h_mm: float | None = None
    rain_weekly_mm: float | None = None
    rain_monthly_mm: float | None = None
    rain_yearly_mm: float | None = None
    # wind
    wind_speed_ms: float | None = None
    wind_gust_ms: float | None = None
    wind_dir_deg: float | None = None
    wind_dir_avg10m_deg: float | None = None
    # pressure
    pressure_rel_hpa: float | None = None
    pressure_abs_hpa: float | None = None
    # metadata
    station_id: str | None = None
    stationtype: str | None = None


TEXT_FIELDS = ("station_id", "stationtype")

# Float-valued fields in declaration order
NUMERIC_FIELDS = tuple(
    name for name in NormalizedReading.model_fields if name not in TEXT_FIELDS
)


def to_number(value: Any) -> float | None:
    """Coerce a raw value to a finite float; None for missing or malformed input."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if value == "":
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def lower_keys(fields: Mapping[str, Any]) -> dict[str, Any]:
    return {str(key).lower(): value for key, value in fields.items()}


def pick(fields: Mapping[str, Any], quantity: str) -> Any:
    """First non-empty value among the aliases of quantity (fields must be lower-cased)."""
    for key in ALIASES[quantity]:
        value = fields.get(key)
        if value is None or value == "":
            continue
        return value
    return None


def pick_number(fields: Mapping[str, Any], quantity: str) -> float | None:
    return to_number(pick(fields, quantity))


def pick_text(fields: Mapping[str, Any], quantity: str) -> str | None:
    value = pick(fields, quantity)
    return None if value is None else str(value)


def f_to_c(value: float | None) -> float | None:
    return None if value is None else (value - 32) * 5 / 9


def scale(value: float | None, factor: float) -> float | None:
    return None if value is None else value * factor


def dewpoint_c(temp_c: float | None, humidity_pct: float | None) -> float | None:
    """Magnus approximation of the dew point in Celsius."""
    if temp_c is None or humidity_pct is None or humidity_pct <= 0:
        return None
    gamma = (MAGNUS_A * temp_c) / (MAGNUS_B + temp_c) + math.log(humidity_pct / 100)
    if gamma == MAGNUS_A:
        return None
    return (MAGNUS_B * gamma) / (MAGNUS_A - gamma)


def normalize(raw: Mapping[str, Any]) -> NormalizedReading:
    """Convert a raw station payload to SI units.

    Pure and deterministic: safe on empty or partial payloads.
    """
    u = lower_keys(raw)

    outdoor_temp_c = f_to_c(pick_number(u, "outdoor_temp_f"))
    outdoor_rh = pick_number(u, "outdoor_humidity")
    outdoor_dew_f = pick_number(u, "outdoor_dewpoint_f")

    indoor_temp_c = f_to_c(pick_number(u, "indoor_temp_f"))
    indoor_rh = pick_number(u, "indoor_humidity")
    indoor_dew_f = pick_number(u, "indoor_dewpoint_f")

    # Wunderground "rainin" is the last-hour accumulation; scale it to a rate
    rain_rate = scale(pick_number(u, "rain_rate_in"), IN_TO_MM)
    if rain_rate is None:
        rain_rate = scale(scale(pick_number(u, "rain_increment_in"), IN_TO_MM), 60)

    pressure_rel = pick_number(u, "pressure_rel_hpa")
    if pressure_rel is None:
        pressure_rel = scale(pick_number(u, "pressure_rel_inhg"), INHG_TO_HPA)
    pressure_abs = pick_number(u, "pressure_abs_hpa")
    if pressure_abs is None:
        pressure_abs = scale(pick_number(u, "pressure_abs_inhg"), INHG_TO_HPA)

    return NormalizedReading(
        outdoor_temp_c=outdoor_temp_c,
        outdoor_feels_like_c=f_to_c(pick_number(u, "outdoor_feels_like_f")),
        outdoor_dewpoint_c=(
            f_to_c(outdoor_dew_f) if outdoor_dew_f is not None
            else dewpoint_c(outdoor_temp_c, outdoor_rh)
        ),
        outdoor_humidity_pct=outdoor_rh,
        indoor_temp_c=indoor_temp_c,
        indoor_feels_like_c=f_to_c(pick_number(u, "indoor_feels_like_f")),
        indoor_dewpoint_c=(
            f_to_c(indoor_dew_f) if indoor_dew_f is not None
            else dewpoint_c(indoor_temp_c, indoor_rh)
        ),
        indoor_humidity_pct=indoor_rh,
        solar_wm2=pick_number(u, "solar"),
        uv_index=pick_number(u, "uv"),
        rain_rate_mm_hr=rain_rate,
        rain_hourly_mm=scale(pick_number(u, "rain_hourly_in"), IN_TO_MM),
        rain_daily_mm=scale(pick_number(u, "rain_daily_in"), IN_TO_MM),
        rain_event_mm=scale(pick_number(u, "rain_event_in"), IN_TO_MM),
        rain_24h_mm=scale(pick_number(u, "rain_24h_in"), IN_TO_MM),
        rain_weekly_mm=scale(pick_number(u, "rain_weekly_in"), IN_TO_MM),
        rain_monthly_mm=scale(pick_number(u, "rain_monthly_in"), IN_TO_MM),
        rain_yearly_mm=scale(pick_number(u, "rain_yearly_in"), IN_TO_MM),
        wind_speed_ms=scale(pick_number(u, "wind_speed_mph"), MPH_TO_MS),
        wind_gust_ms=scale(pick_number(u, "wind_gust_mph"), MPH_TO_MS),
        wind_dir_deg=pick_number(u, "wind_dir"),
        wind_dir_avg10m_deg=pick_number(u, "wind_dir_avg10m"),
        pressure_rel_hpa=pressure_rel,
        pressure_abs_hpa=pressure_abs,
        station_id=pick_text(u, "station_id"),
        stationtype=pick_text(u, "station_type"),
    )
