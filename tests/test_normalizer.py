"""
Tests for unit normalization of station payloads.
"""

import math

import pytest

from wxstation.services.normalizer import (
    ALIASES,
    NUMERIC_FIELDS,
    NormalizedReading,
    dewpoint_c,
    normalize,
    to_number,
)


def magnus(temp_c: float, rh: float) -> float:
    a, b = 17.62, 243.12
    gamma = (a * temp_c) / (b + temp_c) + math.log(rh / 100)
    return (b * gamma) / (a - gamma)


class TestTemperature:
    """Fahrenheit to Celsius conversion."""

    @pytest.mark.parametrize("fahrenheit", [-40.0, 0.0, 32.0, 68.0, 98.6, 113.5])
    def test_outdoor_temperature_conversion(self, fahrenheit):
        """Test that tempf converts with (F-32)*5/9."""
        result = normalize({"tempf": str(fahrenheit)})

        assert result.outdoor_temp_c == pytest.approx((fahrenheit - 32) * 5 / 9)

    def test_missing_temperature_is_none(self):
        """Test that an absent field yields None, not 0."""
        result = normalize({"humidity": "50"})

        assert result.outdoor_temp_c is None
        assert result.indoor_temp_c is None

    def test_indoor_temperature_aliases(self):
        """Test that both indoor temperature spellings are recognized."""
        assert normalize({"tempinf": "77"}).indoor_temp_c == pytest.approx(25.0)
        assert normalize({"indoortempf": "77"}).indoor_temp_c == pytest.approx(25.0)

    def test_feels_like_falls_back_to_heat_index(self):
        """Test apparent temperature alias order."""
        result = normalize({"heatindexf": "95", "windchillf": "20"})

        assert result.outdoor_feels_like_c == pytest.approx(35.0)


class TestAliasPriority:
    """First alias with a usable value wins."""

    def test_first_alias_wins(self):
        """Test that tempf is preferred over outtempf."""
        result = normalize({"tempf": "70", "outtempf": "60"})

        assert result.outdoor_temp_c == pytest.approx((70 - 32) * 5 / 9)

    def test_empty_value_falls_through_to_next_alias(self):
        """Test that an empty first alias does not block the next one."""
        result = normalize({"tempf": "", "outtempf": "60"})

        assert result.outdoor_temp_c == pytest.approx((60 - 32) * 5 / 9)

    def test_keys_are_case_insensitive(self):
        """Test that firmware casing differences do not drop data."""
        result = normalize({"TempF": "50", "HUMIDITY": "40", "WindSpeedMPH": "10"})

        assert result.outdoor_temp_c == pytest.approx(10.0)
        assert result.outdoor_humidity_pct == pytest.approx(40.0)
        assert result.wind_speed_ms == pytest.approx(4.4704)

    def test_alias_table_covers_every_quantity(self):
        """Test that every alias list is non-empty and lower-case."""
        for quantity, keys in ALIASES.items():
            assert keys, quantity
            assert all(key == key.lower() for key in keys), quantity


class TestDewPoint:
    """Direct dew point fields and the Magnus fallback."""

    @pytest.mark.parametrize("temp_f,rh", [(68, 55), (50, 90), (95, 20), (32, 100)])
    def test_computed_dewpoint_matches_magnus(self, temp_f, rh):
        """Test the fallback dew point within 0.01 C."""
        result = normalize({"tempf": str(temp_f), "humidity": str(rh)})
        temp_c = (temp_f - 32) * 5 / 9

        assert result.outdoor_dewpoint_c == pytest.approx(magnus(temp_c, rh), abs=0.01)

    def test_direct_dewpoint_field_wins(self):
        """Test that dewptf is converted rather than computed."""
        result = normalize({"tempf": "61.2", "humidity": "80", "dewptf": "55.1"})

        assert result.outdoor_dewpoint_c == pytest.approx((55.1 - 32) * 5 / 9)

    def test_dewpoint_none_without_humidity(self):
        """Test that a missing input yields no dew point."""
        assert normalize({"tempf": "70"}).outdoor_dewpoint_c is None
        assert normalize({"humidity": "70"}).outdoor_dewpoint_c is None

    def test_dewpoint_none_for_zero_humidity(self):
        """Test that log(0) is never evaluated."""
        assert dewpoint_c(20.0, 0.0) is None

    def test_indoor_dewpoint_computed(self):
        """Test the indoor dew point fallback."""
        result = normalize({"tempinf": "72.3", "humidityin": "41"})

        assert result.indoor_dewpoint_c == pytest.approx(magnus((72.3 - 32) * 5 / 9, 41), abs=0.01)


class TestConversions:
    """Rain, wind and pressure units."""

    def test_wind_speed_and_gust(self):
        """Test mph to m/s."""
        result = normalize({"windspeedmph": "4.47", "windgustmph": "8.05", "winddir": "215"})

        assert result.wind_speed_ms == pytest.approx(4.47 * 0.44704)
        assert result.wind_gust_ms == pytest.approx(8.05 * 0.44704)
        assert result.wind_dir_deg == pytest.approx(215)

    def test_ten_minute_direction_aliases(self):
        """Test the averaged direction alias list."""
        assert normalize({"windavgdir": "180"}).wind_dir_avg10m_deg == pytest.approx(180)
        assert normalize({"winddir_avg10m": "90", "windavgdir": "180"}).wind_dir_avg10m_deg == pytest.approx(90)

    def test_rain_totals_in_mm(self, ecowitt_payload):
        """Test inches to millimetres for every cumulative total."""
        result = normalize(ecowitt_payload)

        assert result.rain_rate_mm_hr == pytest.approx(0.0)
        assert result.rain_event_mm == pytest.approx(0.012 * 25.4)
        assert result.rain_daily_mm == pytest.approx(0.012 * 25.4)
        assert result.rain_weekly_mm == pytest.approx(0.3 * 25.4)
        assert result.rain_monthly_mm == pytest.approx(1.02 * 25.4)
        assert result.rain_yearly_mm == pytest.approx(4.5 * 25.4)
        assert result.rain_24h_mm is None

    def test_rain_rate_from_hourly_increment(self):
        """Test the Wunderground rainin fallback."""
        result = normalize({"rainin": "0.01"})

        assert result.rain_rate_mm_hr == pytest.approx(0.01 * 25.4 * 60)

    def test_rain_rate_prefers_native_rate(self):
        """Test that rainratein wins over rainin."""
        result = normalize({"rainratein": "0.1", "rainin": "0.5"})

        assert result.rain_rate_mm_hr == pytest.approx(2.54)

    def test_pressure_native_hpa_wins(self):
        """Test that hPa fields are passed through."""
        result = normalize({"baromrelhpa": "1013.2", "baromrelin": "29.00"})

        assert result.pressure_rel_hpa == pytest.approx(1013.2)

    def test_pressure_from_inches_of_mercury(self, ecowitt_payload):
        """Test inHg to hPa for relative and absolute pressure."""
        result = normalize(ecowitt_payload)

        assert result.pressure_rel_hpa == pytest.approx(29.921 * 33.8639)
        assert result.pressure_abs_hpa == pytest.approx(29.518 * 33.8639)

    def test_wunderground_pressure(self, wunderground_payload):
        """Test that baromin feeds relative pressure."""
        result = normalize(wunderground_payload)

        assert result.pressure_rel_hpa == pytest.approx(30.01 * 33.8639)
        assert result.pressure_abs_hpa is None


class TestMetadata:
    """Station identification fields."""

    def test_station_type_from_either_protocol(self, ecowitt_payload, wunderground_payload):
        """Test stationtype / softwaretype passthrough."""
        assert normalize(ecowitt_payload).stationtype == "GW1100A_V2.1.4"
        assert normalize(wunderground_payload).stationtype == "EasyWeatherPro_V5.1.6"

    def test_station_id(self, wunderground_payload):
        """Test that the Wunderground ID is reported."""
        assert normalize(wunderground_payload).station_id == "IQUITO12"


class TestCoercion:
    """Numeric coercion never leaks NaN or Infinity."""

    @pytest.mark.parametrize("value", [None, "", "   ", "abc", "NaN", "inf", "-Infinity", True, [1], {}])
    def test_unusable_values_are_none(self, value):
        """Test that missing and malformed values coerce to None."""
        assert to_number(value) is None

    @pytest.mark.parametrize("value,expected", [("12.5", 12.5), (" 7 ", 7.0), (3, 3.0), (2.25, 2.25), ("-1e2", -100.0)])
    def test_numeric_values(self, value, expected):
        """Test decimal parsing."""
        assert to_number(value) == expected

    def test_malformed_field_yields_none(self):
        """Test that a malformed reading is None in the normalized view."""
        result = normalize({"tempf": "NaN", "humidity": "n/a", "uv": "Infinity"})

        assert result.outdoor_temp_c is None
        assert result.outdoor_humidity_pct is None
        assert result.uv_index is None
        assert result.outdoor_dewpoint_c is None

    def test_empty_payload(self):
        """Test that an empty payload normalizes to all None."""
        result = normalize({})

        assert result == NormalizedReading()
        assert all(value is None for value in result.model_dump().values())

    def test_normalize_is_deterministic(self, ecowitt_payload):
        """Test that identical input gives identical output."""
        assert normalize(ecowitt_payload) == normalize(dict(ecowitt_payload))

    def test_numeric_fields_excludes_metadata(self):
        """Test the numeric field list used for statistics."""
        assert "station_id" not in NUMERIC_FIELDS
        assert "stationtype" not in NUMERIC_FIELDS
        assert "outdoor_temp_c" in NUMERIC_FIELDS
