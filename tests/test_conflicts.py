from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

from app.schemas import CurrentWeather, WeatherSnapshot
from models.records import WeatherReading
from services.conflicts import ConflictDetector, ConflictThresholds

FETCHED_AT = datetime(2026, 10, 18, 6, 0, tzinfo=timezone.utc)


def _snapshot(
    temperature: float = 20.0,
    precipitation: float = 0.0,
    weather_code: Optional[int] = 1,
    units: str = "metric",
) -> WeatherSnapshot:
    return WeatherSnapshot(
        location_id="loc-1",
        current=CurrentWeather(
            temperature=temperature, precipitation=precipitation, weather_code=weather_code
        ),
        units=units,
        fetched_at=FETCHED_AT,
    )


def _reading(
    temperature: float = 20.0,
    precipitation: float = 0.0,
    weather_code: Optional[int] = 1,
    units: str = "metric",
) -> WeatherReading:
    return WeatherReading(
        current=CurrentWeather(
            temperature=temperature, precipitation=precipitation, weather_code=weather_code
        ),
        units=units,
    )


def test_first_snapshot_never_conflicts() -> None:
    result = ConflictDetector().detect(None, _reading(temperature=45.0))

    assert result.conflict is False
    assert result.description is None


def test_large_temperature_swing_within_window_conflicts(caplog) -> None:
    detector = ConflictDetector()

    with caplog.at_level("WARNING"):
        result = detector.detect(
            _snapshot(temperature=20.0),
            _reading(temperature=32.0),
            now=FETCHED_AT + timedelta(hours=1),
        )

    assert result.conflict is True
    assert "temperature changed by 12.0 degrees" in result.description
    assert FETCHED_AT.isoformat() in result.description
    assert any("Conflict detected" in record.message for record in caplog.records)


def test_swing_outside_window_is_not_a_conflict() -> None:
    result = ConflictDetector().detect(
        _snapshot(temperature=20.0),
        _reading(temperature=32.0),
        now=FETCHED_AT + timedelta(hours=7),
    )

    assert result.conflict is False


def test_swing_at_threshold_is_not_a_conflict() -> None:
    result = ConflictDetector().detect(
        _snapshot(temperature=20.0),
        _reading(temperature=30.0),
        now=FETCHED_AT + timedelta(minutes=30),
    )

    assert result.conflict is False


def test_precipitation_swing_conflicts() -> None:
    result = ConflictDetector().detect(
        _snapshot(precipitation=0.0),
        _reading(precipitation=25.0),
        now=FETCHED_AT + timedelta(hours=2),
    )

    assert result.conflict is True
    assert "precipitation" in result.description


def test_clear_sky_to_thunderstorm_conflicts() -> None:
    result = ConflictDetector().detect(
        _snapshot(weather_code=0),
        _reading(weather_code=95),
        now=FETCHED_AT + timedelta(hours=1),
    )

    assert result.conflict is True
    assert "weather code changed from 0 (Clear sky) to 95 (Thunderstorm)" in result.description


def test_small_weather_change_is_not_a_conflict() -> None:
    result = ConflictDetector().detect(
        _snapshot(weather_code=2),
        _reading(weather_code=61),
        now=FETCHED_AT + timedelta(hours=1),
    )

    assert result.conflict is False


def test_unknown_weather_codes_are_ignored() -> None:
    result = ConflictDetector().detect(
        _snapshot(weather_code=None),
        _reading(weather_code=999),
        now=FETCHED_AT + timedelta(hours=1),
    )

    assert result.conflict is False


def test_imperial_readings_use_converted_tolerance() -> None:
    detector = ConflictDetector()
    later = FETCHED_AT + timedelta(hours=1)

    within = detector.detect(
        _snapshot(temperature=60.0, units="imperial"),
        _reading(temperature=75.0, units="imperial"),
        now=later,
    )
    beyond = detector.detect(
        _snapshot(temperature=60.0, units="imperial"),
        _reading(temperature=80.0, units="imperial"),
        now=later,
    )

    assert within.conflict is False
    assert beyond.conflict is True


def test_unit_change_skips_numeric_comparison() -> None:
    result = ConflictDetector().detect(
        _snapshot(temperature=20.0, units="metric"),
        _reading(temperature=68.0, units="imperial"),
        now=FETCHED_AT + timedelta(hours=1),
    )

    assert result.conflict is False


def test_custom_thresholds_are_honoured() -> None:
    detector = ConflictDetector(ConflictThresholds(temperature_delta=2.0, window_hours=1.0))

    inside = detector.detect(
        _snapshot(temperature=20.0), _reading(temperature=23.0), now=FETCHED_AT + timedelta(minutes=30)
    )
    outside = detector.detect(
        _snapshot(temperature=20.0), _reading(temperature=23.0), now=FETCHED_AT + timedelta(hours=1)
    )

    assert inside.conflict is True
    assert outside.conflict is False
