from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_API_BASE_URL_ENV = "WEATHER_API_BASE_URL"
_GEOCODING_URL_ENV = "WEATHER_GEOCODING_URL"
_UNITS_ENV = "WEATHER_UNITS"
_FETCH_TIMEOUT_ENV = "FETCH_TIMEOUT_SECONDS"
_FETCH_ATTEMPTS_ENV = "FETCH_MAX_ATTEMPTS"
_FETCH_BACKOFF_ENV = "FETCH_BACKOFF_SECONDS"
_WORKER_COUNT_ENV = "SYNC_WORKER_COUNT"
_STALE_THRESHOLD_ENV = "SYNC_STALE_THRESHOLD_MINUTES"
_SYNC_INTERVAL_ENV = "SYNC_INTERVAL_MINUTES"
_RATE_LIMIT_ENV = "RATE_LIMIT_REQUESTS_PER_MINUTE"
_PROVIDER_LIMIT_ENV = "PROVIDER_REQUESTS_PER_MINUTE"
_CONFLICT_TEMPERATURE_ENV = "CONFLICT_TEMPERATURE_DELTA"
_CONFLICT_PRECIPITATION_ENV = "CONFLICT_PRECIPITATION_DELTA"
_CONFLICT_WINDOW_ENV = "CONFLICT_WINDOW_HOURS"
_CONFLICT_SEVERITY_ENV = "CONFLICT_SEVERITY_JUMP"
_RETENTION_ENV = "SNAPSHOT_RETENTION_HOURS"
_LOCATIONS_PATH_ENV = "LOCATIONS_PERSISTENCE_PATH"
_SNAPSHOTS_PATH_ENV = "SNAPSHOTS_PERSISTENCE_PATH"
_LOG_LEVEL_ENV = "LOG_LEVEL"

_SUPPORTED_UNITS = ("metric", "imperial")


@dataclass(frozen=True)
class Settings:
    api_base_url: str
    geocoding_url: str
    units: str
    fetch_timeout_seconds: float
    fetch_max_attempts: int
    fetch_backoff_seconds: float
    sync_workers: int
    stale_threshold_minutes: int
    sync_interval_minutes: int
    rate_limit_per_minute: int
    provider_limit_per_minute: int
    conflict_temperature_delta: float
    conflict_precipitation_delta: float
    conflict_window_hours: float
    conflict_severity_jump: int
    snapshot_retention_hours: int
    locations_persistence_path: Optional[str]
    snapshots_persistence_path: Optional[str]
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_int_env(name: str, default: int, minimum: int = 1) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed >= minimum else default


def _read_float_env(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_units(default: str) -> str:
    candidate = _read_str_env(_UNITS_ENV, default).lower()
    return candidate if candidate in _SUPPORTED_UNITS else default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        api_base_url=_read_str_env(_API_BASE_URL_ENV, "https://api.open-meteo.com/v1"),
        geocoding_url=_read_str_env(
            _GEOCODING_URL_ENV, "https://geocoding-api.open-meteo.com/v1"
        ),
        units=_read_units("metric"),
        fetch_timeout_seconds=_read_float_env(_FETCH_TIMEOUT_ENV, 10.0),
        fetch_max_attempts=_read_int_env(_FETCH_ATTEMPTS_ENV, 3),
        fetch_backoff_seconds=_read_float_env(_FETCH_BACKOFF_ENV, 0.5),
        sync_workers=_read_int_env(_WORKER_COUNT_ENV, 4),
        stale_threshold_minutes=_read_int_env(_STALE_THRESHOLD_ENV, 60),
        sync_interval_minutes=_read_int_env(_SYNC_INTERVAL_ENV, 30, minimum=0),
        rate_limit_per_minute=_read_int_env(_RATE_LIMIT_ENV, 60),
        provider_limit_per_minute=_read_int_env(_PROVIDER_LIMIT_ENV, 600),
        conflict_temperature_delta=_read_float_env(_CONFLICT_TEMPERATURE_ENV, 10.0),
        conflict_precipitation_delta=_read_float_env(_CONFLICT_PRECIPITATION_ENV, 20.0),
        conflict_window_hours=_read_float_env(_CONFLICT_WINDOW_ENV, 6.0),
        conflict_severity_jump=_read_int_env(_CONFLICT_SEVERITY_ENV, 4),
        snapshot_retention_hours=_read_int_env(_RETENTION_ENV, 48),
        locations_persistence_path=_read_optional_env(
            _LOCATIONS_PATH_ENV, "./tmp/locations.json"
        ),
        snapshots_persistence_path=_read_optional_env(
            _SNAPSHOTS_PATH_ENV, "./tmp/snapshots.jsonl"
        ),
        log_level=_read_log_level("INFO"),
    )
