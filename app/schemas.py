"""Pydantic schemas shared by the stores, the sync engine and the HTTP layer."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid4())


class SyncStatus(str, Enum):
    """Sync lifecycle states of a tracked location.

    ``stale`` is never written to the registry; it is derived at read time
    from ``last_sync_at`` and the freshness threshold.
    """

    never_synced = "NEVER_SYNCED"
    in_progress = "IN_PROGRESS"
    success = "SUCCESS"
    failed = "FAILED"
    stale = "STALE"


class SyncOutcomeStatus(str, Enum):
    """Result of a single sync attempt."""

    success = "SUCCESS"
    failed = "FAILED"
    conflicting_operation = "CONFLICTING_OPERATION"


class SyncErrorCode(str, Enum):
    """Machine-readable reasons attached to non-successful outcomes."""

    transient_fetch_error = "TRANSIENT_FETCH_ERROR"
    permanent_fetch_error = "PERMANENT_FETCH_ERROR"
    conflicting_operation = "CONFLICTING_OPERATION"
    storage_error = "STORAGE_ERROR"
    rate_limit_exceeded = "RATE_LIMIT_EXCEEDED"
    internal_error = "INTERNAL_ERROR"


class Location(BaseModel):
    """A tracked city together with its sync bookkeeping."""

    id: str = Field(default_factory=_new_id)
    name: str = Field(..., min_length=1)
    country: str = Field(..., min_length=1)
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    display_name: Optional[str] = None
    favorite: bool = False
    sync_status: SyncStatus = SyncStatus.never_synced
    last_sync_at: Optional[datetime] = Field(
        default=None, description="Timestamp of the last successful sync."
    )
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class LocationCreate(BaseModel):
    """Request body for adding a location to track."""

    name: str = Field(..., min_length=1, description="City name.")
    country: str = Field(..., min_length=1)
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    display_name: Optional[str] = None
    favorite: bool = False


class LocationUpdate(BaseModel):
    """Request body for editing a tracked location; omitted fields are kept."""

    display_name: Optional[str] = None
    favorite: Optional[bool] = None


class CurrentWeather(BaseModel):
    temperature: Optional[float] = None
    apparent_temperature: Optional[float] = None
    humidity: Optional[float] = None
    precipitation: Optional[float] = None
    weather_code: Optional[int] = None
    weather_description: str = "Unknown"
    wind_speed: Optional[float] = None


class HourlyForecast(BaseModel):
    time: str
    temperature: Optional[float] = None
    weather_code: Optional[int] = None
    weather_description: str = "Unknown"


class DailyForecast(BaseModel):
    date: str
    temperature_max: Optional[float] = None
    temperature_min: Optional[float] = None
    weather_code: Optional[int] = None
    weather_description: str = "Unknown"


class WeatherSnapshot(BaseModel):
    """One stored weather reading. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    location_id: str
    current: CurrentWeather
    hourly_forecast: List[HourlyForecast] = Field(default_factory=list)
    daily_forecast: List[DailyForecast] = Field(default_factory=list)
    units: str = "metric"
    timezone: str = "UTC"
    fetched_at: datetime
    conflict_detected: bool = False
    conflict_description: Optional[str] = None


class SyncResponse(BaseModel):
    """Wire representation of a sync outcome."""

    location_id: str
    status: SyncOutcomeStatus
    fetched_at: Optional[datetime] = None
    conflict_detected: Optional[bool] = None
    conflict_description: Optional[str] = None
    error_code: Optional[SyncErrorCode] = None
    error_message: Optional[str] = None


class SyncOutcome(BaseModel):
    """Return contract of one sync attempt; not persisted."""

    location_id: str
    status: SyncOutcomeStatus
    snapshot: Optional[WeatherSnapshot] = None
    error_code: Optional[SyncErrorCode] = None
    error_message: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status is SyncOutcomeStatus.success

    def to_payload(self) -> SyncResponse:
        snapshot = self.snapshot
        return SyncResponse(
            location_id=self.location_id,
            status=self.status,
            fetched_at=snapshot.fetched_at if snapshot else None,
            conflict_detected=snapshot.conflict_detected if snapshot else None,
            conflict_description=snapshot.conflict_description if snapshot else None,
            error_code=self.error_code,
            error_message=self.error_message,
        )
