"""Domain values passed between services before they are persisted."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from app.schemas import CurrentWeather, DailyForecast, HourlyForecast


@dataclass(frozen=True, slots=True)
class Coordinates:
    """A validated latitude/longitude pair."""

    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        if not -90.0 <= self.latitude <= 90.0:
            raise ValueError(f"Latitude {self.latitude} is outside [-90, 90].")
        if not -180.0 <= self.longitude <= 180.0:
            raise ValueError(f"Longitude {self.longitude} is outside [-180, 180].")


@dataclass(slots=True)
class WeatherReading:
    """Parsed provider response that has not been stored yet."""

    current: CurrentWeather
    units: str
    timezone: str = "UTC"
    hourly_forecast: List[HourlyForecast] = field(default_factory=list)
    daily_forecast: List[DailyForecast] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class GeocodingResult:
    """A single match from the provider's place search."""

    name: str
    country: str
    country_code: str
    latitude: float
    longitude: float
    admin1: Optional[str] = None
