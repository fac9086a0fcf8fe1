"""Open-Meteo forecast and geocoding client.

Requests are retried on transient failures (timeouts, connection errors,
HTTP 429 and 5xx) with exponential backoff between attempts. Anything else
that goes wrong, including a body that is not the JSON shape we expect, is
permanent and surfaces immediately.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import httpx

from app.schemas import CurrentWeather, DailyForecast, HourlyForecast
from models.records import Coordinates, GeocodingResult, WeatherReading
from services.weather_codes import describe_weather_code

logger = logging.getLogger(__name__)

USER_AGENT = "weather-sync/0.1"

_CURRENT_VARS = (
    "temperature_2m,relative_humidity_2m,apparent_temperature,"
    "precipitation,weather_code,wind_speed_10m"
)
_HOURLY_VARS = "temperature_2m,weather_code"
_DAILY_VARS = "weather_code,temperature_2m_max,temperature_2m_min"

_UNIT_PARAMS: Dict[str, Dict[str, str]] = {
    "metric": {
        "temperature_unit": "celsius",
        "wind_speed_unit": "kmh",
        "precipitation_unit": "mm",
    },
    "imperial": {
        "temperature_unit": "fahrenheit",
        "wind_speed_unit": "mph",
        "precipitation_unit": "inch",
    },
}


class FetchErrorKind(str, Enum):
    transient = "TRANSIENT"
    permanent = "PERMANENT"


class FetchError(Exception):
    """A provider call that did not produce a usable reading."""

    def __init__(
        self, kind: FetchErrorKind, message: str, status_code: Optional[int] = None
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.status_code = status_code

    @property
    def transient(self) -> bool:
        return self.kind is FetchErrorKind.transient


@dataclass(frozen=True)
class RequestConfig:
    timeout: float = 10.0
    max_attempts: int = 3
    backoff_seconds: float = 0.5
    backoff_factor: float = 2.0

    def backoff_for(self, attempt: int) -> float:
        """Delay after the given (1-based) failed attempt."""
        return self.backoff_seconds * (self.backoff_factor ** (attempt - 1))


class WeatherSourceClient:
    """Fetches current conditions and forecasts for a coordinate pair."""

    def __init__(
        self,
        base_url: str,
        geocoding_url: str,
        request_config: Optional[RequestConfig] = None,
        http_client: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.geocoding_url = geocoding_url.rstrip("/")
        self.request_config = request_config or RequestConfig()
        self._owns_client = http_client is None
        self._client = http_client or httpx.Client(
            timeout=self.request_config.timeout,
            headers={"User-Agent": USER_AGENT},
        )
        self._sleep = sleep

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def fetch(self, coordinates: Coordinates, units: str) -> WeatherReading:
        unit_params = _UNIT_PARAMS.get(units)
        if unit_params is None:
            raise ValueError(f"Unsupported unit system {units!r}.")

        params: Dict[str, Any] = {
            "latitude": coordinates.latitude,
            "longitude": coordinates.longitude,
            "current": _CURRENT_VARS,
            "hourly": _HOURLY_VARS,
            "daily": _DAILY_VARS,
            "timezone": "auto",
            **unit_params,
        }
        logger.info(
            "Fetching weather data",
            extra={
                "latitude": coordinates.latitude,
                "longitude": coordinates.longitude,
                "units": units,
            },
        )
        payload = self._get_json(f"{self.base_url}/forecast", params)
        return self._parse_forecast(payload, units)

    def search_locations(self, name: str, count: int = 10) -> List[GeocodingResult]:
        query = name.strip()
        if not query:
            raise ValueError("Search query must not be empty.")

        payload = self._get_json(
            f"{self.geocoding_url}/search",
            {"name": query, "count": count, "language": "en", "format": "json"},
        )
        results = payload.get("results")
        if results is None:
            return []
        if not isinstance(results, list):
            raise FetchError(FetchErrorKind.permanent, "Geocoding results were not a list.")

        matches: List[GeocodingResult] = []
        for item in results:
            if not isinstance(item, dict):
                continue
            latitude = _optional_float(item.get("latitude"), "latitude")
            longitude = _optional_float(item.get("longitude"), "longitude")
            if latitude is None or longitude is None:
                continue
            matches.append(
                GeocodingResult(
                    name=str(item.get("name") or ""),
                    country=str(item.get("country") or ""),
                    country_code=str(item.get("country_code") or ""),
                    latitude=latitude,
                    longitude=longitude,
                    admin1=item.get("admin1"),
                )
            )
        return matches

    def _get_json(self, url: str, params: Dict[str, Any]) -> Dict[str, Any]:
        attempts = max(self.request_config.max_attempts, 1)
        last_error: Optional[FetchError] = None

        for attempt in range(1, attempts + 1):
            try:
                response = self._client.get(
                    url, params=params, timeout=self.request_config.timeout
                )
            except httpx.TimeoutException:
                last_error = FetchError(
                    FetchErrorKind.transient,
                    f"Request timed out after {self.request_config.timeout}s",
                )
            except httpx.TransportError as exc:
                last_error = FetchError(FetchErrorKind.transient, f"Network failure: {exc}")
            except httpx.RequestError as exc:
                raise FetchError(FetchErrorKind.permanent, f"Request failed: {exc}") from exc
            else:
                status_code = response.status_code
                if status_code == 429 or status_code >= 500:
                    last_error = FetchError(
                        FetchErrorKind.transient,
                        f"Provider returned HTTP {status_code}",
                        status_code=status_code,
                    )
                elif status_code >= 400:
                    detail = response.text.strip()[:200] or "no detail provided"
                    raise FetchError(
                        FetchErrorKind.permanent,
                        f"Provider returned HTTP {status_code}: {detail}",
                        status_code=status_code,
                    )
                else:
                    return self._decode(response)

            logger.warning(
                "Provider request failed: %s",
                last_error.message,
                extra={"attempt": attempt},
            )
            if attempt < attempts:
                self._sleep(self.request_config.backoff_for(attempt))

        assert last_error is not None
        raise FetchError(
            FetchErrorKind.transient,
            f"{last_error.message} (gave up after {attempts} attempts)",
            status_code=last_error.status_code,
        )

    @staticmethod
    def _decode(response: httpx.Response) -> Dict[str, Any]:
        try:
            payload = response.json()
        except ValueError as exc:
            raise FetchError(
                FetchErrorKind.permanent, "Provider response was not valid JSON"
            ) from exc
        if not isinstance(payload, dict):
            raise FetchError(FetchErrorKind.permanent, "Unexpected provider response shape")
        return payload

    @staticmethod
    def _parse_forecast(payload: Dict[str, Any], units: str) -> WeatherReading:
        current_node = payload.get("current")
        if not isinstance(current_node, dict):
            raise FetchError(
                FetchErrorKind.permanent, "Provider response did not include current conditions"
            )

        weather_code = _optional_int(current_node.get("weather_code"), "current.weather_code")
        current = CurrentWeather(
            temperature=_optional_float(current_node.get("temperature_2m"), "current.temperature_2m"),
            apparent_temperature=_optional_float(
                current_node.get("apparent_temperature"), "current.apparent_temperature"
            ),
            humidity=_optional_float(
                current_node.get("relative_humidity_2m"), "current.relative_humidity_2m"
            ),
            precipitation=_optional_float(current_node.get("precipitation"), "current.precipitation"),
            weather_code=weather_code,
            weather_description=describe_weather_code(weather_code),
            wind_speed=_optional_float(current_node.get("wind_speed_10m"), "current.wind_speed_10m"),
        )

        hourly: List[HourlyForecast] = []
        hourly_node = payload.get("hourly")
        if isinstance(hourly_node, dict):
            times = _optional_list(hourly_node.get("time"), "hourly.time")
            temps = _optional_list(hourly_node.get("temperature_2m"), "hourly.temperature_2m")
            codes = _optional_list(hourly_node.get("weather_code"), "hourly.weather_code") or []
            if times is not None and temps is not None:
                for index in range(min(len(times), len(temps))):
                    code = _optional_int(codes[index], "hourly.weather_code") if index < len(codes) else None
                    hourly.append(
                        HourlyForecast(
                            time=str(times[index]),
                            temperature=_optional_float(temps[index], "hourly.temperature_2m"),
                            weather_code=code,
                            weather_description=describe_weather_code(code),
                        )
                    )

        daily: List[DailyForecast] = []
        daily_node = payload.get("daily")
        if isinstance(daily_node, dict):
            dates = _optional_list(daily_node.get("time"), "daily.time")
            maxima = _optional_list(daily_node.get("temperature_2m_max"), "daily.temperature_2m_max")
            minima = _optional_list(daily_node.get("temperature_2m_min"), "daily.temperature_2m_min")
            codes = _optional_list(daily_node.get("weather_code"), "daily.weather_code") or []
            if dates is not None and maxima is not None and minima is not None:
                for index in range(min(len(dates), len(maxima), len(minima))):
                    code = _optional_int(codes[index], "daily.weather_code") if index < len(codes) else None
                    daily.append(
                        DailyForecast(
                            date=str(dates[index]),
                            temperature_max=_optional_float(maxima[index], "daily.temperature_2m_max"),
                            temperature_min=_optional_float(minima[index], "daily.temperature_2m_min"),
                            weather_code=code,
                            weather_description=describe_weather_code(code),
                        )
                    )

        timezone_name = payload.get("timezone")
        return WeatherReading(
            current=current,
            units=units,
            timezone=str(timezone_name) if timezone_name else "UTC",
            hourly_forecast=hourly,
            daily_forecast=daily,
        )


def _optional_float(value: Any, field_name: str) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise FetchError(FetchErrorKind.permanent, f"Invalid numeric value for {field_name}")
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError) as exc:
        raise FetchError(
            FetchErrorKind.permanent, f"Invalid numeric value for {field_name}"
        ) from exc
    if not math.isfinite(number):
        raise FetchError(FetchErrorKind.permanent, f"Non-finite value for {field_name}")
    return number


def _optional_int(value: Any, field_name: str) -> Optional[int]:
    number = _optional_float(value, field_name)
    if number is None:
        return None
    if not number.is_integer():
        raise FetchError(FetchErrorKind.permanent, f"Expected an integer for {field_name}")
    return int(number)


def _optional_list(value: Any, field_name: str) -> Optional[list]:
    if value is None:
        return None
    if not isinstance(value, list):
        raise FetchError(FetchErrorKind.permanent, f"Expected a list for {field_name}")
    return value
