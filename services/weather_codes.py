"""WMO weather interpretation codes as used by Open-Meteo."""

from __future__ import annotations

from typing import Optional

UNKNOWN_DESCRIPTION = "Unknown"

WEATHER_CODE_DESCRIPTIONS = {
    0: "Clear sky",
    1: "Mainly clear",
    2: "Partly cloudy",
    3: "Overcast",
    45: "Fog",
    48: "Depositing rime fog",
    51: "Light drizzle",
    53: "Moderate drizzle",
    55: "Dense drizzle",
    56: "Light freezing drizzle",
    57: "Dense freezing drizzle",
    61: "Slight rain",
    63: "Moderate rain",
    65: "Heavy rain",
    66: "Light freezing rain",
    67: "Heavy freezing rain",
    71: "Slight snow fall",
    73: "Moderate snow fall",
    75: "Heavy snow fall",
    77: "Snow grains",
    80: "Slight rain showers",
    81: "Moderate rain showers",
    82: "Violent rain showers",
    85: "Slight snow showers",
    86: "Heavy snow showers",
    95: "Thunderstorm",
    96: "Thunderstorm with slight hail",
    99: "Thunderstorm with heavy hail",
}

# Coarse severity classes used when comparing consecutive readings.
_SEVERITY_BY_CODE = {
    0: 0,
    1: 0,
    2: 1,
    3: 1,
    45: 2,
    48: 2,
    51: 3,
    53: 3,
    55: 3,
    56: 3,
    57: 3,
    61: 3,
    63: 3,
    66: 3,
    71: 3,
    73: 3,
    77: 3,
    80: 3,
    81: 3,
    85: 3,
    65: 4,
    67: 4,
    75: 4,
    82: 4,
    86: 4,
    95: 5,
    96: 5,
    99: 5,
}


def describe_weather_code(code: Optional[int]) -> str:
    if code is None:
        return UNKNOWN_DESCRIPTION
    return WEATHER_CODE_DESCRIPTIONS.get(code, UNKNOWN_DESCRIPTION)


def weather_code_severity(code: Optional[int]) -> Optional[int]:
    """Return 0 (clear) .. 5 (thunderstorm), or None for unmapped codes."""
    if code is None:
        return None
    return _SEVERITY_BY_CODE.get(code)
