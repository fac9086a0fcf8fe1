"""Detection of implausible changes between consecutive readings."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

from app.schemas import WeatherSnapshot
from models.records import WeatherReading
from services.weather_codes import describe_weather_code, weather_code_severity

logger = logging.getLogger(__name__)

_MM_PER_INCH = 25.4
_FAHRENHEIT_PER_CELSIUS = 1.8


@dataclass(frozen=True)
class ConflictThresholds:
    """Tolerances for consecutive readings, expressed in metric units.

    Defaults: a temperature swing above 10 °C, a precipitation swing above
    20 mm, or a jump of 4+ weather severity classes (clear sky to heavy rain
    or a thunderstorm) counts as a conflict when the readings are less than
    6 hours apart. Imperial snapshots are compared against converted
    tolerances.
    """

    temperature_delta: float = 10.0
    precipitation_delta: float = 20.0
    window_hours: float = 6.0
    severity_jump: int = 4


@dataclass(frozen=True)
class ConflictResult:
    conflict: bool
    description: Optional[str] = None


NO_CONFLICT = ConflictResult(conflict=False)


class ConflictDetector:
    """Advisory comparison of a fresh reading against the latest snapshot."""

    def __init__(self, thresholds: Optional[ConflictThresholds] = None) -> None:
        self.thresholds = thresholds or ConflictThresholds()

    def detect(
        self,
        previous: Optional[WeatherSnapshot],
        candidate: WeatherReading,
        now: Optional[datetime] = None,
    ) -> ConflictResult:
        if previous is None:
            return NO_CONFLICT

        observed_at = now or datetime.now(timezone.utc)
        elapsed_hours = max((observed_at - previous.fetched_at).total_seconds() / 3600, 0.0)
        if elapsed_hours >= self.thresholds.window_hours:
            return NO_CONFLICT

        old, new = previous.current, candidate.current
        findings: List[str] = []

        if previous.units == candidate.units:
            imperial = candidate.units == "imperial"
            temperature_limit = self.thresholds.temperature_delta * (
                _FAHRENHEIT_PER_CELSIUS if imperial else 1.0
            )
            precipitation_limit = self.thresholds.precipitation_delta / (
                _MM_PER_INCH if imperial else 1.0
            )

            if old.temperature is not None and new.temperature is not None:
                delta = abs(new.temperature - old.temperature)
                if delta > temperature_limit:
                    findings.append(
                        f"temperature changed by {delta:.1f} degrees "
                        f"(from {old.temperature:.1f} to {new.temperature:.1f})"
                    )

            if old.precipitation is not None and new.precipitation is not None:
                delta = abs(new.precipitation - old.precipitation)
                if delta > precipitation_limit:
                    findings.append(
                        f"precipitation changed by {delta:.1f} "
                        f"(from {old.precipitation:.1f} to {new.precipitation:.1f})"
                    )

        old_severity = weather_code_severity(old.weather_code)
        new_severity = weather_code_severity(new.weather_code)
        if old_severity is not None and new_severity is not None:
            jump = abs(new_severity - old_severity)
            if jump >= self.thresholds.severity_jump:
                findings.append(
                    f"weather code changed from {old.weather_code} "
                    f"({describe_weather_code(old.weather_code)}) to {new.weather_code} "
                    f"({describe_weather_code(new.weather_code)}), "
                    f"{jump} severity levels"
                )

        if not findings:
            return NO_CONFLICT

        description = (
            f"{'; '.join(findings)} within {elapsed_hours:.1f} hours of the previous "
            f"snapshot fetched at {previous.fetched_at.isoformat()}"
        )
        logger.warning(
            "Conflict detected: %s",
            description,
            extra={"location_id": previous.location_id, "conflict": True},
        )
        return ConflictResult(conflict=True, description=description)
