"""Per-location weather sync orchestration."""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Callable, Iterable, List, Optional, Tuple

from app.schemas import (
    Location,
    SyncErrorCode,
    SyncOutcome,
    SyncOutcomeStatus,
    SyncStatus,
    WeatherSnapshot,
)
from datastore.location_registry import (
    LocationNotFoundError,
    LocationRegistry,
    RegistryWriteError,
    build_default_registry,
)
from models.records import Coordinates
from services.conflicts import ConflictDetector, ConflictThresholds
from services.rate_limiter import FixedWindowRateLimiter
from services.weather_client import FetchError, RequestConfig, WeatherSourceClient
from settings import get_settings
from storage.snapshot_store import SnapshotStore, build_default_store

logger = logging.getLogger(__name__)

PROVIDER_RATE_KEY = "provider:open-meteo"
_CLAIM_ATTEMPTS = 3
_RESYNC_STATUSES = frozenset({SyncStatus.never_synced, SyncStatus.stale, SyncStatus.failed})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def effective_status(location: Location, now: datetime, stale_after: timedelta) -> SyncStatus:
    """Stored status, or ``STALE`` once the last successful sync is too old."""
    stored = location.sync_status
    if stored in (SyncStatus.in_progress, SyncStatus.never_synced):
        return stored
    if location.last_sync_at is None:
        return stored
    if now - location.last_sync_at > stale_after:
        return SyncStatus.stale
    return stored


class SyncOrchestrator:
    """Drives fetch, conflict detection, persistence and status updates.

    ``sync_location`` always resolves to a :class:`SyncOutcome` and never
    leaves a location ``IN_PROGRESS`` once it returns. Batch syncs fan out on
    a bounded thread pool and isolate failures per location.
    """

    def __init__(
        self,
        registry: LocationRegistry,
        snapshots: SnapshotStore,
        client: WeatherSourceClient,
        detector: ConflictDetector,
        rate_limiter: FixedWindowRateLimiter,
        provider_limit: int = 600,
        units: str = "metric",
        workers: int = 4,
        stale_after: timedelta = timedelta(minutes=60),
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.registry = registry
        self.snapshots = snapshots
        self.client = client
        self.detector = detector
        self.rate_limiter = rate_limiter
        self.provider_limit = provider_limit
        self.units = units
        self.stale_after = stale_after
        self._clock = clock
        self.executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="sync")

    def sync_location(self, location_id: str) -> SyncOutcome:
        """Sync one location; raises :class:`LocationNotFoundError` for unknown ids."""
        if self.registry.get(location_id) is None:
            raise LocationNotFoundError(location_id)
        return self._sync(location_id)

    def sync_all_locations(self) -> List[SyncOutcome]:
        """Sync every tracked location. One outcome per location, in registry order."""
        return self._fan_out(self.registry.list_all(), label="all")

    def sync_stale_locations(self) -> List[SyncOutcome]:
        """Sync locations that are stale, failed or have never been synced."""
        now = self._clock()
        candidates = [
            location
            for location in self.registry.list_all()
            if effective_status(location, now, self.stale_after) in _RESYNC_STATUSES
        ]
        if not candidates:
            logger.info("No stale locations found; skipping sync.")
            return []
        return self._fan_out(candidates, label="stale")

    def location_status(self, location_id: str) -> SyncStatus:
        location = self.registry.get(location_id)
        if location is None:
            raise LocationNotFoundError(location_id)
        return effective_status(location, self._clock(), self.stale_after)

    def describe(self, location: Location) -> Location:
        """Copy of ``location`` carrying its derived status."""
        status = effective_status(location, self._clock(), self.stale_after)
        return location.model_copy(update={"sync_status": status})

    def latest_snapshot(self, location_id: str) -> Optional[WeatherSnapshot]:
        return self.snapshots.latest_for(location_id)

    def history(self, location_id: str, limit: int = 10, offset: int = 0) -> List[WeatherSnapshot]:
        return self.snapshots.history(location_id, limit=limit, offset=offset)

    def shutdown(self) -> None:
        """Clean up executor and HTTP resources during application shutdown."""
        self.executor.shutdown(wait=False, cancel_futures=True)
        self.client.close()

    def _fan_out(self, locations: Iterable[Location], label: str) -> List[SyncOutcome]:
        targets = list(locations)
        logger.info(
            "Starting %s-location sync", label, extra={"location_count": len(targets)}
        )

        pending: List[Tuple[str, Future[SyncOutcome]]] = [
            (location.id, self.executor.submit(self._sync, location.id))
            for location in targets
        ]

        outcomes: List[SyncOutcome] = []
        for location_id, future in pending:
            try:
                outcomes.append(future.result())
            except LocationNotFoundError:
                outcomes.append(
                    _failed(
                        location_id,
                        SyncErrorCode.internal_error,
                        "Location was removed before it could be synced.",
                    )
                )
            except Exception as exc:
                logger.exception(
                    "Sync worker crashed", extra={"location_id": location_id}
                )
                outcomes.append(
                    _failed(location_id, SyncErrorCode.internal_error, f"Unexpected error: {exc}")
                )

        success_count = sum(1 for outcome in outcomes if outcome.succeeded)
        logger.info(
            "Sync complete",
            extra={"location_count": len(outcomes), "success_count": success_count},
        )
        return outcomes

    def _sync(self, location_id: str) -> SyncOutcome:
        start_time = time.perf_counter()
        try:
            location = self._claim(location_id)
        except RegistryWriteError as exc:
            logger.error(
                "Failed to record sync start: %s",
                exc,
                extra={"location_id": location_id, "error_code": SyncErrorCode.storage_error.value},
            )
            return _failed(location_id, SyncErrorCode.storage_error, f"Failed to record sync start: {exc}")
        if location is None:
            logger.info(
                "Sync already in progress; request declined",
                extra={"location_id": location_id},
            )
            return SyncOutcome(
                location_id=location_id,
                status=SyncOutcomeStatus.conflicting_operation,
                error_code=SyncErrorCode.conflicting_operation,
                error_message="A sync is already in progress for this location.",
            )

        outcome: Optional[SyncOutcome] = None
        try:
            outcome = self._run(location)
        except Exception as exc:
            logger.exception("Unexpected sync failure", extra={"location_id": location_id})
            outcome = _failed(location_id, SyncErrorCode.internal_error, f"Unexpected error: {exc}")
        finally:
            outcome = self._release(location_id, outcome)

        logger.info(
            "Sync finished",
            extra={
                "location_id": location_id,
                "status": outcome.status.value,
                "error_code": outcome.error_code.value if outcome.error_code else None,
                "duration_ms": int((time.perf_counter() - start_time) * 1000),
            },
        )
        return outcome

    def _claim(self, location_id: str) -> Optional[Location]:
        """Move the location to ``IN_PROGRESS`` or return None if a sync holds it."""
        for _ in range(_CLAIM_ATTEMPTS):
            current = self.registry.get(location_id)
            if current is None:
                raise LocationNotFoundError(location_id)
            if current.sync_status is SyncStatus.in_progress:
                return None
            if self.registry.compare_and_set_status(
                location_id, current.sync_status, SyncStatus.in_progress
            ):
                return current
        return None

    def _run(self, location: Location) -> SyncOutcome:
        if not self.rate_limiter.try_consume(PROVIDER_RATE_KEY, self.provider_limit):
            logger.warning(
                "Provider request budget exhausted",
                extra={"location_id": location.id, "rate_key": PROVIDER_RATE_KEY},
            )
            return _failed(
                location.id,
                SyncErrorCode.rate_limit_exceeded,
                f"Provider limit of {self.provider_limit} requests per minute reached.",
            )

        try:
            reading = self.client.fetch(
                Coordinates(latitude=location.latitude, longitude=location.longitude),
                self.units,
            )
        except FetchError as exc:
            code = (
                SyncErrorCode.transient_fetch_error
                if exc.transient
                else SyncErrorCode.permanent_fetch_error
            )
            logger.warning(
                "Weather fetch failed: %s",
                exc.message,
                extra={"location_id": location.id, "error_code": code.value},
            )
            return _failed(location.id, code, exc.message)

        fetched_at = self._clock()
        previous = self.snapshots.latest_for(location.id)
        conflict = self.detector.detect(previous, reading, now=fetched_at)
        snapshot = WeatherSnapshot(
            location_id=location.id,
            current=reading.current,
            hourly_forecast=reading.hourly_forecast,
            daily_forecast=reading.daily_forecast,
            units=reading.units,
            timezone=reading.timezone,
            fetched_at=fetched_at,
            conflict_detected=conflict.conflict,
            conflict_description=conflict.description,
        )

        try:
            self.snapshots.append(snapshot)
        except Exception as exc:
            logger.error(
                "Failed to store snapshot: %s",
                exc,
                extra={"location_id": location.id, "error_code": SyncErrorCode.storage_error.value},
            )
            return _failed(location.id, SyncErrorCode.storage_error, f"Failed to store snapshot: {exc}")

        return SyncOutcome(
            location_id=location.id,
            status=SyncOutcomeStatus.success,
            snapshot=snapshot,
        )

    def _release(self, location_id: str, outcome: Optional[SyncOutcome]) -> SyncOutcome:
        if outcome is None:
            outcome = _failed(location_id, SyncErrorCode.internal_error, "Sync was interrupted.")

        final_status = SyncStatus.success if outcome.succeeded else SyncStatus.failed
        try:
            released = self.registry.finish_sync(
                location_id,
                final_status,
                synced_at=self._clock() if outcome.succeeded else None,
            )
        except LocationNotFoundError:
            logger.warning("Location removed while syncing", extra={"location_id": location_id})
            return outcome
        except RegistryWriteError as exc:
            logger.error(
                "Failed to record sync result: %s",
                exc,
                extra={"location_id": location_id, "error_code": SyncErrorCode.storage_error.value},
            )
            return _failed(
                location_id, SyncErrorCode.storage_error, f"Failed to record sync result: {exc}"
            )

        if not released:
            logger.error(
                "Location left IN_PROGRESS by another writer",
                extra={"location_id": location_id},
            )
        return outcome


def _failed(location_id: str, code: SyncErrorCode, message: str) -> SyncOutcome:
    return SyncOutcome(
        location_id=location_id,
        status=SyncOutcomeStatus.failed,
        error_code=code,
        error_message=message,
    )


@lru_cache
def build_default_orchestrator(
    workers: Optional[int] = None,
) -> SyncOrchestrator:
    """Factory that wires the orchestrator from environment settings."""
    settings = get_settings()
    client = WeatherSourceClient(
        base_url=settings.api_base_url,
        geocoding_url=settings.geocoding_url,
        request_config=RequestConfig(
            timeout=settings.fetch_timeout_seconds,
            max_attempts=settings.fetch_max_attempts,
            backoff_seconds=settings.fetch_backoff_seconds,
        ),
    )
    detector = ConflictDetector(
        ConflictThresholds(
            temperature_delta=settings.conflict_temperature_delta,
            precipitation_delta=settings.conflict_precipitation_delta,
            window_hours=settings.conflict_window_hours,
            severity_jump=settings.conflict_severity_jump,
        )
    )
    return SyncOrchestrator(
        registry=build_default_registry(),
        snapshots=build_default_store(),
        client=client,
        detector=detector,
        rate_limiter=FixedWindowRateLimiter(),
        provider_limit=settings.provider_limit_per_minute,
        units=settings.units,
        workers=workers or settings.sync_workers,
        stale_after=timedelta(minutes=settings.stale_threshold_minutes),
    )
