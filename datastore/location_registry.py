from __future__ import annotations
import json
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Dict, Optional

from app.schemas import Location, LocationCreate, LocationUpdate, SyncStatus
from settings import get_settings


class LocationNotFoundError(KeyError):
    """Raised when a location id is not present in the registry."""

    def __init__(self, location_id: str) -> None:
        super().__init__(f"Location {location_id!r} not found.")
        self.location_id = location_id

    def __str__(self) -> str:
        return str(self.args[0])


class DuplicateLocationError(ValueError):
    """Raised when a location with the same name and country already exists."""


class RegistryWriteError(RuntimeError):
    """Raised when a registry change cannot be written to disk."""


class LocationRegistry:
    """Thread-safe location records with optional JSON persistence.

    Status changes go through :meth:`compare_and_set_status`, which checks and
    writes under the registry lock so that at most one caller can move a
    location into ``IN_PROGRESS``. A change whose disk write fails is rolled
    back in memory and surfaces as :class:`RegistryWriteError`; the one
    exception is :meth:`finish_sync`, which never leaves a location
    ``IN_PROGRESS``.
    """

    def __init__(self, persistence_path: Optional[Path] = None) -> None:
        self._items: Dict[str, Location] = {}
        self.persistence_path = persistence_path
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def create(self, request: LocationCreate) -> Location:
        location = Location(**request.model_dump())
        with self._lock:
            for existing in self._items.values():
                if (
                    existing.name.lower() == location.name.lower()
                    and existing.country.lower() == location.country.lower()
                ):
                    raise DuplicateLocationError(
                        f"Location already exists: {location.name}, {location.country}"
                    )
            self._commit(location.id, location)
            return location.model_copy(deep=True)

    def put(self, location: Location) -> None:
        with self._lock:
            self._commit(location.id, location.model_copy(deep=True))

    def get(self, location_id: str) -> Optional[Location]:
        with self._lock:
            item = self._items.get(location_id)
            if item is None:
                return None
            return item.model_copy(deep=True)

    def list_all(self) -> list[Location]:
        """Return deep copies of all locations ordered by name."""

        with self._lock:
            items = [item.model_copy(deep=True) for item in self._items.values()]
        return sorted(items, key=lambda item: (item.name.lower(), item.id))

    def list_favorites(self) -> list[Location]:
        return [item for item in self.list_all() if item.favorite]

    def update(self, location_id: str, changes: LocationUpdate) -> Location:
        """Apply the fields set in ``changes``; ``None`` leaves a field as is."""

        fields = changes.model_dump(exclude_none=True)
        with self._lock:
            item = self._items.get(location_id)
            if item is None:
                raise LocationNotFoundError(location_id)
            updated = item.model_copy(
                update={**fields, "updated_at": datetime.now(timezone.utc)}
            )
            self._commit(location_id, updated)
            return updated.model_copy(deep=True)

    def delete(self, location_id: str) -> None:
        with self._lock:
            if location_id not in self._items:
                raise LocationNotFoundError(location_id)
            self._commit(location_id, None)

    def compare_and_set_status(
        self, location_id: str, expected: SyncStatus, new: SyncStatus
    ) -> bool:
        """Set ``new`` only if the stored status still equals ``expected``."""

        with self._lock:
            item = self._items.get(location_id)
            if item is None:
                raise LocationNotFoundError(location_id)
            if item.sync_status is not expected:
                return False
            self._commit(
                location_id,
                item.model_copy(
                    update={"sync_status": new, "updated_at": datetime.now(timezone.utc)}
                ),
            )
            return True

    def set_last_sync_at(self, location_id: str, timestamp: datetime) -> None:
        with self._lock:
            item = self._items.get(location_id)
            if item is None:
                raise LocationNotFoundError(location_id)
            self._commit(
                location_id,
                item.model_copy(update={"last_sync_at": timestamp, "updated_at": timestamp}),
            )

    def finish_sync(
        self,
        location_id: str,
        status: SyncStatus,
        synced_at: Optional[datetime] = None,
    ) -> bool:
        """Move a location out of ``IN_PROGRESS`` to ``status``.

        ``synced_at`` is recorded as ``last_sync_at`` when given. Returns False
        if the location was not ``IN_PROGRESS``. If the write fails the
        location is left ``FAILED`` in memory, without the new ``synced_at``,
        and :class:`RegistryWriteError` is raised.
        """

        with self._lock:
            item = self._items.get(location_id)
            if item is None:
                raise LocationNotFoundError(location_id)
            if item.sync_status is not SyncStatus.in_progress:
                return False
            now = datetime.now(timezone.utc)
            changes: Dict[str, object] = {"sync_status": status, "updated_at": now}
            if synced_at is not None:
                changes["last_sync_at"] = synced_at
            try:
                self._commit(location_id, item.model_copy(update=changes))
            except RegistryWriteError:
                self._items[location_id] = item.model_copy(
                    update={"sync_status": SyncStatus.failed, "updated_at": now}
                )
                raise
            return True

    def _commit(self, location_id: str, item: Optional[Location]) -> None:
        """Swap ``item`` in (None removes it) and persist. Caller holds the lock."""

        previous = self._items.get(location_id)
        if item is None:
            self._items.pop(location_id, None)
        else:
            self._items[location_id] = item
        try:
            self._persist()
        except OSError as exc:
            if previous is None:
                self._items.pop(location_id, None)
            else:
                self._items[location_id] = previous
            raise RegistryWriteError(
                f"Failed to persist location {location_id!r}: {exc}"
            ) from exc

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        payload = {
            location_id: item.model_dump(mode="json")
            for location_id, item in self._items.items()
        }
        self.persistence_path.write_text(json.dumps(payload, indent=2, sort_keys=True))

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            raw = self.persistence_path.read_text() or "{}"
            data = json.loads(raw)
        except (OSError, json.JSONDecodeError):
            data = {}

        for location_id, payload in data.items():
            location = Location.model_validate(payload)
            # A sync cannot survive a restart of this process.
            if location.sync_status is SyncStatus.in_progress:
                location = location.model_copy(update={"sync_status": SyncStatus.failed})
            self._items[location_id] = location


@lru_cache
def build_default_registry(path: Optional[str] = None) -> LocationRegistry:
    settings = get_settings()
    registry_path = settings.locations_persistence_path if path is None else path
    persistence = Path(registry_path) if registry_path else None
    return LocationRegistry(persistence_path=persistence)
