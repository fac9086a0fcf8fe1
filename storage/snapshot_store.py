from __future__ import annotations
import json
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Callable, Dict, List, Optional

from app.schemas import WeatherSnapshot
from settings import get_settings


class StorageError(RuntimeError):
    """Raised when a snapshot cannot be written."""


class SnapshotStore:
    """Append-only, time-ordered weather snapshots per location.

    Snapshots older than ``retention`` are evicted on append and by
    :meth:`purge_expired`. When ``persistence_path`` is set every snapshot is
    also written as one JSON line and the file is compacted after a purge.
    """

    def __init__(
        self,
        retention: timedelta = timedelta(hours=48),
        persistence_path: Optional[Path] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.retention = retention
        self.persistence_path = persistence_path
        self._clock = clock
        self._snapshots: Dict[str, List[WeatherSnapshot]] = {}
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def append(self, snapshot: WeatherSnapshot) -> None:
        with self._lock:
            history = self._snapshots.setdefault(snapshot.location_id, [])
            history.append(snapshot)
            history.sort(key=lambda item: item.fetched_at)
            if self.persistence_path:
                try:
                    with self.persistence_path.open("a", encoding="utf-8") as handle:
                        handle.write(snapshot.model_dump_json() + "\n")
                except OSError as exc:
                    history.remove(snapshot)
                    raise StorageError(
                        f"Failed to persist snapshot for location {snapshot.location_id!r}: {exc}"
                    ) from exc
        self.purge_expired()

    def latest_for(self, location_id: str) -> Optional[WeatherSnapshot]:
        with self._lock:
            history = self._snapshots.get(location_id)
            if not history:
                return None
            return history[-1]

    def history(
        self, location_id: str, limit: int = 10, offset: int = 0
    ) -> list[WeatherSnapshot]:
        """Return snapshots newest first."""

        with self._lock:
            history = list(reversed(self._snapshots.get(location_id, [])))
        return history[offset : offset + limit]

    def count_for(self, location_id: str) -> int:
        with self._lock:
            return len(self._snapshots.get(location_id, []))

    def delete_for(self, location_id: str) -> int:
        with self._lock:
            removed = self._snapshots.pop(location_id, [])
            if removed:
                self._rewrite()
        return len(removed)

    def purge_expired(self, now: Optional[datetime] = None) -> int:
        cutoff = (now or self._clock()) - self.retention
        removed = 0
        with self._lock:
            for location_id in list(self._snapshots):
                history = self._snapshots[location_id]
                kept = [item for item in history if item.fetched_at >= cutoff]
                removed += len(history) - len(kept)
                if kept:
                    self._snapshots[location_id] = kept
                else:
                    del self._snapshots[location_id]
            if removed:
                self._rewrite()
        return removed

    def _rewrite(self) -> None:
        if not self.persistence_path:
            return
        lines = [
            snapshot.model_dump_json()
            for history in self._snapshots.values()
            for snapshot in history
        ]
        self.persistence_path.write_text("".join(f"{line}\n" for line in lines))

    def _load_from_disk(self) -> None:
        assert self.persistence_path is not None
        if not self.persistence_path.exists():
            return
        try:
            raw_lines = self.persistence_path.read_text(encoding="utf-8").splitlines()
        except OSError:
            return
        for line in raw_lines:
            if not line.strip():
                continue
            try:
                snapshot = WeatherSnapshot.model_validate_json(line)
            except ValueError:
                continue
            self._snapshots.setdefault(snapshot.location_id, []).append(snapshot)
        for history in self._snapshots.values():
            history.sort(key=lambda item: item.fetched_at)


@lru_cache
def build_default_store(path: Optional[str] = None) -> SnapshotStore:
    settings = get_settings()
    store_path = settings.snapshots_persistence_path if path is None else path
    persistence = Path(store_path) if store_path else None
    return SnapshotStore(
        retention=timedelta(hours=settings.snapshot_retention_hours),
        persistence_path=persistence,
    )
