from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from app.schemas import CurrentWeather, WeatherSnapshot
from storage.snapshot_store import SnapshotStore, StorageError

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


def _snapshot(location_id: str = "loc-1", age: timedelta = timedelta(0), temperature: float = 20.0) -> WeatherSnapshot:
    return WeatherSnapshot(
        location_id=location_id,
        current=CurrentWeather(temperature=temperature, weather_code=0),
        fetched_at=NOW - age,
    )


def _store(**kwargs) -> SnapshotStore:
    return SnapshotStore(clock=lambda: NOW, **kwargs)


def test_latest_for_unknown_location_is_none() -> None:
    assert _store().latest_for("loc-1") is None


def test_latest_is_most_recent_by_fetch_time() -> None:
    store = _store()
    newer = _snapshot(age=timedelta(minutes=5), temperature=21.0)
    older = _snapshot(age=timedelta(hours=1), temperature=19.0)

    store.append(newer)
    store.append(older)

    assert store.latest_for("loc-1") == newer
    assert store.count_for("loc-1") == 2


def test_history_is_newest_first_with_paging() -> None:
    store = _store()
    for minutes in (30, 20, 10, 0):
        store.append(_snapshot(age=timedelta(minutes=minutes), temperature=float(minutes)))

    page = store.history("loc-1", limit=2, offset=1)

    assert [item.current.temperature for item in page] == [10.0, 20.0]
    assert store.history("other") == []


def test_snapshots_are_immutable() -> None:
    snapshot = _snapshot()

    with pytest.raises(ValueError):
        snapshot.conflict_detected = True  # type: ignore[misc]


def test_append_evicts_snapshots_past_retention() -> None:
    store = _store(retention=timedelta(hours=48))
    store.append(_snapshot(age=timedelta(hours=49)))
    store.append(_snapshot(location_id="loc-2", age=timedelta(hours=50)))

    store.append(_snapshot(age=timedelta(hours=1)))

    assert store.count_for("loc-1") == 1
    assert store.latest_for("loc-2") is None


def test_purge_expired_reports_removed_count() -> None:
    store = SnapshotStore(retention=timedelta(hours=1), clock=lambda: NOW - timedelta(days=1))
    store.append(_snapshot(age=timedelta(hours=3)))
    store.append(_snapshot(age=timedelta(minutes=10)))

    assert store.purge_expired(now=NOW) == 1
    assert store.count_for("loc-1") == 1


def test_delete_for_removes_every_snapshot_of_location() -> None:
    store = _store()
    store.append(_snapshot())
    store.append(_snapshot(age=timedelta(minutes=1)))
    store.append(_snapshot(location_id="loc-2"))

    assert store.delete_for("loc-1") == 2
    assert store.latest_for("loc-1") is None
    assert store.count_for("loc-2") == 1


def test_persists_json_lines_and_reloads(tmp_path) -> None:
    path = tmp_path / "snapshots.jsonl"
    store = _store(persistence_path=path)
    first = _snapshot(age=timedelta(minutes=10))
    second = _snapshot(age=timedelta(minutes=1), temperature=22.5)
    store.append(first)
    store.append(second)

    assert len(path.read_text().splitlines()) == 2

    reloaded = _store(persistence_path=path)
    assert reloaded.latest_for("loc-1") == second
    assert [item.id for item in reloaded.history("loc-1")] == [second.id, first.id]


def test_reload_skips_unreadable_lines(tmp_path) -> None:
    path = tmp_path / "snapshots.jsonl"
    good = _snapshot()
    path.write_text("not json\n\n" + good.model_dump_json() + "\n")

    store = _store(persistence_path=path)

    assert store.latest_for("loc-1") == good


def test_write_failure_raises_storage_error_and_keeps_previous(tmp_path) -> None:
    path = tmp_path / "snapshots.jsonl"
    store = _store(persistence_path=path)
    previous = _snapshot(age=timedelta(minutes=30))
    store.append(previous)

    path.unlink()
    path.mkdir()

    with pytest.raises(StorageError):
        store.append(_snapshot())

    assert store.latest_for("loc-1") == previous
    assert store.count_for("loc-1") == 1
