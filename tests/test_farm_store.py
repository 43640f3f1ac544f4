"""Unit tests for the in-memory farm store."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import pytest

from datastore.farm_store import DataStoreError, FarmStore
from models.records import Farm

_BASE_TIME = datetime(2024, 3, 1, tzinfo=timezone.utc)


def _store_with_sensor(**kwargs) -> FarmStore:
    store = FarmStore(**kwargs)
    store.put_farm(Farm("farm-1", "North Field", "Valley", notes="Tomatoes"))
    store.add_member("farm-1", "user-1")
    store.put_sensor("ph-1", "farm-1", "pH sensor", "pH", "pH")
    return store


def test_fetch_user_farms_follows_membership() -> None:
    store = _store_with_sensor()
    store.put_farm(Farm("farm-2", "Other", "Elsewhere"))

    assert [farm.farm_id for farm in store.fetch_user_farms("user-1")] == ["farm-1"]
    assert store.fetch_user_farms("nobody") == []


def test_add_member_is_idempotent() -> None:
    store = _store_with_sensor()
    store.add_member("farm-1", "user-1")

    assert len(store.fetch_user_farms("user-1")) == 1


def test_unknown_references_raise_key_error() -> None:
    store = FarmStore()

    with pytest.raises(KeyError):
        store.add_member("missing", "user-1")
    with pytest.raises(KeyError):
        store.put_sensor("s", "missing", "name", "pH")
    with pytest.raises(KeyError):
        store.put_reading("missing", 1.0)


def test_fetch_latest_readings_returns_join_rows_newest_first() -> None:
    store = _store_with_sensor()
    store.put_reading("ph-1", 6.0, _BASE_TIME)
    store.put_reading("ph-1", 6.5, _BASE_TIME + timedelta(hours=2))
    store.put_reading("ph-1", 6.2, _BASE_TIME + timedelta(hours=1))

    rows = store.fetch_latest_readings_for_farms({"farm-1"})

    assert [row["value"] for row in rows] == [6.5, 6.2, 6.0]
    first = rows[0]
    assert first["observed_at"] == (_BASE_TIME + timedelta(hours=2)).isoformat()
    assert first["sensor"]["type"] == "pH"
    assert first["sensor"]["farm"] == {
        "name": "North Field",
        "location": "Valley",
        "notes": "Tomatoes",
    }


def test_fetch_latest_readings_applies_window_limit_across_sensors() -> None:
    store = _store_with_sensor()
    store.put_sensor("moist-1", "farm-1", "Moisture sensor", "Soil Moisture", "%")
    store.put_reading("moist-1", 40.0, _BASE_TIME)
    for minute in range(1, 6):
        store.put_reading("ph-1", 6.0, _BASE_TIME + timedelta(minutes=minute))

    rows = store.fetch_latest_readings_for_farms({"farm-1"}, limit=5)

    assert len(rows) == 5
    assert {row["sensor_id"] for row in rows} == {"ph-1"}


def test_fetch_latest_readings_filters_by_farm() -> None:
    store = _store_with_sensor()
    store.put_reading("ph-1", 6.0, _BASE_TIME)

    assert store.fetch_latest_readings_for_farms({"farm-2"}) == []


def test_naive_timestamps_are_treated_as_utc() -> None:
    store = _store_with_sensor()

    observed = store.put_reading("ph-1", 6.0, datetime(2024, 3, 1, 12, 0))

    assert observed == datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def test_store_persists_to_disk_and_reloads(tmp_path) -> None:
    path = tmp_path / "farms.json"
    store = _store_with_sensor(persistence_path=path)
    store.put_reading("ph-1", 5.8, _BASE_TIME)

    payload = json.loads(path.read_text())
    assert payload["members"] == {"user-1": ["farm-1"]}
    assert payload["readings"][0]["observed_at"] == _BASE_TIME.isoformat()

    reloaded = FarmStore(persistence_path=path)
    assert reloaded.get_farm("farm-1") == Farm("farm-1", "North Field", "Valley", notes="Tomatoes")
    rows = reloaded.fetch_latest_readings_for_farms({"farm-1"})
    assert [row["value"] for row in rows] == [5.8]


def test_corrupt_persistence_file_starts_empty(tmp_path) -> None:
    path = tmp_path / "farms.json"
    path.write_text("{not json")

    store = FarmStore(persistence_path=path)

    assert store.fetch_user_farms("user-1") == []


def _write_store_file(path, sensors, readings) -> None:
    path.write_text(
        json.dumps(
            {
                "farms": {"farm-1": {"name": "North Field", "location": "Valley", "notes": None}},
                "members": {"user-1": ["farm-1", "farm-9"]},
                "sensors": sensors,
                "readings": readings,
            }
        )
    )


def test_sensor_pointing_at_missing_farm_is_skipped(tmp_path) -> None:
    path = tmp_path / "farms.json"
    _write_store_file(
        path,
        sensors={
            "ph-1": {"name": "pH", "type": "pH", "unit": "pH", "farm_id": "farm-1"},
            "orphan": {"name": "pH", "type": "pH", "unit": "pH", "farm_id": "farm-9"},
        },
        readings=[
            {"sensor_id": "ph-1", "value": 6.1, "observed_at": _BASE_TIME.isoformat()},
            {"sensor_id": "orphan", "value": 4.0, "observed_at": _BASE_TIME.isoformat()},
        ],
    )
    store = FarmStore(persistence_path=path)

    rows = store.fetch_latest_readings_for_farms({"farm-1", "farm-9"})

    assert [row["sensor_id"] for row in rows] == ["ph-1"]
    assert [farm.farm_id for farm in store.fetch_user_farms("user-1")] == ["farm-1"]


def test_malformed_sensor_record_raises_data_store_error(tmp_path) -> None:
    path = tmp_path / "farms.json"
    _write_store_file(
        path,
        sensors={"broken": {"name": "pH", "type": "pH", "unit": "pH"}},
        readings=[{"sensor_id": "broken", "value": 6.1, "observed_at": _BASE_TIME.isoformat()}],
    )
    store = FarmStore(persistence_path=path)

    with pytest.raises(DataStoreError):
        store.fetch_latest_readings_for_farms({"farm-1"})


def test_malformed_membership_raises_data_store_error() -> None:
    store = _store_with_sensor()
    store._members["user-1"] = None  # type: ignore[assignment]

    with pytest.raises(DataStoreError):
        store.fetch_user_farms("user-1")
