from __future__ import annotations
import json
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Any, Dict, Iterable, List, Optional

from models.records import Farm
from settings import get_settings


class DataStoreError(RuntimeError):
    """Raised when the farm store cannot serve a query."""


class FarmStore:
    """In-memory stand-in for the hosted farm, sensor and reading tables."""

    def __init__(self, name: str = "farms", persistence_path: Optional[Path] = None) -> None:
        self.name = name
        self._farms: Dict[str, Farm] = {}
        self._members: Dict[str, List[str]] = {}
        self._sensors: Dict[str, Dict[str, str]] = {}
        self._readings: List[Dict[str, Any]] = []
        self.persistence_path = persistence_path
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def put_farm(self, farm: Farm) -> None:
        with self._lock:
            self._farms[farm.farm_id] = farm
            self._persist()

    def get_farm(self, farm_id: str) -> Optional[Farm]:
        with self._lock:
            return self._farms.get(farm_id)

    def add_member(self, farm_id: str, user_id: str) -> None:
        with self._lock:
            if farm_id not in self._farms:
                raise KeyError(f"Farm {farm_id!r} not found.")
            farm_ids = self._members.setdefault(user_id, [])
            if farm_id not in farm_ids:
                farm_ids.append(farm_id)
            self._persist()

    def put_sensor(
        self, sensor_id: str, farm_id: str, name: str, sensor_type: str, unit: str = ""
    ) -> None:
        with self._lock:
            if farm_id not in self._farms:
                raise KeyError(f"Farm {farm_id!r} not found.")
            self._sensors[sensor_id] = {
                "name": name,
                "type": sensor_type,
                "unit": unit,
                "farm_id": farm_id,
            }
            self._persist()

    def put_reading(
        self, sensor_id: str, value: float, observed_at: Optional[datetime] = None
    ) -> datetime:
        """Record a reading and return its normalized UTC timestamp."""
        if observed_at is None:
            observed_at = datetime.now(timezone.utc)
        elif observed_at.tzinfo is None:
            observed_at = observed_at.replace(tzinfo=timezone.utc)
        observed_at = observed_at.astimezone(timezone.utc)

        with self._lock:
            if sensor_id not in self._sensors:
                raise KeyError(f"Sensor {sensor_id!r} not found.")
            self._readings.append(
                {"sensor_id": sensor_id, "value": value, "observed_at": observed_at}
            )
            self._persist()
        return observed_at

    def fetch_user_farms(self, user_id: str) -> List[Farm]:
        with self._lock:
            try:
                return [
                    self._farms[farm_id]
                    for farm_id in self._members.get(user_id, [])
                    if farm_id in self._farms
                ]
            except (KeyError, TypeError, AttributeError) as exc:
                raise DataStoreError(f"Could not load farms for user {user_id!r}.") from exc

    def fetch_latest_readings_for_farms(
        self, farm_ids: Iterable[str], limit: int = 50
    ) -> List[Dict[str, Any]]:
        """Join readings with sensor and farm metadata, newest first across all sensors.

        Only the ``limit`` most recent rows are returned, so a chatty sensor can
        crowd out the others and readings arrive interleaved.
        """
        wanted = set(farm_ids)
        with self._lock:
            try:
                rows = self._join_readings(wanted)
            except (KeyError, TypeError, AttributeError) as exc:
                raise DataStoreError("Could not join readings with sensor metadata.") from exc

        try:
            rows.sort(key=lambda row: row["observed_at"], reverse=True)
            latest = rows[:limit]
            for row in latest:
                row["observed_at"] = row["observed_at"].isoformat()
        except (TypeError, AttributeError) as exc:
            raise DataStoreError("Stored reading timestamps are inconsistent.") from exc
        return latest

    def _join_readings(self, wanted: set[str]) -> List[Dict[str, Any]]:
        rows = []
        for reading in self._readings:
            sensor = self._sensors.get(reading["sensor_id"])
            if sensor is None or sensor["farm_id"] not in wanted:
                continue
            # Sensors whose farm record is gone are orphans, not failures.
            farm = self._farms.get(sensor["farm_id"])
            if farm is None:
                continue
            rows.append(
                {
                    "sensor_id": reading["sensor_id"],
                    "value": reading["value"],
                    "observed_at": reading["observed_at"],
                    "sensor": {
                        **sensor,
                        "farm": {
                            "name": farm.name,
                            "location": farm.location,
                            "notes": farm.notes,
                        },
                    },
                }
            )
        return rows

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        payload = {
            "farms": {
                farm_id: {
                    "name": farm.name,
                    "location": farm.location,
                    "notes": farm.notes,
                }
                for farm_id, farm in self._farms.items()
            },
            "members": self._members,
            "sensors": self._sensors,
            "readings": [
                {**reading, "observed_at": reading["observed_at"].isoformat()}
                for reading in self._readings
            ],
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

        for farm_id, payload in data.get("farms", {}).items():
            self._farms[farm_id] = Farm(farm_id=farm_id, **payload)
        for user_id, farm_ids in data.get("members", {}).items():
            self._members[user_id] = list(farm_ids)
        self._sensors.update(data.get("sensors", {}))
        for reading in data.get("readings", []):
            self._readings.append(
                {**reading, "observed_at": datetime.fromisoformat(reading["observed_at"])}
            )


@lru_cache
def build_default_store(path: Optional[str] = None) -> FarmStore:
    settings = get_settings()
    store_path = settings.store_persistence_path if path is None else path
    persistence = Path(store_path) if store_path else None
    return FarmStore(persistence_path=persistence)
