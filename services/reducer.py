"""Collapse a batch of sensor readings to the latest observation per sensor."""

from __future__ import annotations

import logging
import math
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Mapping, Union

from models.records import FarmInfo, SensorInfo, SensorReading

logger = logging.getLogger(__name__)

LatestReadingMap = Dict[str, SensorReading]
RawReading = Union[SensorReading, Mapping[str, Any]]


class MalformedReadingError(ValueError):
    """Raised when a raw reading row cannot be turned into a ``SensorReading``."""

    def __init__(self, reason: str, sensor_id: str | None = None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.sensor_id = sensor_id


def reduce_to_latest(readings: Iterable[RawReading]) -> LatestReadingMap:
    """Keep the reading with the greatest ``observed_at`` for every sensor.

    Readings sharing an exact timestamp are resolved in favour of the one
    encountered last. That tie-break is an artefact of iteration order and
    carries no meaning about which observation is more accurate.

    Malformed rows are logged and skipped so one bad reading never blanks the
    whole batch.
    """
    latest: LatestReadingMap = {}
    for position, raw in enumerate(readings):
        try:
            if isinstance(raw, SensorReading):
                reading = validate_reading(raw)
            else:
                reading = parse_reading(raw)
        except MalformedReadingError as exc:
            logger.warning(
                "Skipping reading at position %s: %s",
                position,
                exc.reason,
                extra={"sensor_id": exc.sensor_id, "reason": exc.reason},
            )
            continue

        current = latest.get(reading.sensor_id)
        if current is None or reading.observed_at >= current.observed_at:
            latest[reading.sensor_id] = reading
    return latest


def parse_reading(row: Mapping[str, Any]) -> SensorReading:
    """Build a ``SensorReading`` from a farm store join row."""
    if not isinstance(row, Mapping):
        raise MalformedReadingError("reading is not a mapping")

    sensor_id = str(row.get("sensor_id") or "").strip()
    if not sensor_id:
        raise MalformedReadingError("missing sensor_id")

    value = _parse_value(row.get("value"), sensor_id)
    observed_at = _parse_observed_at(row.get("observed_at"), sensor_id)

    sensor = row.get("sensor")
    if not isinstance(sensor, Mapping):
        raise MalformedReadingError("missing sensor metadata", sensor_id)
    sensor_type = str(sensor.get("type") or "").strip()
    if not sensor_type:
        raise MalformedReadingError("missing sensor type", sensor_id)
    farm_id = str(sensor.get("farm_id") or "").strip()
    if not farm_id:
        raise MalformedReadingError("missing farm_id", sensor_id)

    farm = sensor.get("farm")
    if not isinstance(farm, Mapping):
        raise MalformedReadingError("missing farm metadata", sensor_id)

    return SensorReading(
        sensor_id=sensor_id,
        value=value,
        observed_at=observed_at,
        sensor=SensorInfo(
            name=str(sensor.get("name") or sensor_id),
            type=sensor_type,
            unit=str(sensor.get("unit") or ""),
            farm_id=farm_id,
            farm=FarmInfo(
                name=str(farm.get("name") or ""),
                location=str(farm.get("location") or ""),
                notes=_clean_notes(farm.get("notes")),
            ),
        ),
    )


def validate_reading(reading: SensorReading) -> SensorReading:
    """Apply the row checks to an already typed reading.

    Returns a copy with a float value and an aware UTC timestamp.
    """
    sensor_id = str(reading.sensor_id or "").strip()
    if not sensor_id:
        raise MalformedReadingError("missing sensor_id")

    value = _parse_value(reading.value, sensor_id)
    observed_at = _parse_observed_at(reading.observed_at, sensor_id)

    sensor = reading.sensor
    if not isinstance(sensor, SensorInfo):
        raise MalformedReadingError("missing sensor metadata", sensor_id)
    if not str(sensor.type or "").strip():
        raise MalformedReadingError("missing sensor type", sensor_id)
    if not str(sensor.farm_id or "").strip():
        raise MalformedReadingError("missing farm_id", sensor_id)
    if not isinstance(sensor.farm, FarmInfo):
        raise MalformedReadingError("missing farm metadata", sensor_id)

    return replace(reading, sensor_id=sensor_id, value=value, observed_at=observed_at)


def _parse_value(raw: Any, sensor_id: str) -> float:
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        raise MalformedReadingError("missing value", sensor_id)
    if isinstance(raw, bool):
        raise MalformedReadingError("invalid numeric value", sensor_id)
    try:
        value = float(raw)
    except (TypeError, ValueError) as exc:
        raise MalformedReadingError("invalid numeric value", sensor_id) from exc
    if not math.isfinite(value):
        raise MalformedReadingError("invalid numeric value", sensor_id)
    return value


def _parse_observed_at(raw: Any, sensor_id: str) -> datetime:
    if raw is None:
        raise MalformedReadingError("missing observed_at", sensor_id)
    if isinstance(raw, datetime):
        parsed = raw
    else:
        candidate = str(raw).strip()
        if not candidate:
            raise MalformedReadingError("missing observed_at", sensor_id)
        if candidate.endswith("Z"):
            candidate = candidate[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(candidate)
        except ValueError as exc:
            raise MalformedReadingError("invalid timestamp", sensor_id) from exc

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _clean_notes(raw: Any) -> str | None:
    if raw is None:
        return None
    return str(raw).strip() or None
