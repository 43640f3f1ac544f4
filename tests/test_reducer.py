"""Unit tests for the latest-per-sensor reduction."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Dict

from models.records import FarmInfo, SensorInfo, SensorReading
from services.advice import LocalAdviceGenerator
from services.augmenter import ContextualAugmenter
from services.classifier import ThresholdClassifier
from services.pipeline import run_pipeline
from services.reducer import parse_reading, reduce_to_latest, validate_reading


def _row(sensor_id: str, value: Any, observed_at: Any, sensor_type: str = "pH") -> Dict[str, Any]:
    return {
        "sensor_id": sensor_id,
        "value": value,
        "observed_at": observed_at,
        "sensor": {
            "name": f"{sensor_type} sensor",
            "type": sensor_type,
            "unit": "pH",
            "farm_id": "farm-1",
            "farm": {"name": "North Field", "location": "Valley", "notes": "Tomatoes"},
        },
    }


def _reading(sensor_id: str, value: float, minute: int) -> SensorReading:
    return SensorReading(
        sensor_id=sensor_id,
        value=value,
        observed_at=datetime(2024, 1, 1, 12, minute, tzinfo=timezone.utc),
        sensor=SensorInfo(
            name="pH sensor",
            type="pH",
            unit="pH",
            farm_id="farm-1",
            farm=FarmInfo(name="North Field", location="Valley"),
        ),
    )


def test_reduce_empty_input_returns_empty_map() -> None:
    assert reduce_to_latest([]) == {}


def test_reduce_keeps_latest_reading_per_sensor() -> None:
    rows = [
        _row("sensor-a", 6.1, "2024-01-01T10:00:00Z"),
        _row("sensor-b", 7.0, "2024-01-01T09:00:00Z"),
        _row("sensor-a", 5.5, "2024-01-01T12:00:00Z"),
        _row("sensor-a", 6.8, "2024-01-01T11:00:00Z"),
        _row("sensor-b", 7.4, "2024-01-01T08:00:00Z"),
    ]

    latest = reduce_to_latest(rows)

    assert set(latest) == {"sensor-a", "sensor-b"}
    assert latest["sensor-a"].value == 5.5
    assert latest["sensor-a"].observed_at == datetime(2024, 1, 1, 12, tzinfo=timezone.utc)
    assert latest["sensor-b"].value == 7.0


def test_reduce_prefers_later_entry_on_timestamp_tie() -> None:
    readings = [_reading("sensor-a", 6.0, 5), _reading("sensor-a", 7.0, 5)]

    latest = reduce_to_latest(readings)

    assert latest["sensor-a"].value == 7.0


def test_reduce_accepts_parsed_readings_and_rows_together() -> None:
    readings = [
        _reading("sensor-a", 6.0, 0),
        _row("sensor-a", 6.6, "2024-01-01T12:30:00+00:00"),
    ]

    latest = reduce_to_latest(readings)

    assert latest["sensor-a"].value == 6.6


def test_reduce_skips_malformed_rows_and_logs(caplog) -> None:
    rows = [
        _row("sensor-a", 6.5, "2024-01-01T10:00:00Z"),
        _row("sensor-b", None, "2024-01-01T10:00:00Z"),
        _row("sensor-c", 7.0, None),
        _row("sensor-d", "not-a-number", "2024-01-01T10:00:00Z"),
        _row("sensor-e", 7.0, "yesterday"),
        {"sensor_id": "sensor-f", "value": 1.0, "observed_at": "2024-01-01T10:00:00Z"},
        _row("", 7.0, "2024-01-01T10:00:00Z"),
    ]

    with caplog.at_level(logging.WARNING):
        latest = reduce_to_latest(rows)

    assert list(latest) == ["sensor-a"]
    reasons = {getattr(record, "reason", None) for record in caplog.records}
    assert {
        "missing value",
        "missing observed_at",
        "invalid numeric value",
        "invalid timestamp",
        "missing sensor metadata",
        "missing sensor_id",
    } <= reasons


def test_parse_reading_normalizes_timestamps_and_notes() -> None:
    row = _row("sensor-a", "6.4", "2024-01-01T10:00:00")
    row["sensor"]["farm"]["notes"] = "   "

    reading = parse_reading(row)

    assert reading.value == 6.4
    assert reading.observed_at.tzinfo == timezone.utc
    assert reading.sensor.farm.notes is None
    assert reading.sensor.farm_id == "farm-1"


def test_reduce_validates_typed_readings(caplog) -> None:
    good = _reading("sensor-a", 5.5, 0)
    readings = [
        good,
        replace(_reading("sensor-b", 6.0, 0), value=None),
        replace(_reading("sensor-c", 6.0, 0), value=float("nan")),
        replace(_reading("sensor-d", 6.0, 0), observed_at=None),
        replace(_reading("sensor-e", 6.0, 0), sensor=None),
        replace(_reading("sensor-f", 6.0, 0), sensor=replace(good.sensor, type="")),
    ]

    with caplog.at_level(logging.WARNING):
        latest = reduce_to_latest(readings)

    assert list(latest) == ["sensor-a"]
    reasons = {getattr(record, "reason", None) for record in caplog.records}
    assert {
        "missing value",
        "invalid numeric value",
        "missing observed_at",
        "missing sensor metadata",
        "missing sensor type",
    } <= reasons


def test_pipeline_tolerates_malformed_typed_readings() -> None:
    classifier = ThresholdClassifier()
    augmenter = ContextualAugmenter(LocalAdviceGenerator(), classifier=classifier)
    readings = [
        _reading("sensor-a", 5.5, 0),
        replace(_reading("sensor-b", 6.0, 0), value=None),
        replace(_reading("sensor-c", 6.0, 0), value=float("nan")),
    ]

    output = asyncio.run(run_pipeline(readings, classifier, augmenter))

    rule_based = [s for s in output.suggestions if not s.is_contextual]
    assert [s.title for s in rule_based] == ["Soil Too Acidic"]
    assert rule_based[0].sensor_id == "sensor-a"


def test_validate_reading_normalizes_naive_timestamp() -> None:
    naive = replace(_reading("sensor-a", 6.0, 0), observed_at=datetime(2024, 1, 1, 12, 0), value=6)

    reading = validate_reading(naive)

    assert reading.observed_at == datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
    assert isinstance(reading.value, float)


def test_readings_without_farm_id_are_skipped(caplog) -> None:
    alpha = _row("sensor-a", 5.5, "2024-01-01T10:00:00Z")
    alpha["sensor"]["farm_id"] = None
    alpha["sensor"]["farm"]["name"] = "Alpha"
    beta = _row("sensor-b", 5.5, "2024-01-01T10:00:00Z")
    del beta["sensor"]["farm_id"]
    beta["sensor"]["farm"]["name"] = "Beta"
    typed = _reading("sensor-c", 5.5, 0)
    typed = replace(typed, sensor=replace(typed.sensor, farm_id=""))

    with caplog.at_level(logging.WARNING):
        latest = reduce_to_latest([alpha, beta, typed])

    assert latest == {}
    skipped = [r for r in caplog.records if getattr(r, "reason", None) == "missing farm_id"]
    assert {r.sensor_id for r in skipped} == {"sensor-a", "sensor-b", "sensor-c"}
