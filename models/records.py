"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Optional


@dataclass(frozen=True, slots=True)
class FarmInfo:
    """Farm metadata carried alongside every sensor reading."""

    name: str
    location: str
    notes: Optional[str] = None


@dataclass(frozen=True, slots=True)
class SensorInfo:
    """Sensor metadata joined onto a reading by the farm store."""

    name: str
    type: str
    unit: str
    farm_id: str
    farm: FarmInfo


@dataclass(frozen=True, slots=True)
class SensorReading:
    """A single timestamped observation from one sensor."""

    sensor_id: str
    value: float
    observed_at: datetime
    sensor: SensorInfo


@dataclass(frozen=True, slots=True)
class Farm:
    farm_id: str
    name: str
    location: str
    notes: Optional[str] = None


@dataclass(frozen=True, slots=True)
class SensorSnapshot:
    """Latest value of one sensor type on a farm."""

    value: float
    unit: str
    observed_at: datetime


@dataclass(slots=True)
class FarmContext:
    """Per-farm view of the latest readings, rebuilt on every pipeline run."""

    farm_id: str
    name: str
    location: str
    notes: Optional[str] = None
    sensor_values_by_type: Dict[str, SensorSnapshot] = field(default_factory=dict)
