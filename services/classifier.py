"""Threshold rules that turn latest sensor readings into advisory suggestions."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Tuple

from app.schemas import Severity, Suggestion
from models.records import SensorReading
from services.reducer import LatestReadingMap
from settings import get_settings

logger = logging.getLogger(__name__)


class SensorCategory(str, Enum):
    """Closed set of sensor families the rule tables know about."""

    ph = "ph"
    temperature = "temp"
    moisture = "moisture"
    conductivity = "ec"
    unknown = "unknown"

    @property
    def label(self) -> str:
        return _CATEGORY_LABELS[self]


_CATEGORY_LABELS = {
    SensorCategory.ph: "pH",
    SensorCategory.temperature: "Temperature",
    SensorCategory.moisture: "Soil Moisture",
    SensorCategory.conductivity: "EC",
    SensorCategory.unknown: "Unknown",
}


def resolve_category(sensor_type: str) -> SensorCategory:
    """Map a free-text sensor type onto a category.

    Matching is a case-insensitive substring test in a fixed order, so a type
    such as "Phosphate" resolves to pH and "Electrical Conductivity" to EC.
    """
    lowered = (sensor_type or "").lower()
    if "ph" in lowered:
        return SensorCategory.ph
    if "temperature" in lowered:
        return SensorCategory.temperature
    if "moisture" in lowered:
        return SensorCategory.moisture
    if "conductivity" in lowered or "ec" in lowered:
        return SensorCategory.conductivity
    return SensorCategory.unknown


@dataclass(frozen=True)
class Thresholds:
    """Canonical boundaries. Lower bounds of "low" rules are exclusive."""

    ph_low: float = 6.0
    ph_high: float = 8.0
    ph_optimal: Tuple[float, float] = (6.5, 7.5)
    temperature_low: float = 15.0
    temperature_high: float = 35.0
    temperature_optimal: Tuple[float, float] = (20.0, 28.0)
    moisture_low: float = 30.0
    moisture_high: float = 80.0
    moisture_optimal: Tuple[float, float] = (50.0, 70.0)
    ec_low: float = 0.8
    ec_high: float = 3.0
    ec_optimal: Tuple[float, float] = (1.2, 2.0)

    @classmethod
    def from_settings(cls) -> "Thresholds":
        settings = get_settings()
        return cls(temperature_low=settings.temperature_low_threshold)


@dataclass(frozen=True)
class Rule:
    boundary: str
    severity: Severity
    title: str
    template: str
    predicate: Callable[[float], bool]
    action: Optional[str] = None

    def describe(self, value: float) -> str:
        return self.template.format(value=format_value(value))


def format_value(value: float) -> str:
    return f"{value:g}"


def _below(limit: float) -> Callable[[float], bool]:
    return lambda value: value < limit


def _above(limit: float) -> Callable[[float], bool]:
    return lambda value: value > limit


def _within(bounds: Tuple[float, float]) -> Callable[[float], bool]:
    low, high = bounds
    return lambda value: low <= value <= high


def _ph_rules(t: Thresholds) -> Tuple[Rule, ...]:
    return (
        Rule(
            "low",
            Severity.critical,
            "Soil Too Acidic",
            "pH level of {value} is too low for most crops. Consider adding lime to raise pH levels.",
            _below(t.ph_low),
            "Add agricultural lime or wood ash to increase pH",
        ),
        Rule(
            "high",
            Severity.warning,
            "Soil Too Alkaline",
            "pH level of {value} is too high. Most plants prefer slightly acidic to neutral soil.",
            _above(t.ph_high),
            "Add sulfur or organic matter to lower pH",
        ),
        Rule(
            "optimal",
            Severity.success,
            "Optimal pH Level",
            "pH level of {value} is ideal for most crops. Maintain current soil management practices.",
            _within(t.ph_optimal),
        ),
    )


def _temperature_rules(t: Thresholds) -> Tuple[Rule, ...]:
    return (
        Rule(
            "low",
            Severity.warning,
            "Low Temperature Alert",
            "Temperature of {value}°C may slow plant growth. Consider protection measures.",
            _below(t.temperature_low),
            "Use row covers or greenhouse protection",
        ),
        Rule(
            "high",
            Severity.critical,
            "High Temperature Warning",
            "Temperature of {value}°C can stress plants and reduce yields.",
            _above(t.temperature_high),
            "Increase irrigation and provide shade",
        ),
        Rule(
            "optimal",
            Severity.success,
            "Ideal Growing Temperature",
            "Temperature of {value}°C is perfect for most crops. Great growing conditions!",
            _within(t.temperature_optimal),
        ),
    )


def _moisture_rules(t: Thresholds) -> Tuple[Rule, ...]:
    return (
        Rule(
            "low",
            Severity.critical,
            "Soil Too Dry",
            "Soil moisture at {value}% is too low. Plants may be stressed and need immediate watering.",
            _below(t.moisture_low),
            "Increase irrigation frequency and check drip system",
        ),
        Rule(
            "high",
            Severity.warning,
            "Soil Too Wet",
            "Soil moisture at {value}% is very high. Risk of root rot and fungal diseases.",
            _above(t.moisture_high),
            "Improve drainage and reduce watering",
        ),
        Rule(
            "optimal",
            Severity.success,
            "Perfect Soil Moisture",
            "Soil moisture at {value}% is ideal for healthy plant growth.",
            _within(t.moisture_optimal),
        ),
    )


def _conductivity_rules(t: Thresholds) -> Tuple[Rule, ...]:
    return (
        Rule(
            "low",
            Severity.info,
            "Low Nutrient Levels",
            "EC level of {value} mS/cm indicates low nutrient concentration. Consider fertilization.",
            _below(t.ec_low),
            "Add balanced fertilizer or compost",
        ),
        Rule(
            "high",
            Severity.warning,
            "High Salt Content",
            "EC level of {value} mS/cm is too high. Plants may suffer from salt stress.",
            _above(t.ec_high),
            "Flush soil with clean water and reduce fertilizer",
        ),
        Rule(
            "optimal",
            Severity.success,
            "Optimal Nutrient Levels",
            "EC level of {value} mS/cm shows good nutrient balance for healthy plant growth.",
            _within(t.ec_optimal),
        ),
    )


class ThresholdClassifier:
    """Applies per-category rule tables; the first matching rule wins."""

    def __init__(self, thresholds: Optional[Thresholds] = None) -> None:
        self.thresholds = thresholds or Thresholds()

    def rules_for(self, category: SensorCategory) -> Tuple[Rule, ...]:
        match category:
            case SensorCategory.ph:
                return _ph_rules(self.thresholds)
            case SensorCategory.temperature:
                return _temperature_rules(self.thresholds)
            case SensorCategory.moisture:
                return _moisture_rules(self.thresholds)
            case SensorCategory.conductivity:
                return _conductivity_rules(self.thresholds)
            case SensorCategory.unknown:
                return ()

    def match_rule(self, category: SensorCategory, value: float) -> Optional[Rule]:
        for rule in self.rules_for(category):
            if rule.predicate(value):
                return rule
        return None

    def classify(self, latest: LatestReadingMap) -> List[Suggestion]:
        suggestions: List[Suggestion] = []
        for index, reading in enumerate(latest.values()):
            category = resolve_category(reading.sensor.type)
            if category is SensorCategory.unknown:
                logger.debug(
                    "Ignoring unrecognised sensor type %r",
                    reading.sensor.type,
                    extra={"sensor_id": reading.sensor_id},
                )
                continue

            rule = self.match_rule(category, reading.value)
            if rule is None:
                continue
            suggestions.append(self._build(reading, category, rule, index))
        return suggestions

    @staticmethod
    def _build(
        reading: SensorReading, category: SensorCategory, rule: Rule, index: int
    ) -> Suggestion:
        return Suggestion(
            id=f"{category.value}_{rule.boundary}_{index}",
            severity=rule.severity,
            title=rule.title,
            description=rule.describe(reading.value),
            farm_id=reading.sensor.farm_id,
            farm_name=reading.sensor.farm.name,
            sensor_id=reading.sensor_id,
            sensor_type=category.label,
            value=reading.value,
            unit=reading.sensor.unit,
            observed_at=reading.observed_at,
            recommended_action=rule.action,
            is_contextual=False,
        )
