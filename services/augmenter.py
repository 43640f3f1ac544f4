"""Farm-level contextual suggestions informed by notes, location and advice text."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from app.schemas import Severity, Suggestion
from models.records import FarmContext, SensorSnapshot
from services.advice import AdviceGenerator
from services.classifier import (
    Rule,
    SensorCategory,
    ThresholdClassifier,
    format_value,
    resolve_category,
)
from services.reducer import LatestReadingMap

logger = logging.getLogger(__name__)

FailureCallback = Callable[[FarmContext, BaseException], None]


def build_farm_contexts(latest: LatestReadingMap) -> List[FarmContext]:
    """Group the latest readings per farm, keeping one value per sensor type."""
    contexts: Dict[str, FarmContext] = {}
    for reading in latest.values():
        sensor = reading.sensor
        context = contexts.get(sensor.farm_id)
        if context is None:
            context = FarmContext(
                farm_id=sensor.farm_id,
                name=sensor.farm.name,
                location=sensor.farm.location,
                notes=sensor.farm.notes,
            )
            contexts[sensor.farm_id] = context

        snapshot = SensorSnapshot(
            value=reading.value, unit=sensor.unit, observed_at=reading.observed_at
        )
        current = context.sensor_values_by_type.get(sensor.type)
        if current is None or snapshot.observed_at >= current.observed_at:
            context.sensor_values_by_type[sensor.type] = snapshot
    return list(contexts.values())


def build_context_text(context: FarmContext) -> str:
    lines = [
        f"Farm: {context.name}",
        f"Location: {context.location or 'unknown'}",
    ]
    if context.notes:
        lines.append(f'Farmer notes: "{context.notes}"')
    if context.sensor_values_by_type:
        lines.append("Latest sensor values:")
        for sensor_type, snapshot in context.sensor_values_by_type.items():
            lines.append(
                f"- {sensor_type}: {format_value(snapshot.value)}{snapshot.unit} "
                f"(observed {snapshot.observed_at.isoformat()})"
            )
    else:
        lines.append("No recent sensor data.")
    return "\n".join(lines)


class ContextualAugmenter:
    """Asks the advice generator about every farm with out-of-band values."""

    def __init__(
        self,
        generator: AdviceGenerator,
        classifier: Optional[ThresholdClassifier] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.generator = generator
        self.classifier = classifier or ThresholdClassifier()
        self.timeout = timeout

    async def augment(
        self,
        contexts: Sequence[FarmContext],
        on_failure: Optional[FailureCallback] = None,
    ) -> List[Suggestion]:
        """Fan out one generator call per farm and wait for all of them to settle.

        A farm whose augmentation fails contributes nothing; the failure is
        logged and reported through ``on_failure``.
        """
        results = await asyncio.gather(
            *(self._augment_farm(context) for context in contexts),
            return_exceptions=True,
        )

        suggestions: List[Suggestion] = []
        for context, result in zip(contexts, results):
            if isinstance(result, BaseException):
                logger.warning(
                    "Contextual advice failed for farm %s: %r",
                    context.name,
                    result,
                    extra={"farm_id": context.farm_id, "reason": type(result).__name__},
                )
                if on_failure is not None:
                    on_failure(context, result)
                continue
            suggestions.extend(result)
        return suggestions

    def flagged_values(
        self, context: FarmContext
    ) -> List[Tuple[SensorCategory, Rule, SensorSnapshot]]:
        """Sensor values matching a non-success rule, in context order."""
        flagged = []
        for sensor_type, snapshot in context.sensor_values_by_type.items():
            category = resolve_category(sensor_type)
            rule = self.classifier.match_rule(category, snapshot.value)
            if rule is not None and rule.severity is not Severity.success:
                flagged.append((category, rule, snapshot))
        return flagged

    async def _augment_farm(self, context: FarmContext) -> List[Suggestion]:
        flagged = self.flagged_values(context)
        if not flagged:
            return []

        request = self.generator.generate_advice(build_context_text(context))
        if self.timeout is not None:
            advice = await asyncio.wait_for(request, timeout=self.timeout)
        else:
            advice = await request

        return [
            self._build(context, category, rule, snapshot, advice, index)
            for index, (category, rule, snapshot) in enumerate(flagged)
        ]

    @staticmethod
    def _build(
        context: FarmContext,
        category: SensorCategory,
        rule: Rule,
        snapshot: SensorSnapshot,
        advice: str,
        index: int,
    ) -> Suggestion:
        where = f" in {context.location}" if context.location else ""
        parts = [
            f"{category.label} is at {format_value(snapshot.value)}{snapshot.unit} "
            f"on {context.name}{where}."
        ]
        if context.notes:
            parts.append(f'Your farm notes say: "{context.notes}".')
        if advice:
            parts.append(advice.strip())

        return Suggestion(
            id=f"ctx_{context.farm_id}_{category.value}_{rule.boundary}_{index}",
            severity=Severity.info,
            title=f"{rule.title}: advice for {context.name}",
            description=" ".join(parts),
            farm_id=context.farm_id,
            farm_name=context.name,
            sensor_type=category.label,
            value=snapshot.value,
            unit=snapshot.unit,
            observed_at=snapshot.observed_at,
            recommended_action=rule.action,
            is_contextual=True,
        )
