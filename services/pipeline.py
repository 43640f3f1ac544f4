"""Refresh orchestration: fetch readings, build suggestions, publish the newest run."""

from __future__ import annotations

import itertools
import logging
import time
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Dict, Iterable, List, Mapping, Optional

from app.schemas import AdvisoryResult, Suggestion
from datastore.farm_store import DataStoreError, FarmStore, build_default_store
from models.records import FarmContext
from services.advice import AdviceGenerator, build_default_generator
from services.augmenter import ContextualAugmenter, build_farm_contexts
from services.classifier import ThresholdClassifier, Thresholds
from services.merger import count_by_severity, merge
from services.reducer import RawReading, reduce_to_latest
from settings import get_settings

logger = logging.getLogger(__name__)

FETCH_FAILED_NOTICE = "Sensor data could not be loaded. Pull to refresh to try again."


class StaleRunError(RuntimeError):
    """Raised when a refresh finishes after a newer refresh for the same user started."""


@dataclass
class PipelineOutput:
    suggestions: List[Suggestion] = field(default_factory=list)
    notices: List[str] = field(default_factory=list)


async def run_pipeline(
    readings: Iterable[RawReading],
    classifier: ThresholdClassifier,
    augmenter: ContextualAugmenter,
) -> PipelineOutput:
    """Reduce, classify, augment and merge one batch of readings."""
    output = PipelineOutput()

    def _record_failure(context: FarmContext, _exc: BaseException) -> None:
        output.notices.append(
            f"Contextual advice for {context.name} is unavailable right now."
        )

    latest = reduce_to_latest(readings)
    rule_based = classifier.classify(latest)
    contextual = await augmenter.augment(
        build_farm_contexts(latest), on_failure=_record_failure
    )
    output.suggestions = merge(rule_based, contextual)
    return output


class AdvisoryService:
    """Runs refreshes per user and keeps only the result of the newest one."""

    def __init__(
        self,
        store: FarmStore,
        generator: AdviceGenerator,
        thresholds: Optional[Thresholds] = None,
        window_limit: int = 50,
        advice_timeout: Optional[float] = None,
    ) -> None:
        self.store = store
        self.generator = generator
        self.window_limit = window_limit
        self.classifier = ThresholdClassifier(thresholds)
        self.augmenter = ContextualAugmenter(
            generator, classifier=self.classifier, timeout=advice_timeout
        )
        self._generation_counter = itertools.count(1)
        self._current_generation: Dict[str, int] = {}
        self._results: Dict[str, AdvisoryResult] = {}

    async def refresh(self, user_id: str) -> AdvisoryResult:
        generation = next(self._generation_counter)
        self._current_generation[user_id] = generation
        start_time = time.perf_counter()
        log_extra: Dict[str, Any] = {"user_id": user_id, "generation": generation}

        notices: List[str] = []
        try:
            readings = self._fetch_readings(user_id)
        except DataStoreError as exc:
            logger.error(
                "Failed to load sensor readings: %s",
                exc,
                extra={**log_extra, "reason": str(exc)},
            )
            readings = []
            notices.append(FETCH_FAILED_NOTICE)

        output = await run_pipeline(readings, self.classifier, self.augmenter)

        if self._current_generation.get(user_id) != generation:
            logger.info("Discarding superseded refresh", extra=log_extra)
            raise StaleRunError(
                f"Refresh {generation} for user {user_id!r} was superseded by a newer refresh."
            )

        result = AdvisoryResult(
            user_id=user_id,
            generation=generation,
            suggestions=output.suggestions,
            counts=count_by_severity(output.suggestions),
            notices=[*notices, *output.notices],
        )
        self._results[user_id] = result
        logger.info(
            "Refreshed suggestions",
            extra={
                **log_extra,
                "reading_count": len(readings),
                "suggestion_count": len(result.suggestions),
                "elapsed_ms": int((time.perf_counter() - start_time) * 1000),
            },
        )
        return result

    def current_result(self, user_id: str) -> Optional[AdvisoryResult]:
        return self._results.get(user_id)

    async def aclose(self) -> None:
        await self.generator.aclose()

    def _fetch_readings(self, user_id: str) -> List[Mapping[str, Any]]:
        farms = self.store.fetch_user_farms(user_id)
        if not farms:
            return []
        logger.debug(
            "Fetching readings", extra={"user_id": user_id, "farm_count": len(farms)}
        )
        return self.store.fetch_latest_readings_for_farms(
            {farm.farm_id for farm in farms}, limit=self.window_limit
        )


@lru_cache
def build_default_service() -> AdvisoryService:
    """Factory that wires the service with the configured store and generator."""
    settings = get_settings()
    return AdvisoryService(
        store=build_default_store(),
        generator=build_default_generator(settings),
        thresholds=Thresholds.from_settings(),
        window_limit=settings.readings_window_limit,
        advice_timeout=settings.advice_timeout_seconds,
    )
