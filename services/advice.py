"""Advice generators consulted for contextual, farm-specific guidance."""

from __future__ import annotations

import logging
from typing import Optional, Protocol, Tuple

import httpx

from settings import Settings, get_settings

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are an experienced agronomist advising a farmer about one farm. "
    "You receive the farm's location, the farmer's own notes and the latest "
    "sensor values. Reply with two or three short, practical sentences that "
    "take the notes and location into account. Do not repeat the raw numbers."
)

# (keywords, tip) pairs; tips are emitted in this order.
_OFFLINE_TIPS: Tuple[Tuple[Tuple[str, ...], str], ...] = (
    (
        ("ph", "acid", "alkaline", "lime"),
        "Retest soil pH after amendments and work lime or sulfur in gradually.",
    ),
    (
        ("moisture", "irrigation", "water", "drip", "drain"),
        "Water deeply in the early morning and mulch to hold moisture.",
    ),
    (
        ("temperature", "heat", "frost", "greenhouse"),
        "Shade or cover sensitive crops during temperature extremes.",
    ),
    (
        ("conductivity", "ec", "fertil", "compost", "nutrient"),
        "Adjust feeding in small steps and flush salts if EC keeps climbing.",
    ),
    (
        ("pest", "disease", "fung", "insect"),
        "Inspect plants daily and remove affected leaves early.",
    ),
)

_GENERAL_TIP = "Keep monitoring the field and record changes in your farm notes."


class AdviceGenerationError(RuntimeError):
    """Raised when an advice generator cannot produce guidance."""


class AdviceGenerator(Protocol):
    async def generate_advice(self, context: str) -> str:
        ...

    async def aclose(self) -> None:
        ...


class LocalAdviceGenerator:
    """Offline generator that picks tips by keyword from the farm context."""

    async def generate_advice(self, context: str) -> str:
        lowered = context.lower()
        tips = [
            tip
            for keywords, tip in _OFFLINE_TIPS
            if any(keyword in lowered for keyword in keywords)
        ]
        return " ".join(tips) if tips else _GENERAL_TIP

    async def aclose(self) -> None:
        return None


class HttpAdviceGenerator:
    """Generator backed by an OpenAI-compatible chat completions endpoint."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        model: str,
        timeout: float = 15.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.model = model
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={"Authorization": f"Bearer {api_key}"},
        )

    async def generate_advice(self, context: str) -> str:
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": context},
            ],
            "max_tokens": 300,
            "temperature": 0.7,
        }
        try:
            response = await self._client.post("/chat/completions", json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise AdviceGenerationError(
                f"Advice request failed with status {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise AdviceGenerationError(f"Advice request failed: {exc}") from exc

        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise AdviceGenerationError("Advice response payload was malformed.") from exc
        if not isinstance(content, str) or not content.strip():
            raise AdviceGenerationError("Advice response was empty.")
        return content.strip()

    async def aclose(self) -> None:
        await self._client.aclose()


def build_default_generator(settings: Optional[Settings] = None) -> AdviceGenerator:
    """Use the remote generator when an API key is configured, else stay offline."""
    settings = settings or get_settings()
    if settings.advice_api_key:
        logger.info("Using remote advice generator at %s", settings.advice_api_url)
        return HttpAdviceGenerator(
            base_url=settings.advice_api_url,
            api_key=settings.advice_api_key,
            model=settings.advice_model,
            timeout=settings.advice_timeout_seconds,
        )
    return LocalAdviceGenerator()
