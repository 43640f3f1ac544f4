from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_STORE_PATH_ENV = "FARM_STORE_PERSISTENCE_PATH"
_WINDOW_LIMIT_ENV = "READINGS_WINDOW_LIMIT"
_TEMPERATURE_LOW_ENV = "TEMPERATURE_LOW_THRESHOLD"
_ADVICE_URL_ENV = "ADVICE_API_URL"
_ADVICE_KEY_ENV = "ADVICE_API_KEY"
_ADVICE_MODEL_ENV = "ADVICE_MODEL"
_ADVICE_TIMEOUT_ENV = "ADVICE_TIMEOUT_SECONDS"
_LOG_LEVEL_ENV = "LOG_LEVEL"

TEMPERATURE_LOW_MIN = 10.0
TEMPERATURE_LOW_MAX = 15.0


@dataclass(frozen=True)
class Settings:
    store_persistence_path: Optional[str]
    readings_window_limit: int
    temperature_low_threshold: float
    advice_api_url: str
    advice_api_key: Optional[str]
    advice_model: str
    advice_timeout_seconds: float
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_positive_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_positive_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_temperature_low(default: float) -> float:
    parsed = _read_positive_float(_TEMPERATURE_LOW_ENV, default)
    return min(max(parsed, TEMPERATURE_LOW_MIN), TEMPERATURE_LOW_MAX)


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        store_persistence_path=_read_optional_env(_STORE_PATH_ENV, None),
        readings_window_limit=_read_positive_int(_WINDOW_LIMIT_ENV, 50),
        temperature_low_threshold=_read_temperature_low(15.0),
        advice_api_url=_read_str_env(_ADVICE_URL_ENV, "https://api.openai.com/v1"),
        advice_api_key=_read_optional_env(_ADVICE_KEY_ENV, None),
        advice_model=_read_str_env(_ADVICE_MODEL_ENV, "gpt-4o-mini"),
        advice_timeout_seconds=_read_positive_float(_ADVICE_TIMEOUT_ENV, 15.0),
        log_level=_read_log_level("INFO"),
    )
