from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

import httpx
import typer

from cli.config import CLIConfig


class ApiClient:
    """Minimal HTTP client for the advisory service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=config.timeout)

    def close(self) -> None:
        self._client.close()

    def refresh_suggestions(self, user_id: str) -> Dict[str, Any]:
        try:
            response = self._client.post(f"/users/{user_id}/suggestions/refresh")
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        return response.json()

    def get_suggestions(self, user_id: str) -> Dict[str, Any]:
        try:
            response = self._client.get(f"/users/{user_id}/suggestions")
            if response.status_code == 404:
                raise typer.BadParameter(
                    f"No suggestions for user {user_id} yet; run with --refresh."
                )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        return response.json()

    def post_reading(
        self, sensor_id: str, value: float, observed_at: Optional[datetime] = None
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {"value": value}
        if observed_at is not None:
            body["observed_at"] = observed_at.isoformat()
        try:
            response = self._client.post(f"/sensors/{sensor_id}/readings", json=body)
            if response.status_code == 404:
                raise typer.BadParameter(f"Sensor {sensor_id} was not found.")
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        return response.json()

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> None:
        detail: str | None = None
        try:
            data = exc.response.json()
            detail = data.get("detail")
        except Exception:  # noqa: BLE001 - best effort parsing
            detail = exc.response.text.strip()
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
