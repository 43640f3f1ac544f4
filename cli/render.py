from __future__ import annotations

from typing import Any, Dict, Iterable

import typer

_SEVERITY_COLORS = {
    "critical": typer.colors.RED,
    "warning": typer.colors.YELLOW,
    "info": typer.colors.BLUE,
    "success": typer.colors.GREEN,
}


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def render_suggestion(suggestion: Dict[str, Any]) -> None:
    severity = str(suggestion.get("severity") or "unknown")
    badge = severity.upper()
    if suggestion.get("is_contextual"):
        badge = f"{badge} (contextual)"
    typer.secho(
        f"[{badge}] {suggestion.get('title')}",
        fg=_SEVERITY_COLORS.get(severity),
        bold=True,
    )
    typer.echo(f"  {suggestion.get('farm_name')} | observed {suggestion.get('observed_at')}")
    typer.echo(f"  {suggestion.get('description')}")
    typer.echo(
        f"  {suggestion.get('sensor_type')}: {suggestion.get('value')} {suggestion.get('unit') or ''}".rstrip()
    )
    action = suggestion.get("recommended_action")
    if action:
        typer.echo(f"  Action: {action}")


def render_result(payload: Dict[str, Any]) -> None:
    echo_heading("Smart Farming Suggestions")
    counts = payload.get("counts") or {}
    echo_key_values(
        [
            ("user_id", payload.get("user_id")),
            ("critical", counts.get("critical", 0)),
            ("warning", counts.get("warning", 0)),
            ("success", counts.get("success", 0)),
        ]
    )

    for notice in payload.get("notices") or []:
        typer.secho(f"! {notice}", fg=typer.colors.YELLOW, err=True)

    suggestions = payload.get("suggestions") or []
    typer.echo()
    if not suggestions:
        typer.echo("No suggestions available. Sensor data from your farms is needed.")
        return
    for suggestion in suggestions:
        render_suggestion(suggestion)
        typer.echo()
