from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_result


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for interacting with the farm advisory service.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1, message="CLI state is uninitialized.")
    return state


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Advisory API base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Seconds to wait for each API request.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("suggestions")
def suggestions_command(
    ctx: typer.Context,
    user_id: str = typer.Argument(..., help="User whose farms should be analysed."),
    refresh: bool = typer.Option(
        True,
        "--refresh/--no-refresh",
        help="Rebuild suggestions from the latest readings before displaying them.",
    ),
) -> None:
    """Show prioritized suggestions for a user's farms."""
    state = _get_state(ctx)
    if refresh:
        payload = state.client.refresh_suggestions(user_id)
    else:
        payload = state.client.get_suggestions(user_id)
    render_result(payload)


@app.command("reading")
def reading_command(
    ctx: typer.Context,
    sensor_id: str = typer.Argument(..., help="Sensor that produced the reading."),
    value: float = typer.Argument(..., help="Observed value."),
    observed_at: Optional[datetime] = typer.Option(
        None,
        "--observed-at",
        help="Observation time (ISO 8601); defaults to now.",
    ),
) -> None:
    """Record a single sensor reading."""
    state = _get_state(ctx)
    payload = state.client.post_reading(sensor_id, value, observed_at)
    typer.secho(
        f"Reading accepted. sensor_id={payload.get('sensor_id')} observed_at={payload.get('observed_at')}",
        fg=typer.colors.GREEN,
    )
