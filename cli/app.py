from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_history, render_sensors, render_settings

PERIOD_CHOICES = ("1h", "24h", "7d", "30d", "1y")


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for inspecting the PlantPulse moisture service.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1)
    return state


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Service base URL (defaults to API_BASE_URL env or http://localhost:3001).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Seconds to wait for each request.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("sensors")
def sensors_command(ctx: typer.Context) -> None:
    """Show current readings for every sensor."""
    state = _get_state(ctx)
    render_sensors(state.client.get_sensors())


@app.command("history")
def history_command(
    ctx: typer.Context,
    sensor_id: str = typer.Argument(..., help="Sensor identifier, e.g. account1_soil_ch1."),
    period: str = typer.Option("24h", "--period", "-p", help="One of 1h, 24h, 7d, 30d, 1y."),
    anchor: Optional[str] = typer.Option(
        None, "--anchor", help="ISO start of the hour to show with --period 1h."
    ),
) -> None:
    """Show chart-ready history for one sensor."""
    if period not in PERIOD_CHOICES:
        raise typer.BadParameter(
            f"period must be one of {', '.join(PERIOD_CHOICES)}", param_hint="--period"
        )
    state = _get_state(ctx)
    render_history(state.client.get_history(sensor_id, period, anchor=anchor))


@app.command("settings")
def settings_command(ctx: typer.Context) -> None:
    """Show plant names, ordering, visibility and thresholds."""
    state = _get_state(ctx)
    render_settings(state.client.get_settings())
