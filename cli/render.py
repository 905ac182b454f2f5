from __future__ import annotations

from typing import Any, Dict, Iterable

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def echo_advisories(errors: Iterable[Dict[str, Any]]) -> None:
    for error in errors:
        typer.secho(
            f"  ! {error.get('accountId')}: {error.get('error')}",
            fg=typer.colors.YELLOW,
        )


def render_sensors(payload: Dict[str, Any]) -> None:
    echo_heading("Sensors")
    echo_key_values(
        [
            ("last_updated", payload.get("lastUpdated")),
            ("mock", payload.get("mock", False)),
        ]
    )
    sensors = payload.get("sensors") or []
    if sensors:
        for sensor in sensors:
            typer.echo(
                f"  - {sensor.get('id')}: {sensor.get('moisture')}{sensor.get('unit') or '%'}"
                f" at {sensor.get('timestamp')}"
            )
    else:
        typer.echo("No sensors reported.")

    errors = payload.get("errors") or []
    if errors:
        typer.echo()
        echo_heading("Advisories")
        echo_advisories(errors)


def render_history(payload: Dict[str, Any]) -> None:
    echo_heading("History")
    echo_key_values(
        [
            ("sensor_id", payload.get("sensorId")),
            ("period", payload.get("period")),
            ("source", payload.get("source")),
        ]
    )
    if payload.get("error"):
        typer.secho(f"advisory: {payload['error']}", fg=typer.colors.YELLOW)

    points = payload.get("points") or []
    typer.echo()
    echo_heading(f"Points ({len(points)})")
    if points:
        for point in points:
            typer.echo(f"  {point.get('label')}  {point.get('moisture')}  ({point.get('timestamp')})")
    else:
        typer.echo("No points available.")


def render_settings(payload: Dict[str, Any]) -> None:
    echo_heading("Plant Settings")
    names = payload.get("names") or {}
    thresholds = payload.get("thresholds") or {}
    hidden = set(payload.get("hidden") or [])
    order = payload.get("order") or sorted(names)
    if not order:
        typer.echo("No plants configured.")
        return
    for sensor_id in order:
        line = f"  - {sensor_id}: {names.get(sensor_id, '(unnamed)')}"
        threshold = thresholds.get(sensor_id)
        if threshold:
            line += f" [{threshold.get('min')}-{threshold.get('max')}%]"
        if sensor_id in hidden:
            line += " (hidden)"
        typer.echo(line)
