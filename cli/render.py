from __future__ import annotations

from typing import Any, Dict, Iterable

import typer

_LEVEL_COLORS = {
    "good": typer.colors.GREEN,
    "moderate": typer.colors.YELLOW,
    "unhealthy-sensitive": typer.colors.BRIGHT_YELLOW,
    "unhealthy": typer.colors.RED,
    "hazardous": typer.colors.MAGENTA,
}


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def _echo_status(prefix: str, status: Dict[str, Any]) -> None:
    typer.echo(prefix, nl=False)
    typer.secho(status.get("label", "?"), fg=_LEVEL_COLORS.get(status.get("level", "")))


def render_snapshot(payload: Dict[str, Any]) -> None:
    echo_heading("Connection")
    echo_key_values(
        [
            ("state", payload.get("state")),
            ("connected", payload.get("is_connected")),
            ("last_updated", payload.get("last_updated") or "never"),
            ("time_range", payload.get("time_range")),
            ("samples", payload.get("sample_count")),
        ]
    )
    if payload.get("error"):
        typer.secho(f"error: {payload['error']}", fg=typer.colors.RED)

    overall = payload.get("overall")
    typer.echo()
    echo_heading("Overall")
    if overall:
        typer.echo(f"{overall.get('pollutant')}: {overall.get('value'):g} ", nl=False)
        _echo_status("", overall.get("status") or {})
        typer.echo(overall.get("advisory"))
    else:
        typer.echo("No data available.")

    readings = payload.get("readings") or []
    typer.echo()
    echo_heading("Readings")
    if not readings:
        typer.echo("No readings available.")
    for reading in readings:
        _echo_status(
            f"  - {reading.get('label')} ({reading.get('field')}): "
            f"{reading.get('value'):.1f} {reading.get('unit')} ",
            reading.get("status") or {},
        )


def render_series(payload: Dict[str, Any]) -> None:
    echo_heading(f"{payload.get('label')} over {payload.get('time_range')}")
    echo_key_values(
        [
            ("current", payload.get("current")),
            ("average", f"{payload.get('average', 0.0):.2f} {payload.get('unit')}"),
        ]
    )
    typer.echo()
    for point in payload.get("buckets") or []:
        typer.echo(f"  {point.get('timestamp')}  {point.get('value'):.2f}")


def render_mappings(payload: Dict[str, Any]) -> None:
    echo_heading("Channel")
    echo_key_values(
        [
            ("channel_id", payload.get("channel_id") or "(not set)"),
            ("refresh_interval", payload.get("refresh_interval")),
            ("time_range", payload.get("time_range")),
        ]
    )
    typer.echo()
    echo_heading("Field mappings")
    mappings = payload.get("mappings") or []
    if not mappings:
        typer.echo("No field mappings configured.")
    for mapping in mappings:
        typer.echo(
            f"  - {mapping.get('field')}: {mapping.get('type')} "
            f"({mapping.get('label')}, {mapping.get('unit') or 'no unit'})"
        )
