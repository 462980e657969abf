from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_mappings, render_series, render_snapshot

_SENSOR_TYPES = ("co", "pm25", "pm10", "iaq", "voc", "aqi_co", "temperature", "humidity", "custom")
_TIME_RANGES = ("12h", "24h", "1w", "1m")


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Inspect the air monitor dashboard service from the terminal.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1, message="CLI state is uninitialized.")
    return state


def _check_choice(value: Optional[str], choices: tuple[str, ...], name: str) -> Optional[str]:
    if value is not None and value not in choices:
        raise typer.BadParameter(f"{name} must be one of: {', '.join(choices)}")
    return value


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Dashboard API base URL (defaults to API_BASE_URL env or http://localhost:8000).",
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


@app.command("status")
def status_command(ctx: typer.Context) -> None:
    """Show the latest classified readings and overall air quality."""
    state = _get_state(ctx)
    render_snapshot(state.client.get_snapshot())


@app.command("refresh")
def refresh_command(ctx: typer.Context) -> None:
    """Ask the service to fetch from ThingSpeak now, then show the result."""
    state = _get_state(ctx)
    typer.echo(f"Refreshing readings via {state.config.base_url} ...")
    payload = state.client.refresh()
    if payload.get("error"):
        typer.secho("Refresh failed; showing previous data.", fg=typer.colors.YELLOW)
    render_snapshot(payload)


@app.command("history")
def history_command(
    ctx: typer.Context,
    sensor_type: str = typer.Argument(..., help="Sensor type, e.g. co, pm25, voc."),
    time_range: Optional[str] = typer.Option(
        None,
        "--range",
        "-r",
        help="Time range: 12h, 24h, 1w or 1m (defaults to the configured range).",
    ),
) -> None:
    """Print time-bucketed averages for one sensor type."""
    _check_choice(sensor_type, _SENSOR_TYPES, "sensor type")
    _check_choice(time_range, _TIME_RANGES, "range")
    state = _get_state(ctx)
    render_series(state.client.get_series(sensor_type, time_range))


@app.command("mappings")
def mappings_command(ctx: typer.Context) -> None:
    """List the channel's configured field mappings."""
    state = _get_state(ctx)
    render_mappings(state.client.get_config())


@app.command("use-range")
def use_range_command(
    ctx: typer.Context,
    time_range: str = typer.Argument(..., help="Time range: 12h, 24h, 1w or 1m."),
) -> None:
    """Select the time range that sizes the service's history fetches."""
    _check_choice(time_range, _TIME_RANGES, "range")
    state = _get_state(ctx)
    payload = state.client.set_time_range(time_range)
    typer.secho(f"Time range set to {payload.get('time_range')}.", fg=typer.colors.GREEN)
