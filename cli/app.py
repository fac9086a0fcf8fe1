from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_locations, render_outcome, render_outcomes, render_snapshot


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for interacting with the weather sync service.",
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
        help="Service base URL (defaults to API_BASE_URL env or http://localhost:8000).",
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


@app.command("sync")
def sync_command(
    ctx: typer.Context,
    location_id: str = typer.Argument(..., help="Identifier of the location to refresh."),
) -> None:
    """Refresh weather data for one location."""
    state = _get_state(ctx)
    payload = state.client.sync_location(location_id)
    render_outcome(payload)
    if payload.get("status") != "SUCCESS":
        raise typer.Exit(code=1)


@app.command("sync-all")
def sync_all_command(ctx: typer.Context) -> None:
    """Refresh weather data for every tracked location."""
    state = _get_state(ctx)
    typer.echo(f"Syncing all locations via {state.config.base_url} ...")
    render_outcomes(state.client.sync_all())


@app.command("locations")
def locations_command(ctx: typer.Context) -> None:
    """List tracked locations and their sync status."""
    state = _get_state(ctx)
    render_locations(state.client.list_locations())


@app.command("add-location")
def add_location_command(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="City name."),
    country: str = typer.Argument(..., help="Country name or code."),
    latitude: float = typer.Argument(..., min=-90, max=90),
    longitude: float = typer.Argument(..., min=-180, max=180),
    display_name: Optional[str] = typer.Option(None, "--display-name", help="Optional label."),
    favorite: bool = typer.Option(False, "--favorite/--no-favorite", help="Mark as favorite."),
) -> None:
    """Start tracking a location."""
    state = _get_state(ctx)
    payload = state.client.add_location(
        name=name,
        country=country,
        latitude=latitude,
        longitude=longitude,
        display_name=display_name,
        favorite=favorite,
    )
    typer.secho(f"Location added. id={payload.get('id')}", fg=typer.colors.GREEN)


@app.command("latest")
def latest_command(
    ctx: typer.Context,
    location_id: str = typer.Argument(..., help="Identifier of a tracked location."),
) -> None:
    """Show the most recent weather snapshot for a location."""
    state = _get_state(ctx)
    render_snapshot(state.client.latest_weather(location_id))
