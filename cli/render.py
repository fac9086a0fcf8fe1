from __future__ import annotations

from typing import Any, Dict, Iterable, List

import typer

_STATUS_COLORS = {
    "SUCCESS": typer.colors.GREEN,
    "FAILED": typer.colors.RED,
    "CONFLICTING_OPERATION": typer.colors.YELLOW,
}


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def render_outcome(payload: Dict[str, Any]) -> None:
    status = payload.get("status")
    typer.secho(
        f"{payload.get('location_id')}: {status}",
        fg=_STATUS_COLORS.get(str(status)),
        bold=True,
    )
    pairs = [
        ("fetched_at", payload.get("fetched_at")),
        ("conflict_detected", payload.get("conflict_detected")),
        ("conflict_description", payload.get("conflict_description")),
        ("error_code", payload.get("error_code")),
        ("error_message", payload.get("error_message")),
    ]
    echo_key_values((key, value) for key, value in pairs if value is not None)


def render_outcomes(payloads: List[Dict[str, Any]]) -> None:
    echo_heading("Sync Results")
    if not payloads:
        typer.echo("No locations to sync.")
        return
    for payload in payloads:
        render_outcome(payload)
    succeeded = sum(1 for payload in payloads if payload.get("status") == "SUCCESS")
    typer.echo()
    typer.echo(f"{succeeded}/{len(payloads)} locations synced successfully.")


def render_locations(payloads: List[Dict[str, Any]]) -> None:
    echo_heading("Tracked Locations")
    if not payloads:
        typer.echo("No locations tracked yet.")
        return
    for payload in payloads:
        marker = "*" if payload.get("favorite") else " "
        label = payload.get("display_name") or payload.get("name")
        typer.echo(
            f"{marker} {payload.get('id')}  {label}, {payload.get('country')}  "
            f"({payload.get('latitude')}, {payload.get('longitude')})  "
            f"{payload.get('sync_status')}  last_sync_at={payload.get('last_sync_at')}"
        )


def render_snapshot(payload: Dict[str, Any]) -> None:
    echo_heading("Current Weather")
    current = payload.get("current") or {}
    echo_key_values(
        [
            ("location_id", payload.get("location_id")),
            ("fetched_at", payload.get("fetched_at")),
            ("units", payload.get("units")),
            ("timezone", payload.get("timezone")),
            ("temperature", current.get("temperature")),
            ("apparent_temperature", current.get("apparent_temperature")),
            ("humidity", current.get("humidity")),
            ("precipitation", current.get("precipitation")),
            ("wind_speed", current.get("wind_speed")),
            ("conditions", current.get("weather_description")),
        ]
    )
    if payload.get("conflict_detected"):
        typer.echo()
        typer.secho(
            f"Conflict: {payload.get('conflict_description')}",
            fg=typer.colors.YELLOW,
        )

    daily = payload.get("daily_forecast") or []
    typer.echo()
    echo_heading("Daily Forecast")
    if daily:
        for day in daily:
            typer.echo(
                f"  - {day.get('date')}: {day.get('temperature_min')} .. "
                f"{day.get('temperature_max')} {day.get('weather_description')}"
            )
    else:
        typer.echo("No forecast available.")
