from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx
import typer

from cli.config import CLIConfig


class ApiClient:
    """Minimal HTTP client for the weather sync service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=config.timeout)

    def close(self) -> None:
        self._client.close()

    def sync_location(self, location_id: str) -> Dict[str, Any]:
        response = self._request("POST", f"/api/sync/{location_id}", not_found=f"Location {location_id}")
        return response.json()

    def sync_all(self) -> List[Dict[str, Any]]:
        response = self._request("POST", "/api/sync/all")
        return response.json()

    def list_locations(self) -> List[Dict[str, Any]]:
        response = self._request("GET", "/api/locations")
        return response.json()

    def add_location(
        self,
        name: str,
        country: str,
        latitude: float,
        longitude: float,
        display_name: Optional[str] = None,
        favorite: bool = False,
    ) -> Dict[str, Any]:
        response = self._request(
            "POST",
            "/api/locations",
            json={
                "name": name,
                "country": country,
                "latitude": latitude,
                "longitude": longitude,
                "display_name": display_name,
                "favorite": favorite,
            },
        )
        return response.json()

    def latest_weather(self, location_id: str) -> Dict[str, Any]:
        response = self._request(
            "GET", f"/api/weather/{location_id}", not_found=f"Weather data for {location_id}"
        )
        return response.json()

    def _request(
        self, method: str, path: str, not_found: Optional[str] = None, **kwargs: Any
    ) -> httpx.Response:
        try:
            response = self._client.request(method, path, **kwargs)
            if response.status_code == 404 and not_found:
                raise typer.BadParameter(f"{not_found} was not found.")
            # A declined sync still carries a well-formed outcome body.
            if response.status_code == 409 and path.startswith("/api/sync/"):
                return response
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        except httpx.TransportError as exc:
            typer.secho(f"Could not reach {self._config.base_url}: {exc}", fg=typer.colors.RED, err=True)
            raise typer.Exit(code=1) from exc
        return response

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
