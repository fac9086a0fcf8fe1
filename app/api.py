"""HTTP route definitions for the service."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from fastapi.responses import JSONResponse

from app.schemas import (
    Location,
    LocationCreate,
    LocationUpdate,
    SyncOutcomeStatus,
    SyncResponse,
    WeatherSnapshot,
)
from datastore.location_registry import DuplicateLocationError, LocationNotFoundError
from models.records import GeocodingResult
from services.sync import SyncOrchestrator, build_default_orchestrator
from services.weather_client import FetchError

router = APIRouter()


def get_orchestrator() -> SyncOrchestrator:
    return build_default_orchestrator()


def _not_found(exc: KeyError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))


@router.post(
    "/api/sync/all",
    response_model=List[SyncResponse],
    summary="Refresh weather data for all tracked locations.",
)
def sync_all(
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> List[SyncResponse]:
    return [outcome.to_payload() for outcome in orchestrator.sync_all_locations()]


@router.post(
    "/api/sync/{location_id}",
    response_model=SyncResponse,
    summary="Refresh weather data for one location on demand.",
    responses={status.HTTP_409_CONFLICT: {"model": SyncResponse}},
)
def sync_location(
    location_id: str,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> SyncResponse | JSONResponse:
    try:
        outcome = orchestrator.sync_location(location_id)
    except LocationNotFoundError as exc:
        raise _not_found(exc) from exc

    payload = outcome.to_payload()
    if outcome.status is SyncOutcomeStatus.conflicting_operation:
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content=payload.model_dump(mode="json"),
        )
    return payload


@router.get(
    "/api/locations",
    response_model=List[Location],
    summary="List tracked locations with their current sync status.",
)
async def list_locations(
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> List[Location]:
    return [orchestrator.describe(location) for location in orchestrator.registry.list_all()]


@router.post(
    "/api/locations",
    response_model=Location,
    status_code=status.HTTP_201_CREATED,
    summary="Start tracking a location.",
)
async def create_location(
    request: LocationCreate,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> Location:
    try:
        return orchestrator.registry.create(request)
    except DuplicateLocationError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc


@router.get(
    "/api/locations/favorites",
    response_model=List[Location],
    summary="List locations marked as favorite.",
)
async def list_favorite_locations(
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> List[Location]:
    return [orchestrator.describe(location) for location in orchestrator.registry.list_favorites()]


@router.get(
    "/api/locations/{location_id}",
    response_model=Location,
    summary="Fetch a tracked location.",
)
async def get_location(
    location_id: str,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> Location:
    location = orchestrator.registry.get(location_id)
    if location is None:
        raise _not_found(LocationNotFoundError(location_id))
    return orchestrator.describe(location)


@router.put(
    "/api/locations/{location_id}",
    response_model=Location,
    summary="Change the display name or favorite flag of a location.",
)
async def update_location(
    location_id: str,
    changes: LocationUpdate,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> Location:
    try:
        location = orchestrator.registry.update(location_id, changes)
    except LocationNotFoundError as exc:
        raise _not_found(exc) from exc
    return orchestrator.describe(location)


@router.delete(
    "/api/locations/{location_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Stop tracking a location and drop its weather history.",
)
async def delete_location(
    location_id: str,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> Response:
    try:
        orchestrator.registry.delete(location_id)
    except LocationNotFoundError as exc:
        raise _not_found(exc) from exc
    orchestrator.snapshots.delete_for(location_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/api/weather/search/cities",
    response_model=List[GeocodingResult],
    summary="Search for cities through the provider's geocoding API.",
)
def search_cities(
    query: str = Query(..., min_length=1),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> List[GeocodingResult]:
    try:
        return orchestrator.client.search_locations(query)
    except FetchError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=exc.message) from exc


@router.get(
    "/api/weather/{location_id}",
    response_model=WeatherSnapshot,
    summary="Latest weather snapshot for a location.",
)
async def latest_weather(
    location_id: str,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> WeatherSnapshot:
    snapshot = orchestrator.latest_snapshot(location_id)
    if snapshot is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No weather data for location {location_id!r}.",
        )
    return snapshot


@router.get(
    "/api/weather/{location_id}/history",
    response_model=List[WeatherSnapshot],
    summary="Stored weather snapshots for a location, newest first.",
)
async def weather_history(
    location_id: str,
    limit: int = Query(10, ge=1, le=100),
    offset: int = Query(0, ge=0),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> List[WeatherSnapshot]:
    return orchestrator.history(location_id, limit=limit, offset=offset)


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /health for service status."}
