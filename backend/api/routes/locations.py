"""
Locations API routes.

Serves the normalized point collection held by the map session and runs
load cycles on demand.
"""
import logging
from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from starlette.concurrency import run_in_threadpool

from db import SessionLocal
from domain.models import ActiveFilterSet, LoadResult, LocationCategory, PointOfInterest
from repositories import LoadRunsRepository
from services.location_loader import load_locations
from services.map_session import MapViewSession, directions_url, get_default_map_session

router = APIRouter()
load_runs_repo = LoadRunsRepository()
logger = logging.getLogger(__name__)


class LocationResponse(BaseModel):
    id: int
    name: str
    type: str
    lat: float
    lng: float
    address: str
    hours: Optional[str] = None
    phone: Optional[str] = None
    accepts: Optional[List[str]] = None
    capacity: Optional[str] = None


class DirectionsResponse(BaseModel):
    id: int
    url: str


class LoadSummaryResponse(BaseModel):
    source: str
    count: int
    diagnostics: List[str]


class LoadRunResponse(BaseModel):
    id: int
    source: str
    point_count: int
    diagnostics: List[str]
    started_at: str
    finished_at: Optional[str] = None


def location_to_response(poi: PointOfInterest) -> LocationResponse:
    """Convert a domain point to its API shape."""
    return LocationResponse(**poi.to_dict())


async def reload_session(session: MapViewSession) -> Optional[LoadResult]:
    """Run a load cycle off the event loop, then render it cooperatively."""
    started_at = datetime.utcnow()
    result = await run_in_threadpool(load_locations, is_mounted=lambda: session.mounted)
    if result is None or not session.mounted:
        return None
    session.apply_load(result)
    await session.scheduler.drain()
    try:
        with SessionLocal() as db:
            load_runs_repo.record_run(db, result, started_at)
    except SQLAlchemyError as exc:
        logger.warning("Could not record load run: %s", exc)
    return result


async def ensure_loaded(session: MapViewSession) -> None:
    if not session.loaded:
        await reload_session(session)


@router.get("", response_model=List[LocationResponse])
async def list_locations(category: Optional[List[LocationCategory]] = Query(None)):
    """List points, filtered by the given categories or else the active filters."""
    session = get_default_map_session()
    await ensure_loaded(session)
    filters = ActiveFilterSet.of(category) if category else session.filters
    return [location_to_response(p) for p in session.points if filters.allows(p)]


@router.post("/reload", response_model=LoadSummaryResponse)
async def reload_locations():
    session = get_default_map_session()
    result = await reload_session(session)
    if result is None:
        raise HTTPException(status_code=409, detail="Map session closed during reload")
    return LoadSummaryResponse(
        source=result.source.value,
        count=len(result.points),
        diagnostics=result.diagnostics,
    )


@router.get("/loads", response_model=List[LoadRunResponse])
def list_load_runs(limit: int = Query(20, ge=1, le=200)):
    """Recent load cycles, newest first."""
    with SessionLocal() as db:
        runs = load_runs_repo.list_runs(db, limit=limit)
    return [
        LoadRunResponse(
            id=run.id,
            source=run.source.value,
            point_count=run.point_count,
            diagnostics=run.diagnostics,
            started_at=run.started_at.isoformat(),
            finished_at=run.finished_at.isoformat() if run.finished_at else None,
        )
        for run in runs
    ]


@router.get("/{poi_id}", response_model=LocationResponse)
async def get_location(poi_id: int):
    session = get_default_map_session()
    await ensure_loaded(session)
    poi = session.find_point(poi_id)
    if not poi:
        raise HTTPException(status_code=404, detail="Location not found")
    return location_to_response(poi)


@router.get("/{poi_id}/directions", response_model=DirectionsResponse)
async def get_directions(poi_id: int):
    session = get_default_map_session()
    await ensure_loaded(session)
    poi = session.find_point(poi_id)
    if not poi:
        raise HTTPException(status_code=404, detail="Location not found")
    return DirectionsResponse(id=poi.id, url=directions_url(poi))
