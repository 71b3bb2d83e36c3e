"""
Map API routes.

The hosting page drives the map through these: it reads state and the legend,
flips category filters, activates markers and asks for a PNG snapshot.
"""
import logging
from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, HTTPException
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from api.routes.locations import LocationResponse, ensure_loaded, location_to_response
from domain.models import ALL_CATEGORIES, CATEGORY_STYLES, LocationCategory, MapView
from services.map_renderer import EMPTY_STATE_MESSAGE
from services.map_session import MapViewSession, directions_url, get_default_map_session

router = APIRouter()
logger = logging.getLogger(__name__)

NO_LOCATIONS_MESSAGE = "No locations available."
NO_MATCHES_MESSAGE = "No locations match the selected filters."


class MapViewResponse(BaseModel):
    lat: float
    lon: float
    zoom: int


class LegendEntryResponse(BaseModel):
    category: str
    label: str
    color: str
    icon: str
    active: bool


class MapStateResponse(BaseModel):
    view: Optional[MapViewResponse] = None
    active_filters: List[str]
    selected: Optional[LocationResponse] = None
    marker_count: int
    visible_count: int
    render_state: str
    source: Optional[str] = None
    surface_available: bool
    empty_state: Optional[str] = None
    diagnostics: List[str] = []


class SelectionResponse(BaseModel):
    selected: LocationResponse
    view: MapViewResponse
    directions_url: str


class SnapshotResponse(BaseModel):
    path: Optional[str] = None
    marker_count: int
    empty_state: Optional[str] = None


def _view_response(view: Optional[MapView]) -> Optional[MapViewResponse]:
    if view is None:
        return None
    return MapViewResponse(lat=view.lat, lon=view.lon, zoom=view.zoom)


def _empty_state(session: MapViewSession, visible_count: int) -> Optional[str]:
    if not session.surface_available:
        return EMPTY_STATE_MESSAGE
    if session.loaded and not session.points:
        return NO_LOCATIONS_MESSAGE
    if session.loaded and visible_count == 0:
        return NO_MATCHES_MESSAGE
    return None


def build_state_response(session: MapViewSession) -> MapStateResponse:
    visible_count = len(session.visible_points())
    return MapStateResponse(
        view=_view_response(session.view),
        active_filters=[c.value for c in session.filters.ordered()],
        selected=location_to_response(session.selected) if session.selected else None,
        marker_count=session.marker_count,
        visible_count=visible_count,
        render_state=session.renderer.state.value,
        source=session.source.value if session.source else None,
        surface_available=session.surface_available,
        empty_state=_empty_state(session, visible_count),
        diagnostics=session.diagnostics,
    )


@router.get("/legend", response_model=List[LegendEntryResponse])
def get_legend():
    session = get_default_map_session()
    return [
        LegendEntryResponse(
            category=category.value,
            label=CATEGORY_STYLES[category].label,
            color=CATEGORY_STYLES[category].color,
            icon=CATEGORY_STYLES[category].icon,
            active=category in session.filters,
        )
        for category in ALL_CATEGORIES
    ]


@router.get("/state", response_model=MapStateResponse)
async def get_map_state():
    session = get_default_map_session()
    await ensure_loaded(session)
    return build_state_response(session)


@router.post("/filters/{category}/toggle", response_model=MapStateResponse)
async def toggle_filter(category: LocationCategory):
    session = get_default_map_session()
    await ensure_loaded(session)
    session.toggle_filter(category)
    await session.scheduler.drain()
    return build_state_response(session)


@router.post("/markers/{poi_id}/activate", response_model=SelectionResponse)
async def activate_marker(poi_id: int):
    session = get_default_map_session()
    await ensure_loaded(session)
    # Let any in-flight batches land so the marker is actually on the map.
    await session.scheduler.drain()
    event = session.activate_marker(poi_id)
    if event is None:
        raise HTTPException(status_code=404, detail="Marker not on the map")
    return SelectionResponse(
        selected=location_to_response(event.poi),
        view=_view_response(event.view),
        directions_url=directions_url(event.poi),
    )


@router.post("/snapshot", response_model=SnapshotResponse)
async def create_snapshot():
    session = get_default_map_session()
    await ensure_loaded(session)
    await session.scheduler.drain()
    surface = session.renderer.surface
    if surface is None:
        return SnapshotResponse(marker_count=0, empty_state=EMPTY_STATE_MESSAGE)
    filename = f"map_{datetime.utcnow().strftime('%Y%m%d%H%M%S%f')}.png"
    try:
        path = await run_in_threadpool(surface.save_snapshot, filename)
    except OSError as exc:
        logger.warning("Snapshot write failed: %s", exc)
        return SnapshotResponse(marker_count=surface.marker_count, empty_state=EMPTY_STATE_MESSAGE)
    return SnapshotResponse(path=f"/static/maps/{path.name}", marker_count=surface.marker_count)
