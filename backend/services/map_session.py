"""
Page-level map state.

The session owns the point collection, the active filters and the current
selection, hands them to the renderer explicitly on every pass, and updates
the selection only from activation events the renderer reports back.
"""
from __future__ import annotations

import logging
from typing import List, Optional

from domain.models import (
    ActiveFilterSet,
    LoadResult,
    LoadSource,
    LocationCategory,
    MapView,
    PointOfInterest,
)
from services.map_renderer import IncrementalMapRenderer, MarkerActivated, RenderPass
from services.map_surface import MapContainer
from services.render_scheduler import CooperativeScheduler
from settings import settings

logger = logging.getLogger(__name__)

DIRECTIONS_URL_TEMPLATE = "https://www.google.com/maps/dir/?api=1&destination={lat},{lon}"


def directions_url(poi: PointOfInterest) -> str:
    return DIRECTIONS_URL_TEMPLATE.format(lat=poi.lat, lon=poi.lon)


class MapViewSession:
    def __init__(
        self,
        container: Optional[MapContainer] = None,
        batch_size: Optional[int] = None,
        scheduler: Optional[CooperativeScheduler] = None,
    ):
        if container is None:
            container = MapContainer(settings.MAP_WIDTH, settings.MAP_HEIGHT)
        self.scheduler = scheduler or CooperativeScheduler()
        self.renderer = IncrementalMapRenderer(
            self.scheduler,
            on_activate=self._on_marker_activated,
            batch_size=batch_size,
        )
        self.points: List[PointOfInterest] = []
        self.filters = ActiveFilterSet.all()
        self.selected: Optional[PointOfInterest] = None
        self.source: Optional[LoadSource] = None
        self.diagnostics: List[str] = []
        self.last_pass: Optional[RenderPass] = None
        self.last_event: Optional[MarkerActivated] = None
        self.mounted = True
        self.renderer.mount(container)

    @property
    def loaded(self) -> bool:
        return self.source is not None

    @property
    def surface_available(self) -> bool:
        return self.renderer.surface is not None

    @property
    def view(self) -> Optional[MapView]:
        surface = self.renderer.surface
        return surface.view if surface is not None else None

    @property
    def marker_count(self) -> int:
        surface = self.renderer.surface
        return surface.marker_count if surface is not None else 0

    def _on_marker_activated(self, event: MarkerActivated) -> None:
        self.selected = event.poi
        self.last_event = event

    def _rerender(self) -> RenderPass:
        self.last_pass = self.renderer.render(self.points, self.filters)
        return self.last_pass

    def apply_load(self, result: LoadResult) -> RenderPass:
        self.points = list(result.points)
        self.source = result.source
        self.diagnostics = list(result.diagnostics)
        return self._rerender()

    def toggle_filter(self, category: LocationCategory) -> RenderPass:
        self.filters = self.filters.toggle(category)
        return self._rerender()

    def set_filters(self, filters: ActiveFilterSet) -> RenderPass:
        self.filters = filters
        return self._rerender()

    def visible_points(self) -> List[PointOfInterest]:
        return [p for p in self.points if self.filters.allows(p)]

    def find_point(self, poi_id: int) -> Optional[PointOfInterest]:
        for poi in self.points:
            if poi.id == poi_id:
                return poi
        return None

    def activate_marker(self, poi_id: int) -> Optional[MarkerActivated]:
        """Activate a rendered marker as a click would. None if it is not on the map."""
        surface = self.renderer.surface
        if surface is None:
            return None
        self.last_event = None
        surface.activate(poi_id)
        return self.last_event

    def close(self) -> None:
        self.mounted = False
        self.renderer.unmount()
        self.scheduler.clear()


_default_session: Optional[MapViewSession] = None


def get_default_map_session() -> MapViewSession:
    global _default_session
    if _default_session is None or not _default_session.mounted:
        _default_session = MapViewSession()
    return _default_session


def reset_default_map_session() -> None:
    global _default_session
    if _default_session is not None:
        _default_session.close()
    _default_session = None
