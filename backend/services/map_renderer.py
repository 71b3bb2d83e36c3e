"""
Incremental marker rendering.

State machine: idle -> filtering -> batch_rendering -> idle. Every render
pass clears the surface first and then places markers in fixed-size chunks
through the cooperative scheduler, one chunk per scheduler tick. A newer
pass or an unmount turns any still-queued chunks into no-ops.
"""
import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Sequence

from domain.errors import RenderSurfaceUnavailable
from domain.models import (
    CATEGORY_STYLES,
    SELECTED_ZOOM,
    ActiveFilterSet,
    MapView,
    PointOfInterest,
)
from services.map_surface import MapContainer, MapSurface
from services.render_scheduler import CooperativeScheduler
from settings import settings

logger = logging.getLogger(__name__)

EMPTY_STATE_MESSAGE = "Map is unavailable right now."
FALLBACK_MARKER_COLOR = "#10b981"


class RenderState(str, Enum):
    IDLE = "idle"
    FILTERING = "filtering"
    BATCH_RENDERING = "batch_rendering"


class RenderStatus(str, Enum):
    SCHEDULED = "scheduled"
    EMPTY = "empty"
    SURFACE_UNAVAILABLE = "surface_unavailable"


@dataclass(frozen=True)
class MarkerActivated:
    """Reported upward when a rendered marker is activated."""
    poi: PointOfInterest
    view: MapView


@dataclass(frozen=True)
class RenderPass:
    generation: int
    status: RenderStatus
    marker_total: int = 0
    batch_count: int = 0
    empty_state: Optional[str] = None


def filter_points(points: Sequence[PointOfInterest], filters: ActiveFilterSet) -> List[PointOfInterest]:
    return [p for p in points if filters.allows(p)]


def marker_color(poi: PointOfInterest) -> str:
    style = CATEGORY_STYLES.get(poi.category)
    return style.color if style else FALLBACK_MARKER_COLOR


class IncrementalMapRenderer:
    def __init__(
        self,
        scheduler: CooperativeScheduler,
        on_activate: Callable[[MarkerActivated], None],
        batch_size: Optional[int] = None,
        surface_factory: Callable[[Optional[MapContainer]], MapSurface] = MapSurface,
    ):
        self.scheduler = scheduler
        self.on_activate = on_activate
        self.batch_size = max(1, batch_size or settings.MAP_BATCH_SIZE)
        self.surface_factory = surface_factory
        self.surface: Optional[MapSurface] = None
        self.state = RenderState.IDLE
        self.mounted = False
        self._generation = 0

    def mount(self, container: Optional[MapContainer]) -> bool:
        """Create the surface. Returns False (and stays unmounted) if that fails."""
        try:
            self.surface = self.surface_factory(container)
        except RenderSurfaceUnavailable as exc:
            logger.warning("Map surface unavailable: %s", exc)
            self.surface = None
            self.mounted = False
            return False
        self.mounted = True
        return True

    def unmount(self) -> None:
        self.mounted = False
        self._generation += 1
        if self.surface is not None:
            self.surface.clear_markers()
        self.surface = None
        self.state = RenderState.IDLE

    def render(self, points: Sequence[PointOfInterest], filters: ActiveFilterSet) -> RenderPass:
        """Start a render pass for `points` restricted to `filters`. Never raises."""
        self._generation += 1
        generation = self._generation
        if not self.mounted or self.surface is None:
            self.state = RenderState.IDLE
            return RenderPass(generation, RenderStatus.SURFACE_UNAVAILABLE, empty_state=EMPTY_STATE_MESSAGE)

        self.state = RenderState.FILTERING
        visible = filter_points(points, filters)

        self.state = RenderState.BATCH_RENDERING
        self.surface.clear_markers()
        if not visible:
            self.state = RenderState.IDLE
            return RenderPass(generation, RenderStatus.EMPTY)

        try:
            self.scheduler.schedule(lambda: self._render_batch(generation, visible, 0))
        except RuntimeError as exc:
            logger.warning("Could not schedule render pass %d: %s", generation, exc)
            self.state = RenderState.IDLE
            return RenderPass(generation, RenderStatus.EMPTY, marker_total=len(visible))
        return RenderPass(
            generation,
            RenderStatus.SCHEDULED,
            marker_total=len(visible),
            batch_count=math.ceil(len(visible) / self.batch_size),
        )

    def _render_batch(self, generation: int, visible: List[PointOfInterest], start: int) -> None:
        if not self.mounted or self.surface is None or generation != self._generation:
            return
        end = min(start + self.batch_size, len(visible))
        for poi in visible[start:end]:
            self.surface.add_marker(poi, marker_color(poi), self._activation_handler(poi))
        if end < len(visible):
            self.scheduler.schedule(lambda: self._render_batch(generation, visible, end))
        else:
            self.state = RenderState.IDLE
            logger.debug("Render pass %d placed %d markers", generation, len(visible))

    def _activation_handler(self, poi: PointOfInterest) -> Callable[[], None]:
        def handler() -> None:
            view = MapView(poi.lat, poi.lon, SELECTED_ZOOM)
            self.on_activate(MarkerActivated(poi=poi, view=view))
            if self.mounted and self.surface is not None:
                self.surface.set_view(view)

        return handler
