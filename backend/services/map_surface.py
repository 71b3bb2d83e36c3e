"""
Map surface using Pillow.

Holds placed markers and the current view, dispatches marker activation, and
can write a static PNG snapshot. Tile backgrounds are optional and cached in
SQLite; without them the snapshot falls back to a plain grid.
"""
import html
import math
import os
import sqlite3
import threading
import time
from dataclasses import dataclass, field
from functools import lru_cache
from io import BytesIO
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

import requests
from PIL import Image, ImageColor, ImageDraw

from domain.errors import RenderSurfaceUnavailable
from domain.models import DEFAULT_MAP_VIEW, MapView, PointOfInterest

BASE_DIR = Path(__file__).resolve().parents[1]
DATA_DIR = BASE_DIR / "data"
MAP_OUTPUT_DIR = DATA_DIR / "maps"
TILE_SIZE = 256

# Tile configuration
MAP_TILES_ENABLED = os.getenv("MAP_TILES_ENABLED", "0") in ("1", "true", "TRUE")
MAP_TILE_URL_TEMPLATE = os.getenv(
    "MAP_TILE_URL_TEMPLATE", "https://tile.openstreetmap.org/{z}/{x}/{y}.png"
)
MAP_TILE_ATTRIBUTION = "© OpenStreetMap contributors"
MAP_TILE_MAX_ZOOM = 19
MAP_TILE_USER_AGENT = os.getenv(
    "MAP_TILE_USER_AGENT",
    os.getenv("OVERPASS_USER_AGENT", "ecoaware-map/0.1 (tile-fetch)"),
)
MAP_TILE_TIMEOUT = float(os.getenv("MAP_TILE_TIMEOUT", "3"))
MAP_TILE_MIN_INTERVAL_SEC = float(os.getenv("MAP_TILE_MIN_INTERVAL_SEC", "1.0"))
MAP_TILE_HEADERS = {"User-Agent": MAP_TILE_USER_AGENT}
_TILE_SESSION = requests.Session()
_TILE_LOCK = threading.Lock()
_LAST_TILE_TS = 0.0
MAP_TILE_CACHE_PATH = Path(
    os.getenv("MAP_TILE_CACHE_PATH", str(DATA_DIR / "tile_cache.sqlite"))
)
MAP_TILE_CACHE_TTL_SECONDS = int(os.getenv("MAP_TILE_CACHE_TTL_SECONDS", str(30 * 24 * 3600)))
_CACHE_DB_LOCK = threading.Lock()
_CACHE_DB: Optional[sqlite3.Connection] = None

BACKGROUND_COLOR = "#e8eef2"
GRID_COLOR = (160, 174, 186, 90)
GRID_SPACING = 100


@dataclass(frozen=True)
class MapContainer:
    """The area a surface draws into."""
    width: int
    height: int


@dataclass(frozen=True)
class MarkerStyle:
    radius: int = 6
    outline_color: str = "#ffffff"
    outline_width: int = 1
    fill_opacity: float = 0.9


@lru_cache(maxsize=1)
def bootstrap_marker_style() -> MarkerStyle:
    """Build the default marker style once; every surface shares the frozen result."""
    return MarkerStyle(radius=int(os.getenv("MAP_MARKER_RADIUS", "6")))


@dataclass
class PlacedMarker:
    poi: PointOfInterest
    color: str
    style: MarkerStyle
    on_activate: Callable[[], None] = field(repr=False)

    @property
    def popup_html(self) -> str:
        return f"<strong>{html.escape(self.poi.name)}</strong><br>{html.escape(self.poi.address)}"


def _latlon_to_tile_xy(lat: float, lon: float, zoom: int) -> Tuple[float, float]:
    """Convert lat/lon to fractional Web Mercator tile coords."""
    lat = max(min(lat, 85.0511), -85.0511)
    lat_rad = math.radians(lat)
    n = 2.0 ** zoom
    x = (lon + 180.0) / 360.0 * n
    y = (1.0 - math.log(math.tan(lat_rad) + 1.0 / math.cos(lat_rad)) / math.pi) / 2.0 * n
    return x, y


def _get_tile_db() -> sqlite3.Connection:
    """Lazily open the tile cache DB and ensure schema exists."""
    global _CACHE_DB
    with _CACHE_DB_LOCK:
        if _CACHE_DB is None:
            MAP_TILE_CACHE_PATH.parent.mkdir(parents=True, exist_ok=True)
            _CACHE_DB = sqlite3.connect(str(MAP_TILE_CACHE_PATH), check_same_thread=False)
            _CACHE_DB.execute(
                """
                CREATE TABLE IF NOT EXISTS tiles (
                    z INTEGER,
                    x INTEGER,
                    y INTEGER,
                    fetched_at INTEGER,
                    data BLOB,
                    PRIMARY KEY (z, x, y)
                )
                """
            )
            _CACHE_DB.commit()
        return _CACHE_DB


def _get_tile_from_cache(z: int, x: int, y: int) -> Optional[bytes]:
    """Fetch tile bytes from SQLite cache if present and not expired."""
    try:
        db = _get_tile_db()
        row = db.execute(
            "SELECT fetched_at, data FROM tiles WHERE z=? AND x=? AND y=?",
            (z, x, y),
        ).fetchone()
        if not row:
            return None
        fetched_at, data = row
        if MAP_TILE_CACHE_TTL_SECONDS > 0:
            age = time.time() - (fetched_at or 0)
            if age > MAP_TILE_CACHE_TTL_SECONDS:
                return None
        return data
    except sqlite3.Error as exc:
        print(f"[MAP] Tile cache read failed for {z}/{x}/{y}: {exc}")
        return None


def _store_tile_in_cache(z: int, x: int, y: int, data: bytes) -> None:
    try:
        db = _get_tile_db()
        db.execute(
            "INSERT OR REPLACE INTO tiles (z, x, y, fetched_at, data) VALUES (?, ?, ?, ?, ?)",
            (z, x, y, int(time.time()), data),
        )
        db.commit()
    except sqlite3.Error as exc:
        print(f"[MAP] Tile cache write failed for {z}/{x}/{y}: {exc}")


def _fetch_tile_http(z: int, x: int, y: int) -> Optional[Image.Image]:
    """
    Fetch a single tile via HTTP with rate limiting.
    Returns a PIL Image or None on error.
    """
    global _LAST_TILE_TS

    if not MAP_TILES_ENABLED or not MAP_TILE_URL_TEMPLATE:
        return None

    url = MAP_TILE_URL_TEMPLATE.format(z=z, x=x, y=y)
    with _TILE_LOCK:
        elapsed = time.time() - _LAST_TILE_TS
        if elapsed < MAP_TILE_MIN_INTERVAL_SEC:
            time.sleep(MAP_TILE_MIN_INTERVAL_SEC - elapsed)
        _LAST_TILE_TS = time.time()
        try:
            resp = _TILE_SESSION.get(url, headers=MAP_TILE_HEADERS, timeout=MAP_TILE_TIMEOUT)
            resp.raise_for_status()
        except requests.RequestException as exc:
            print(f"[MAP] Tile fetch failed for {url}: {exc}")
            return None

    try:
        return Image.open(BytesIO(resp.content)).convert("RGB")
    except OSError as exc:
        print(f"[MAP] Tile decode failed for {url}: {exc}")
        return None


@lru_cache(maxsize=512)
def _fetch_tile_cached(z: int, x: int, y: int) -> Optional[Image.Image]:
    """Cached tile fetch; wraps the throttled HTTP helper."""
    cached_bytes = _get_tile_from_cache(z, x, y)
    if cached_bytes:
        try:
            return Image.open(BytesIO(cached_bytes)).convert("RGB")
        except OSError as exc:
            print(f"[MAP] Tile cache decode failed for {z}/{x}/{y}: {exc}")
    else:
        print(f"[MAP] tile cache miss {z}/{x}/{y}")

    img = _fetch_tile_http(z, x, y)
    if img is not None:
        buf = BytesIO()
        img.save(buf, format="PNG")
        _store_tile_in_cache(z, x, y, buf.getvalue())
    return img


class MapSurface:
    """
    An interactive map surface: markers, a view, and activation by id.

    Raises RenderSurfaceUnavailable at construction when there is no usable
    container.
    """

    def __init__(self, container: Optional[MapContainer], view: MapView = DEFAULT_MAP_VIEW):
        if container is None or container.width <= 0 or container.height <= 0:
            raise RenderSurfaceUnavailable("Map container is missing or has no size")
        self.container = container
        self.view = view
        self.default_style = bootstrap_marker_style()
        self._markers: Dict[int, List[PlacedMarker]] = {}
        self._count = 0

    @property
    def marker_count(self) -> int:
        return self._count

    def markers(self) -> List[PlacedMarker]:
        return [m for group in self._markers.values() for m in group]

    def add_marker(
        self,
        poi: PointOfInterest,
        color: str,
        on_activate: Callable[[], None],
        style: Optional[MarkerStyle] = None,
    ) -> PlacedMarker:
        marker = PlacedMarker(poi=poi, color=color, style=style or self.default_style, on_activate=on_activate)
        self._markers.setdefault(poi.id, []).append(marker)
        self._count += 1
        return marker

    def clear_markers(self) -> None:
        self._markers.clear()
        self._count = 0

    def set_view(self, view: MapView) -> None:
        self.view = MapView(view.lat, view.lon, max(0, min(view.zoom, MAP_TILE_MAX_ZOOM)))

    def activate(self, poi_id: int) -> bool:
        """Activate the first marker placed for `poi_id`. Returns False if none is placed."""
        placed = self._markers.get(poi_id)
        if not placed:
            return False
        placed[0].on_activate()
        return True

    def project(self, lat: float, lon: float) -> Tuple[float, float]:
        """Project a coordinate to canvas pixels for the current view."""
        cx, cy = _latlon_to_tile_xy(self.view.lat, self.view.lon, self.view.zoom)
        px, py = _latlon_to_tile_xy(lat, lon, self.view.zoom)
        x = (px - cx) * TILE_SIZE + self.container.width / 2.0
        y = (py - cy) * TILE_SIZE + self.container.height / 2.0
        return x, y

    def _draw_tile_background(self, img: Image.Image) -> bool:
        """Paste tiles covering the view. Returns True if at least one tile was drawn."""
        if not MAP_TILES_ENABLED or not MAP_TILE_URL_TEMPLATE:
            return False
        zoom = self.view.zoom
        cx, cy = _latlon_to_tile_xy(self.view.lat, self.view.lon, zoom)
        half_w = self.container.width / 2.0 / TILE_SIZE
        half_h = self.container.height / 2.0 / TILE_SIZE
        n = 2 ** zoom
        x_min, x_max = int(math.floor(cx - half_w)), int(math.floor(cx + half_w))
        y_min, y_max = max(0, int(math.floor(cy - half_h))), min(n - 1, int(math.floor(cy + half_h)))

        any_tile = False
        for ty in range(y_min, y_max + 1):
            for tx in range(x_min, x_max + 1):
                tile = _fetch_tile_cached(zoom, tx % n, ty)
                if tile is None:
                    continue
                any_tile = True
                px = int((tx - cx) * TILE_SIZE + self.container.width / 2.0)
                py = int((ty - cy) * TILE_SIZE + self.container.height / 2.0)
                img.paste(tile.resize((TILE_SIZE, TILE_SIZE)), (px, py))
        return any_tile

    def _draw_grid(self, draw: ImageDraw.ImageDraw) -> None:
        w, h = self.container.width, self.container.height
        for x in range(0, w + 1, GRID_SPACING):
            draw.line([(x, 0), (x, h)], fill=GRID_COLOR, width=1)
        for y in range(0, h + 1, GRID_SPACING):
            draw.line([(0, y), (w, y)], fill=GRID_COLOR, width=1)

    def render_image(self) -> Image.Image:
        """Draw the current view and every placed marker."""
        w, h = self.container.width, self.container.height
        img = Image.new("RGB", (w, h), BACKGROUND_COLOR)
        tiles_ok = False
        try:
            tiles_ok = self._draw_tile_background(img)
        except (OSError, ValueError) as exc:
            print(f"[MAP] Tile background failed, falling back to grid: {exc}")
        draw = ImageDraw.Draw(img, "RGBA")
        if not tiles_ok:
            self._draw_grid(draw)

        for marker in self.markers():
            x, y = self.project(marker.poi.lat, marker.poi.lon)
            r = marker.style.radius
            if x < -r or y < -r or x > w + r or y > h + r:
                continue
            red, green, blue = ImageColor.getrgb(marker.color)[:3]
            fill = (red, green, blue, int(round(255 * marker.style.fill_opacity)))
            draw.ellipse(
                (x - r, y - r, x + r, y + r),
                fill=fill,
                outline=marker.style.outline_color,
                width=marker.style.outline_width,
            )
        if tiles_ok:
            draw.text((6, h - 16), MAP_TILE_ATTRIBUTION, fill=(40, 40, 40, 255))
        return img

    def save_snapshot(self, filename: str, output_dir: Optional[Path] = None) -> Path:
        """Write the rendered view as PNG and return its path."""
        out_dir = Path(output_dir) if output_dir else MAP_OUTPUT_DIR
        out_dir.mkdir(parents=True, exist_ok=True)
        path = out_dir / filename
        self.render_image().save(path, format="PNG")
        return path
