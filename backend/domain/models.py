"""
Core domain models for the map pipeline.
These are framework-agnostic and can be used across all services.
"""
import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple


class LocationCategory(str, Enum):
    """Closed set of categories a point of interest can belong to."""
    RECYCLING = "recycling"
    EWASTE = "ewaste"
    HOSPITAL = "hospital"
    SHELTER = "shelter"


ALL_CATEGORIES: Tuple[LocationCategory, ...] = tuple(LocationCategory)


@dataclass(frozen=True)
class CategoryStyle:
    label: str
    color: str
    icon: str


CATEGORY_STYLES: Dict[LocationCategory, CategoryStyle] = {
    LocationCategory.RECYCLING: CategoryStyle("Recycling Centers", "#10b981", "♻️"),
    LocationCategory.EWASTE: CategoryStyle("E-Waste Points", "#3b82f6", "🔋"),
    LocationCategory.HOSPITAL: CategoryStyle("Hospitals", "#ef4444", "🏥"),
    LocationCategory.SHELTER: CategoryStyle("Flood Shelters", "#f59e0b", "🛡️"),
}


@dataclass(frozen=True)
class MapView:
    lat: float
    lon: float
    zoom: int


DEFAULT_MAP_VIEW = MapView(lat=4.2105, lon=101.9758, zoom=7)
SELECTED_ZOOM = 12


@dataclass(frozen=True)
class RawRecord:
    """
    A tagged element as returned by the geodata service.

    Nodes carry lat/lon directly; ways and relations only carry a center
    when the query asks for `out center`.
    """
    id: Optional[int]
    element_type: str = "node"
    lat: Optional[float] = None
    lon: Optional[float] = None
    center_lat: Optional[float] = None
    center_lon: Optional[float] = None
    tags: Dict[str, str] = field(default_factory=dict)


def _is_finite_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


@dataclass(frozen=True)
class PointOfInterest:
    """
    A normalized, categorized location ready for display.

    `id` is only unique within one load cycle. `accepts` is populated for
    recycling/e-waste points only; `capacity` only ever comes from the
    bundled dataset.
    """
    id: int
    name: str
    category: LocationCategory
    lat: float
    lon: float
    address: str
    hours: Optional[str] = None
    phone: Optional[str] = None
    accepts: Optional[Tuple[str, ...]] = None
    capacity: Optional[str] = None

    def __post_init__(self) -> None:
        if not isinstance(self.category, LocationCategory):
            raise ValueError(f"Unknown category: {self.category!r}")
        if not (_is_finite_number(self.lat) and _is_finite_number(self.lon)):
            raise ValueError(f"Coordinates must be finite numbers, got ({self.lat!r}, {self.lon!r})")

    @property
    def coordinates(self) -> Tuple[float, float]:
        return (self.lat, self.lon)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "type": self.category.value,
            "lat": self.lat,
            "lng": self.lon,
            "address": self.address,
        }
        if self.hours is not None:
            data["hours"] = self.hours
        if self.phone is not None:
            data["phone"] = self.phone
        if self.accepts is not None:
            data["accepts"] = list(self.accepts)
        if self.capacity is not None:
            data["capacity"] = self.capacity
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PointOfInterest":
        accepts = data.get("accepts")
        return cls(
            id=int(data["id"]),
            name=data["name"],
            category=LocationCategory(data["type"]),
            lat=data["lat"],
            lon=data["lng"],
            address=data["address"],
            hours=data.get("hours"),
            phone=data.get("phone"),
            accepts=tuple(accepts) if accepts is not None else None,
            capacity=data.get("capacity"),
        )


@dataclass(frozen=True)
class ActiveFilterSet:
    """Categories currently shown on the map. Immutable; toggling returns a new set."""
    categories: FrozenSet[LocationCategory] = frozenset(ALL_CATEGORIES)

    @classmethod
    def all(cls) -> "ActiveFilterSet":
        return cls(frozenset(ALL_CATEGORIES))

    @classmethod
    def of(cls, categories: Iterable[LocationCategory]) -> "ActiveFilterSet":
        return cls(frozenset(LocationCategory(c) for c in categories))

    def toggle(self, category: LocationCategory) -> "ActiveFilterSet":
        category = LocationCategory(category)
        if category in self.categories:
            return ActiveFilterSet(self.categories - {category})
        return ActiveFilterSet(self.categories | {category})

    def allows(self, poi: PointOfInterest) -> bool:
        return poi.category in self.categories

    def __contains__(self, category: object) -> bool:
        return category in self.categories

    def ordered(self) -> List[LocationCategory]:
        """Active categories in legend order."""
        return [c for c in ALL_CATEGORIES if c in self.categories]


class LoadSource(str, Enum):
    REMOTE = "remote"
    FALLBACK = "fallback"


@dataclass
class LoadResult:
    """Outcome of one load cycle."""
    points: List[PointOfInterest]
    source: LoadSource
    diagnostics: List[str] = field(default_factory=list)


@dataclass
class LoadRun:
    """A persisted load cycle, kept as a background diagnostic trail."""
    id: Optional[int]
    source: LoadSource
    point_count: int
    diagnostics: List[str] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.utcnow)
    finished_at: Optional[datetime] = None
