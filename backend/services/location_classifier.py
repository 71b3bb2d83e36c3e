"""
Turn raw tagged records into categorized points of interest.

Classification is a pure function of each record's own tags and position:
no cross-record state, no de-duplication, input order preserved.
"""
import math
from typing import Dict, Iterable, List, Optional, Tuple

from domain.models import LocationCategory, PointOfInterest, RawRecord
from settings import settings

AFFIRMATIVE = "yes"

EWASTE_TAGS = (
    "recycling:electronics",
    "recycling:electrical_items",
    "recycling:batteries",
)

# Material label -> source tags; order here is the order of `accepts`.
ACCEPTS_TAGS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("glass", ("recycling:glass",)),
    ("paper", ("recycling:paper",)),
    ("plastic", ("recycling:plastic",)),
    ("metal", ("recycling:metal",)),
    ("cardboard", ("recycling:cardboard",)),
    ("electronics", ("recycling:electronics", "recycling:electrical_items")),
    ("batteries", ("recycling:batteries",)),
)

EXCLUDED_SHELTER_TYPES = {"public_transport", "weather_shelter"}

ADDRESS_PARTS = ("addr:housenumber", "addr:street", "addr:city", "addr:state")

DEFAULT_NAMES = {
    LocationCategory.HOSPITAL: "Hospital",
    LocationCategory.SHELTER: "Shelter",
    LocationCategory.RECYCLING: "Recycling Point",
    LocationCategory.EWASTE: "Recycling Point",
}


def _is_affirmative(tags: Dict[str, str], key: str) -> bool:
    return tags.get(key) == AFFIRMATIVE


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _finite(value: Optional[float]) -> bool:
    return value is not None and math.isfinite(value)


def resolve_coordinates(record: RawRecord) -> Optional[Tuple[float, float]]:
    """Prefer the element's own point; otherwise its center; otherwise nothing."""
    if _finite(record.lat) and _finite(record.lon):
        return (record.lat, record.lon)
    if _finite(record.center_lat) and _finite(record.center_lon):
        return (record.center_lat, record.center_lon)
    return None


def resolve_category(tags: Dict[str, str]) -> Optional[LocationCategory]:
    amenity = tags.get("amenity")
    if amenity == "hospital":
        return LocationCategory.HOSPITAL
    if amenity == "recycling":
        if any(_is_affirmative(tags, key) for key in EWASTE_TAGS):
            return LocationCategory.EWASTE
        return LocationCategory.RECYCLING
    if tags.get("emergency") == "shelter":
        return LocationCategory.SHELTER
    if amenity == "shelter" and tags.get("shelter_type") not in EXCLUDED_SHELTER_TYPES:
        return LocationCategory.SHELTER
    return None


def resolve_address(tags: Dict[str, str], country_name: str) -> str:
    full = _clean(tags.get("addr:full"))
    if full:
        return full
    parts = [p for p in (_clean(tags.get(key)) for key in ADDRESS_PARTS) if p]
    if parts:
        return ", ".join(parts)
    return country_name


def resolve_accepts(tags: Dict[str, str]) -> Tuple[str, ...]:
    return tuple(
        label
        for label, keys in ACCEPTS_TAGS
        if any(_is_affirmative(tags, key) for key in keys)
    )


def classify_record(
    record: RawRecord,
    index: int = 0,
    country_name: Optional[str] = None,
) -> Optional[PointOfInterest]:
    """Return the normalized point for `record`, or None when it should be dropped."""
    coords = resolve_coordinates(record)
    if coords is None:
        return None
    tags = record.tags or {}
    category = resolve_category(tags)
    if category is None:
        return None

    accepts = None
    if category in (LocationCategory.RECYCLING, LocationCategory.EWASTE):
        accepts = resolve_accepts(tags)

    lat, lon = coords
    return PointOfInterest(
        id=record.id if record.id is not None else index,
        name=_clean(tags.get("name")) or DEFAULT_NAMES[category],
        category=category,
        lat=lat,
        lon=lon,
        address=resolve_address(tags, country_name or settings.COUNTRY_NAME),
        hours=tags.get("opening_hours"),
        phone=tags.get("phone") or tags.get("contact:phone"),
        accepts=accepts,
    )


def classify_records(
    records: Iterable[RawRecord],
    country_name: Optional[str] = None,
) -> List[PointOfInterest]:
    points: List[PointOfInterest] = []
    for idx, record in enumerate(records):
        poi = classify_record(record, idx, country_name=country_name)
        if poi is not None:
            points.append(poi)
    return points
