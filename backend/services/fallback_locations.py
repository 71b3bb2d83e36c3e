"""
Bundled fallback dataset.

The file holds points already in the normalized wire shape (the same shape
`PointOfInterest.to_dict` produces). Each record is validated on the way in
so a stale or hand-edited file cannot smuggle in unknown categories or
broken coordinates.
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field, StrictInt, ValidationError, model_validator

from domain.errors import FallbackDataError
from domain.models import LocationCategory, PointOfInterest
from settings import settings

logger = logging.getLogger(__name__)

MATERIAL_CATEGORIES = frozenset({LocationCategory.RECYCLING, LocationCategory.EWASTE})


class FallbackLocation(BaseModel):
    id: StrictInt
    name: str = Field(min_length=1)
    type: LocationCategory
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)
    address: str
    hours: Optional[str] = None
    phone: Optional[str] = None
    accepts: Optional[List[str]] = None
    capacity: Optional[str] = None

    @model_validator(mode="after")
    def check_accepts_category(self) -> "FallbackLocation":
        if self.accepts is not None and self.type not in MATERIAL_CATEGORIES:
            raise ValueError(f"accepts is not allowed for {self.type.value} records")
        return self

    def to_point(self) -> PointOfInterest:
        return PointOfInterest(
            id=self.id,
            name=self.name,
            category=self.type,
            lat=self.lat,
            lon=self.lng,
            address=self.address,
            hours=self.hours,
            phone=self.phone,
            accepts=tuple(self.accepts) if self.accepts is not None else None,
            capacity=self.capacity,
        )


def load_fallback_locations(path: Optional[Path] = None) -> List[PointOfInterest]:
    """
    Load and validate the bundled dataset.

    Invalid records are skipped with a warning. Raises FallbackDataError when
    the file cannot be read, is not a JSON list, or yields no valid records.
    """
    path = Path(path) if path else settings.FALLBACK_LOCATIONS_PATH
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise FallbackDataError(f"Cannot read fallback dataset {path}: {exc}") from exc
    except ValueError as exc:
        raise FallbackDataError(f"Fallback dataset {path} is not valid JSON: {exc}") from exc

    if not isinstance(payload, list):
        raise FallbackDataError(f"Fallback dataset {path} must be a JSON list")

    points: List[PointOfInterest] = []
    for idx, item in enumerate(payload):
        try:
            points.append(FallbackLocation.model_validate(item).to_point())
        except ValidationError as exc:
            logger.warning(
                "Skipping fallback record %d: schema mismatch (%d errors)",
                idx,
                exc.error_count(),
            )
    if not points:
        raise FallbackDataError(f"Fallback dataset {path} has no valid records")
    logger.info("Loaded %d/%d fallback locations from %s", len(points), len(payload), path)
    return points
