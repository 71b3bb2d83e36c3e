"""
Load cycle orchestration: remote geodata first, bundled dataset otherwise.

Every failure on the remote path is recovered here and recorded as a
diagnostic; callers always get a LoadResult (or None if the owner went away
while the load was in flight).
"""
from __future__ import annotations

import logging
from typing import Callable, Iterable, List, Optional

from domain.errors import FallbackDataError, LocationDataError, NoUsableRecords
from domain.models import LoadResult, LoadSource, PointOfInterest, RawRecord
from services.fallback_locations import load_fallback_locations
from services.location_classifier import classify_records
from services.overpass_client import fetch_raw_records
from settings import settings

logger = logging.getLogger(__name__)

FetchFn = Callable[[], List[RawRecord]]
ClassifyFn = Callable[[Iterable[RawRecord]], List[PointOfInterest]]
FallbackFn = Callable[[], List[PointOfInterest]]


def _diagnostic(exc: Exception) -> str:
    return f"{type(exc).__name__}: {exc}"


def load_locations(
    fetch: Optional[FetchFn] = None,
    classify: Optional[ClassifyFn] = None,
    load_fallback: Optional[FallbackFn] = None,
    is_mounted: Callable[[], bool] = lambda: True,
    remote_enabled: Optional[bool] = None,
) -> Optional[LoadResult]:
    """
    Run one load cycle.

    Returns None when `is_mounted()` reports the owner is gone by the time
    data is ready, so nothing acts on a disposed view.
    """
    fetch = fetch or fetch_raw_records
    classify = classify or classify_records
    load_fallback = load_fallback or load_fallback_locations
    if remote_enabled is None:
        remote_enabled = settings.REMOTE_LOOKUP_ENABLED

    diagnostics: List[str] = []
    if remote_enabled:
        try:
            records = fetch()
            points = classify(records)
            if not points:
                raise NoUsableRecords(f"{len(records)} records, none classifiable")
        except LocationDataError as exc:
            logger.warning("Nationwide data failed, falling back to bundled locations: %s", exc)
            diagnostics.append(_diagnostic(exc))
        else:
            if not is_mounted():
                logger.debug("Load finished after owner unmounted; discarding %d points", len(points))
                return None
            logger.info("Loaded %d locations from remote source", len(points))
            return LoadResult(points=points, source=LoadSource.REMOTE, diagnostics=diagnostics)
    else:
        diagnostics.append("Remote lookup disabled")

    if not is_mounted():
        return None

    try:
        fallback_points = load_fallback()
    except FallbackDataError as exc:
        logger.error("Failed to load locations: %s", exc)
        diagnostics.append(_diagnostic(exc))
        fallback_points = []

    if not is_mounted():
        return None
    return LoadResult(points=fallback_points, source=LoadSource.FALLBACK, diagnostics=diagnostics)
