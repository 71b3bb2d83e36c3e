"""Overpass (OpenStreetMap) client for nationwide point-of-interest data.

One aggregated query per load cycle. Anything short of a fully parsed
response raises a LocationDataError so the caller can switch to the bundled
dataset; nothing is cached here.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, List, Optional

import requests

from domain.errors import MalformedResponse, RemoteUnavailable
from domain.models import RawRecord
from settings import settings

logger = logging.getLogger(__name__)

# (key, value) pairs requested from the service; every pair is queried as
# node, way and relation.
TAG_SELECTORS = (
    ("amenity", "hospital"),
    ("amenity", "recycling"),
    ("emergency", "shelter"),
    ("amenity", "shelter"),
)
ELEMENT_TYPES = ("node", "way", "relation")
SERVER_TIMEOUT_SECONDS = 120
RETRYABLE_STATUS = {429, 500, 502, 503, 504}

_session = requests.Session()
_lock = threading.Lock()
_last_request_ts: float = 0.0

OVERPASS_HEADERS = {
    "User-Agent": settings.OVERPASS_USER_AGENT,
    "Content-Type": "application/x-www-form-urlencoded; charset=UTF-8",
}


def build_overpass_query(country_iso: str, server_timeout: int = SERVER_TIMEOUT_SECONDS) -> str:
    """Build the Overpass QL query for all four classes inside one country."""
    lines = [
        f"[out:json][timeout:{server_timeout}];",
        f'area["ISO3166-1"="{country_iso}"][admin_level=2]->.searchArea;',
        "(",
    ]
    for key, value in TAG_SELECTORS:
        for element_type in ELEMENT_TYPES:
            lines.append(f'  {element_type}["{key}"="{value}"](area.searchArea);')
    lines.append(");")
    lines.append("out center;")
    return "\n".join(lines)


def _throttled_post(url: str, *, data: dict[str, str], timeout: float) -> requests.Response:
    """POST with a simple process-wide minimum interval between calls."""
    global _last_request_ts
    with _lock:
        now = time.time()
        delta = now - _last_request_ts
        if delta < settings.OVERPASS_MIN_INTERVAL_SECONDS:
            time.sleep(settings.OVERPASS_MIN_INTERVAL_SECONDS - delta)
        _last_request_ts = time.time()
    return _session.post(url, data=data, headers=OVERPASS_HEADERS, timeout=timeout)


def _as_coord(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def parse_element(element: Any, index: int) -> RawRecord:
    """Parse a single Overpass element; falls back to its position for the id."""
    if not isinstance(element, dict):
        raise MalformedResponse(f"Element {index} is not an object")
    raw_id = element.get("id")
    element_id = raw_id if isinstance(raw_id, int) and not isinstance(raw_id, bool) else index
    tags = element.get("tags") or {}
    if not isinstance(tags, dict):
        raise MalformedResponse(f"Element {index} has non-object tags")
    center = element.get("center") or {}
    if not isinstance(center, dict):
        center = {}
    return RawRecord(
        id=element_id,
        element_type=str(element.get("type", "node")),
        lat=_as_coord(element.get("lat")),
        lon=_as_coord(element.get("lon")),
        center_lat=_as_coord(center.get("lat")),
        center_lon=_as_coord(center.get("lon")),
        tags={str(k): str(v) for k, v in tags.items()},
    )


def parse_overpass_payload(data: Any) -> List[RawRecord]:
    if not isinstance(data, dict):
        raise MalformedResponse("Overpass payload is not a JSON object")
    elements = data.get("elements")
    if not isinstance(elements, list):
        raise MalformedResponse("Overpass payload has no 'elements' array")
    return [parse_element(el, idx) for idx, el in enumerate(elements)]


def fetch_raw_records(
    url: Optional[str] = None,
    country_iso: Optional[str] = None,
    timeout: Optional[float] = None,
    max_attempts: Optional[int] = None,
    backoff_seconds: Optional[float] = None,
) -> List[RawRecord]:
    """
    Run the nationwide query and return every element as a RawRecord.

    Raises:
        RemoteUnavailable: network error, timeout or non-success status after retries.
        MalformedResponse: the body is not JSON or does not have the expected shape.
    """
    url = url or settings.OVERPASS_URL
    country_iso = country_iso or settings.COUNTRY_ISO_CODE
    timeout = timeout if timeout is not None else settings.OVERPASS_TIMEOUT_SECONDS
    max_attempts = max(1, max_attempts or settings.OVERPASS_MAX_ATTEMPTS)
    backoff = backoff_seconds if backoff_seconds is not None else settings.OVERPASS_RETRY_BACKOFF_SECONDS

    query = build_overpass_query(country_iso)
    last_error = "no attempt made"
    resp: Optional[requests.Response] = None
    for attempt in range(max_attempts):
        try:
            resp = _throttled_post(url, data={"data": query}, timeout=timeout)
        except requests.RequestException as exc:
            last_error = f"{type(exc).__name__}: {exc}"
            resp = None
        else:
            if resp.status_code in RETRYABLE_STATUS:
                last_error = f"Overpass error {resp.status_code}"
            elif not 200 <= resp.status_code < 300:
                raise RemoteUnavailable(f"Overpass error {resp.status_code}")
            else:
                break
        if attempt < max_attempts - 1:
            wait = backoff * (2 ** attempt)
            logger.warning(
                "Overpass request failed (%s), retrying in %.1fs (%d/%d)",
                last_error,
                wait,
                attempt + 1,
                max_attempts,
            )
            if wait > 0:
                time.sleep(wait)
    else:
        raise RemoteUnavailable(f"Overpass unavailable after {max_attempts} attempts: {last_error}")

    try:
        data = resp.json()
    except ValueError as exc:
        raise MalformedResponse(f"Overpass returned invalid JSON: {exc}") from exc

    records = parse_overpass_payload(data)
    logger.debug("Overpass returned %d elements for %s", len(records), country_iso)
    return records
