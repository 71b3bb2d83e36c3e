import json

import pytest

from domain.errors import FallbackDataError
from domain.models import LocationCategory, PointOfInterest
from services.fallback_locations import load_fallback_locations
from settings import settings


def _write(tmp_path, payload):
    path = tmp_path / "locations.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def test_bundled_dataset_loads_every_record():
    raw = json.loads(settings.FALLBACK_LOCATIONS_PATH.read_text(encoding="utf-8"))
    points = load_fallback_locations()
    assert len(points) == len(raw)
    assert {p.category for p in points} == set(LocationCategory)
    assert all(isinstance(p, PointOfInterest) for p in points)


def test_bundled_dataset_matches_live_wire_shape():
    raw = json.loads(settings.FALLBACK_LOCATIONS_PATH.read_text(encoding="utf-8"))
    points = load_fallback_locations()
    assert [p.to_dict() for p in points] == raw


def test_records_with_schema_mismatch_are_skipped(tmp_path):
    path = _write(
        tmp_path,
        [
            {"id": 1, "name": "Ok", "type": "hospital", "lat": 3.1, "lng": 101.6, "address": "KL"},
            {"id": 2, "name": "Bad type", "type": "bakery", "lat": 3.1, "lng": 101.6, "address": "KL"},
            {"id": 3, "name": "Bad lat", "type": "shelter", "lat": 123.0, "lng": 101.6, "address": "KL"},
            {"id": 4, "name": "Missing lng", "type": "shelter", "lat": 3.0, "address": "KL"},
            {
                "id": 5,
                "name": "Bins",
                "type": "recycling",
                "lat": 3.2,
                "lng": 101.7,
                "address": "PJ",
                "accepts": ["paper"],
            },
        ],
    )
    points = load_fallback_locations(path)
    assert [p.id for p in points] == [1, 5]
    assert points[1].accepts == ("paper",)


def test_missing_file_raises(tmp_path):
    with pytest.raises(FallbackDataError):
        load_fallback_locations(tmp_path / "nope.json")


def test_invalid_json_raises(tmp_path):
    path = tmp_path / "locations.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(FallbackDataError):
        load_fallback_locations(path)


def test_non_list_document_raises(tmp_path):
    with pytest.raises(FallbackDataError):
        load_fallback_locations(_write(tmp_path, {"elements": []}))


def test_no_valid_records_raises(tmp_path):
    with pytest.raises(FallbackDataError):
        load_fallback_locations(_write(tmp_path, [{"id": 1, "type": "bakery"}]))


def test_accepts_on_hospital_or_shelter_is_rejected(tmp_path):
    path = _write(
        tmp_path,
        [
            {"id": 1, "name": "H", "type": "hospital", "lat": 3.1, "lng": 101.6, "address": "KL", "accepts": ["glass"]},
            {"id": 2, "name": "S", "type": "shelter", "lat": 6.1, "lng": 102.2, "address": "KB", "accepts": []},
            {"id": 3, "name": "R", "type": "recycling", "lat": 3.2, "lng": 101.7, "address": "PJ", "accepts": ["glass"]},
        ],
    )
    points = load_fallback_locations(path)
    assert [(p.id, p.category, p.accepts) for p in points] == [(3, LocationCategory.RECYCLING, ("glass",))]


def test_boolean_or_string_id_is_rejected(tmp_path):
    path = _write(
        tmp_path,
        [
            {"id": True, "name": "Bool id", "type": "recycling", "lat": 3.2, "lng": 101.7, "address": "PJ"},
            {"id": "7", "name": "Str id", "type": "recycling", "lat": 3.2, "lng": 101.7, "address": "PJ"},
            {"id": 8, "name": "Int id", "type": "recycling", "lat": 3.2, "lng": 101.7, "address": "PJ"},
        ],
    )
    assert [p.id for p in load_fallback_locations(path)] == [8]
