import json

from domain.models import LocationCategory
from scripts import fetch_locations
from services.map_session import MapViewSession
from settings import settings


def test_offline_run_writes_json_and_snapshot(tmp_path):
    """Run the script end to end on the bundled dataset and check both outputs."""
    out_json = tmp_path / "out" / "locations.json"
    out_png = tmp_path / "maps" / "map.png"

    rc = fetch_locations.main(["--offline", "--output", str(out_json), "--snapshot", str(out_png)])
    assert rc == 0

    bundled = json.loads(settings.FALLBACK_LOCATIONS_PATH.read_text(encoding="utf-8"))
    written = json.loads(out_json.read_text(encoding="utf-8"))
    assert len(written) == len(bundled)
    assert out_png.exists() and out_png.stat().st_size > 0


def test_category_option_goes_through_set_filters(tmp_path, monkeypatch):
    seen = []
    original = MapViewSession.set_filters

    def tracking_set_filters(self, filters):
        seen.append(filters)
        return original(self, filters)

    monkeypatch.setattr(MapViewSession, "set_filters", tracking_set_filters)
    out_png = tmp_path / "shelters.png"

    rc = fetch_locations.main(["--offline", "--category", "shelter", "--snapshot", str(out_png)])

    assert rc == 0
    assert [f.ordered() for f in seen] == [[LocationCategory.SHELTER]]
    assert out_png.exists()


def test_unavailable_surface_still_closes_session(tmp_path, monkeypatch):
    closed = []
    original = MapViewSession.close

    def tracking_close(self):
        closed.append(self)
        original(self)

    monkeypatch.setattr(MapViewSession, "close", tracking_close)
    out_png = tmp_path / "map.png"

    rc = fetch_locations.main(["--offline", "--width", "0", "--snapshot", str(out_png)])

    assert rc == 1
    assert len(closed) == 1
    assert not out_png.exists()
