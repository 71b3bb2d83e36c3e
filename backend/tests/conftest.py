import sys
from pathlib import Path

import pytest

# Ensure the backend package root is on sys.path for direct pytest runs
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))


@pytest.fixture(autouse=True)
def _no_shared_map_session():
    """Tear down the process-wide map session so tests never share markers."""
    from services.map_session import reset_default_map_session

    reset_default_map_session()
    yield
    reset_default_map_session()


@pytest.fixture(autouse=True)
def _no_tile_downloads(monkeypatch):
    from services import map_surface

    monkeypatch.setattr(map_surface, "MAP_TILES_ENABLED", False)
