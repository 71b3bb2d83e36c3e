import os
from pathlib import Path

# Basic settings helper to read environment configuration.

BASE_DIR = Path(__file__).resolve().parent


def _as_bool(val: str | None, default: bool = False) -> bool:
    if val is None:
        return default
    return val.lower() in ("1", "true", "yes", "on")


def _as_int(val: str | None, default: int) -> int:
    if val is None or not val.strip():
        return default
    try:
        return int(val)
    except ValueError:
        return default


def _as_float(val: str | None, default: float) -> float:
    if val is None or not val.strip():
        return default
    try:
        return float(val)
    except ValueError:
        return default


class Settings:
    def __init__(self) -> None:
        self.REMOTE_LOOKUP_ENABLED: bool = _as_bool(os.getenv("REMOTE_LOOKUP_ENABLED"), True)
        self.OVERPASS_URL: str = os.getenv("OVERPASS_URL", "https://overpass-api.de/api/interpreter")
        self.OVERPASS_USER_AGENT: str = os.getenv(
            "OVERPASS_USER_AGENT", "ecoaware-map/0.1 (contact: example@example.com)"
        )
        self.OVERPASS_TIMEOUT_SECONDS: float = _as_float(os.getenv("OVERPASS_TIMEOUT_SECONDS"), 8.0)
        self.OVERPASS_MAX_ATTEMPTS: int = max(1, _as_int(os.getenv("OVERPASS_MAX_ATTEMPTS"), 2))
        self.OVERPASS_RETRY_BACKOFF_SECONDS: float = _as_float(
            os.getenv("OVERPASS_RETRY_BACKOFF_SECONDS"), 1.0
        )
        self.OVERPASS_MIN_INTERVAL_SECONDS: float = _as_float(
            os.getenv("OVERPASS_MIN_INTERVAL_SECONDS"), 1.0
        )
        self.COUNTRY_ISO_CODE: str = os.getenv("COUNTRY_ISO_CODE", "MY")
        self.COUNTRY_NAME: str = os.getenv("COUNTRY_NAME", "Malaysia")
        self.FALLBACK_LOCATIONS_PATH: Path = Path(
            os.getenv("FALLBACK_LOCATIONS_PATH", str(BASE_DIR / "data" / "locations.json"))
        )
        self.MAP_BATCH_SIZE: int = max(1, _as_int(os.getenv("MAP_BATCH_SIZE"), 300))
        self.MAP_WIDTH: int = _as_int(os.getenv("MAP_WIDTH"), 1200)
        self.MAP_HEIGHT: int = _as_int(os.getenv("MAP_HEIGHT"), 800)


settings = Settings()
