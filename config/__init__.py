import os

from attendance_engine.core.enums import ActivityType
from attendance_engine.geofence.model import OfficeLocation


def get_settings_module() -> str:
    # APP_ENV picks the settings module, defaulting to development
    env = os.getenv("APP_ENV", "development").lower()

    if env in {"prod", "production"}:
        return "config.production"

    if env in {"test", "testing"}:
        return "config.testing"

    return "config.development"


def office_from_env() -> dict:
    return {
        "name": os.getenv("OFFICE_NAME", "Office"),
        "latitude": float(os.getenv("OFFICE_LAT", "-6.562300216281189")),
        "longitude": float(os.getenv("OFFICE_LNG", "107.78160173799691")),
        "radius_m": float(os.getenv("OFFICE_RADIUS_M", "100")),
    }


def activity_types_from_env(name: str, default: str) -> tuple:
    raw = os.getenv(name, default)
    return tuple(ActivityType(part.strip()) for part in raw.split(",") if part.strip())


def build_offices(settings) -> list[OfficeLocation]:
    """Validate the configured offices. Raises ValidationError on bad coordinates."""
    return [OfficeLocation.parse(**office) for office in getattr(settings, "OFFICE_LOCATIONS")]
