import os

SECRET_KEY = "test-secret"

DB_CONFIG = {
    "host": os.getenv("DB_HOST", "localhost"),
    "port": int(os.getenv("DB_PORT", "3306")),
    "user": os.getenv("DB_USER", "root"),
    "password": os.getenv("DB_PASSWORD", ""),
    "database": os.getenv("DB_NAME", "attendance_engine_test"),
}

OFFICE_LOCATIONS = [
    {"name": "HQ", "latitude": -6.5623, "longitude": 107.7816, "radius_m": 100.0},
]

PERSISTENCE_TIMEOUT_SEC = 2.0
TICK_INTERVAL_SEC = 1.0

LOCATION_MAX_ATTEMPTS = 3
LOCATION_ATTEMPT_TIMEOUT_SEC = 1.0
LOCATION_BACKOFF_SEC = 0.0
LOCATION_TOTAL_BUDGET_SEC = 5.0

SELFIE_REQUIRED_FOR = ()

LOG_LEVEL = "WARNING"
DEBUG = False
TESTING = True

AUTO_INIT_DB = False
