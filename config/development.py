import os

from config import activity_types_from_env, office_from_env

SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")

DB_CONFIG = {
    "host": os.getenv("DB_HOST", "localhost"),
    "port": int(os.getenv("DB_PORT", "3306")),
    "user": os.getenv("DB_USER", "root"),
    "password": os.getenv("DB_PASSWORD", ""),
    "database": os.getenv("DB_NAME", "attendance_engine"),
}

OFFICE_LOCATIONS = [office_from_env()]

PERSISTENCE_TIMEOUT_SEC = float(os.getenv("PERSISTENCE_TIMEOUT_SEC", "10"))
TICK_INTERVAL_SEC = float(os.getenv("TICK_INTERVAL_SEC", "1"))

LOCATION_MAX_ATTEMPTS = int(os.getenv("LOCATION_MAX_ATTEMPTS", "3"))
LOCATION_ATTEMPT_TIMEOUT_SEC = float(os.getenv("LOCATION_ATTEMPT_TIMEOUT_SEC", "15"))
LOCATION_BACKOFF_SEC = float(os.getenv("LOCATION_BACKOFF_SEC", "1"))
LOCATION_TOTAL_BUDGET_SEC = float(os.getenv("LOCATION_TOTAL_BUDGET_SEC", "60"))

SELFIE_REQUIRED_FOR = activity_types_from_env("SELFIE_REQUIRED_FOR", "clock_in,clock_out,break_end")

LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG")
DEBUG = True

# If enabled, app will apply schema.sql on startup (idempotent: CREATE IF NOT EXISTS)
AUTO_INIT_DB = bool(int(os.getenv("AUTO_INIT_DB", "1")))
