"""Constants and defaults.

Note: Keep constants here to avoid magic numbers spread across code.
"""

EARTH_RADIUS_M = 6_371_000.0

DEFAULT_RADIUS_M = 100.0
DEFAULT_HISTORY_LIMIT = 30

DEFAULT_TICK_INTERVAL_SEC = 1.0
DEFAULT_PERSISTENCE_TIMEOUT_SEC = 10.0

DEFAULT_LOCATION_MAX_ATTEMPTS = 3
DEFAULT_LOCATION_ATTEMPT_TIMEOUT_SEC = 15.0
DEFAULT_LOCATION_BACKOFF_SEC = 1.0
DEFAULT_LOCATION_TOTAL_BUDGET_SEC = 60.0
