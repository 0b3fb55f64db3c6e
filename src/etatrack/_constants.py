"""Internal constants shared across the library."""

USER_AGENT = "etatrack/1"

# ------------------------------------------------------------------
# Poll scheduling (milliseconds)
# ------------------------------------------------------------------

MIN_POLL_INTERVAL_MS = 1000
MAX_POLL_INTERVAL_MS = 30000
MAX_JITTER_MS = 400
BACKOFF_BASE_MS = 1000
MAX_BACKOFF_DELAY_MS = 30000
MAX_BACKOFF_COUNT = 5

# ------------------------------------------------------------------
# Estimation
# ------------------------------------------------------------------

# Relative difference under which the batch and distance ETAs "agree".
AGREEMENT_RATIO = 0.2
PRIMARY_WEIGHT = 0.75
MIN_SPEED_MPS = 0.5
MIN_SYNTHESIZED_ETA_S = 1

DEFAULT_SMOOTHING_ALPHA = 0.25
DEFAULT_ASSUMED_SPEED_KMPH = 35.0

# Local great-circle provider (~50 km/h).
EARTH_RADIUS_M = 6371000.0
HAVERSINE_SPEED_MPS = 13.89
