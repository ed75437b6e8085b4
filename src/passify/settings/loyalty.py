"""Loyalty ledger configuration."""

from decouple import config

# Organizational time zone used for day-based windows (inactivity targeting).
# Merchants may override it individually.
LOYALTY_TIME_ZONE: str = config("LOYALTY_TIME_ZONE", default="Europe/Berlin")

# How often a state mutation is retried after losing an optimistic concurrency race
LOYALTY_STATE_MAX_RETRIES: int = config("LOYALTY_STATE_MAX_RETRIES", default=3, cast=int)

LOYALTY_DEFAULT_STAMP_ICON: str = config("LOYALTY_DEFAULT_STAMP_ICON", default="☕️")
LOYALTY_DEFAULT_MAX_STAMPS: int = config("LOYALTY_DEFAULT_MAX_STAMPS", default=10, cast=int)
