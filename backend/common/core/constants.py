from enum import Enum


class Environment(str, Enum):
    """Environment profiles."""

    LOCAL = "local"
    DEV = "dev"
    STAGING = "staging"
    PRODUCTION = "production"


# Sentinel for quota fields with no cap
UNLIMITED = -1

# Attempts for the read / insert-or-increment loop when a dialect has no native upsert
USAGE_UPSERT_MAX_ATTEMPTS = 3
