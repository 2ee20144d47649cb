"""
Time helpers.

All timestamps are UTC. Age checks (stale-stream expiry) compare stored
timestamps against a cutoff computed here.
"""

from datetime import datetime, timedelta, timezone


def utcnow() -> datetime:
    """Current UTC time, timezone-aware."""
    return datetime.now(timezone.utc)


def cutoff(max_age: timedelta) -> datetime:
    """The instant `max_age` ago; anything stamped earlier is older than max_age."""
    return utcnow() - max_age
