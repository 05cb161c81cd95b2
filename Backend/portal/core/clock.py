"""
Wall clock shared by every service that takes an injectable clock.
"""
from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
