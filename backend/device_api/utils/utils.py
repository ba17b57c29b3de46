from datetime import datetime, timezone


def current_datetime_utc() -> datetime:
    """Return current utc datetime (timezone-aware)."""
    return datetime.now(timezone.utc)
