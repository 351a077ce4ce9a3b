"""UTC timestamp helpers.

All record timestamps are written as ISO-8601 strings in UTC so that the
record store sorts and displays them consistently across environments.
"""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    """Current UTC time formatted for record store timestamp fields."""
    return utc_now().isoformat(timespec="milliseconds").replace("+00:00", "Z")
