"""
UTC timestamp utilities (stdlib-only).

Every scheduling decision compares instants, so all of them must agree on
a timezone. This module is the single place that decides what "now" and
"never" look like.

Manifesto:
    Mixing naive and aware datetimes raises ``TypeError`` at the worst
    possible moment (inside a running loop). Normalise at the edges:

    - **utc_now():** Timezone-aware UTC datetime
    - **ensure_utc():** Naive values are interpreted as UTC
    - **MAX_INSTANT:** The "never again" sentinel for exhausted schedules

Tags:
    timestamps, utc, datetime, cadence, stdlib-only

Doc-Types:
    - API Reference
    - Utility Documentation

STDLIB ONLY - NO PYDANTIC.
"""

from datetime import UTC, datetime

MAX_INSTANT = datetime.max.replace(tzinfo=UTC)


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(UTC)


def ensure_utc(dt: datetime) -> datetime:
    """Return *dt* as an aware UTC datetime.

    Naive datetimes are assumed to already be in UTC.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def to_iso8601(dt: datetime | None) -> str | None:
    """Convert datetime to ISO 8601 string."""
    if dt is None:
        return None
    return dt.isoformat()
