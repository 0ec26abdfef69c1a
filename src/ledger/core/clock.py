"""Injectable wall clock.

Time-dependent components (token renewal, sync throttling, tombstoning) take a
``Clock`` callable so tests can pin "now" deterministically.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Return the current timezone-aware UTC time."""
    return datetime.now(timezone.utc)


def ensure_aware(value: datetime) -> datetime:
    """Treat naive datetimes as UTC (drivers may strip tzinfo)."""
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
