"""Sync throttle -- suppress automatic runs shortly after the previous one."""

from __future__ import annotations

from datetime import datetime, timedelta

from src.ledger.core.clock import Clock, ensure_aware, utc_now


class SyncThrottle:
    """Decide whether an automatic sync may run.

    A run is allowed when forced, when the organization has never synced, or
    when at least ``interval_seconds`` have elapsed since last_synced_at.
    """

    def __init__(self, interval_seconds: int = 120, clock: Clock = utc_now) -> None:
        self._interval = timedelta(seconds=interval_seconds)
        self._clock = clock

    def should_run(self, last_synced_at: datetime | None, force: bool = False) -> bool:
        if force or last_synced_at is None:
            return True
        return self._clock() - ensure_aware(last_synced_at) >= self._interval
