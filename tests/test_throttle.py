"""Unit tests for SyncThrottle."""

from __future__ import annotations

from datetime import timedelta

from src.ledger.sales.crm.throttle import SyncThrottle


def test_never_synced_runs(clock):
    assert SyncThrottle(clock=clock).should_run(None) is True


def test_within_interval_is_suppressed(clock):
    throttle = SyncThrottle(interval_seconds=120, clock=clock)

    assert throttle.should_run(clock() - timedelta(seconds=119)) is False


def test_at_interval_runs(clock):
    throttle = SyncThrottle(interval_seconds=120, clock=clock)

    assert throttle.should_run(clock() - timedelta(seconds=120)) is True


def test_force_always_runs(clock):
    throttle = SyncThrottle(interval_seconds=120, clock=clock)

    assert throttle.should_run(clock(), force=True) is True


def test_naive_timestamp_treated_as_utc(clock):
    throttle = SyncThrottle(interval_seconds=120, clock=clock)
    naive = (clock() - timedelta(minutes=10)).replace(tzinfo=None)

    assert throttle.should_run(naive) is True
