"""Tests for the receivable schedule generator.

Covers payment-condition parsing, schedule projection (due dates, equal
split, input order), regeneration, settlement and cash-flow stats.
"""

from __future__ import annotations

from datetime import date

import pytest

from src.ledger.sales.receivables import (
    ReceivableScheduleGenerator,
    build_schedule,
    parse_payment_condition,
    summarize,
)
from src.ledger.sales.schemas import (
    ReceivableRead,
    ReceivableScheduleInput,
    ReceivableStatus,
)


# ── Helpers ────────────────────────────────────────────────────────────────


def _input(organization_id: str = "org-1", **overrides) -> ReceivableScheduleInput:
    defaults = {
        "organization_id": organization_id,
        "sale_id": "00000000-0000-0000-0000-000000000001",
        "sale_date": date(2026, 3, 1),
        "gross_value": 900.0,
        "commission_value": 90.0,
        "payment_condition": "30/60/90",
    }
    defaults.update(overrides)
    return ReceivableScheduleInput(**defaults)


# ── Parsing ────────────────────────────────────────────────────────────────


class TestParsePaymentCondition:
    @pytest.mark.parametrize(
        ("condition", "expected"),
        [
            ("30/60/90", [30, 60, 90]),
            (" 0 / 30 ", [0, 30]),
            ("90/30/60", [90, 30, 60]),
            ("30d/60d", [30, 60]),
            ("30/abc/60", [30, 60]),
            ("30/-5/60", [30, 60]),
        ],
    )
    def test_offsets(self, condition, expected):
        assert parse_payment_condition(condition) == expected

    @pytest.mark.parametrize("condition", [None, "", "   ", "a vista", "-10"])
    def test_cash_sale_defaults(self, condition):
        assert parse_payment_condition(condition) == [0]


# ── Schedule Projection ────────────────────────────────────────────────────


class TestBuildSchedule:
    def test_due_dates_follow_offsets(self):
        schedule = build_schedule(_input())

        assert [r.due_date for r in schedule] == [
            date(2026, 3, 31),
            date(2026, 4, 30),
            date(2026, 5, 30),
        ]
        assert [r.installment_number for r in schedule] == [1, 2, 3]

    def test_due_dates_keep_input_order(self):
        schedule = build_schedule(_input(payment_condition="60/30"))

        assert [r.due_date for r in schedule] == [date(2026, 4, 30), date(2026, 3, 31)]

    def test_cash_sale_single_installment_on_sale_date(self):
        schedule = build_schedule(_input(payment_condition=None))

        assert len(schedule) == 1
        assert schedule[0].due_date == date(2026, 3, 1)
        assert schedule[0].installment_value == 900.0
        assert schedule[0].expected_amount == 90.0

    def test_equal_split(self):
        schedule = build_schedule(_input())

        assert all(r.installment_value == 300.0 for r in schedule)
        assert all(r.expected_amount == 30.0 for r in schedule)

    def test_sum_within_rounding_tolerance(self):
        schedule = build_schedule(
            _input(gross_value=1000.0, commission_value=100.0, payment_condition="30/60/90")
        )
        n = len(schedule)

        assert abs(sum(r.installment_value for r in schedule) - 1000.0) <= 0.01 * (n - 1)
        assert abs(sum(r.expected_amount for r in schedule) - 100.0) <= 0.01 * (n - 1)

    def test_crosses_month_and_year_boundaries(self):
        schedule = build_schedule(
            _input(sale_date=date(2026, 12, 15), payment_condition="20")
        )

        assert schedule[0].due_date == date(2027, 1, 4)


# ── Generator ──────────────────────────────────────────────────────────────


class TestReceivableScheduleGenerator:
    @pytest.fixture
    def generator(self, receivable_repo, clock):
        return ReceivableScheduleGenerator(receivable_repo, clock=clock)

    async def test_generate_persists_schedule(self, generator, receivable_repo):
        created = await generator.generate(_input())

        assert len(created) == 3
        assert len(receivable_repo.receivables) == 3

    async def test_regenerate_replaces_all_installments(self, generator, receivable_repo):
        await generator.generate(_input())

        created = await generator.regenerate(_input(payment_condition="15/45"))

        assert len(created) == 2
        remaining = await receivable_repo.list_for_sale("org-1", _input().sale_id)
        assert [r.due_date for r in remaining] == [date(2026, 3, 16), date(2026, 4, 15)]

    async def test_regenerate_discards_received_installments(self, generator, receivable_repo):
        first, *_ = await generator.generate(_input())
        await generator.mark_received("org-1", first.id)

        created = await generator.regenerate(_input())

        assert all(r.status == ReceivableStatus.PENDING for r in created)
        assert first.id not in receivable_repo.receivables

    async def test_mark_received_defaults_to_expected_amount(self, generator, clock):
        first, *_ = await generator.generate(_input())

        received = await generator.mark_received("org-1", first.id)

        assert received.status == ReceivableStatus.RECEIVED
        assert received.received_amount == 30.0
        assert received.received_at == clock.now

    async def test_mark_received_with_explicit_amount(self, generator):
        first, *_ = await generator.generate(_input())

        received = await generator.mark_received("org-1", first.id, received_amount=25.5)

        assert received.received_amount == 25.5

    async def test_undo_received(self, generator):
        first, *_ = await generator.generate(_input())
        await generator.mark_received("org-1", first.id)

        undone = await generator.undo_received("org-1", first.id)

        assert undone.status == ReceivableStatus.PENDING
        assert undone.received_amount is None
        assert undone.received_at is None

    async def test_unknown_receivable_returns_none(self, generator):
        assert await generator.mark_received("org-1", "missing") is None
        assert await generator.update_notes("org-1", "missing", "x") is None

    async def test_other_organization_cannot_settle(self, generator):
        first, *_ = await generator.generate(_input())

        assert await generator.mark_received("org-2", first.id) is None

    async def test_update_notes(self, generator):
        first, *_ = await generator.generate(_input())

        updated = await generator.update_notes("org-1", first.id, "client asked for extension")

        assert updated.notes == "client asked for extension"

    async def test_stats_split_overdue_from_pending(self, generator):
        # Due 2026-03-31, 2026-04-30, 2026-05-30
        first, second, _ = await generator.generate(_input())
        await generator.mark_received("org-1", first.id)

        stats = await generator.stats("org-1", today=date(2026, 5, 1))

        assert stats.count_received == 1
        assert stats.total_received == 30.0
        assert stats.count_overdue == 1
        assert stats.total_overdue == 30.0
        assert stats.count_pending == 1
        assert stats.total_pending == 30.0


def test_summarize_due_today_is_not_overdue():
    schedule = build_schedule(_input(payment_condition="0"))

    receivables = [ReceivableRead(id="r1", **schedule[0].model_dump())]

    stats = summarize(receivables, today=date(2026, 3, 1))

    assert stats.count_overdue == 0
    assert stats.count_pending == 1
