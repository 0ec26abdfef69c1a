"""Receivable schedule generator -- project a sale into installment receivables.

A payment condition is a slash-delimited list of day offsets ("30/60/90").
Each offset yields one installment due ``sale_date + offset`` days, in the
order the offsets were written. Gross and commission values are split evenly
across installments and rounded to cents; the rounding remainder is not
redistributed.
"""

from __future__ import annotations

import re
from datetime import date, timedelta

import structlog

from src.ledger.core.clock import Clock, utc_now
from src.ledger.sales.repository import ReceivableRepository
from src.ledger.sales.schemas import (
    ReceivableCreate,
    ReceivableRead,
    ReceivableScheduleInput,
    ReceivableStats,
    ReceivableStatus,
)

logger = structlog.get_logger(__name__)

CASH_SALE_OFFSETS = [0]

_LEADING_INT = re.compile(r"^\s*(-?\d+)")


def parse_payment_condition(condition: str | None) -> list[int]:
    """Parse "30/60/90" into [30, 60, 90].

    Parts without a leading integer, and negative offsets, are dropped. An
    empty, missing or fully unparseable condition is a cash sale: [0].

    >>> parse_payment_condition("0/30/60")
    [0, 30, 60]
    >>> parse_payment_condition(None)
    [0]
    """
    if not condition or not condition.strip():
        return list(CASH_SALE_OFFSETS)

    offsets: list[int] = []
    for part in condition.split("/"):
        match = _LEADING_INT.match(part)
        if match is None:
            continue
        offset = int(match.group(1))
        if offset >= 0:
            offsets.append(offset)

    return offsets or list(CASH_SALE_OFFSETS)


def build_schedule(data: ReceivableScheduleInput) -> list[ReceivableCreate]:
    """Pure projection of a sale into its installment plan."""
    offsets = parse_payment_condition(data.payment_condition)
    count = len(offsets)
    installment_value = round(data.gross_value / count, 2)
    commission_per_installment = round(data.commission_value / count, 2)

    return [
        ReceivableCreate(
            organization_id=data.organization_id,
            sale_id=data.sale_id,
            supplier_id=data.supplier_id,
            installment_number=number,
            due_date=data.sale_date + timedelta(days=offset),
            expected_amount=commission_per_installment,
            installment_value=installment_value,
        )
        for number, offset in enumerate(offsets, start=1)
    ]


def summarize(receivables: list[ReceivableRead], today: date) -> ReceivableStats:
    """Split receivables into pending, overdue and received totals.

    Overdue means pending with a due date strictly before today; overdue
    receivables are not also counted as pending. Totals are over the
    expected (commission) amount.
    """
    stats = ReceivableStats()
    for receivable in receivables:
        if receivable.status == ReceivableStatus.RECEIVED:
            stats.count_received += 1
            stats.total_received += receivable.expected_amount
        elif receivable.due_date < today:
            stats.count_overdue += 1
            stats.total_overdue += receivable.expected_amount
        else:
            stats.count_pending += 1
            stats.total_pending += receivable.expected_amount

    stats.total_pending = round(stats.total_pending, 2)
    stats.total_overdue = round(stats.total_overdue, 2)
    stats.total_received = round(stats.total_received, 2)
    return stats


class ReceivableScheduleGenerator:
    """Persist installment plans and settle individual installments.

    Args:
        repository: Receivable persistence.
        clock: Source of "now" for settlement timestamps and overdue checks.
    """

    def __init__(self, repository: ReceivableRepository, clock: Clock = utc_now) -> None:
        self._repository = repository
        self._clock = clock

    async def generate(self, data: ReceivableScheduleInput) -> list[ReceivableRead]:
        schedule = build_schedule(data)
        created = await self._repository.create_batch(schedule)
        logger.info(
            "receivables.generated",
            organization_id=data.organization_id,
            sale_id=data.sale_id,
            installments=len(created),
        )
        return created

    async def regenerate(self, data: ReceivableScheduleInput) -> list[ReceivableRead]:
        """Replace a sale's whole installment plan (after its terms were edited).

        Received installments are discarded along with pending ones.
        """
        existing = await self._repository.list_for_sale(data.organization_id, data.sale_id)
        received = [r for r in existing if r.status == ReceivableStatus.RECEIVED]
        if received:
            logger.warning(
                "receivables.regenerate_discards_received",
                organization_id=data.organization_id,
                sale_id=data.sale_id,
                received_count=len(received),
                received_total=round(sum(r.received_amount or 0.0 for r in received), 2),
            )

        created = await self._repository.replace_for_sale(
            data.organization_id, data.sale_id, build_schedule(data)
        )
        logger.info(
            "receivables.regenerated",
            organization_id=data.organization_id,
            sale_id=data.sale_id,
            replaced=len(existing),
            installments=len(created),
        )
        return created

    async def mark_received(
        self,
        organization_id: str,
        receivable_id: str,
        received_amount: float | None = None,
    ) -> ReceivableRead | None:
        receivable = await self._repository.mark_received(
            organization_id, receivable_id, received_amount, self._clock()
        )
        if receivable is not None:
            logger.info(
                "receivables.marked_received",
                organization_id=organization_id,
                receivable_id=receivable_id,
                received_amount=receivable.received_amount,
            )
        return receivable

    async def undo_received(
        self, organization_id: str, receivable_id: str
    ) -> ReceivableRead | None:
        return await self._repository.undo_received(organization_id, receivable_id)

    async def update_notes(
        self, organization_id: str, receivable_id: str, notes: str
    ) -> ReceivableRead | None:
        return await self._repository.update_notes(organization_id, receivable_id, notes)

    async def stats(self, organization_id: str, today: date | None = None) -> ReceivableStats:
        receivables = await self._repository.list_for_organization(organization_id)
        return summarize(receivables, today or self._clock().date())
