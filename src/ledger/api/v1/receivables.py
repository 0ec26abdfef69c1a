"""REST API endpoints for receivable schedules and settlement."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from src.ledger.api.deps import EntityId, get_receivable_generator, get_sales_repository
from src.ledger.sales.schemas import (
    ReceivableRead,
    ReceivableScheduleInput,
    ReceivableStats,
    SaleRead,
)

router = APIRouter(prefix="/api/v1/organizations", tags=["receivables"])


# ── Request Schemas ──────────────────────────────────────────────────────────


class ScheduleRequest(BaseModel):
    """Optional supplier attribution for a generated schedule."""

    supplier_id: str | None = None


class MarkReceivedRequest(BaseModel):
    """Settlement amount; omitted means the installment's expected amount."""

    received_amount: float | None = Field(default=None, ge=0.0)


class NotesRequest(BaseModel):
    notes: str = Field(max_length=2000)


# ── Helpers ──────────────────────────────────────────────────────────────────


async def _load_sale(sales: Any, organization_id: str, sale_id: str) -> SaleRead:
    sale = await sales.get_sale(organization_id, sale_id)
    if sale is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Sale {sale_id} not found",
        )
    return sale


def _schedule_input(sale: SaleRead, body: ScheduleRequest) -> ReceivableScheduleInput:
    return ReceivableScheduleInput(
        organization_id=sale.organization_id,
        sale_id=sale.id,
        supplier_id=body.supplier_id,
        sale_date=sale.sale_date,
        gross_value=sale.gross_value,
        commission_value=sale.commission_value,
        payment_condition=sale.payment_condition,
    )


def _found(receivable: ReceivableRead | None, receivable_id: str) -> ReceivableRead:
    if receivable is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Receivable {receivable_id} not found",
        )
    return receivable


# ── Schedule Endpoints ───────────────────────────────────────────────────────


@router.post(
    "/{organization_id}/sales/{sale_id}/receivables",
    response_model=list[ReceivableRead],
    status_code=201,
)
async def generate_receivables(
    organization_id: EntityId,
    sale_id: EntityId,
    body: ScheduleRequest | None = None,
    sales: Any = Depends(get_sales_repository),
    generator: Any = Depends(get_receivable_generator),
) -> list[ReceivableRead]:
    sale = await _load_sale(sales, organization_id, sale_id)
    return await generator.generate(_schedule_input(sale, body or ScheduleRequest()))


@router.put(
    "/{organization_id}/sales/{sale_id}/receivables",
    response_model=list[ReceivableRead],
)
async def regenerate_receivables(
    organization_id: EntityId,
    sale_id: EntityId,
    body: ScheduleRequest | None = None,
    sales: Any = Depends(get_sales_repository),
    generator: Any = Depends(get_receivable_generator),
) -> list[ReceivableRead]:
    """Replace the sale's installment plan after its terms changed."""
    sale = await _load_sale(sales, organization_id, sale_id)
    return await generator.regenerate(_schedule_input(sale, body or ScheduleRequest()))


# ── Settlement Endpoints ─────────────────────────────────────────────────────


@router.post(
    "/{organization_id}/receivables/{receivable_id}/received",
    response_model=ReceivableRead,
)
async def mark_received(
    organization_id: EntityId,
    receivable_id: EntityId,
    body: MarkReceivedRequest | None = None,
    generator: Any = Depends(get_receivable_generator),
) -> ReceivableRead:
    amount = body.received_amount if body else None
    receivable = await generator.mark_received(organization_id, receivable_id, amount)
    return _found(receivable, receivable_id)


@router.delete(
    "/{organization_id}/receivables/{receivable_id}/received",
    response_model=ReceivableRead,
)
async def undo_received(
    organization_id: EntityId,
    receivable_id: EntityId,
    generator: Any = Depends(get_receivable_generator),
) -> ReceivableRead:
    receivable = await generator.undo_received(organization_id, receivable_id)
    return _found(receivable, receivable_id)


@router.patch(
    "/{organization_id}/receivables/{receivable_id}/notes",
    response_model=ReceivableRead,
)
async def update_notes(
    organization_id: EntityId,
    receivable_id: EntityId,
    body: NotesRequest,
    generator: Any = Depends(get_receivable_generator),
) -> ReceivableRead:
    receivable = await generator.update_notes(organization_id, receivable_id, body.notes)
    return _found(receivable, receivable_id)


@router.get("/{organization_id}/receivables/stats", response_model=ReceivableStats)
async def receivable_stats(
    organization_id: EntityId,
    generator: Any = Depends(get_receivable_generator),
) -> ReceivableStats:
    return await generator.stats(organization_id)
