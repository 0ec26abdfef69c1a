"""Organization tax policy endpoints -- rate update and net value recalculation."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from src.ledger.api.deps import EntityId, get_recalculator
from src.ledger.sales.schemas import OrganizationRead, TaxRateUpdate

router = APIRouter(prefix="/api/v1/organizations", tags=["organizations"])


class RecalculateResponse(BaseModel):
    organization_id: str
    period: str | None = None
    updated: int = Field(
        description="Sales in the period whose net value changed under the current rate",
    )


@router.patch("/{organization_id}/tax-rate", response_model=OrganizationRead)
async def update_tax_rate(
    organization_id: EntityId,
    body: TaxRateUpdate,
    recalculator: Any = Depends(get_recalculator),
) -> OrganizationRead:
    """Set the tax-deduction rate (0-100, null clears it); sales are not rewritten."""
    try:
        return await recalculator.update_tax_rate(organization_id, body)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc


@router.post("/{organization_id}/sales/recalculate", response_model=RecalculateResponse)
async def recalculate_net_values(
    organization_id: EntityId,
    period: str | None = Query(default=None, pattern=r"^\d{4}-\d{2}$"),
    recalculator: Any = Depends(get_recalculator),
) -> RecalculateResponse:
    """Recompute net values of one month's sales (default: current month)."""
    try:
        updated = await recalculator.recalculate(organization_id, period)
    except ValueError as exc:
        code = (
            status.HTTP_404_NOT_FOUND
            if "not found" in str(exc)
            else status.HTTP_422_UNPROCESSABLE_ENTITY
        )
        raise HTTPException(status_code=code, detail=str(exc)) from exc

    return RecalculateResponse(organization_id=organization_id, period=period, updated=updated)
