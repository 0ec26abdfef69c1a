"""REST API endpoints for CRM deal synchronization and CRM browsing."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query

from src.ledger.api.deps import EntityId, get_sync_service, raise_for_crm_error
from src.ledger.sales.errors import CRMSyncError
from src.ledger.sales.schemas import CRMDeal, CRMUser, SyncResult

router = APIRouter(prefix="/api/v1/organizations", tags=["sync"])


@router.post("/{organization_id}/sync", response_model=SyncResult)
async def sync_deals(
    organization_id: EntityId,
    sync_service: Any = Depends(get_sync_service),
) -> SyncResult:
    """Run a deal sync unless one completed within the throttle window."""
    try:
        return await sync_service.sync_if_needed(organization_id)
    except CRMSyncError as exc:
        raise_for_crm_error(exc)


@router.post("/{organization_id}/sync/force", response_model=SyncResult)
async def force_sync_deals(
    organization_id: EntityId,
    sync_service: Any = Depends(get_sync_service),
) -> SyncResult:
    """Run a deal sync now, ignoring the throttle window."""
    try:
        return await sync_service.force_sync(organization_id)
    except CRMSyncError as exc:
        raise_for_crm_error(exc)


@router.get("/{organization_id}/crm/users", response_model=list[CRMUser])
async def list_crm_users(
    organization_id: EntityId,
    sync_service: Any = Depends(get_sync_service),
) -> list[CRMUser]:
    try:
        return await sync_service.list_crm_users(organization_id)
    except CRMSyncError as exc:
        raise_for_crm_error(exc)


@router.get("/{organization_id}/crm/deals", response_model=list[CRMDeal])
async def preview_crm_deals(
    organization_id: EntityId,
    deal_status: str = Query(default="won", alias="status"),
    sync_service: Any = Depends(get_sync_service),
) -> list[CRMDeal]:
    """Read-only listing of remote deals; the ledger is not modified."""
    try:
        return await sync_service.preview_deals(organization_id, status=deal_status)
    except CRMSyncError as exc:
        raise_for_crm_error(exc)
