"""Caller entry points for CRM synchronization and read-only CRM browsing."""

from __future__ import annotations

import structlog

from src.ledger.sales.crm.sync import DealSyncEngine
from src.ledger.sales.crm.tokens import TokenLifecycleManager
from src.ledger.sales.schemas import CRMDeal, CRMUser, SyncResult

logger = structlog.get_logger(__name__)


class SyncService:
    """Facade used by the HTTP layer and the scheduler.

    Args:
        engine: Deal synchronization engine.
        tokens: Token lifecycle manager for read-only CRM calls.
    """

    def __init__(self, engine: DealSyncEngine, tokens: TokenLifecycleManager) -> None:
        self._engine = engine
        self._tokens = tokens

    async def sync_if_needed(self, organization_id: str) -> SyncResult:
        """Run a sync unless one completed within the throttle window."""
        return await self._engine.run(organization_id, force=False)

    async def force_sync(self, organization_id: str) -> SyncResult:
        """Run a sync regardless of the throttle window (explicit user action)."""
        logger.info("sync.forced", organization_id=organization_id)
        return await self._engine.run(organization_id, force=True)

    async def list_crm_users(self, organization_id: str) -> list[CRMUser]:
        """CRM users available for linking to sellers."""
        handle = await self._tokens.get_live_handle(organization_id)
        return await handle.adapter.list_users()

    async def preview_deals(self, organization_id: str, status: str = "won") -> list[CRMDeal]:
        """First page of remote deals with status, without touching the ledger."""
        handle = await self._tokens.get_live_handle(organization_id)
        deals, _ = await handle.adapter.list_deals(status=status)
        return deals
