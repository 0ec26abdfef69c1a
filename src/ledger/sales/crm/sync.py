"""Deal synchronization engine -- reconcile won CRM deals into the sales ledger.

One run walks a fixed sequence of stages (SyncStage), logging each transition:

    idle -> throttled                        (recent run, not forced)
    idle -> authorizing -> fetching -> diffing -> reconciling -> inserting -> done

Key rules:
- A remote deal is imported at most once per integration, keyed by its deal id.
- Known, present sales are never updated from the CRM.
- A local CRM sale whose deal vanished remotely is tombstoned, not deleted;
  it is restored if the deal reappears.
- Deals owned by an unmapped CRM user are skipped and counted, never erred.
- Authorization or fetch failures abort before any local mutation.
- An insert failure counts every candidate as an error; the run still completes.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field

import structlog

from src.ledger.core.clock import Clock, utc_now
from src.ledger.core.monitoring import (
    sync_deals_total,
    sync_run_duration_seconds,
    sync_runs_total,
)
from src.ledger.sales.commission import apply_tax_deduction, compute_commission
from src.ledger.sales.crm.credentials import PIPEDRIVE, CredentialRepository
from src.ledger.sales.crm.field_mapping import sale_date_for
from src.ledger.sales.crm.throttle import SyncThrottle
from src.ledger.sales.crm.tokens import TokenLifecycleManager
from src.ledger.sales.errors import CRMSyncError, IntegrationNotFound, InsertError
from src.ledger.sales.receivables import ReceivableScheduleGenerator
from src.ledger.sales.repository import SalesRepository
from src.ledger.sales.schemas import (
    CRMDeal,
    ReceivableScheduleInput,
    SaleCreate,
    SaleRead,
    SourcePresence,
    SyncResult,
    SyncStage,
)
from src.ledger.sales.sellers import SellerIdentityMapper

logger = structlog.get_logger(__name__)


@dataclass
class DealDiff:
    """Remote deals partitioned against the local CRM-origin sales."""

    new: list[CRMDeal] = field(default_factory=list)
    removed: list[SaleRead] = field(default_factory=list)
    restored: list[SaleRead] = field(default_factory=list)
    unchanged: list[SaleRead] = field(default_factory=list)


def diff_deals(remote: list[CRMDeal], local: list[SaleRead]) -> DealDiff:
    """Partition remote deals and local sales by external deal id.

    - new: remote deals with no local sale
    - removed: local, non-tombstoned sales whose deal is absent remotely
    - restored: local tombstoned sales whose deal is present again
    - unchanged: local, non-tombstoned sales still present remotely

    Local tombstoned sales still absent remotely appear in no bucket. A deal
    id repeated in the remote listing is considered once.
    """
    local_by_deal = {sale.external_deal_id: sale for sale in local if sale.external_deal_id}
    remote_ids: set[str] = set()
    diff = DealDiff()

    for deal in remote:
        deal_id = str(deal.id)
        if deal_id in remote_ids:
            continue
        remote_ids.add(deal_id)

        sale = local_by_deal.get(deal_id)
        if sale is None:
            diff.new.append(deal)
        elif sale.is_tombstoned:
            diff.restored.append(sale)
        else:
            diff.unchanged.append(sale)

    for deal_id, sale in local_by_deal.items():
        if deal_id not in remote_ids and not sale.is_tombstoned:
            diff.removed.append(sale)

    return diff


class DealSyncEngine:
    """Run one deal reconciliation for an organization.

    Args:
        sales: Organization, seller and sale persistence.
        credentials: Credential store (throttle input and last_synced_at).
        tokens: Token lifecycle manager that yields a live CRM handle.
        throttle: Gate for non-forced runs.
        receivables: Optional generator emitting installment plans for new sales.
        clock: Source of "now" for tombstones and sync timestamps.
    """

    def __init__(
        self,
        sales: SalesRepository,
        credentials: CredentialRepository,
        tokens: TokenLifecycleManager,
        throttle: SyncThrottle,
        receivables: ReceivableScheduleGenerator | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._sales = sales
        self._credentials = credentials
        self._tokens = tokens
        self._throttle = throttle
        self._receivables = receivables
        self._clock = clock

    def _stage(self, organization_id: str, stage: SyncStage, **context: object) -> None:
        logger.info("sync.stage", organization_id=organization_id, stage=stage.value, **context)

    async def run(self, organization_id: str, force: bool = False) -> SyncResult:
        """Synchronize won deals for organization_id.

        Raises:
            IntegrationNotFound: No credential is stored for the organization.
            IntegrationAuthError: Token refresh was rejected.
            FetchError: Listing remote deals failed.
        """
        self._stage(organization_id, SyncStage.IDLE, force=force)

        stored = await self._credentials.get(organization_id, provider=PIPEDRIVE)
        if stored is None:
            sync_runs_total.labels(outcome="not_connected").inc()
            raise IntegrationNotFound(organization_id, provider=PIPEDRIVE)

        if not self._throttle.should_run(stored.last_synced_at, force=force):
            self._stage(
                organization_id,
                SyncStage.THROTTLED,
                last_synced_at=stored.last_synced_at.isoformat() if stored.last_synced_at else None,
            )
            sync_runs_total.labels(outcome="throttled").inc()
            return SyncResult(throttled=True)

        started = time.perf_counter()
        with structlog.contextvars.bound_contextvars(organization_id=organization_id):
            try:
                result = await self._run_pipeline(organization_id)
            except CRMSyncError as exc:
                sync_runs_total.labels(outcome="failed").inc()
                logger.error(
                    "sync.aborted",
                    organization_id=organization_id,
                    error_type=type(exc).__name__,
                    error=str(exc),
                )
                raise
            finally:
                sync_run_duration_seconds.observe(time.perf_counter() - started)

        sync_runs_total.labels(outcome="completed").inc()
        return result

    async def _run_pipeline(self, organization_id: str) -> SyncResult:
        self._stage(organization_id, SyncStage.AUTHORIZING)
        handle = await self._tokens.get_live_handle(organization_id)
        integration_id = handle.credential.id

        self._stage(organization_id, SyncStage.FETCHING)
        remote = await handle.adapter.list_won_deals()

        self._stage(organization_id, SyncStage.DIFFING, remote_deals=len(remote))
        local = await self._sales.list_crm_sales(organization_id, integration_id)
        diff = diff_deals(remote, local)

        now = self._clock()
        removed = await self._sales.tombstone_sales(
            organization_id, [sale.id for sale in diff.removed], now
        )
        restored = await self._sales.restore_sales(
            organization_id, [sale.id for sale in diff.restored]
        )
        if removed or restored:
            logger.info(
                "sync.presence_reconciled",
                organization_id=organization_id,
                removed_from_source=removed,
                restored=restored,
            )

        self._stage(organization_id, SyncStage.RECONCILING, new_deals=len(diff.new))
        candidates, unmapped = await self._reconcile(organization_id, integration_id, diff.new)

        self._stage(organization_id, SyncStage.INSERTING, candidates=len(candidates))
        synced, errors = await self._insert(organization_id, candidates)

        result = SyncResult(
            synced=synced,
            skipped=len(diff.unchanged) + len(diff.restored) + unmapped,
            errors=errors,
            removed_from_source=removed,
            skipped_unmapped=unmapped,
            restored=restored,
        )

        await self._credentials.touch_last_synced(integration_id, self._clock())

        sync_deals_total.labels(disposition="synced").inc(result.synced)
        sync_deals_total.labels(disposition="skipped_existing").inc(
            result.skipped - result.skipped_unmapped
        )
        sync_deals_total.labels(disposition="skipped_unmapped").inc(result.skipped_unmapped)
        sync_deals_total.labels(disposition="error").inc(result.errors)

        self._stage(organization_id, SyncStage.DONE, **result.model_dump())
        return result

    async def _reconcile(
        self, organization_id: str, integration_id: str, deals: list[CRMDeal]
    ) -> tuple[list[SaleCreate], int]:
        """Map owners and compute values for new deals; returns (candidates, unmapped)."""
        if not deals:
            return [], 0

        organization = await self._sales.get_organization(organization_id)
        tax_rate = organization.tax_deduction_rate if organization else None
        mapper = SellerIdentityMapper(await self._sales.list_sellers(organization_id))
        today = self._clock().date()

        candidates: list[SaleCreate] = []
        unmapped = 0
        for deal in deals:
            seller = mapper.lookup(deal.owner_id)
            if seller is None:
                unmapped += 1
                logger.debug(
                    "sync.unmapped_seller",
                    organization_id=organization_id,
                    deal_id=deal.id,
                    owner_id=deal.owner_id,
                )
                continue

            net_value = apply_tax_deduction(deal.value, tax_rate)
            candidates.append(
                SaleCreate(
                    organization_id=organization_id,
                    seller_id=seller.id,
                    integration_id=integration_id,
                    external_deal_id=str(deal.id),
                    client_name=deal.title or f"Deal {deal.id}",
                    gross_value=round(deal.value, 2),
                    net_value=net_value,
                    commission_value=compute_commission(net_value, seller.commission_rule),
                    sale_date=sale_date_for(deal, today),
                    source_presence=SourcePresence.ACTIVE,
                )
            )

        return candidates, unmapped

    async def _insert(
        self, organization_id: str, candidates: list[SaleCreate]
    ) -> tuple[int, int]:
        """Insert candidates in one batch; returns (synced, errors)."""
        if not candidates:
            return 0, 0

        try:
            inserted = await self._sales.insert_sales(candidates)
        except InsertError as exc:
            logger.error(
                "sync.insert_failed",
                organization_id=organization_id,
                candidates=len(candidates),
                error=str(exc),
            )
            return 0, len(candidates)

        if self._receivables is not None:
            await self._emit_receivables(organization_id, inserted)

        return len(inserted), 0

    async def _emit_receivables(self, organization_id: str, sales: list[SaleRead]) -> None:
        for sale in sales:
            try:
                await self._receivables.generate(
                    ReceivableScheduleInput(
                        organization_id=organization_id,
                        sale_id=sale.id,
                        sale_date=sale.sale_date,
                        gross_value=sale.gross_value,
                        commission_value=sale.commission_value,
                        payment_condition=sale.payment_condition,
                    )
                )
            except Exception as exc:
                logger.error(
                    "sync.receivables_failed",
                    organization_id=organization_id,
                    sale_id=sale.id,
                    error=str(exc),
                    exc_info=True,
                )
