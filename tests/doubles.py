"""In-memory test doubles for the ledger repositories, CRM adapter and clock.

Each double mirrors the async interface of its production counterpart so
services can be exercised without a database or network.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timedelta, timezone

from src.ledger.sales.crm.adapter import CRMAdapter
from src.ledger.sales.errors import FetchError, InsertError
from src.ledger.sales.schemas import (
    CRMDeal,
    CRMUser,
    CredentialRead,
    CredentialTokens,
    OrganizationRead,
    ReceivableCreate,
    ReceivableRead,
    ReceivableStatus,
    SaleCreate,
    SaleRead,
    SellerRead,
    SourcePresence,
)


# ── Clock ────────────────────────────────────────────────────────────────────


class FixedClock:
    """Callable clock pinned to ``now``; advance() moves it forward."""

    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


# ── Sales Repository ─────────────────────────────────────────────────────────


class InMemorySalesRepository:
    """In-memory SalesRepository."""

    def __init__(self) -> None:
        self.organizations: dict[str, OrganizationRead] = {}
        self.sellers: list[SellerRead] = []
        self.sales: dict[str, SaleRead] = {}
        self.fail_inserts = False
        self.insert_calls = 0

    def add_organization(self, organization_id: str, tax_rate: float | None = None) -> None:
        self.organizations[organization_id] = OrganizationRead(
            id=organization_id, name="Acme", tax_deduction_rate=tax_rate
        )

    def add_sale(self, data: SaleCreate) -> SaleRead:
        sale = SaleRead(id=str(uuid.uuid4()), **data.model_dump())
        self.sales[sale.id] = sale
        return sale

    async def get_organization(self, organization_id: str) -> OrganizationRead | None:
        return self.organizations.get(organization_id)

    async def update_tax_rate(self, organization_id: str, rate: float | None) -> OrganizationRead:
        organization = self.organizations.get(organization_id)
        if organization is None:
            raise ValueError(f"Organization not found: {organization_id}")
        updated = organization.model_copy(update={"tax_deduction_rate": rate})
        self.organizations[organization_id] = updated
        return updated

    async def list_sellers(self, organization_id: str, active_only: bool = True) -> list[SellerRead]:
        return [
            s
            for s in self.sellers
            if s.organization_id == organization_id and (s.is_active or not active_only)
        ]

    async def get_sale(self, organization_id: str, sale_id: str) -> SaleRead | None:
        sale = self.sales.get(sale_id)
        if sale and sale.organization_id == organization_id:
            return sale
        return None

    async def list_crm_sales(self, organization_id: str, integration_id: str) -> list[SaleRead]:
        return [
            s
            for s in self.sales.values()
            if s.organization_id == organization_id
            and s.integration_id == integration_id
            and s.external_deal_id is not None
        ]

    async def insert_sales(self, sales: list[SaleCreate]) -> list[SaleRead]:
        self.insert_calls += 1
        if self.fail_inserts:
            raise InsertError(f"Batch insert of {len(sales)} sales failed: simulated")
        return [self.add_sale(s) for s in sales]

    async def tombstone_sales(
        self, organization_id: str, sale_ids: list[str], deleted_at: datetime
    ) -> int:
        for sale_id in sale_ids:
            self.sales[sale_id] = self.sales[sale_id].model_copy(
                update={
                    "source_presence": SourcePresence.TOMBSTONED,
                    "source_deleted_at": deleted_at,
                }
            )
        return len(sale_ids)

    async def restore_sales(self, organization_id: str, sale_ids: list[str]) -> int:
        for sale_id in sale_ids:
            self.sales[sale_id] = self.sales[sale_id].model_copy(
                update={"source_presence": SourcePresence.ACTIVE, "source_deleted_at": None}
            )
        return len(sale_ids)

    async def list_sales_between(
        self, organization_id: str, start: date, end: date
    ) -> list[SaleRead]:
        return [
            s
            for s in self.sales.values()
            if s.organization_id == organization_id and start <= s.sale_date <= end
        ]

    async def update_net_values(self, organization_id: str, net_values: dict[str, float]) -> int:
        for sale_id, net_value in net_values.items():
            self.sales[sale_id] = self.sales[sale_id].model_copy(update={"net_value": net_value})
        return len(net_values)

    def by_deal_id(self, deal_id: int | str) -> SaleRead:
        return next(s for s in self.sales.values() if s.external_deal_id == str(deal_id))


# ── Receivable Repository ────────────────────────────────────────────────────


class InMemoryReceivableRepository:
    """In-memory ReceivableRepository."""

    def __init__(self) -> None:
        self.receivables: dict[str, ReceivableRead] = {}

    def _store(self, data: ReceivableCreate) -> ReceivableRead:
        receivable = ReceivableRead(id=str(uuid.uuid4()), **data.model_dump())
        self.receivables[receivable.id] = receivable
        return receivable

    async def create_batch(self, receivables: list[ReceivableCreate]) -> list[ReceivableRead]:
        return [self._store(r) for r in receivables]

    async def replace_for_sale(
        self, organization_id: str, sale_id: str, receivables: list[ReceivableCreate]
    ) -> list[ReceivableRead]:
        doomed = [
            r.id
            for r in self.receivables.values()
            if r.organization_id == organization_id and r.sale_id == sale_id
        ]
        for receivable_id in doomed:
            del self.receivables[receivable_id]
        return [self._store(r) for r in receivables]

    async def list_for_sale(self, organization_id: str, sale_id: str) -> list[ReceivableRead]:
        return sorted(
            (
                r
                for r in self.receivables.values()
                if r.organization_id == organization_id and r.sale_id == sale_id
            ),
            key=lambda r: r.installment_number,
        )

    async def list_for_organization(self, organization_id: str) -> list[ReceivableRead]:
        return [r for r in self.receivables.values() if r.organization_id == organization_id]

    def _get(self, organization_id: str, receivable_id: str) -> ReceivableRead | None:
        receivable = self.receivables.get(receivable_id)
        if receivable and receivable.organization_id == organization_id:
            return receivable
        return None

    async def mark_received(
        self,
        organization_id: str,
        receivable_id: str,
        received_amount: float | None,
        received_at: datetime,
    ) -> ReceivableRead | None:
        receivable = self._get(organization_id, receivable_id)
        if receivable is None:
            return None
        amount = received_amount if received_amount is not None else receivable.expected_amount
        updated = receivable.model_copy(
            update={
                "status": ReceivableStatus.RECEIVED,
                "received_amount": amount,
                "received_at": received_at,
            }
        )
        self.receivables[receivable_id] = updated
        return updated

    async def undo_received(self, organization_id: str, receivable_id: str) -> ReceivableRead | None:
        receivable = self._get(organization_id, receivable_id)
        if receivable is None:
            return None
        updated = receivable.model_copy(
            update={"status": ReceivableStatus.PENDING, "received_amount": None, "received_at": None}
        )
        self.receivables[receivable_id] = updated
        return updated

    async def update_notes(
        self, organization_id: str, receivable_id: str, notes: str
    ) -> ReceivableRead | None:
        receivable = self._get(organization_id, receivable_id)
        if receivable is None:
            return None
        updated = receivable.model_copy(update={"notes": notes})
        self.receivables[receivable_id] = updated
        return updated


# ── Credential Repository ────────────────────────────────────────────────────


class InMemoryCredentialRepository:
    """In-memory CredentialRepository keyed by (organization_id, provider)."""

    def __init__(self) -> None:
        self.credentials: dict[tuple[str, str], CredentialRead] = {}
        self.update_calls = 0

    def seed(
        self,
        organization_id: str,
        expires_at: datetime,
        last_synced_at: datetime | None = None,
        provider: str = "pipedrive",
    ) -> CredentialRead:
        credential = CredentialRead(
            id=str(uuid.uuid4()),
            organization_id=organization_id,
            provider=provider,
            account_domain="https://acme.pipedrive.com",
            access_token="access-1",
            refresh_token="refresh-1",
            expires_at=expires_at,
            last_synced_at=last_synced_at,
        )
        self.credentials[(organization_id, provider)] = credential
        return credential

    async def get(self, organization_id: str, provider: str = "pipedrive") -> CredentialRead | None:
        return self.credentials.get((organization_id, provider))

    async def list_organization_ids(self, provider: str = "pipedrive") -> list[str]:
        return [org for (org, p) in self.credentials if p == provider]

    async def upsert(
        self, organization_id: str, tokens: CredentialTokens, provider: str = "pipedrive"
    ) -> CredentialRead:
        existing = self.credentials.get((organization_id, provider))
        credential = CredentialRead(
            id=existing.id if existing else str(uuid.uuid4()),
            organization_id=organization_id,
            provider=provider,
            account_domain=tokens.account_domain,
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            expires_at=tokens.expires_at,
            last_synced_at=existing.last_synced_at if existing else None,
        )
        self.credentials[(organization_id, provider)] = credential
        return credential

    def _find(self, credential_id: str) -> tuple[str, str] | None:
        for key, credential in self.credentials.items():
            if credential.id == credential_id:
                return key
        return None

    async def update_tokens(self, credential_id: str, tokens: CredentialTokens) -> CredentialRead:
        self.update_calls += 1
        key = self._find(credential_id)
        if key is None:
            raise ValueError(f"Credential not found: {credential_id}")
        updated = self.credentials[key].model_copy(
            update={
                "access_token": tokens.access_token,
                "refresh_token": tokens.refresh_token,
                "expires_at": tokens.expires_at,
                "account_domain": tokens.account_domain or self.credentials[key].account_domain,
            }
        )
        self.credentials[key] = updated
        return updated

    async def touch_last_synced(self, credential_id: str, synced_at: datetime) -> None:
        key = self._find(credential_id)
        if key is not None:
            self.credentials[key] = self.credentials[key].model_copy(
                update={"last_synced_at": synced_at}
            )

    async def delete(self, organization_id: str, provider: str = "pipedrive") -> bool:
        return self.credentials.pop((organization_id, provider), None) is not None


# ── CRM Adapter ──────────────────────────────────────────────────────────────


class FakeCRMAdapter(CRMAdapter):
    """CRM adapter serving a mutable in-memory deal list in pages."""

    def __init__(
        self,
        deals: list[CRMDeal] | None = None,
        users: list[CRMUser] | None = None,
        page_size: int = 2,
    ) -> None:
        self.deals = list(deals or [])
        self.users = list(users or [])
        self.page_size = page_size
        self.fail_with: Exception | None = None
        self.page_requests = 0

    async def get_current_user(self) -> CRMUser:
        if self.fail_with:
            raise self.fail_with
        return self.users[0] if self.users else CRMUser(id=1, name="Owner")

    async def list_users(self) -> list[CRMUser]:
        if self.fail_with:
            raise self.fail_with
        return list(self.users)

    async def list_deals(
        self, status: str = "won", start: int = 0, limit: int | None = None
    ) -> tuple[list[CRMDeal], int | None]:
        self.page_requests += 1
        if self.fail_with:
            raise self.fail_with
        matching = [d for d in self.deals if d.status == status]
        size = limit or self.page_size
        page = matching[start : start + size]
        next_start = start + size if start + size < len(matching) else None
        return page, next_start


def make_deal(deal_id: int, owner_id: int | None = 7, value: float = 1000.0, **overrides) -> CRMDeal:
    defaults = {
        "id": deal_id,
        "title": f"Deal {deal_id}",
        "value": value,
        "status": "won",
        "won_time": "2026-03-01 10:00:00",
        "owner_id": owner_id,
    }
    defaults.update(overrides)
    return CRMDeal(**defaults)


def make_seller(organization_id: str, owner_id: int | None = 7, **overrides) -> SellerRead:
    defaults = {
        "id": str(uuid.uuid4()),
        "organization_id": organization_id,
        "name": "Ana",
        "external_owner_id": owner_id,
        "is_active": True,
        "commission_rule": {"type": "flat", "percentage": 10.0},
    }
    defaults.update(overrides)
    return SellerRead(**defaults)


def fetch_error() -> FetchError:
    return FetchError("Pipedrive /deals request failed: connection reset")
