"""Pydantic schemas for the sales ledger -- sellers, sales, receivables, CRM sync.

Defines all structured types shared by the repositories, engines and API:
- Enums: SourcePresence, ReceivableStatus, CommissionRuleType, SyncStage
- Organization: OrganizationRead, TaxRateUpdate
- Commission rules: CommissionBracket, CommissionRule
- Ledger records: SellerRead, SaleCreate/Read, ReceivableCreate/Read,
  ReceivableScheduleInput, ReceivableStats
- CRM payloads: CredentialRead, CredentialTokens, TokenResponse, CRMUser,
  CRMDeal, SyncResult
"""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, Field, model_validator


# ── Enums ───────────────────────────────────────────────────────────────────


class SourcePresence(str, Enum):
    """Presence of a sale in its source system."""

    MANUAL = "manual"
    ACTIVE = "active"
    TOMBSTONED = "tombstoned"


class ReceivableStatus(str, Enum):
    """Settlement state of a receivable installment."""

    PENDING = "pending"
    RECEIVED = "received"


class CommissionRuleType(str, Enum):
    """How a seller's commission percentage is selected."""

    FLAT = "flat"
    TIERED = "tiered"


class SyncStage(str, Enum):
    """Stages of a single deal synchronization run."""

    IDLE = "idle"
    THROTTLED = "throttled"
    AUTHORIZING = "authorizing"
    FETCHING = "fetching"
    DIFFING = "diffing"
    RECONCILING = "reconciling"
    INSERTING = "inserting"
    DONE = "done"


# ── Organization ────────────────────────────────────────────────────────────


class OrganizationRead(BaseModel):
    """Organization with its tax-deduction policy."""

    id: str
    name: str
    tax_deduction_rate: float | None = None


class TaxRateUpdate(BaseModel):
    """Validated tax-deduction rate change (percentage, 0-100; None clears it)."""

    tax_deduction_rate: float | None = Field(default=None, ge=0.0, le=100.0)


# ── Commission Rules ────────────────────────────────────────────────────────


class CommissionBracket(BaseModel):
    """One tier of a tiered commission rule.

    The range is inclusive at both ends; max_value None means unbounded.
    """

    min_value: float = Field(default=0.0, ge=0.0)
    max_value: float | None = None
    percentage: float = Field(ge=0.0, le=100.0)

    @model_validator(mode="after")
    def _check_range(self) -> CommissionBracket:
        if self.max_value is not None and self.max_value < self.min_value:
            raise ValueError("max_value must be greater than or equal to min_value")
        return self

    def contains(self, value: float) -> bool:
        """Return True if value falls inside this bracket's range."""
        if value < self.min_value:
            return False
        return self.max_value is None or value <= self.max_value


class CommissionRule(BaseModel):
    """Commission rule attached to a seller.

    Flat rules apply a single percentage. Tiered rules select the first
    bracket whose range contains the net value.
    """

    type: CommissionRuleType = CommissionRuleType.FLAT
    percentage: float | None = Field(default=None, ge=0.0, le=100.0)
    brackets: list[CommissionBracket] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_shape(self) -> CommissionRule:
        if self.type == CommissionRuleType.FLAT and self.percentage is None:
            raise ValueError("flat commission rules require a percentage")
        if self.type == CommissionRuleType.TIERED and not self.brackets:
            raise ValueError("tiered commission rules require at least one bracket")
        return self


# ── Sellers ─────────────────────────────────────────────────────────────────


class SellerRead(BaseModel):
    """Seller as loaded from the seller registry."""

    id: str
    organization_id: str
    name: str
    email: str | None = None
    external_owner_id: int | None = None
    is_active: bool = True
    commission_rule: CommissionRule | None = None


# ── Sales ───────────────────────────────────────────────────────────────────


class SaleCreate(BaseModel):
    """Schema for inserting a sale (manual or CRM-origin)."""

    organization_id: str
    seller_id: str | None = None
    integration_id: str | None = None
    external_deal_id: str | None = None
    client_name: str
    gross_value: float
    net_value: float
    commission_value: float = 0.0
    payment_condition: str | None = None
    sale_date: date
    source_presence: SourcePresence = SourcePresence.MANUAL


class SaleRead(BaseModel):
    """Schema for reading a sale (includes all persisted fields)."""

    id: str
    organization_id: str
    seller_id: str | None = None
    integration_id: str | None = None
    external_deal_id: str | None = None
    client_name: str
    gross_value: float
    net_value: float
    commission_value: float = 0.0
    payment_condition: str | None = None
    sale_date: date
    source_presence: SourcePresence = SourcePresence.MANUAL
    source_deleted_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_tombstoned(self) -> bool:
        return self.source_presence == SourcePresence.TOMBSTONED


# ── Receivables ─────────────────────────────────────────────────────────────


class ReceivableScheduleInput(BaseModel):
    """Everything needed to project a sale's installment plan."""

    organization_id: str
    sale_id: str
    supplier_id: str | None = None
    sale_date: date
    gross_value: float
    commission_value: float = 0.0
    payment_condition: str | None = None


class ReceivableCreate(BaseModel):
    """One installment to persist."""

    organization_id: str
    sale_id: str
    supplier_id: str | None = None
    installment_number: int = Field(default=1, ge=1)
    due_date: date
    expected_amount: float
    installment_value: float


class ReceivableRead(BaseModel):
    """Schema for reading a receivable."""

    id: str
    organization_id: str
    sale_id: str
    supplier_id: str | None = None
    installment_number: int = 1
    due_date: date
    expected_amount: float
    installment_value: float
    received_amount: float | None = None
    received_at: datetime | None = None
    status: ReceivableStatus = ReceivableStatus.PENDING
    notes: str | None = None
    created_at: datetime | None = None


class ReceivableStats(BaseModel):
    """Cash-flow totals over an organization's receivables (commission portion)."""

    total_pending: float = 0.0
    total_overdue: float = 0.0
    total_received: float = 0.0
    count_pending: int = 0
    count_overdue: int = 0
    count_received: int = 0


# ── CRM Sync Schemas ───────────────────────────────────────────────────────


class CredentialRead(BaseModel):
    """Stored OAuth credential for an organization + provider."""

    id: str
    organization_id: str
    provider: str
    account_domain: str | None = None
    access_token: str
    refresh_token: str
    expires_at: datetime
    last_synced_at: datetime | None = None


class CredentialTokens(BaseModel):
    """Token fields written on connect or refresh."""

    access_token: str
    refresh_token: str
    expires_at: datetime
    account_domain: str | None = None


class TokenResponse(BaseModel):
    """Pipedrive OAuth token endpoint response."""

    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_in: int
    scope: str = ""
    api_domain: str


class CRMUser(BaseModel):
    """A CRM user (potential seller)."""

    id: int
    name: str
    email: str | None = None
    active_flag: bool = True


class CRMDeal(BaseModel):
    """A CRM deal normalized at the boundary.

    owner_id is always a plain integer (or None) regardless of whether the
    API returned a nested user object or a bare identifier.
    """

    id: int
    title: str = ""
    value: float = 0.0
    currency: str | None = None
    status: str = "won"
    won_time: str | None = None
    close_time: str | None = None
    add_time: str | None = None
    owner_id: int | None = None
    owner_name: str | None = None


class SyncResult(BaseModel):
    """Summary of one deal synchronization run.

    skipped counts every remote deal not inserted for a benign reason
    (already imported or unmapped seller); skipped_unmapped is the
    unmapped-seller subset.
    """

    synced: int = 0
    skipped: int = 0
    errors: int = 0
    removed_from_source: int = 0
    skipped_unmapped: int = 0
    restored: int = 0
    throttled: bool = False
