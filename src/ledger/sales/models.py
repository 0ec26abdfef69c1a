"""Ledger persistence models -- organization-scoped tables for sales and commissions.

Five SQLAlchemy models on LedgerBase:
- OrganizationModel: Tenant organization with its tax-deduction policy
- SellerModel: Internal seller, optionally linked to a CRM owner id
- SaleModel: A sale, either entered manually or imported from the CRM
- ReceivableModel: One installment of a sale's receivable schedule
- CredentialModel: OAuth tokens per organization + CRM provider

All scoping is by organization_id. Relationships are application-level
(no FK constraints), matching how the repositories load records.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSON, UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.ledger.core.database import LedgerBase

Money = Numeric(14, 2, asdecimal=False)


class OrganizationModel(LedgerBase):
    """Organization owning sellers, sales and CRM credentials.

    tax_deduction_rate is a percentage in [0, 100]; NULL means no deduction.
    """

    __tablename__ = "organizations"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    )
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    tax_deduction_rate: Mapped[float | None] = mapped_column(
        Numeric(5, 2, asdecimal=False), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        onupdate=func.now(),
        nullable=True,
    )


class SellerModel(LedgerBase):
    """Internal seller account.

    external_owner_id links the seller to a CRM user (Pipedrive user id).
    Only active sellers are used when mapping imported deals.
    """

    __tablename__ = "sellers"
    __table_args__ = (
        Index("ix_sellers_org_owner", "organization_id", "external_owner_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    )
    organization_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    external_owner_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default=text("true")
    )
    commission_rule: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        onupdate=func.now(),
        nullable=True,
    )


class SaleModel(LedgerBase):
    """A sale recorded in the ledger.

    CRM-origin sales carry integration_id + external_deal_id; manual sales
    carry neither. source_presence is the explicit presence flag
    (manual / active / tombstoned); source_deleted_at records when the deal
    disappeared from the CRM.
    """

    __tablename__ = "sales"
    __table_args__ = (
        Index(
            "ix_sales_org_integration_deal",
            "organization_id",
            "integration_id",
            "external_deal_id",
        ),
        Index("ix_sales_org_date", "organization_id", "sale_date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    )
    organization_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    seller_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    integration_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    external_deal_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    client_name: Mapped[str] = mapped_column(String(300), nullable=False)
    gross_value: Mapped[float] = mapped_column(Money, nullable=False)
    net_value: Mapped[float] = mapped_column(Money, nullable=False)
    commission_value: Mapped[float] = mapped_column(
        Money, default=0.0, server_default=text("0")
    )
    payment_condition: Mapped[str | None] = mapped_column(String(100), nullable=True)
    sale_date: Mapped[date] = mapped_column(Date, nullable=False)
    source_presence: Mapped[str] = mapped_column(
        String(20), default="manual", server_default=text("'manual'")
    )
    source_deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        onupdate=func.now(),
        nullable=True,
    )


class ReceivableModel(LedgerBase):
    """One scheduled installment of a sale.

    installment_value is the gross portion due; expected_amount is the
    commission portion. Status is pending until marked received.
    """

    __tablename__ = "receivables"
    __table_args__ = (
        Index("ix_receivables_sale", "sale_id"),
        Index("ix_receivables_org_due", "organization_id", "due_date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    )
    organization_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    sale_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    supplier_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    installment_number: Mapped[int] = mapped_column(
        Integer, default=1, server_default=text("1")
    )
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    expected_amount: Mapped[float] = mapped_column(Money, nullable=False)
    installment_value: Mapped[float] = mapped_column(Money, nullable=False)
    received_amount: Mapped[float | None] = mapped_column(Money, nullable=True)
    received_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    status: Mapped[str] = mapped_column(
        String(20), default="pending", server_default=text("'pending'")
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )


class CredentialModel(LedgerBase):
    """OAuth credential for one organization + CRM provider pair.

    last_synced_at doubles as the sync throttle clock.
    """

    __tablename__ = "crm_credentials"
    __table_args__ = (
        UniqueConstraint(
            "organization_id",
            "provider",
            name="uq_crm_credential_org_provider",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    )
    organization_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    provider: Mapped[str] = mapped_column(String(50), nullable=False)
    account_domain: Mapped[str | None] = mapped_column(String(300), nullable=True)
    access_token: Mapped[str] = mapped_column(Text, nullable=False)
    refresh_token: Mapped[str] = mapped_column(Text, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_synced_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        onupdate=func.now(),
        nullable=True,
    )
