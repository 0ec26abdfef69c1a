"""Ledger repositories -- async persistence for organizations, sellers, sales, receivables.

Provides SalesRepository and ReceivableRepository with the session_factory
callable pattern: each method opens a session from the factory, does its
work, and commits. Serialization between SQLAlchemy models and Pydantic
schemas happens in the module-level helpers.

All methods take organization_id so every query is organization-scoped.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Callable
from datetime import date, datetime

import structlog
from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.ledger.sales.errors import InsertError
from src.ledger.sales.models import (
    OrganizationModel,
    ReceivableModel,
    SaleModel,
    SellerModel,
)
from src.ledger.sales.schemas import (
    CommissionRule,
    OrganizationRead,
    ReceivableCreate,
    ReceivableRead,
    ReceivableStatus,
    SaleCreate,
    SaleRead,
    SellerRead,
    SourcePresence,
)

logger = structlog.get_logger(__name__)

SessionFactory = Callable[..., AsyncGenerator[AsyncSession, None]]


def _uuid_or_none(value: str | None) -> uuid.UUID | None:
    return uuid.UUID(value) if value else None


def _str_or_none(value: uuid.UUID | None) -> str | None:
    return str(value) if value else None


# ── Serialization Helpers ───────────────────────────────────────────────────


def _model_to_organization(model: OrganizationModel) -> OrganizationRead:
    return OrganizationRead(
        id=str(model.id),
        name=model.name,
        tax_deduction_rate=model.tax_deduction_rate,
    )


def _model_to_seller(model: SellerModel) -> SellerRead:
    """Convert SellerModel to SellerRead, dropping an unreadable commission rule."""
    rule = None
    if model.commission_rule:
        try:
            rule = CommissionRule.model_validate(model.commission_rule)
        except ValueError:
            logger.warning("sellers.invalid_commission_rule", seller_id=str(model.id))

    return SellerRead(
        id=str(model.id),
        organization_id=str(model.organization_id),
        name=model.name,
        email=model.email,
        external_owner_id=model.external_owner_id,
        is_active=bool(model.is_active),
        commission_rule=rule,
    )


def _model_to_sale(model: SaleModel) -> SaleRead:
    return SaleRead(
        id=str(model.id),
        organization_id=str(model.organization_id),
        seller_id=_str_or_none(model.seller_id),
        integration_id=_str_or_none(model.integration_id),
        external_deal_id=model.external_deal_id,
        client_name=model.client_name,
        gross_value=model.gross_value,
        net_value=model.net_value,
        commission_value=model.commission_value or 0.0,
        payment_condition=model.payment_condition,
        sale_date=model.sale_date,
        source_presence=SourcePresence(model.source_presence),
        source_deleted_at=model.source_deleted_at,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def _model_to_receivable(model: ReceivableModel) -> ReceivableRead:
    return ReceivableRead(
        id=str(model.id),
        organization_id=str(model.organization_id),
        sale_id=str(model.sale_id),
        supplier_id=_str_or_none(model.supplier_id),
        installment_number=model.installment_number or 1,
        due_date=model.due_date,
        expected_amount=model.expected_amount,
        installment_value=model.installment_value,
        received_amount=model.received_amount,
        received_at=model.received_at,
        status=ReceivableStatus(model.status),
        notes=model.notes,
        created_at=model.created_at,
    )


def _receivable_to_model(data: ReceivableCreate) -> ReceivableModel:
    return ReceivableModel(
        organization_id=uuid.UUID(data.organization_id),
        sale_id=uuid.UUID(data.sale_id),
        supplier_id=_uuid_or_none(data.supplier_id),
        installment_number=data.installment_number,
        due_date=data.due_date,
        expected_amount=data.expected_amount,
        installment_value=data.installment_value,
        status=ReceivableStatus.PENDING.value,
    )


# ── Sales Repository ────────────────────────────────────────────────────────


class SalesRepository:
    """Async persistence for organizations, sellers and sales.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    # ── Organizations ───────────────────────────────────────────────────────

    async def get_organization(self, organization_id: str) -> OrganizationRead | None:
        async for session in self._session_factory():
            model = await session.get(OrganizationModel, uuid.UUID(organization_id))
            if model is None:
                return None
            return _model_to_organization(model)

    async def update_tax_rate(
        self, organization_id: str, rate: float | None
    ) -> OrganizationRead:
        """Set the organization's tax-deduction rate.

        Raises:
            ValueError: If the organization does not exist.
        """
        async for session in self._session_factory():
            model = await session.get(OrganizationModel, uuid.UUID(organization_id))
            if model is None:
                raise ValueError(f"Organization not found: {organization_id}")
            model.tax_deduction_rate = rate
            await session.commit()
            await session.refresh(model)
            return _model_to_organization(model)

    # ── Sellers ─────────────────────────────────────────────────────────────

    async def list_sellers(
        self, organization_id: str, active_only: bool = True
    ) -> list[SellerRead]:
        async for session in self._session_factory():
            stmt = select(SellerModel).where(
                SellerModel.organization_id == uuid.UUID(organization_id),
            )
            if active_only:
                stmt = stmt.where(SellerModel.is_active.is_(True))
            result = await session.execute(stmt.order_by(SellerModel.name))
            return [_model_to_seller(m) for m in result.scalars().all()]

    # ── Sales ───────────────────────────────────────────────────────────────

    async def get_sale(self, organization_id: str, sale_id: str) -> SaleRead | None:
        async for session in self._session_factory():
            stmt = select(SaleModel).where(
                SaleModel.organization_id == uuid.UUID(organization_id),
                SaleModel.id == uuid.UUID(sale_id),
            )
            result = await session.execute(stmt)
            model = result.scalar_one_or_none()
            if model is None:
                return None
            return _model_to_sale(model)

    async def list_crm_sales(
        self, organization_id: str, integration_id: str
    ) -> list[SaleRead]:
        """List every CRM-origin sale of one integration, tombstoned ones included."""
        async for session in self._session_factory():
            stmt = select(SaleModel).where(
                SaleModel.organization_id == uuid.UUID(organization_id),
                SaleModel.integration_id == uuid.UUID(integration_id),
                SaleModel.external_deal_id.is_not(None),
            )
            result = await session.execute(stmt)
            return [_model_to_sale(m) for m in result.scalars().all()]

    async def insert_sales(self, sales: list[SaleCreate]) -> list[SaleRead]:
        """Insert a batch of sales in a single transaction.

        Raises:
            InsertError: If the batch could not be committed; nothing is persisted.
        """
        if not sales:
            return []

        async for session in self._session_factory():
            models = [
                SaleModel(
                    organization_id=uuid.UUID(s.organization_id),
                    seller_id=_uuid_or_none(s.seller_id),
                    integration_id=_uuid_or_none(s.integration_id),
                    external_deal_id=s.external_deal_id,
                    client_name=s.client_name,
                    gross_value=s.gross_value,
                    net_value=s.net_value,
                    commission_value=s.commission_value,
                    payment_condition=s.payment_condition,
                    sale_date=s.sale_date,
                    source_presence=s.source_presence.value,
                )
                for s in sales
            ]
            try:
                session.add_all(models)
                await session.commit()
            except SQLAlchemyError as exc:
                await session.rollback()
                raise InsertError(f"Batch insert of {len(models)} sales failed: {exc}") from exc

            for model in models:
                await session.refresh(model)
            return [_model_to_sale(m) for m in models]

    async def tombstone_sales(
        self, organization_id: str, sale_ids: list[str], deleted_at: datetime
    ) -> int:
        """Mark sales as no longer present in their source CRM."""
        if not sale_ids:
            return 0
        async for session in self._session_factory():
            stmt = (
                update(SaleModel)
                .where(
                    SaleModel.organization_id == uuid.UUID(organization_id),
                    SaleModel.id.in_([uuid.UUID(s) for s in sale_ids]),
                )
                .values(
                    source_presence=SourcePresence.TOMBSTONED.value,
                    source_deleted_at=deleted_at,
                )
            )
            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount or 0

    async def restore_sales(self, organization_id: str, sale_ids: list[str]) -> int:
        """Clear the tombstone of sales whose deals reappeared in the CRM."""
        if not sale_ids:
            return 0
        async for session in self._session_factory():
            stmt = (
                update(SaleModel)
                .where(
                    SaleModel.organization_id == uuid.UUID(organization_id),
                    SaleModel.id.in_([uuid.UUID(s) for s in sale_ids]),
                )
                .values(
                    source_presence=SourcePresence.ACTIVE.value,
                    source_deleted_at=None,
                )
            )
            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount or 0

    async def list_sales_between(
        self, organization_id: str, start: date, end: date
    ) -> list[SaleRead]:
        """List sales dated within [start, end]."""
        async for session in self._session_factory():
            stmt = select(SaleModel).where(
                SaleModel.organization_id == uuid.UUID(organization_id),
                SaleModel.sale_date >= start,
                SaleModel.sale_date <= end,
            )
            result = await session.execute(stmt)
            return [_model_to_sale(m) for m in result.scalars().all()]

    async def update_net_values(
        self, organization_id: str, net_values: dict[str, float]
    ) -> int:
        """Write recomputed net values; returns how many sales were updated."""
        if not net_values:
            return 0
        updated = 0
        async for session in self._session_factory():
            for sale_id, net_value in net_values.items():
                stmt = (
                    update(SaleModel)
                    .where(
                        SaleModel.organization_id == uuid.UUID(organization_id),
                        SaleModel.id == uuid.UUID(sale_id),
                    )
                    .values(net_value=net_value)
                )
                result = await session.execute(stmt)
                updated += result.rowcount or 0
            await session.commit()
        return updated


# ── Receivable Repository ───────────────────────────────────────────────────


class ReceivableRepository:
    """Async persistence for receivable installments.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def create_batch(self, receivables: list[ReceivableCreate]) -> list[ReceivableRead]:
        if not receivables:
            return []
        async for session in self._session_factory():
            models = [_receivable_to_model(r) for r in receivables]
            session.add_all(models)
            await session.commit()
            for model in models:
                await session.refresh(model)
            return [_model_to_receivable(m) for m in models]

    async def replace_for_sale(
        self,
        organization_id: str,
        sale_id: str,
        receivables: list[ReceivableCreate],
    ) -> list[ReceivableRead]:
        """Delete a sale's receivables and insert a new schedule in one transaction."""
        async for session in self._session_factory():
            await session.execute(
                delete(ReceivableModel).where(
                    ReceivableModel.organization_id == uuid.UUID(organization_id),
                    ReceivableModel.sale_id == uuid.UUID(sale_id),
                )
            )
            models = [_receivable_to_model(r) for r in receivables]
            session.add_all(models)
            await session.commit()
            for model in models:
                await session.refresh(model)
            return [_model_to_receivable(m) for m in models]

    async def list_for_sale(self, organization_id: str, sale_id: str) -> list[ReceivableRead]:
        async for session in self._session_factory():
            stmt = (
                select(ReceivableModel)
                .where(
                    ReceivableModel.organization_id == uuid.UUID(organization_id),
                    ReceivableModel.sale_id == uuid.UUID(sale_id),
                )
                .order_by(ReceivableModel.installment_number)
            )
            result = await session.execute(stmt)
            return [_model_to_receivable(m) for m in result.scalars().all()]

    async def list_for_organization(self, organization_id: str) -> list[ReceivableRead]:
        async for session in self._session_factory():
            stmt = (
                select(ReceivableModel)
                .where(ReceivableModel.organization_id == uuid.UUID(organization_id))
                .order_by(ReceivableModel.due_date)
            )
            result = await session.execute(stmt)
            return [_model_to_receivable(m) for m in result.scalars().all()]

    async def _get_model(
        self, session: AsyncSession, organization_id: str, receivable_id: str
    ) -> ReceivableModel | None:
        stmt = select(ReceivableModel).where(
            ReceivableModel.organization_id == uuid.UUID(organization_id),
            ReceivableModel.id == uuid.UUID(receivable_id),
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def mark_received(
        self,
        organization_id: str,
        receivable_id: str,
        received_amount: float | None,
        received_at: datetime,
    ) -> ReceivableRead | None:
        """Settle an installment; amount defaults to its expected amount."""
        async for session in self._session_factory():
            model = await self._get_model(session, organization_id, receivable_id)
            if model is None:
                return None
            model.status = ReceivableStatus.RECEIVED.value
            model.received_amount = (
                received_amount if received_amount is not None else model.expected_amount
            )
            model.received_at = received_at
            await session.commit()
            await session.refresh(model)
            return _model_to_receivable(model)

    async def undo_received(
        self, organization_id: str, receivable_id: str
    ) -> ReceivableRead | None:
        async for session in self._session_factory():
            model = await self._get_model(session, organization_id, receivable_id)
            if model is None:
                return None
            model.status = ReceivableStatus.PENDING.value
            model.received_amount = None
            model.received_at = None
            await session.commit()
            await session.refresh(model)
            return _model_to_receivable(model)

    async def update_notes(
        self, organization_id: str, receivable_id: str, notes: str
    ) -> ReceivableRead | None:
        async for session in self._session_factory():
            model = await self._get_model(session, organization_id, receivable_id)
            if model is None:
                return None
            model.notes = notes
            await session.commit()
            await session.refresh(model)
            return _model_to_receivable(model)
