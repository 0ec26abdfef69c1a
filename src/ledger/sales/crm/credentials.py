"""Credential store -- OAuth tokens per organization + CRM provider.

Rows are created/replaced by the OAuth connect flow, token fields are
rewritten by the token lifecycle manager on refresh, last_synced_at is
written by the sync engine, and a row is deleted only on disconnect.
"""

from __future__ import annotations

import uuid
from datetime import datetime

import structlog
from sqlalchemy import delete, select, update

from src.ledger.sales.models import CredentialModel
from src.ledger.sales.repository import SessionFactory
from src.ledger.sales.schemas import CredentialRead, CredentialTokens

logger = structlog.get_logger(__name__)

PIPEDRIVE = "pipedrive"


def _model_to_credential(model: CredentialModel) -> CredentialRead:
    return CredentialRead(
        id=str(model.id),
        organization_id=str(model.organization_id),
        provider=model.provider,
        account_domain=model.account_domain,
        access_token=model.access_token,
        refresh_token=model.refresh_token,
        expires_at=model.expires_at,
        last_synced_at=model.last_synced_at,
    )


class CredentialRepository:
    """Async persistence for CRM OAuth credentials.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def get(
        self, organization_id: str, provider: str = PIPEDRIVE
    ) -> CredentialRead | None:
        async for session in self._session_factory():
            stmt = select(CredentialModel).where(
                CredentialModel.organization_id == uuid.UUID(organization_id),
                CredentialModel.provider == provider,
            )
            result = await session.execute(stmt)
            model = result.scalar_one_or_none()
            if model is None:
                return None
            return _model_to_credential(model)

    async def list_organization_ids(self, provider: str = PIPEDRIVE) -> list[str]:
        """Organizations with a stored credential for provider (scheduler input)."""
        async for session in self._session_factory():
            stmt = select(CredentialModel.organization_id).where(
                CredentialModel.provider == provider,
            )
            result = await session.execute(stmt)
            return [str(org_id) for org_id in result.scalars().all()]

    async def upsert(
        self,
        organization_id: str,
        tokens: CredentialTokens,
        provider: str = PIPEDRIVE,
    ) -> CredentialRead:
        """Create or replace the credential for (organization, provider)."""
        async for session in self._session_factory():
            stmt = select(CredentialModel).where(
                CredentialModel.organization_id == uuid.UUID(organization_id),
                CredentialModel.provider == provider,
            )
            result = await session.execute(stmt)
            model = result.scalar_one_or_none()

            if model is None:
                model = CredentialModel(
                    organization_id=uuid.UUID(organization_id),
                    provider=provider,
                )
                session.add(model)

            model.access_token = tokens.access_token
            model.refresh_token = tokens.refresh_token
            model.expires_at = tokens.expires_at
            model.account_domain = tokens.account_domain

            await session.commit()
            await session.refresh(model)
            logger.info(
                "credentials.upserted",
                organization_id=organization_id,
                provider=provider,
                credential_id=str(model.id),
            )
            return _model_to_credential(model)

    async def update_tokens(
        self, credential_id: str, tokens: CredentialTokens
    ) -> CredentialRead:
        """Persist refreshed tokens.

        Raises:
            ValueError: If the credential no longer exists (disconnected mid-refresh).
        """
        async for session in self._session_factory():
            model = await session.get(CredentialModel, uuid.UUID(credential_id))
            if model is None:
                raise ValueError(f"Credential not found: {credential_id}")

            model.access_token = tokens.access_token
            model.refresh_token = tokens.refresh_token
            model.expires_at = tokens.expires_at
            if tokens.account_domain:
                model.account_domain = tokens.account_domain

            await session.commit()
            await session.refresh(model)
            return _model_to_credential(model)

    async def touch_last_synced(self, credential_id: str, synced_at: datetime) -> None:
        async for session in self._session_factory():
            await session.execute(
                update(CredentialModel)
                .where(CredentialModel.id == uuid.UUID(credential_id))
                .values(last_synced_at=synced_at)
            )
            await session.commit()

    async def delete(self, organization_id: str, provider: str = PIPEDRIVE) -> bool:
        async for session in self._session_factory():
            result = await session.execute(
                delete(CredentialModel).where(
                    CredentialModel.organization_id == uuid.UUID(organization_id),
                    CredentialModel.provider == provider,
                )
            )
            await session.commit()
            deleted = bool(result.rowcount)
            logger.info(
                "credentials.deleted",
                organization_id=organization_id,
                provider=provider,
                deleted=deleted,
            )
            return deleted
