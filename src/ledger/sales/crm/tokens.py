"""Token lifecycle -- hand out live CRM handles, refreshing tokens near expiry.

A credential whose access token expires within the renewal margin is
refreshed before use. Refreshes for the same organization are serialized by
a per-organization asyncio.Lock, and the credential is re-read inside the
lock so a concurrent caller reuses the token the first caller obtained
instead of spending the (single-use) refresh token twice.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from datetime import timedelta

import structlog

from src.ledger.core.clock import Clock, ensure_aware, utc_now
from src.ledger.core.monitoring import token_refreshes_total
from src.ledger.sales.crm.adapter import CRMAdapter
from src.ledger.sales.crm.credentials import PIPEDRIVE, CredentialRepository
from src.ledger.sales.crm.oauth import PipedriveOAuthClient, tokens_from_response
from src.ledger.sales.errors import IntegrationAuthError, IntegrationNotFound
from src.ledger.sales.schemas import CredentialRead

logger = structlog.get_logger(__name__)

# (access_token, api_domain) -> adapter
AdapterFactory = Callable[[str, str], CRMAdapter]


@dataclass(frozen=True)
class LiveHandle:
    """A credential with a usable access token and an adapter bound to it."""

    credential: CredentialRead
    adapter: CRMAdapter


class TokenLifecycleManager:
    """Resolve an organization's credential into a live CRM handle.

    Args:
        credentials: Credential store.
        oauth: Client used to refresh tokens.
        adapter_factory: Builds a CRM adapter from an access token and API domain.
        refresh_margin_seconds: Refresh tokens expiring within this window.
        clock: Source of "now".
    """

    def __init__(
        self,
        credentials: CredentialRepository,
        oauth: PipedriveOAuthClient,
        adapter_factory: AdapterFactory,
        refresh_margin_seconds: int = 300,
        clock: Clock = utc_now,
    ) -> None:
        self._credentials = credentials
        self._oauth = oauth
        self._adapter_factory = adapter_factory
        self._margin = timedelta(seconds=refresh_margin_seconds)
        self._clock = clock
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, organization_id: str) -> asyncio.Lock:
        lock = self._locks.get(organization_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[organization_id] = lock
        return lock

    def needs_refresh(self, credential: CredentialRead) -> bool:
        return ensure_aware(credential.expires_at) - self._clock() <= self._margin

    async def _load(self, organization_id: str) -> CredentialRead:
        credential = await self._credentials.get(organization_id, provider=PIPEDRIVE)
        if credential is None:
            raise IntegrationNotFound(organization_id, provider=PIPEDRIVE)
        return credential

    async def get_live_handle(self, organization_id: str) -> LiveHandle:
        """Return a handle whose access token is valid beyond the margin.

        Raises:
            IntegrationNotFound: The organization has no stored credential.
            IntegrationAuthError: The provider rejected the refresh.
        """
        credential = await self._load(organization_id)

        if self.needs_refresh(credential):
            async with self._lock_for(organization_id):
                credential = await self._load(organization_id)
                if self.needs_refresh(credential):
                    credential = await self._refresh(credential)

        adapter = self._adapter_factory(
            credential.access_token, credential.account_domain or ""
        )
        return LiveHandle(credential=credential, adapter=adapter)

    async def _refresh(self, credential: CredentialRead) -> CredentialRead:
        logger.info(
            "tokens.refreshing",
            organization_id=credential.organization_id,
            expires_at=credential.expires_at.isoformat(),
        )
        try:
            response = await self._oauth.refresh(credential.refresh_token)
        except IntegrationAuthError:
            token_refreshes_total.labels(status="failed").inc()
            raise
        try:
            updated = await self._credentials.update_tokens(
                credential.id, tokens_from_response(response, self._clock())
            )
        except ValueError as exc:
            raise IntegrationAuthError(
                f"Credential {credential.id} disappeared during refresh"
            ) from exc

        token_refreshes_total.labels(status="success").inc()
        logger.info(
            "tokens.refreshed",
            organization_id=credential.organization_id,
            expires_at=updated.expires_at.isoformat(),
        )
        return updated
