"""Pipedrive OAuth 2.0 -- authorization URL, code exchange, token refresh.

Provides:
- encode_state() / decode_state(): Organization id carried through the
  authorization round-trip as URL-safe base64 JSON.
- PipedriveOAuthClient: Talks to the Pipedrive OAuth token endpoint.
- IntegrationConnector: Connect (callback) and disconnect flows that write
  the credential store.
"""

from __future__ import annotations

import base64
import json
from collections.abc import Callable
from datetime import datetime, timedelta
from urllib.parse import urlencode

import httpx
import structlog

from src.ledger.core.clock import Clock, utc_now
from src.ledger.sales.crm.adapter import CRMAdapter
from src.ledger.sales.crm.credentials import PIPEDRIVE, CredentialRepository
from src.ledger.sales.errors import FetchError, IntegrationAuthError, InvalidOAuthState
from src.ledger.sales.schemas import CredentialRead, CredentialTokens, TokenResponse

logger = structlog.get_logger(__name__)


# ── State Parameter ─────────────────────────────────────────────────────────


def encode_state(organization_id: str) -> str:
    raw = json.dumps({"organization_id": organization_id}).encode()
    return base64.urlsafe_b64encode(raw).decode()


def decode_state(state: str) -> str:
    """Return the organization id encoded in state.

    Raises:
        InvalidOAuthState: If state is not base64 JSON with an organization_id.
    """
    try:
        padded = state + "=" * (-len(state) % 4)
        payload = json.loads(base64.urlsafe_b64decode(padded.encode()))
    except (ValueError, TypeError) as exc:
        raise InvalidOAuthState("OAuth state is not valid base64 JSON") from exc

    organization_id = payload.get("organization_id") if isinstance(payload, dict) else None
    if not organization_id:
        raise InvalidOAuthState("OAuth state carries no organization_id")
    return str(organization_id)


def tokens_from_response(response: TokenResponse, now: datetime) -> CredentialTokens:
    """Turn a token endpoint response into storable credential fields."""
    return CredentialTokens(
        access_token=response.access_token,
        refresh_token=response.refresh_token,
        expires_at=now + timedelta(seconds=response.expires_in),
        account_domain=response.api_domain,
    )


# ── OAuth Client ────────────────────────────────────────────────────────────


class PipedriveOAuthClient:
    """Async client for the Pipedrive OAuth endpoints.

    Token requests use HTTP Basic auth with the app's client id and secret
    and a form-encoded body. Any failure raises IntegrationAuthError.

    Args:
        client_id: Pipedrive app client id.
        client_secret: Pipedrive app client secret.
        redirect_uri: Callback URL registered with the app.
        base_url: OAuth server root.
        timeout: Per-request timeout in seconds.
        transport: Optional httpx transport (tests inject a MockTransport).
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        base_url: str = "https://oauth.pipedrive.com",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client_id = client_id
        self._client_secret = client_secret
        self._redirect_uri = redirect_uri
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    def authorize_url(self, organization_id: str) -> str:
        query = urlencode(
            {
                "client_id": self._client_id,
                "redirect_uri": self._redirect_uri,
                "state": encode_state(organization_id),
            }
        )
        return f"{self._base_url}/oauth/authorize?{query}"

    async def _token_request(self, form: dict[str, str]) -> TokenResponse:
        grant_type = form.get("grant_type")
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.post(
                    f"{self._base_url}/oauth/token",
                    data=form,
                    auth=(self._client_id, self._client_secret),
                )
                response.raise_for_status()
                return TokenResponse.model_validate(response.json())
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "oauth.token_rejected",
                grant_type=grant_type,
                status_code=exc.response.status_code,
            )
            raise IntegrationAuthError(
                f"Pipedrive rejected {grant_type} grant (HTTP {exc.response.status_code})"
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning("oauth.token_request_failed", grant_type=grant_type, error=str(exc))
            raise IntegrationAuthError(f"Pipedrive token request failed: {exc}") from exc
        except ValueError as exc:
            raise IntegrationAuthError("Pipedrive token response was malformed") from exc

    async def exchange_code(self, code: str) -> TokenResponse:
        return await self._token_request(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self._redirect_uri,
            }
        )

    async def refresh(self, refresh_token: str) -> TokenResponse:
        return await self._token_request(
            {"grant_type": "refresh_token", "refresh_token": refresh_token}
        )


# ── Connect / Disconnect ────────────────────────────────────────────────────


class IntegrationConnector:
    """Connect and disconnect an organization's Pipedrive account.

    Args:
        oauth: Token endpoint client.
        credentials: Credential store.
        adapter_factory: Builds a CRM adapter from (access_token, api_domain);
            used to verify a freshly exchanged token against /users/me.
        clock: Source of "now" for computing token expiry.
    """

    def __init__(
        self,
        oauth: PipedriveOAuthClient,
        credentials: CredentialRepository,
        adapter_factory: Callable[[str, str], CRMAdapter],
        clock: Clock = utc_now,
    ) -> None:
        self._oauth = oauth
        self._credentials = credentials
        self._adapter_factory = adapter_factory
        self._clock = clock

    def authorize_url(self, organization_id: str) -> str:
        return self._oauth.authorize_url(organization_id)

    async def connect(self, code: str, state: str) -> CredentialRead:
        """Handle the OAuth callback: exchange code, verify, store the credential.

        Raises:
            InvalidOAuthState: state does not carry an organization id.
            IntegrationAuthError: The code exchange or verification failed.
        """
        organization_id = decode_state(state)
        response = await self._oauth.exchange_code(code)

        adapter = self._adapter_factory(response.access_token, response.api_domain)
        try:
            user = await adapter.get_current_user()
        except FetchError as exc:
            raise IntegrationAuthError(
                "Pipedrive token could not be verified against /users/me"
            ) from exc
        logger.info("oauth.verified", organization_id=organization_id, crm_user_id=user.id)

        credential = await self._credentials.upsert(
            organization_id,
            tokens_from_response(response, self._clock()),
            provider=PIPEDRIVE,
        )
        logger.info(
            "oauth.connected",
            organization_id=organization_id,
            account_domain=credential.account_domain,
        )
        return credential

    async def disconnect(self, organization_id: str) -> bool:
        return await self._credentials.delete(organization_id, provider=PIPEDRIVE)
