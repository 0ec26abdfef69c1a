"""Pipedrive REST adapter -- read-only access to users and deals.

Every request is a single attempt with a bounded timeout; callers decide
whether to retry. Transport errors, non-2xx statuses, ``success: false``
envelopes and malformed records all surface as FetchError.
"""

from __future__ import annotations

from typing import Any, Callable, TypeVar

import httpx
import structlog

from src.ledger.sales.crm.adapter import CRMAdapter
from src.ledger.sales.crm.field_mapping import deal_from_payload, user_from_payload
from src.ledger.sales.errors import FetchError
from src.ledger.sales.schemas import CRMDeal, CRMUser

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class PipedriveAdapter(CRMAdapter):
    """CRM adapter backed by the Pipedrive v1 REST API.

    Args:
        access_token: OAuth bearer token for the connected account.
        api_domain: Company API domain returned by the token endpoint,
            e.g. ``https://acme.pipedrive.com``.
        timeout: Per-request timeout in seconds.
        page_limit: Page size for paginated listings.
        transport: Optional httpx transport (tests inject a MockTransport).
    """

    def __init__(
        self,
        access_token: str,
        api_domain: str,
        timeout: float = 10.0,
        page_limit: int = 500,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = f"{api_domain.rstrip('/')}/api/v1"
        self._headers = {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/json",
        }
        self._timeout = timeout
        self._page_limit = page_limit
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            headers=self._headers,
            timeout=self._timeout,
            transport=self._transport,
        )

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """GET path and return the decoded envelope, raising FetchError on any failure."""
        url = f"{self._base_url}{path}"
        try:
            async with self._client() as client:
                response = await client.get(url, params=params)
                response.raise_for_status()
                body = response.json()
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "pipedrive.http_error",
                path=path,
                status_code=exc.response.status_code,
            )
            raise FetchError(
                f"Pipedrive {path} returned HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning("pipedrive.transport_error", path=path, error=str(exc))
            raise FetchError(f"Pipedrive {path} request failed: {exc}") from exc
        except ValueError as exc:
            raise FetchError(f"Pipedrive {path} returned invalid JSON") from exc

        if not isinstance(body, dict) or not body.get("success", False):
            error = body.get("error") if isinstance(body, dict) else None
            logger.warning("pipedrive.error_envelope", path=path, error=error)
            raise FetchError(f"Pipedrive {path} reported failure: {error or 'unknown error'}")

        return body

    @staticmethod
    def _map(path: str, mapper: Callable[[dict[str, Any]], T], items: list[Any]) -> list[T]:
        """Apply mapper to each payload item, raising FetchError on a malformed one."""
        try:
            return [mapper(item) for item in items]
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            logger.warning("pipedrive.malformed_payload", path=path, error=repr(exc))
            raise FetchError(f"Pipedrive {path} returned a malformed record: {exc!r}") from exc

    async def get_current_user(self) -> CRMUser:
        body = await self._get("/users/me")
        return self._map("/users/me", user_from_payload, [body.get("data") or {}])[0]

    async def list_users(self) -> list[CRMUser]:
        body = await self._get("/users")
        return self._map("/users", user_from_payload, body.get("data") or [])

    async def list_deals(
        self, status: str = "won", start: int = 0, limit: int | None = None
    ) -> tuple[list[CRMDeal], int | None]:
        params = {"status": status, "start": start, "limit": limit or self._page_limit}
        body = await self._get("/deals", params=params)

        deals = self._map("/deals", deal_from_payload, body.get("data") or [])

        pagination = (body.get("additional_data") or {}).get("pagination") or {}
        next_start: int | None = None
        if pagination.get("more_items_in_collection"):
            next_start = pagination.get("next_start")
            if next_start is None:
                next_start = start + len(deals)
            if not deals:
                # A non-advancing cursor would loop forever
                next_start = None

        logger.debug(
            "pipedrive.deals_page",
            status=status,
            start=start,
            count=len(deals),
            next_start=next_start,
        )
        return deals, next_start
