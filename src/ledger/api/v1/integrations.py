"""Pipedrive OAuth connect / disconnect endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from src.ledger.api.deps import (
    UUID_PATTERN,
    EntityId,
    get_connector,
    raise_for_crm_error,
)
from src.ledger.sales.errors import CRMSyncError

router = APIRouter(prefix="/api/v1", tags=["integrations"])


# ── Response Schemas ─────────────────────────────────────────────────────────


class AuthorizeResponse(BaseModel):
    authorize_url: str


class ConnectedResponse(BaseModel):
    """Credential summary; tokens are never echoed back."""

    organization_id: str
    provider: str
    account_domain: str | None = None
    expires_at: str


class DisconnectedResponse(BaseModel):
    organization_id: str
    disconnected: bool


# ── Endpoints ────────────────────────────────────────────────────────────────


@router.get("/integrations/pipedrive/authorize", response_model=AuthorizeResponse)
async def authorize_pipedrive(
    organization_id: str = Query(..., pattern=UUID_PATTERN),
    connector: Any = Depends(get_connector),
) -> AuthorizeResponse:
    """Return the Pipedrive consent URL for an organization."""
    return AuthorizeResponse(authorize_url=connector.authorize_url(organization_id))


@router.get("/integrations/pipedrive/callback", response_model=ConnectedResponse)
async def pipedrive_callback(
    code: str = Query(...),
    state: str = Query(...),
    connector: Any = Depends(get_connector),
) -> ConnectedResponse:
    """OAuth redirect target: exchange the code and store the credential."""
    try:
        credential = await connector.connect(code, state)
    except CRMSyncError as exc:
        raise_for_crm_error(exc)

    return ConnectedResponse(
        organization_id=credential.organization_id,
        provider=credential.provider,
        account_domain=credential.account_domain,
        expires_at=credential.expires_at.isoformat(),
    )


@router.delete(
    "/organizations/{organization_id}/integrations/pipedrive",
    response_model=DisconnectedResponse,
)
async def disconnect_pipedrive(
    organization_id: EntityId,
    connector: Any = Depends(get_connector),
) -> DisconnectedResponse:
    disconnected = await connector.disconnect(organization_id)
    return DisconnectedResponse(organization_id=organization_id, disconnected=disconnected)
