"""FastAPI dependencies -- services wired onto app.state during lifespan.

Each getter raises 503 when its service was not initialized, so a partially
configured deployment (e.g. no Pipedrive app credentials) still serves the
routes that do not need it.
"""

from __future__ import annotations

from typing import Annotated, Any, NoReturn

from fastapi import HTTPException, Path, Request, status

from src.ledger.sales.errors import (
    CRMSyncError,
    FetchError,
    IntegrationAuthError,
    IntegrationNotFound,
    InvalidOAuthState,
)

UUID_PATTERN = r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"

# Ledger records are keyed by UUID; other ids are rejected before any lookup
EntityId = Annotated[str, Path(pattern=UUID_PATTERN)]


def _from_state(request: Request, name: str, label: str) -> Any:
    service = getattr(request.app.state, name, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{label} not initialized",
        )
    return service


def get_sync_service(request: Request) -> Any:
    return _from_state(request, "sync_service", "CRM sync")


def get_connector(request: Request) -> Any:
    return _from_state(request, "integration_connector", "Pipedrive integration")


def get_receivable_generator(request: Request) -> Any:
    return _from_state(request, "receivable_generator", "Receivables")


def get_sales_repository(request: Request) -> Any:
    return _from_state(request, "sales_repository", "Sales ledger")


def get_recalculator(request: Request) -> Any:
    return _from_state(request, "net_value_recalculator", "Net value recalculation")


_STATUS_BY_ERROR: dict[type[CRMSyncError], int] = {
    IntegrationNotFound: status.HTTP_404_NOT_FOUND,
    InvalidOAuthState: status.HTTP_400_BAD_REQUEST,
    IntegrationAuthError: status.HTTP_502_BAD_GATEWAY,
    FetchError: status.HTTP_502_BAD_GATEWAY,
}


def raise_for_crm_error(exc: CRMSyncError) -> NoReturn:
    """Translate a CRM domain error into one summarized HTTP error."""
    for error_type, status_code in _STATUS_BY_ERROR.items():
        if isinstance(exc, error_type):
            raise HTTPException(status_code=status_code, detail=str(exc)) from exc
    raise HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=str(exc),
    ) from exc
