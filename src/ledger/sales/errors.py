"""Error taxonomy for CRM reconciliation.

Every stage-level failure of a sync run raises one of these; the run is
aborted and the caller sees a single summarized message. An unmapped seller is
not an error -- it is counted in SyncResult.skipped_unmapped.
"""

from __future__ import annotations


class CRMSyncError(Exception):
    """Base class for CRM integration failures."""


class IntegrationNotFound(CRMSyncError):
    """No CRM credential is stored for the organization."""

    def __init__(self, organization_id: str, provider: str = "pipedrive") -> None:
        self.organization_id = organization_id
        self.provider = provider
        super().__init__(
            f"No {provider} integration found for organization {organization_id}"
        )


class IntegrationAuthError(CRMSyncError):
    """The provider rejected a token exchange or refresh."""


class FetchError(CRMSyncError):
    """Listing remote records failed (network error, HTTP error, or error envelope)."""


class InsertError(CRMSyncError):
    """The local batch insert of new sales failed."""


class InvalidOAuthState(CRMSyncError):
    """The OAuth callback state parameter could not be decoded."""
