"""CRM adapter abstract base class -- the read interface every CRM backend implements.

The sync engine only ever reads from the CRM: it lists won deals and the
users who own them. Pipedrive is the first concrete backend; further
providers implement the same four methods.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.ledger.sales.schemas import CRMDeal, CRMUser


class CRMAdapter(ABC):
    """Abstract interface for CRM read operations.

    Implementations raise FetchError for any transport failure, non-success
    status, or provider error envelope. They never retry: retry policy belongs
    to the caller.

    Methods:
        get_current_user: The CRM user the credential belongs to.
        list_users: All users of the connected CRM account.
        list_deals: One page of deals with the given status.
        list_won_deals: Every won deal, following pagination to the end.
    """

    @abstractmethod
    async def get_current_user(self) -> CRMUser:
        """Return the user that owns the access token."""
        ...

    @abstractmethod
    async def list_users(self) -> list[CRMUser]:
        """Return all users of the CRM account."""
        ...

    @abstractmethod
    async def list_deals(
        self, status: str = "won", start: int = 0, limit: int | None = None
    ) -> tuple[list[CRMDeal], int | None]:
        """Return one page of deals and the next start offset (None at the end)."""
        ...

    async def list_won_deals(self) -> list[CRMDeal]:
        """Return every won deal, following pagination until exhausted."""
        deals: list[CRMDeal] = []
        start: int | None = 0
        while start is not None:
            page, start = await self.list_deals(status="won", start=start)
            deals.extend(page)
        return deals
