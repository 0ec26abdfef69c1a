"""Seller identity mapping -- CRM owner id to internal seller.

The mapping is built once per sync run from the organization's active sellers
that carry an external owner id. Deals whose owner is not in the mapping are
treated as unmapped and skipped by the sync engine: commission must never
accrue to an unknown or deactivated seller.
"""

from __future__ import annotations

from collections.abc import Iterable

import structlog

from src.ledger.sales.schemas import SellerRead

logger = structlog.get_logger(__name__)


class SellerIdentityMapper:
    """O(1) lookup of CRM owner ids against active sellers.

    Args:
        sellers: Sellers of one organization; inactive or unlinked ones are ignored.
    """

    def __init__(self, sellers: Iterable[SellerRead]) -> None:
        self._by_owner: dict[int, SellerRead] = {}
        for seller in sellers:
            if not seller.is_active or seller.external_owner_id is None:
                continue
            existing = self._by_owner.get(seller.external_owner_id)
            if existing is not None:
                logger.warning(
                    "sellers.duplicate_owner_id",
                    external_owner_id=seller.external_owner_id,
                    kept_seller_id=existing.id,
                    ignored_seller_id=seller.id,
                )
                continue
            self._by_owner[seller.external_owner_id] = seller

    def __len__(self) -> int:
        return len(self._by_owner)

    def resolve(self, owner_id: int | None) -> str | None:
        """Return the seller id for owner_id, or None if unmapped."""
        seller = self.lookup(owner_id)
        return seller.id if seller else None

    def lookup(self, owner_id: int | None) -> SellerRead | None:
        if owner_id is None:
            return None
        return self._by_owner.get(owner_id)
