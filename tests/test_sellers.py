"""Unit tests for SellerIdentityMapper."""

from __future__ import annotations

from src.ledger.sales.sellers import SellerIdentityMapper
from tests.doubles import make_seller

ORG = "org-1"


def _mapper(*sellers):
    return SellerIdentityMapper(sellers)


def test_resolves_active_seller_by_owner_id():
    seller = make_seller(ORG, owner_id=7)
    mapper = _mapper(seller)

    assert mapper.resolve(7) == seller.id
    assert mapper.lookup(7) is seller


def test_unmapped_owner_resolves_to_none():
    mapper = _mapper(make_seller(ORG, owner_id=7))

    assert mapper.resolve(8) is None
    assert mapper.resolve(None) is None


def test_inactive_and_unlinked_sellers_are_ignored():
    mapper = _mapper(
        make_seller(ORG, owner_id=7, is_active=False),
        make_seller(ORG, owner_id=None),
    )

    assert len(mapper) == 0
    assert mapper.resolve(7) is None


def test_duplicate_owner_id_keeps_first_seller():
    first = make_seller(ORG, owner_id=7, name="First")
    second = make_seller(ORG, owner_id=7, name="Second")

    mapper = _mapper(first, second)

    assert len(mapper) == 1
    assert mapper.resolve(7) == first.id
