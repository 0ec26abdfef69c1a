"""Shared fixtures for ledger tests.

Provides:
- A pinned clock
- In-memory sales, receivable and credential repositories
- An organization id with a seeded organization record
"""

from __future__ import annotations

import uuid

import pytest

from tests.doubles import (
    FixedClock,
    InMemoryCredentialRepository,
    InMemoryReceivableRepository,
    InMemorySalesRepository,
)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def organization_id() -> str:
    return str(uuid.uuid4())


@pytest.fixture
def sales_repo(organization_id) -> InMemorySalesRepository:
    repo = InMemorySalesRepository()
    repo.add_organization(organization_id, tax_rate=10.0)
    return repo


@pytest.fixture
def receivable_repo() -> InMemoryReceivableRepository:
    return InMemoryReceivableRepository()


@pytest.fixture
def credential_repo() -> InMemoryCredentialRepository:
    return InMemoryCredentialRepository()
