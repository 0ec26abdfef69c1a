"""V1 API router -- aggregates all v1 endpoint routers."""

from __future__ import annotations

from fastapi import APIRouter

from src.ledger.api.v1 import health, integrations, organizations, receivables, sync

router = APIRouter()

router.include_router(health.router)
router.include_router(sync.router)
router.include_router(integrations.router)
router.include_router(receivables.router)
router.include_router(organizations.router)
