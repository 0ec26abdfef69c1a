"""API middleware package."""

from src.ledger.api.middleware.logging import LoggingMiddleware

__all__ = ["LoggingMiddleware"]
