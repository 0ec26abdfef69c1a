"""Scheduler configuration for periodic CRM deal synchronization.

Defines the async task functions run in the background; tasks are decoupled
from the loop implementation so tests can run them directly. This is the
retry policy around the single-attempt sync engine: transient fetch failures
are retried with tenacity, everything else is logged and the loop continues.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.ledger.sales.crm.service import SyncService
from src.ledger.sales.errors import CRMSyncError, FetchError
from src.ledger.sales.schemas import SyncResult

logger = structlog.get_logger(__name__)

OrganizationSource = Callable[[], Awaitable[list[str]]]


async def sync_with_retry(
    sync_service: SyncService,
    organization_id: str,
    attempts: int = 3,
    wait_min: float = 1.0,
    wait_max: float = 10.0,
) -> SyncResult:
    """Run a throttled sync, retrying FetchError with exponential backoff.

    Raises:
        FetchError: The last attempt still failed to list remote deals.
        CRMSyncError: Any other stage failure (not retried).
    """
    retrying = AsyncRetrying(
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=1, min=wait_min, max=wait_max),
        retry=retry_if_exception_type(FetchError),
        reraise=True,
    )
    return await retrying(sync_service.sync_if_needed, organization_id)


def setup_sync_scheduler(
    sync_service: SyncService,
    organization_source: OrganizationSource,
    retry_attempts: int = 3,
) -> dict:
    """Configure the background sync task.

    Args:
        sync_service: Sync entry points.
        organization_source: Async callable listing connected organization ids.
        retry_attempts: Attempts per organization for transient fetch failures.

    Returns:
        Dict mapping task name to async callable.
    """

    async def sync_connected_organizations_task() -> dict[str, SyncResult]:
        """Sync every connected organization, isolating per-organization failures."""
        results: dict[str, SyncResult] = {}
        try:
            organization_ids = await organization_source()
        except Exception:
            logger.warning("scheduler.organization_listing_failed", exc_info=True)
            return results

        for organization_id in organization_ids:
            try:
                results[organization_id] = await sync_with_retry(
                    sync_service, organization_id, attempts=retry_attempts
                )
            except CRMSyncError as exc:
                logger.warning(
                    "scheduler.sync_failed",
                    organization_id=organization_id,
                    error_type=type(exc).__name__,
                    error=str(exc),
                )
            except Exception:
                logger.error(
                    "scheduler.sync_crashed",
                    organization_id=organization_id,
                    exc_info=True,
                )

        logger.info(
            "scheduler.sync_cycle_complete",
            organizations=len(organization_ids),
            synced=sum(1 for r in results.values() if not r.throttled),
            throttled=sum(1 for r in results.values() if r.throttled),
        )
        return results

    return {"sync_connected_organizations": sync_connected_organizations_task}


async def start_sync_scheduler_background(
    tasks: dict, app_state, interval_seconds: int
) -> None:
    """Start scheduler tasks as background asyncio loops.

    Args:
        tasks: Dict mapping task name to async callable (from setup_sync_scheduler).
        app_state: FastAPI app.state object for storing task references.
        interval_seconds: Sleep between runs of each task.
    """
    background_tasks: list[asyncio.Task] = []

    for task_name, task_fn in tasks.items():

        async def _loop(fn=task_fn, name=task_name, sleep=interval_seconds):
            """Background loop that runs the task at the configured interval."""
            while True:
                try:
                    await asyncio.sleep(sleep)
                    await fn()
                except asyncio.CancelledError:
                    logger.info("scheduler.task_cancelled", task=name)
                    break
                except Exception:
                    logger.warning("scheduler.task_loop_error", task=name, exc_info=True)

        bg_task = asyncio.create_task(_loop(), name=f"sync_scheduler_{task_name}")
        background_tasks.append(bg_task)

    # Cancelled during shutdown in the app lifespan
    app_state.sync_scheduler_tasks = background_tasks

    logger.info(
        "scheduler.background_tasks_started",
        task_count=len(background_tasks),
        interval_seconds=interval_seconds,
        tasks=list(tasks.keys()),
    )
