#!/usr/bin/env python3
"""CLI script to run a CRM deal sync for one organization.

Usage:
    uv run python scripts/sync_organization.py --organization-id <uuid>
    uv run python scripts/sync_organization.py --organization-id <uuid> --force

Connects directly to the database using DATABASE_URL from environment or .env
file, wires the same services as the API, and prints the sync result.
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys
from types import SimpleNamespace

# Ensure project root is on sys.path so we can import src.ledger
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from dotenv import load_dotenv  # noqa: E402

# Load .env from project root
load_dotenv(os.path.join(os.path.dirname(__file__), "..", ".env"))


async def run(organization_id: str, force: bool) -> int:
    """Run one sync and print its result; returns the process exit code."""
    from src.ledger.api.middleware.logging import configure_structlog
    from src.ledger.config import get_settings
    from src.ledger.core.database import close_db
    from src.ledger.main import wire_services
    from src.ledger.sales.errors import CRMSyncError

    configure_structlog()
    holder = SimpleNamespace(state=SimpleNamespace())
    wire_services(holder, get_settings())
    sync_service = holder.state.sync_service

    try:
        if force:
            result = await sync_service.force_sync(organization_id)
        else:
            result = await sync_service.sync_if_needed(organization_id)
    except CRMSyncError as exc:
        print(f"Sync failed ({type(exc).__name__}): {exc}", file=sys.stderr)
        return 1
    finally:
        await close_db()

    if result.throttled:
        print("Sync skipped: last run is within the throttle window (use --force)")
        return 0

    print("Sync completed:")
    print(f"  Synced:              {result.synced}")
    print(f"  Skipped:             {result.skipped}")
    print(f"  Skipped (unmapped):  {result.skipped_unmapped}")
    print(f"  Removed from source: {result.removed_from_source}")
    print(f"  Restored:            {result.restored}")
    print(f"  Errors:              {result.errors}")
    return 0 if result.errors == 0 else 2


def main() -> None:
    parser = argparse.ArgumentParser(description="Run a CRM deal sync for an organization")
    parser.add_argument("--organization-id", required=True, help="Organization UUID")
    parser.add_argument(
        "--force", action="store_true", help="Ignore the sync throttle window"
    )
    args = parser.parse_args()

    sys.exit(asyncio.run(run(args.organization_id, args.force)))


if __name__ == "__main__":
    main()
