"""CRM integration layer -- read-only deal reconciliation from Pipedrive.

Provides:
- CRMAdapter: Abstract read interface for CRM backends
- PipedriveAdapter: Pipedrive v1 REST implementation
- TokenLifecycleManager: Live handles with margin-based token refresh
- DealSyncEngine: Staged reconciliation of won deals into the sales ledger
- SyncThrottle: Time-window gate for automatic runs
- SyncService: Entry points for the API and scheduler

Architecture: the ledger is the system of record for commissions; the CRM is
the source of won deals. Sync only reads from the CRM.
"""

from src.ledger.sales.crm.adapter import CRMAdapter
from src.ledger.sales.crm.pipedrive import PipedriveAdapter
from src.ledger.sales.crm.service import SyncService
from src.ledger.sales.crm.sync import DealSyncEngine, diff_deals
from src.ledger.sales.crm.throttle import SyncThrottle
from src.ledger.sales.crm.tokens import LiveHandle, TokenLifecycleManager

__all__ = [
    "CRMAdapter",
    "PipedriveAdapter",
    "SyncService",
    "DealSyncEngine",
    "diff_deals",
    "SyncThrottle",
    "LiveHandle",
    "TokenLifecycleManager",
]
