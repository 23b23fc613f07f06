"""Balance tracker for an OKX trading account.

This application provides:
- Account queries (balance, positions, orders, fills, bills) since a cutoff
- A file-backed, timestamp-unique balance history
- Reconstruction of that history from bills and fills
"""

from balance_tracker.config import BalanceTrackerConfig, load_config
from balance_tracker.history_store import BalanceHistoryStore, HistoryQuery
from balance_tracker.models import BalanceRecord, BalanceSource
from balance_tracker.reconciler import BalanceReconciler, ReconciliationResult
from balance_tracker.service import BalanceTrackerService

__all__ = [
    "BalanceTrackerConfig",
    "load_config",
    "BalanceHistoryStore",
    "HistoryQuery",
    "BalanceRecord",
    "BalanceSource",
    "BalanceReconciler",
    "ReconciliationResult",
    "BalanceTrackerService",
]
