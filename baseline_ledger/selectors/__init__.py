"""Read side: query-only selectors returning domain DTOs."""

from baseline_ledger.selectors.base import BaseSelector
from baseline_ledger.selectors.baseline_history_selector import BaselineHistorySelector

__all__ = [
    "BaseSelector",
    "BaselineHistorySelector",
]
