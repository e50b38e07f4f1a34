"""
Transaction system for Quay.
Runs a unit of work inside one flat transaction and reports how far the
protocol got when it fails.
"""

from .executor import TransactionContext, TransactionExecutor
from .interfaces import TX_FLOW_FAILURE, TransactionError, TransactionState

__all__ = [
    "TransactionContext",
    "TransactionExecutor",
    "TransactionError",
    "TransactionState",
    "TX_FLOW_FAILURE",
]
