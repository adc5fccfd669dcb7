"""
Barangay Inventory Services
FIFO ledger, reservations, vaccine mirror and the workflows built on them
"""
from .batch_store import BatchInventoryStore
from .fifo_ledger import FifoLedgerService
from .reservations import ReservationService
from .aggregate_mirror import AggregateMirrorService
from .receipts import StockReceiptService
from .transfers import RequestApprovalService
from .sessions import SessionInventoryService
from .results import (
    BatchChange, LedgerResult, ReservationResult, DoseChange, AggregateResult, WorkflowResult
)

__all__ = [
    "BatchInventoryStore",
    "FifoLedgerService",
    "ReservationService",
    "AggregateMirrorService",
    "StockReceiptService",
    "RequestApprovalService",
    "SessionInventoryService",
    "BatchChange",
    "LedgerResult",
    "ReservationResult",
    "DoseChange",
    "AggregateResult",
    "WorkflowResult",
]
