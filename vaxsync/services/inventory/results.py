"""
Inventory Operation Results
Result objects returned by the ledger, reservation and mirror services
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from vaxsync.core.exceptions import VaxSyncException


@dataclass
class BatchChange:
    """Before/after figures for one inventory batch touched by the ledger"""
    batch_id: int
    batch_number: Optional[str]
    vials_before: int
    vials_after: int
    doses_before: int
    doses_after: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "batch_id": self.batch_id,
            "batch_number": self.batch_number,
            "vials_before": self.vials_before,
            "vials_after": self.vials_after,
            "doses_before": self.doses_before,
            "doses_after": self.doses_after,
        }


@dataclass
class LedgerResult:
    """Outcome of a FIFO deduct or add-back"""
    success: bool
    error: Optional[VaxSyncException] = None
    requested: int = 0
    remaining: int = 0
    touched: List[BatchChange] = field(default_factory=list)
    committed: bool = False

    @property
    def shortage(self) -> int:
        """Vials the caller asked for that could not be applied"""
        return self.remaining

    @property
    def fully_applied(self) -> bool:
        return self.success and self.remaining == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "error": self.error.to_dict() if self.error else None,
            "requested": self.requested,
            "remaining": self.remaining,
            "committed": self.committed,
            "touched": [change.to_dict() for change in self.touched],
        }


@dataclass
class ReservationResult:
    """Outcome of a reserve, release or recalculation"""
    success: bool
    error: Optional[VaxSyncException] = None
    batch_id: Optional[int] = None
    reserved_before: int = 0
    reserved_after: int = 0
    recalculated: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "error": self.error.to_dict() if self.error else None,
            "batch_id": self.batch_id,
            "reserved_before": self.reserved_before,
            "reserved_after": self.reserved_after,
            "recalculated": self.recalculated,
        }


@dataclass
class DoseChange:
    """Before/after doses for a dose definition touched by the mirror"""
    dose_definition_id: int
    dose_code: str
    doses_before: int
    doses_after: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dose_definition_id": self.dose_definition_id,
            "dose_code": self.dose_code,
            "doses_before": self.doses_before,
            "doses_after": self.doses_after,
        }


@dataclass
class AggregateResult:
    """Outcome of a mirror deduct, add-back or reconciliation"""
    success: bool
    error: Optional[VaxSyncException] = None
    vaccine_id: Optional[int] = None
    quantity_before: int = 0
    quantity_after: int = 0
    remaining: int = 0
    touched: List[DoseChange] = field(default_factory=list)
    skipped: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "error": self.error.to_dict() if self.error else None,
            "vaccine_id": self.vaccine_id,
            "quantity_before": self.quantity_before,
            "quantity_after": self.quantity_after,
            "remaining": self.remaining,
            "skipped": self.skipped,
            "touched": [change.to_dict() for change in self.touched],
        }


@dataclass
class WorkflowResult:
    """Outcome of a multi-step workflow; each step commits on its own"""
    success: bool
    error: Optional[VaxSyncException] = None
    completed_steps: List[str] = field(default_factory=list)
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        details = {
            key: value.to_dict() if hasattr(value, "to_dict") else value
            for key, value in self.details.items()
        }
        return {
            "success": self.success,
            "error": self.error.to_dict() if self.error else None,
            "completed_steps": list(self.completed_steps),
            "details": details,
        }
