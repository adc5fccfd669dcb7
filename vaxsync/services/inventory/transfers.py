"""
Vaccine Request Approval
Approves barangay requests into inventory, moving stock between barangays
when the request names a source barangay
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from vaxsync.core.exceptions import (
    InsufficientStockError, NotFoundError, StorageError, ValidationError
)
from vaxsync.models import InventoryBatch, RequestStatus, VaccineDoseDefinition, VaccineRequest
from vaxsync.services.reference_tables import ReferenceTables
from vaxsync.services.inventory.aggregate_mirror import AggregateMirrorService
from vaxsync.services.inventory.batch_store import BatchInventoryStore
from vaxsync.services.inventory.fifo_ledger import FifoLedgerService
from vaxsync.services.inventory.results import WorkflowResult

logger = logging.getLogger(__name__)


class RequestApprovalService:
    """
    Request approval and inter-barangay transfer

    Each step commits on its own. A failure part way through leaves the
    earlier steps applied and is reported through `completed_steps`.
    """

    def __init__(self, db: Session, tables: ReferenceTables):
        self.db = db
        self.tables = tables
        self.store = BatchInventoryStore(db, tables)
        self.ledger = FifoLedgerService(db, tables, store=self.store)
        self.mirror = AggregateMirrorService(db)

    def _resolve_dose_definition(self, request: VaccineRequest) -> Optional[VaccineDoseDefinition]:
        if request.dose_definition_id:
            return self.store.get_dose_definition(request.dose_definition_id)
        return (
            self.db.query(VaccineDoseDefinition)
            .filter(VaccineDoseDefinition.vaccine_id == request.vaccine_id)
            .order_by(VaccineDoseDefinition.created_at.asc(), VaccineDoseDefinition.id.asc())
            .first()
        )

    def approve_request(self, request_id: int) -> WorkflowResult:
        """
        Approve a pending request and add its vials to the requesting barangay

        Steps for a transfer: source_deduct, source_mirror_deduct, mark_approved,
        create_batch, mirror_add_back. A source shortage is compensated by
        adding the deducted vials back and the request stays pending.
        """
        if not request_id:
            return WorkflowResult(success=False, error=ValidationError("request_id is required"))

        completed: List[str] = []
        details: Dict[str, Any] = {"request_id": request_id}

        try:
            request = self.db.get(VaccineRequest, request_id)
            if request is None:
                return WorkflowResult(success=False, error=NotFoundError("Vaccine request", request_id))
            if request.status != RequestStatus.PENDING.value:
                return WorkflowResult(
                    success=False,
                    error=ValidationError(f"Request {request_id} is {request.status}, only pending requests can be approved"),
                )
            dose_definition = self._resolve_dose_definition(request)
            if dose_definition is None:
                return WorkflowResult(
                    success=False,
                    error=NotFoundError("Dose definition", request.dose_definition_id or f"vaccine={request.vaccine_id}"),
                )
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error loading vaccine request {request_id}: {e}")
            return WorkflowResult(success=False, error=StorageError("fetch vaccine request", e))

        vaccine = dose_definition.vaccine
        per_vial = self.store.doses_per_vial(dose_definition)
        vials = request.quantity_vial or self.tables.vials_needed(vaccine.name if vaccine else "", request.quantity_dose or 0)
        if vials <= 0:
            return WorkflowResult(success=False, error=ValidationError(f"Request {request_id} has no quantity to approve"))
        doses = vials * per_vial
        details.update({"dose_definition_id": dose_definition.id, "quantity_vial": vials, "quantity_dose": doses})

        # 1. Take the vials out of the source barangay
        if request.source_barangay_id:
            deduction = self.ledger.deduct(request.source_barangay_id, dose_definition.id, vials)
            details["source_deduct"] = deduction
            if not deduction.success:
                return WorkflowResult(success=False, error=deduction.error, completed_steps=completed, details=details)

            if deduction.remaining > 0:
                moved = vials - deduction.remaining
                logger.warning(
                    f"Request {request_id}: source barangay {request.source_barangay_id} short by "
                    f"{deduction.remaining} vial(s); compensating"
                )
                if moved > 0:
                    compensation = self.ledger.add_back(request.source_barangay_id, dose_definition.id, moved)
                    details["source_compensation"] = compensation
                    if compensation.success:
                        completed.append("source_compensation")
                return WorkflowResult(
                    success=False,
                    error=InsufficientStockError(available=moved, requested=vials),
                    completed_steps=completed,
                    details=details,
                )
            completed.append("source_deduct")

            source_mirror = self.mirror.deduct_aggregate(dose_definition.vaccine_id, doses)
            details["source_mirror"] = source_mirror
            if not source_mirror.success:
                return WorkflowResult(success=False, error=source_mirror.error, completed_steps=completed, details=details)
            completed.append("source_mirror_deduct")

        # 2. Mark the request approved
        try:
            request.status = RequestStatus.APPROVED.value
            request.approved_at = datetime.now()
            request.dose_definition_id = dose_definition.id
            self.db.commit()
            completed.append("mark_approved")
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error approving vaccine request {request_id}: {e}")
            return WorkflowResult(
                success=False, error=StorageError("approve vaccine request", e),
                completed_steps=completed, details=details
            )

        # 3. Add a batch at the requesting barangay
        try:
            batch = InventoryBatch(
                barangay_id=request.barangay_id,
                dose_definition_id=dose_definition.id,
                quantity_vial=vials,
                quantity_dose=doses,
                reserved_vial=0,
                batch_number=vaccine.batch_number if vaccine else None,
                expiry_date=vaccine.expiry_date if vaccine else None,
                received_date=datetime.now(),
                notes=f"Auto-added from approved request #{request_id}",
            )
            self.db.add(batch)
            self.db.commit()
            completed.append("create_batch")
            details["batch_id"] = batch.id
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Request {request_id} approved but inventory add failed: {e}")
            return WorkflowResult(
                success=False, error=StorageError("add approved request to inventory", e),
                completed_steps=completed, details=details
            )

        # 4. Mirror the destination doses
        mirror = self.mirror.add_back_aggregate(dose_definition.vaccine_id, doses)
        details["mirror"] = mirror
        if not mirror.success:
            return WorkflowResult(success=False, error=mirror.error, completed_steps=completed, details=details)
        completed.append("mirror_add_back")

        logger.info(
            f"Approved request {request_id}: {vials} vial(s) to barangay {request.barangay_id}"
            + (f" from barangay {request.source_barangay_id}" if request.source_barangay_id else "")
        )
        return WorkflowResult(success=True, completed_steps=completed, details=details)

    def batch_approve(self, request_ids: List[int]) -> Dict[str, Any]:
        """Approve several requests one after another"""
        results = {"success_count": 0, "failure_count": 0, "errors": []}
        for request_id in request_ids:
            outcome = self.approve_request(request_id)
            if outcome.success:
                results["success_count"] += 1
            else:
                results["failure_count"] += 1
                results["errors"].append({
                    "request_id": request_id,
                    "error": outcome.error.to_dict() if outcome.error else None,
                    "completed_steps": outcome.completed_steps,
                })
        logger.info(f"Batch approval: {results['success_count']} approved, {results['failure_count']} failed")
        return results

    def reject_request(self, request_id: int, notes: Optional[str] = None) -> WorkflowResult:
        if not request_id:
            return WorkflowResult(success=False, error=ValidationError("request_id is required"))
        try:
            request = self.db.get(VaccineRequest, request_id)
            if request is None:
                return WorkflowResult(success=False, error=NotFoundError("Vaccine request", request_id))
            if request.status != RequestStatus.PENDING.value:
                return WorkflowResult(
                    success=False,
                    error=ValidationError(f"Request {request_id} is {request.status}, only pending requests can be rejected"),
                )
            request.status = RequestStatus.REJECTED.value
            if notes:
                request.notes = notes
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error rejecting vaccine request {request_id}: {e}")
            return WorkflowResult(success=False, error=StorageError("reject vaccine request", e))

        logger.info(f"Rejected vaccine request {request_id}")
        return WorkflowResult(success=True, completed_steps=["mark_rejected"], details={"request_id": request_id})
