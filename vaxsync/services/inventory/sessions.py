"""
Session Inventory Workflows
Scheduling, administration and cancellation of vaccination sessions and
their effect on reservations and stock
"""
import logging
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from vaxsync.core.exceptions import NotFoundError, StorageError, ValidationError
from vaxsync.models import (
    Barangay, SessionStatus, VaccinationSession, ACTIVE_SESSION_STATUSES
)
from vaxsync.services.reference_tables import ReferenceTables
from vaxsync.services.inventory.aggregate_mirror import AggregateMirrorService
from vaxsync.services.inventory.batch_store import BatchInventoryStore
from vaxsync.services.inventory.fifo_ledger import FifoLedgerService, validate_quantity_request
from vaxsync.services.inventory.reservations import ReservationService
from vaxsync.services.inventory.results import WorkflowResult

logger = logging.getLogger(__name__)

SESSION_STATUSES = [status.value for status in SessionStatus]


class SessionInventoryService:
    """Session lifecycle against the barangay ledger"""

    def __init__(self, db: Session, tables: ReferenceTables, strict: Optional[bool] = None):
        self.db = db
        self.tables = tables
        self.store = BatchInventoryStore(db, tables)
        self.ledger = FifoLedgerService(db, tables, store=self.store)
        self.reservations = ReservationService(db, tables, strict=strict, store=self.store)
        self.mirror = AggregateMirrorService(db)

    def _load_session(self, session_id: int) -> VaccinationSession:
        session = self.db.get(VaccinationSession, session_id)
        if session is None:
            raise NotFoundError("Vaccination session", session_id)
        return session

    def schedule_session(self, barangay_id: int, dose_definition_id: int,
                         session_date: date, target: int) -> WorkflowResult:
        """
        Create a Scheduled session and reserve its target vials

        The session is only created once the reservation has succeeded.
        """
        try:
            validate_quantity_request(target, barangay_id=barangay_id, dose_definition_id=dose_definition_id)
        except ValidationError as e:
            return WorkflowResult(success=False, error=e)
        if session_date is None:
            return WorkflowResult(success=False, error=ValidationError("session_date is required"))

        try:
            if self.db.get(Barangay, barangay_id) is None:
                return WorkflowResult(success=False, error=NotFoundError("Barangay", barangay_id))
        except SQLAlchemyError as e:
            self.db.rollback()
            return WorkflowResult(success=False, error=StorageError("fetch barangay", e))

        completed: List[str] = []
        details: Dict[str, Any] = {}

        # 1. Reserve the target vials
        reservation = self.reservations.reserve(barangay_id, dose_definition_id, target)
        details["reservation"] = reservation
        if not reservation.success:
            return WorkflowResult(success=False, error=reservation.error, details=details)
        completed.append("reserve")

        # 2. Create the session against the reserved batch
        try:
            session = VaccinationSession(
                barangay_id=barangay_id,
                dose_definition_id=dose_definition_id,
                inventory_batch_id=reservation.batch_id,
                session_date=session_date,
                target=target,
                administered=0,
                status=SessionStatus.SCHEDULED.value,
            )
            self.db.add(session)
            self.db.commit()
            completed.append("create_session")
            details["session_id"] = session.id
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error creating session for barangay {barangay_id}: {e}; releasing reservation")
            release = self.reservations.release(barangay_id, reservation.batch_id, target)
            details["release"] = release
            if release.success:
                completed.append("release")
            return WorkflowResult(
                success=False, error=StorageError("create vaccination session", e),
                completed_steps=completed, details=details
            )

        logger.info(f"Scheduled session #{session.id} on {session_date} for {target} vial(s) at barangay {barangay_id}")
        return WorkflowResult(success=True, completed_steps=completed, details=details)

    def record_administration(self, session_id: int, administered: int,
                              status: Optional[str] = None) -> WorkflowResult:
        """
        Record the administered vial count of a session

        The change against the previously recorded count is applied in order:
        release, deduct, mirror_deduct (or add_back, mirror_add_back,
        restore_reservation for a lower count). The session row is updated
        last. Releasing before the deduction keeps the reservation from being
        clamped away by the shrinking batch.
        """
        if not session_id:
            return WorkflowResult(success=False, error=ValidationError("session_id is required"))
        if isinstance(administered, bool) or not isinstance(administered, int) or administered < 0:
            return WorkflowResult(
                success=False, error=ValidationError(f"Administered must be a non-negative whole number, got {administered!r}")
            )
        if status is not None and status not in SESSION_STATUSES:
            return WorkflowResult(success=False, error=ValidationError(f"Unknown session status: {status}"))

        try:
            session = self._load_session(session_id)
            dose_definition = self.store.get_dose_definition(session.dose_definition_id)
        except NotFoundError as e:
            return WorkflowResult(success=False, error=e)
        except SQLAlchemyError as e:
            self.db.rollback()
            return WorkflowResult(success=False, error=StorageError("fetch vaccination session", e))

        if dose_definition is None:
            return WorkflowResult(success=False, error=NotFoundError("Dose definition", session.dose_definition_id))
        if session.status == SessionStatus.CANCELLED.value:
            return WorkflowResult(success=False, error=ValidationError(f"Session {session_id} is cancelled"))

        barangay_id = session.barangay_id
        batch_id = session.inventory_batch_id
        per_vial = self.store.doses_per_vial(dose_definition)
        delta = administered - (session.administered or 0)
        completed: List[str] = []
        details: Dict[str, Any] = {"session_id": session_id, "delta": delta}

        def failed(result, step):
            details[step] = result
            return WorkflowResult(success=False, error=result.error, completed_steps=completed, details=details)

        if delta > 0:
            # 1. Release the reservation held for these vials
            if batch_id:
                release = self.reservations.release(barangay_id, batch_id, delta)
                if not release.success:
                    return failed(release, "release")
                details["release"] = release
                completed.append("release")
            else:
                logger.warning(f"Session {session_id} has no batch; reservation release skipped")

            # 2. Deduct the vials FIFO
            deduction = self.ledger.deduct(barangay_id, dose_definition.id, delta)
            if not deduction.success:
                return failed(deduction, "deduct")
            details["deduct"] = deduction
            completed.append("deduct")
            if deduction.remaining > 0:
                details["shortage"] = deduction.remaining

            # 3. Deduct the doses from the vaccine mirror
            deducted = delta - deduction.remaining
            if deducted > 0:
                mirror = self.mirror.deduct_aggregate(dose_definition.vaccine_id, deducted * per_vial)
                if not mirror.success:
                    return failed(mirror, "mirror")
                details["mirror"] = mirror
                completed.append("mirror_deduct")

        elif delta < 0:
            returned = -delta

            # 1. Return the vials to the oldest batch
            addition = self.ledger.add_back(barangay_id, dose_definition.id, returned)
            if not addition.success:
                return failed(addition, "add_back")
            details["add_back"] = addition
            completed.append("add_back")

            # 2. Return the doses to the vaccine mirror
            mirror = self.mirror.add_back_aggregate(dose_definition.vaccine_id, returned * per_vial)
            if not mirror.success:
                return failed(mirror, "mirror")
            details["mirror"] = mirror
            completed.append("mirror_add_back")

            # 3. Hold the returned vials for the session again
            if (status or session.status) in ACTIVE_SESSION_STATUSES:
                reservation = self.reservations.reserve(barangay_id, dose_definition.id, returned)
                details["reservation"] = reservation
                if reservation.success:
                    completed.append("restore_reservation")
                else:
                    logger.warning(f"Session {session_id}: reservation not restored: {reservation.error.message}")

        # Finishing a session frees whatever is still held for it
        closing = status is not None and status not in ACTIVE_SESSION_STATUSES
        outstanding = max(0, (session.target or 0) - administered)
        if closing and outstanding > 0 and batch_id:
            release = self.reservations.release(barangay_id, batch_id, outstanding)
            if not release.success:
                return failed(release, "release_outstanding")
            details["release_outstanding"] = release
            completed.append("release_outstanding")

        # Last: update the session itself
        try:
            session.administered = administered
            if status is not None:
                session.status = status
            self.db.commit()
            completed.append("update_session")
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error updating session {session_id} after inventory changes {completed}: {e}")
            return WorkflowResult(
                success=False, error=StorageError("update vaccination session", e),
                completed_steps=completed, details=details
            )

        logger.info(f"Session #{session_id} administered {administered} vial(s) (delta {delta:+d})")
        return WorkflowResult(success=True, completed_steps=completed, details=details)

    def cancel_session(self, session_id: int) -> WorkflowResult:
        """Release the outstanding reservation and mark the session Cancelled"""
        if not session_id:
            return WorkflowResult(success=False, error=ValidationError("session_id is required"))
        try:
            session = self._load_session(session_id)
        except NotFoundError as e:
            return WorkflowResult(success=False, error=e)
        except SQLAlchemyError as e:
            self.db.rollback()
            return WorkflowResult(success=False, error=StorageError("fetch vaccination session", e))

        if session.status not in ACTIVE_SESSION_STATUSES:
            return WorkflowResult(
                success=False, error=ValidationError(f"Session {session_id} is {session.status} and cannot be cancelled")
            )

        completed: List[str] = []
        details: Dict[str, Any] = {"session_id": session_id}
        outstanding = session.outstanding
        if outstanding > 0 and session.inventory_batch_id:
            release = self.reservations.release(session.barangay_id, session.inventory_batch_id, outstanding)
            details["release"] = release
            if not release.success:
                return WorkflowResult(success=False, error=release.error, details=details)
            completed.append("release")

        try:
            session.status = SessionStatus.CANCELLED.value
            self.db.commit()
            completed.append("update_session")
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error cancelling session {session_id}: {e}")
            return WorkflowResult(
                success=False, error=StorageError("cancel vaccination session", e),
                completed_steps=completed, details=details
            )

        logger.info(f"Cancelled session #{session_id}, released {outstanding} vial(s)")
        return WorkflowResult(success=True, completed_steps=completed, details=details)
