"""
Reservation Arithmetic
Holds vials on a barangay batch for scheduled sessions

available = quantity_vial - reserved_vial. When a reservation does not fit,
the reserved counter is rebuilt once from the active sessions before the
request is retried.
"""
import logging
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from vaxsync.core.config import settings
from vaxsync.core.exceptions import (
    InsufficientStockError, NotFoundError, StorageError, ValidationError
)
from vaxsync.models import InventoryBatch, VaccinationSession, ACTIVE_SESSION_STATUSES
from vaxsync.services.reference_tables import ReferenceTables
from vaxsync.services.inventory.batch_store import BatchInventoryStore
from vaxsync.services.inventory.fifo_ledger import validate_quantity_request
from vaxsync.services.inventory.results import ReservationResult

logger = logging.getLogger(__name__)


class ReservationService:
    """
    Reserve, release and recalculate reserved vials

    With strict=True a reservation is a single conditional UPDATE, so two
    concurrent callers cannot both pass the availability check. The default
    read-check-write path can over-reserve under concurrency; Recalculate
    repairs the counter from the session table.
    """

    def __init__(self, db: Session, tables: ReferenceTables, strict: Optional[bool] = None,
                 store: Optional[BatchInventoryStore] = None):
        self.db = db
        self.tables = tables
        self.strict = settings.STRICT_RESERVATIONS if strict is None else strict
        self.store = store or BatchInventoryStore(db, tables)

    def reserve(self, barangay_id: int, dose_definition_id: int, vials: int) -> ReservationResult:
        """Reserve vials on the oldest batch for the pair"""
        try:
            validate_quantity_request(vials, barangay_id=barangay_id, dose_definition_id=dose_definition_id)
        except ValidationError as e:
            return ReservationResult(success=False, error=e)

        try:
            batch = self.store.oldest_batch(barangay_id, dose_definition_id)
            if batch is None:
                return ReservationResult(
                    success=False,
                    error=NotFoundError("Inventory batch", f"barangay={barangay_id}, dose={dose_definition_id}"),
                )

            before = batch.reserved_vial or 0
            if self._try_reserve(batch, vials):
                logger.info(f"Reserved {vials} vial(s) on batch #{batch.id} ({before}->{batch.reserved_vial})")
                return ReservationResult(
                    success=True, batch_id=batch.id,
                    reserved_before=before, reserved_after=batch.reserved_vial
                )

            logger.warning(
                f"Reservation of {vials} vial(s) on batch #{batch.id} does not fit "
                f"(available {batch.available_vial}); recalculating reserved vials"
            )
            recalculation = self.recalculate(barangay_id, dose_definition_id)
            if not recalculation.success:
                return ReservationResult(success=False, error=recalculation.error, recalculated=True)

            batch = self.store.oldest_batch(barangay_id, dose_definition_id)
            retry_before = batch.reserved_vial or 0
            if self._try_reserve(batch, vials):
                logger.info(f"Reserved {vials} vial(s) on batch #{batch.id} after recalculation")
                return ReservationResult(
                    success=True, batch_id=batch.id, reserved_before=retry_before,
                    reserved_after=batch.reserved_vial, recalculated=True
                )

            error = InsufficientStockError(
                available=batch.available_vial,
                requested=vials,
                total_vials=batch.quantity_vial,
                already_reserved=batch.reserved_vial,
            )
            logger.warning(f"Reservation refused on batch #{batch.id}: {error.message}")
            return ReservationResult(
                success=False, error=error, batch_id=batch.id,
                reserved_before=retry_before, reserved_after=retry_before, recalculated=True
            )

        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error reserving vials for barangay {barangay_id}, dose {dose_definition_id}: {e}")
            return ReservationResult(success=False, error=StorageError("reserve vials", e))

    def _try_reserve(self, batch: InventoryBatch, vials: int) -> bool:
        if self.strict:
            outcome = self.db.execute(
                update(InventoryBatch)
                .where(
                    InventoryBatch.id == batch.id,
                    InventoryBatch.reserved_vial + vials <= InventoryBatch.quantity_vial,
                )
                .values(reserved_vial=InventoryBatch.reserved_vial + vials)
                .execution_options(synchronize_session=False)
            )
            if outcome.rowcount != 1:
                self.db.rollback()
                return False
            self.db.commit()
            self.db.refresh(batch)
            return True

        if batch.available_vial < vials:
            return False
        batch.reserved_vial = (batch.reserved_vial or 0) + vials
        self.db.commit()
        return True

    def release(self, barangay_id: int, inventory_batch_id: int, vials: int) -> ReservationResult:
        """
        Release reserved vials on a specific batch

        Never drives reserved_vial below zero. A batch that no longer exists
        is skipped.
        """
        try:
            validate_quantity_request(vials, barangay_id=barangay_id, inventory_batch_id=inventory_batch_id)
        except ValidationError as e:
            return ReservationResult(success=False, error=e)

        try:
            batch = self.store.get_batch(inventory_batch_id)
            if batch is None or batch.barangay_id != barangay_id:
                logger.warning(
                    f"Release of {vials} vial(s) skipped: batch {inventory_batch_id} "
                    f"not found for barangay {barangay_id}"
                )
                return ReservationResult(success=True, batch_id=inventory_batch_id)

            before = batch.reserved_vial or 0
            batch.reserved_vial = before - min(vials, before)
            self.db.commit()

        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error releasing vials on batch {inventory_batch_id}: {e}")
            return ReservationResult(success=False, error=StorageError("release vials", e), batch_id=inventory_batch_id)

        logger.info(f"Released reservation on batch #{inventory_batch_id} ({before}->{batch.reserved_vial})")
        return ReservationResult(
            success=True, batch_id=inventory_batch_id,
            reserved_before=before, reserved_after=batch.reserved_vial
        )

    def recalculate(self, barangay_id: int, dose_definition_id: int) -> ReservationResult:
        """
        Rebuild reserved vials from the active sessions

        The sum of max(0, target - administered) over Scheduled and In progress
        sessions is placed on the oldest batch (capped at its vials on hand);
        every other batch for the pair is reset to zero.
        """
        if not barangay_id or not dose_definition_id:
            return ReservationResult(
                success=False, error=ValidationError("barangay_id and dose_definition_id are required")
            )

        try:
            sessions = self.db.query(VaccinationSession).filter(
                VaccinationSession.barangay_id == barangay_id,
                VaccinationSession.dose_definition_id == dose_definition_id,
                VaccinationSession.status.in_(ACTIVE_SESSION_STATUSES),
            ).all()
            required = sum(session.outstanding for session in sessions)

            batches = self.store.fifo_batches(barangay_id, dose_definition_id)
            if not batches:
                return ReservationResult(
                    success=False,
                    error=NotFoundError("Inventory batch", f"barangay={barangay_id}, dose={dose_definition_id}"),
                    recalculated=True,
                )

            before = sum(batch.reserved_vial or 0 for batch in batches)
            target = batches[0]
            reserved = min(required, target.quantity_vial or 0)
            if reserved < required:
                logger.warning(
                    f"Active sessions need {required} vial(s) but batch #{target.id} holds "
                    f"{target.quantity_vial}; {required - reserved} vial(s) left unreserved"
                )

            for batch in batches[1:]:
                batch.reserved_vial = 0
            target.reserved_vial = reserved
            self.db.commit()

        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error recalculating reserved vials for barangay {barangay_id}, dose {dose_definition_id}: {e}")
            return ReservationResult(success=False, error=StorageError("recalculate reserved vials", e), recalculated=True)

        logger.info(
            f"Recalculated reserved vials for barangay {barangay_id}, dose {dose_definition_id}: "
            f"{before}->{reserved} from {len(sessions)} active session(s)"
        )
        return ReservationResult(
            success=True, batch_id=target.id, reserved_before=before,
            reserved_after=reserved, recalculated=True
        )
