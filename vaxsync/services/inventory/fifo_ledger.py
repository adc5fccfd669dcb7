"""
FIFO Ledger Engine
Deducts and adds back vials across barangay inventory batches

Deduct walks the batches oldest-received first and spreads the quantity
across them; AddBack puts the whole quantity on the oldest batch. Doses move
with vials at the vaccine's doses-per-vial rate on every touched batch.
"""
import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from vaxsync.core.exceptions import NotFoundError, StorageError, ValidationError
from vaxsync.services.reference_tables import ReferenceTables
from vaxsync.services.inventory.batch_store import BatchInventoryStore
from vaxsync.services.inventory.results import BatchChange, LedgerResult

logger = logging.getLogger(__name__)


def validate_quantity_request(vials, **identifiers) -> None:
    """Raise ValidationError for a missing identifier or non-positive quantity"""
    missing = [name for name, value in identifiers.items() if not value]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")
    if isinstance(vials, bool) or not isinstance(vials, int) or vials <= 0:
        raise ValidationError(f"Quantity must be a positive whole number of vials, got {vials!r}")


class FifoLedgerService:
    """FIFO deduction and add-back over one barangay's batches of a dose definition"""

    def __init__(self, db: Session, tables: ReferenceTables, store: Optional[BatchInventoryStore] = None):
        self.db = db
        self.tables = tables
        self.store = store or BatchInventoryStore(db, tables)

    def deduct(self, barangay_id: int, dose_definition_id: int, vials: int) -> LedgerResult:
        """
        Deduct vials oldest-batch first

        A quantity larger than the stock on hand is applied as far as it goes;
        the unapplied part is reported in `remaining` and the call still
        succeeds. The caller decides whether a shortage is an error.
        """
        try:
            validate_quantity_request(vials, barangay_id=barangay_id, dose_definition_id=dose_definition_id)
        except ValidationError as e:
            return LedgerResult(success=False, error=e, requested=vials if isinstance(vials, int) else 0)

        try:
            dose_definition = self.store.get_dose_definition(dose_definition_id)
            batches = self.store.fifo_batches(barangay_id, dose_definition_id) if dose_definition else []
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error fetching inventory for deduction: {e}")
            return LedgerResult(
                success=False, error=StorageError("fetch inventory batches", e),
                requested=vials, remaining=vials
            )

        if dose_definition is None:
            return LedgerResult(
                success=False, error=NotFoundError("Dose definition", dose_definition_id),
                requested=vials, remaining=vials
            )
        if not batches:
            return LedgerResult(
                success=False,
                error=NotFoundError("Inventory batch", f"barangay={barangay_id}, dose={dose_definition_id}"),
                requested=vials, remaining=vials
            )

        per_vial = self.store.doses_per_vial(dose_definition)
        remaining = vials
        touched = []

        try:
            for batch in batches:
                if remaining <= 0:
                    break
                take = min(remaining, batch.quantity_vial or 0)
                if take <= 0:
                    continue

                change = BatchChange(
                    batch_id=batch.id,
                    batch_number=batch.batch_number,
                    vials_before=batch.quantity_vial,
                    vials_after=batch.quantity_vial - take,
                    doses_before=batch.quantity_dose or 0,
                    doses_after=max(0, (batch.quantity_dose or 0) - take * per_vial),
                )
                batch.quantity_vial = change.vials_after
                batch.quantity_dose = change.doses_after
                # Reserved vials can never exceed what is on hand
                if (batch.reserved_vial or 0) > batch.quantity_vial:
                    batch.reserved_vial = batch.quantity_vial
                self.db.flush()

                touched.append(change)
                remaining -= take

            self.db.commit()

        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                f"Deduction stopped after {len(touched)} batch update(s) for barangay {barangay_id}, "
                f"dose {dose_definition_id}: {e}"
            )
            return LedgerResult(
                success=False, error=StorageError("deduct inventory batch", e),
                requested=vials, remaining=remaining, touched=touched, committed=False
            )

        if remaining > 0:
            logger.warning(
                f"Shortage deducting {vials} vial(s) for barangay {barangay_id}, "
                f"dose {dose_definition_id}: {remaining} vial(s) not available"
            )
        logger.info(
            f"Deducted {vials - remaining} vial(s) from {len(touched)} batch(es): "
            + ", ".join(f"#{c.batch_id} {c.vials_before}->{c.vials_after}" for c in touched)
        )
        return LedgerResult(
            success=True, requested=vials, remaining=remaining, touched=touched, committed=True
        )

    def add_back(self, barangay_id: int, dose_definition_id: int, vials: int) -> LedgerResult:
        """
        Return vials to the oldest batch

        The whole quantity lands on the first batch in FIFO order. A dose
        definition or batch list that no longer exists is a no-op success.
        """
        try:
            validate_quantity_request(vials, barangay_id=barangay_id, dose_definition_id=dose_definition_id)
        except ValidationError as e:
            return LedgerResult(success=False, error=e, requested=vials if isinstance(vials, int) else 0)

        try:
            dose_definition = self.store.get_dose_definition(dose_definition_id)
            batches = self.store.fifo_batches(barangay_id, dose_definition_id) if dose_definition else []
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error fetching inventory for add-back: {e}")
            return LedgerResult(
                success=False, error=StorageError("fetch inventory batches", e),
                requested=vials, remaining=vials
            )

        if dose_definition is None or not batches:
            logger.warning(
                f"Add-back of {vials} vial(s) skipped: no inventory for barangay {barangay_id}, "
                f"dose {dose_definition_id}"
            )
            return LedgerResult(success=True, requested=vials, remaining=vials, committed=False)

        per_vial = self.store.doses_per_vial(dose_definition)
        target = batches[0]
        change = BatchChange(
            batch_id=target.id,
            batch_number=target.batch_number,
            vials_before=target.quantity_vial or 0,
            vials_after=(target.quantity_vial or 0) + vials,
            doses_before=target.quantity_dose or 0,
            doses_after=(target.quantity_dose or 0) + vials * per_vial,
        )

        try:
            target.quantity_vial = change.vials_after
            target.quantity_dose = change.doses_after
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error adding back {vials} vial(s) to batch {change.batch_id}: {e}")
            return LedgerResult(
                success=False, error=StorageError("add back inventory batch", e),
                requested=vials, remaining=vials
            )

        logger.info(f"Added back {vials} vial(s) to batch #{change.batch_id} ({change.vials_before}->{change.vials_after})")
        return LedgerResult(success=True, requested=vials, remaining=0, touched=[change], committed=True)
