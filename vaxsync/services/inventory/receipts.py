"""
Stock Receipts
Brings new vials into a barangay as a fresh inventory batch
"""
import logging
from datetime import date, datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from vaxsync.core.exceptions import NotFoundError, StorageError, ValidationError
from vaxsync.models import Barangay, InventoryBatch
from vaxsync.services.reference_tables import ReferenceTables
from vaxsync.services.inventory.aggregate_mirror import AggregateMirrorService
from vaxsync.services.inventory.batch_store import BatchInventoryStore
from vaxsync.services.inventory.fifo_ledger import validate_quantity_request
from vaxsync.services.inventory.results import WorkflowResult

logger = logging.getLogger(__name__)


class StockReceiptService:
    """Stock receipt processing"""

    def __init__(self, db: Session, tables: ReferenceTables):
        self.db = db
        self.tables = tables
        self.store = BatchInventoryStore(db, tables)
        self.mirror = AggregateMirrorService(db)

    def receive_stock(
        self,
        barangay_id: int,
        dose_definition_id: int,
        vials: int,
        batch_number: Optional[str] = None,
        expiry_date: Optional[date] = None,
        received_date: Optional[datetime] = None,
        notes: Optional[str] = None,
    ) -> WorkflowResult:
        """
        Receive vials into a new batch and add the doses to the vaccine mirror

        Steps: create_batch, mirror_add_back. The batch stays in place if the
        mirror update fails.
        """
        try:
            validate_quantity_request(vials, barangay_id=barangay_id, dose_definition_id=dose_definition_id)
        except ValidationError as e:
            return WorkflowResult(success=False, error=e)

        completed = []
        try:
            if self.db.get(Barangay, barangay_id) is None:
                return WorkflowResult(success=False, error=NotFoundError("Barangay", barangay_id))
            dose_definition = self.store.get_dose_definition(dose_definition_id)
            if dose_definition is None:
                return WorkflowResult(success=False, error=NotFoundError("Dose definition", dose_definition_id))

            # 1. Create the batch
            per_vial = self.store.doses_per_vial(dose_definition)
            batch = InventoryBatch(
                barangay_id=barangay_id,
                dose_definition_id=dose_definition_id,
                quantity_vial=vials,
                quantity_dose=vials * per_vial,
                reserved_vial=0,
                batch_number=batch_number,
                expiry_date=expiry_date,
                received_date=received_date or datetime.now(),
                notes=notes,
            )
            self.db.add(batch)
            self.db.commit()
            self.db.refresh(batch)
            completed.append("create_batch")

        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error receiving {vials} vial(s) at barangay {barangay_id}: {e}")
            return WorkflowResult(success=False, error=StorageError("create inventory batch", e))

        logger.info(
            f"Received {vials} vial(s) ({batch.quantity_dose} doses) of dose {dose_definition_id} "
            f"at barangay {barangay_id} as batch #{batch.id}"
        )

        # 2. Mirror the doses on the vaccine
        mirror = self.mirror.add_back_aggregate(dose_definition.vaccine_id, batch.quantity_dose) \
            if batch.quantity_dose > 0 else None
        details = {"batch_id": batch.id, "quantity_dose": batch.quantity_dose}
        if mirror is not None:
            details["mirror"] = mirror
            if not mirror.success:
                return WorkflowResult(success=False, error=mirror.error, completed_steps=completed, details=details)
            completed.append("mirror_add_back")

        return WorkflowResult(success=True, completed_steps=completed, details=details)
