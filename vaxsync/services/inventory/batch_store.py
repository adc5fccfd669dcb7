"""
Batch Inventory Store
Reads barangay inventory batches in FIFO order and answers stock queries
"""
import logging
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from vaxsync.core.config import settings
from vaxsync.models import InventoryBatch, VaccineDoseDefinition
from vaxsync.services.reference_tables import ReferenceTables

logger = logging.getLogger(__name__)


class BatchInventoryStore:
    """
    Per-barangay, per-dose-definition batch records

    Query errors (SQLAlchemyError) propagate to the calling service, which
    turns them into StorageError results.
    """

    def __init__(self, db: Session, tables: ReferenceTables):
        self.db = db
        self.tables = tables

    def get_dose_definition(self, dose_definition_id: int) -> Optional[VaccineDoseDefinition]:
        return self.db.get(VaccineDoseDefinition, dose_definition_id)

    def get_batch(self, batch_id: int) -> Optional[InventoryBatch]:
        return self.db.get(InventoryBatch, batch_id)

    def doses_per_vial(self, dose_definition: VaccineDoseDefinition) -> int:
        """Doses per vial for a dose definition, from the vial mapping by vaccine name"""
        vaccine_name = dose_definition.vaccine.name if dose_definition.vaccine else ""
        return self.tables.doses_per_vial(vaccine_name, fallback=dose_definition.doses_per_vial)

    def fifo_batches(self, barangay_id: int, dose_definition_id: int) -> List[InventoryBatch]:
        """All batches for the pair, oldest received first, id as tie-break"""
        return (
            self.db.query(InventoryBatch)
            .filter(
                InventoryBatch.barangay_id == barangay_id,
                InventoryBatch.dose_definition_id == dose_definition_id,
            )
            .order_by(InventoryBatch.received_date.asc(), InventoryBatch.id.asc())
            .all()
        )

    def oldest_batch(self, barangay_id: int, dose_definition_id: int) -> Optional[InventoryBatch]:
        batches = self.fifo_batches(barangay_id, dose_definition_id)
        return batches[0] if batches else None

    def list_inventory(self, barangay_id: int) -> List[InventoryBatch]:
        """Barangay inventory, newest first"""
        return (
            self.db.query(InventoryBatch)
            .filter(InventoryBatch.barangay_id == barangay_id)
            .order_by(InventoryBatch.created_at.desc(), InventoryBatch.id.desc())
            .all()
        )

    def total_vials(self, barangay_id: int, dose_definition_id: int) -> int:
        result = self.db.query(func.sum(InventoryBatch.quantity_vial)).filter(
            InventoryBatch.barangay_id == barangay_id,
            InventoryBatch.dose_definition_id == dose_definition_id,
        ).scalar()
        return int(result or 0)

    def available_vials(self, barangay_id: int, dose_definition_id: int) -> int:
        result = self.db.query(
            func.sum(InventoryBatch.quantity_vial - InventoryBatch.reserved_vial)
        ).filter(
            InventoryBatch.barangay_id == barangay_id,
            InventoryBatch.dose_definition_id == dose_definition_id,
        ).scalar()
        return int(result or 0)

    def low_stock(self, barangay_id: int, threshold: Optional[int] = None) -> List[InventoryBatch]:
        """Batches with fewer vials on hand than the threshold"""
        if threshold is None:
            threshold = settings.LOW_STOCK_THRESHOLD
        return (
            self.db.query(InventoryBatch)
            .filter(
                InventoryBatch.barangay_id == barangay_id,
                InventoryBatch.quantity_vial < threshold,
            )
            .order_by(InventoryBatch.quantity_vial.asc(), InventoryBatch.id.asc())
            .all()
        )
