"""
VaxSync Inventory Models
Barangay vaccine inventory batches (FIFO ledger rows)
"""
from datetime import datetime
from sqlalchemy import (
    Column, String, Integer, Date, DateTime, Text, ForeignKey,
    CheckConstraint, Index
)
from sqlalchemy.orm import relationship
from vaxsync.core.database import Base


class InventoryBatch(Base):
    """
    Barangay Vaccine Inventory Batch

    On-hand vial and dose counts for one receipt of a dose definition at a
    barangay. Batches are consumed oldest-received first and are never
    deleted when they reach zero; they remain as historical records.
    """
    __tablename__ = "barangay_vaccine_inventory"

    id = Column(Integer, primary_key=True, index=True)
    barangay_id = Column(Integer, ForeignKey("barangays.id"), nullable=False)
    dose_definition_id = Column(Integer, ForeignKey("vaccine_doses.id"), nullable=False)

    # Quantity Information
    quantity_vial = Column(Integer, nullable=False, default=0, doc="Vials on hand")
    quantity_dose = Column(Integer, nullable=False, default=0, doc="Doses on hand")
    reserved_vial = Column(Integer, nullable=False, default=0, doc="Vials held for scheduled sessions")

    # Batch Identity
    batch_number = Column(String(50), doc="Batch number")
    expiry_date = Column(Date, doc="Expiry date")
    received_date = Column(DateTime, nullable=False, default=datetime.now, doc="FIFO sort key")
    notes = Column(Text)

    # Audit Trail
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    barangay = relationship("Barangay", back_populates="inventory")
    dose_definition = relationship("VaccineDoseDefinition", back_populates="batches")

    __table_args__ = (
        CheckConstraint("quantity_vial >= 0", name='quantity_vial_non_negative'),
        CheckConstraint("quantity_dose >= 0", name='quantity_dose_non_negative'),
        CheckConstraint("reserved_vial >= 0", name='reserved_vial_non_negative'),
        CheckConstraint("reserved_vial <= quantity_vial", name='reserved_within_on_hand'),
        Index('ix_inventory_barangay_dose', 'barangay_id', 'dose_definition_id'),
    )

    @property
    def available_vial(self) -> int:
        return (self.quantity_vial or 0) - (self.reserved_vial or 0)

    def __repr__(self):
        return f"<InventoryBatch {self.id} vials={self.quantity_vial} reserved={self.reserved_vial}>"
