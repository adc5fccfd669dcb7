"""
VaxSync Vaccine Models
Main vaccine catalog with its cross-barangay doses-available mirror,
and the dose definitions (product lines) registered under each vaccine
"""
from datetime import datetime
from sqlalchemy import (
    Column, String, Integer, Date, DateTime, ForeignKey, CheckConstraint
)
from sqlalchemy.orm import relationship
from vaxsync.core.database import Base


class Vaccine(Base):
    """
    Vaccine Aggregate

    Catalog entry for a vaccine with a denormalized doses-available counter
    kept in step with the barangay inventory batches of its dose definitions.
    The same name may appear under several ids (duplicate catalog entries).
    """
    __tablename__ = "vaccines"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False, index=True, doc="Vaccine name")
    batch_number = Column(String(50), doc="Manufacturer batch number")
    expiry_date = Column(Date, doc="Expiry date of the catalog batch")
    quantity_available = Column(Integer, nullable=False, default=0, doc="Doses available")
    created_at = Column(DateTime, nullable=False, default=datetime.now)

    doses = relationship("VaccineDoseDefinition", back_populates="vaccine")

    __table_args__ = (
        CheckConstraint("quantity_available >= 0", name='quantity_available_non_negative'),
    )

    def __repr__(self):
        return f"<Vaccine {self.id} {self.name}>"


class VaccineDoseDefinition(Base):
    """
    Vaccine Dose Definition

    A specific dose/product line of a vaccine (e.g. "TT1"). Inventory
    batches are held per barangay against a dose definition.
    """
    __tablename__ = "vaccine_doses"

    id = Column(Integer, primary_key=True, index=True)
    vaccine_id = Column(Integer, ForeignKey("vaccines.id", ondelete="CASCADE"), nullable=False, index=True)
    dose_code = Column(String(20), nullable=False, doc="Dose code, e.g. TT1")
    dose_label = Column(String(100), default='', doc="Display label")
    dose_number = Column(Integer, default=1, doc="Dose number in the series")
    doses_per_vial = Column(Integer, doc="Stored doses per vial, used when the vial mapping has no entry")
    quantity_available = Column(Integer, nullable=False, default=0, doc="Doses available (denormalized)")
    created_at = Column(DateTime, nullable=False, default=datetime.now)

    vaccine = relationship("Vaccine", back_populates="doses")
    batches = relationship("InventoryBatch", back_populates="dose_definition")

    __table_args__ = (
        CheckConstraint("quantity_available >= 0", name='dose_quantity_non_negative'),
    )

    def __repr__(self):
        return f"<VaccineDoseDefinition {self.id} {self.dose_code}>"
