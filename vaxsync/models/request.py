"""
VaxSync Vaccine Request Model
Barangay requisitions approved into inventory
"""
from datetime import datetime
from enum import Enum
from sqlalchemy import Column, String, Integer, DateTime, Text, ForeignKey
from sqlalchemy.orm import relationship
from vaxsync.core.database import Base


class RequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class VaccineRequest(Base):
    """
    Vaccine request from a barangay

    When source_barangay_id is set the approval moves stock between
    barangays; otherwise it brings new supply into the destination barangay.
    """
    __tablename__ = "vaccine_requests"

    id = Column(Integer, primary_key=True, index=True)
    vaccine_id = Column(Integer, ForeignKey("vaccines.id"), nullable=False, index=True)
    dose_definition_id = Column(Integer, ForeignKey("vaccine_doses.id"))
    barangay_id = Column(Integer, ForeignKey("barangays.id"), nullable=False)
    source_barangay_id = Column(Integer, ForeignKey("barangays.id"))
    quantity_vial = Column(Integer, nullable=False, default=0)
    quantity_dose = Column(Integer, nullable=False, default=0)
    status = Column(String(20), nullable=False, default=RequestStatus.PENDING.value, index=True)
    notes = Column(Text)
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    approved_at = Column(DateTime)

    vaccine = relationship("Vaccine")
    dose_definition = relationship("VaccineDoseDefinition")
