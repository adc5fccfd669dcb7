"""
VaxSync Barangay Model
Village-level administrative unit that partitions inventory
"""
from sqlalchemy import Column, String, Integer, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from vaxsync.core.database import Base


class Barangay(Base):
    """Barangay (village/district) served by a health station"""
    __tablename__ = "barangays"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False, unique=True, doc="Barangay name")
    municipality = Column(String(100), default='', doc="Municipality")
    created_at = Column(DateTime, server_default=func.current_timestamp())

    inventory = relationship("InventoryBatch", back_populates="barangay")
    sessions = relationship("VaccinationSession", back_populates="barangay")

    def __repr__(self):
        return f"<Barangay {self.id} {self.name}>"
