"""
VaxSync Vaccination Session Model
Scheduled vaccination sessions; the ground truth for reservations
"""
from datetime import datetime
from enum import Enum
from sqlalchemy import Column, String, Integer, Date, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from vaxsync.core.database import Base


class SessionStatus(str, Enum):
    SCHEDULED = "Scheduled"
    IN_PROGRESS = "In progress"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


# Sessions whose outstanding vials must stay reserved
ACTIVE_SESSION_STATUSES = (SessionStatus.SCHEDULED.value, SessionStatus.IN_PROGRESS.value)


class VaccinationSession(Base):
    """Vaccination session at a barangay; target and administered are in vials"""
    __tablename__ = "vaccination_sessions"

    id = Column(Integer, primary_key=True, index=True)
    barangay_id = Column(Integer, ForeignKey("barangays.id"), nullable=False, index=True)
    dose_definition_id = Column(Integer, ForeignKey("vaccine_doses.id"), nullable=False, index=True)
    inventory_batch_id = Column(
        Integer, ForeignKey("barangay_vaccine_inventory.id", ondelete="SET NULL"),
        doc="Batch the session draws from"
    )
    session_date = Column(Date, nullable=False, index=True)
    target = Column(Integer, nullable=False, default=0)
    administered = Column(Integer, nullable=False, default=0)
    status = Column(String(20), nullable=False, default=SessionStatus.SCHEDULED.value)
    created_at = Column(DateTime, nullable=False, default=datetime.now)

    barangay = relationship("Barangay", back_populates="sessions")
    dose_definition = relationship("VaccineDoseDefinition")
    inventory_batch = relationship("InventoryBatch")

    @property
    def outstanding(self) -> int:
        return max(0, (self.target or 0) - (self.administered or 0))
