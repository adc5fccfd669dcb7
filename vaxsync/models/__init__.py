"""
VaxSync SQLAlchemy Models
"""

# Import all models to ensure they are registered with SQLAlchemy
from .barangay import Barangay
from .vaccine import Vaccine, VaccineDoseDefinition
from .inventory import InventoryBatch
from .session import VaccinationSession, SessionStatus, ACTIVE_SESSION_STATUSES
from .request import VaccineRequest, RequestStatus
from .report import MonthlyReport, StockStatus

__all__ = [
    "Barangay",
    "Vaccine",
    "VaccineDoseDefinition",
    "InventoryBatch",
    "VaccinationSession",
    "SessionStatus",
    "ACTIVE_SESSION_STATUSES",
    "VaccineRequest",
    "RequestStatus",
    "MonthlyReport",
    "StockStatus",
]
