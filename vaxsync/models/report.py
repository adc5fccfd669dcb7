"""
VaxSync Monthly Report Model
Per vaccine per calendar month NIP stock report
"""
from datetime import datetime
from enum import Enum
from sqlalchemy import (
    Column, String, Integer, Date, DateTime, ForeignKey, UniqueConstraint
)
from sqlalchemy.orm import relationship
from vaxsync.core.database import Base


class StockStatus(str, Enum):
    STOCKOUT = "STOCKOUT"
    UNDERSTOCK = "UNDERSTOCK"
    GOOD = "GOOD"
    OVERSTOCK = "OVERSTOCK"


class MonthlyReport(Base):
    """
    Vaccine Monthly Report

    Quantities are in doses. One row per (vaccine_id, month) where month is
    the first day of the calendar month.
    """
    __tablename__ = "vaccine_monthly_report"

    id = Column(Integer, primary_key=True, index=True)
    vaccine_id = Column(Integer, ForeignKey("vaccines.id", ondelete="CASCADE"), nullable=False)
    month = Column(Date, nullable=False, index=True, doc="First day of month")

    initial_inventory = Column(Integer, nullable=False, default=0)
    quantity_supplied = Column(Integer, nullable=False, default=0, doc="IN")
    quantity_used = Column(Integer, nullable=False, default=0, doc="OUT")
    quantity_wastage = Column(Integer, nullable=False, default=0)
    ending_inventory = Column(Integer, nullable=False, default=0)

    # NIP reference figures
    vials_needed = Column(Integer, nullable=False, default=0)
    max_allocation = Column(Integer, nullable=False, default=0)

    stock_level_percentage = Column(Integer, nullable=False, default=0)
    status = Column(String(20), nullable=False, default=StockStatus.GOOD.value)

    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    vaccine = relationship("Vaccine")

    __table_args__ = (
        UniqueConstraint('vaccine_id', 'month', name='uq_vaccine_monthly_report_vaccine_month'),
    )
