"""Monthly Report Schemas"""

from pydantic import BaseModel, Field
from typing import List, Optional


class MonthlyReportRow(BaseModel):
    vaccine_id: int
    vaccine_name: str
    month: str
    initial_inventory: int
    quantity_supplied: int
    quantity_used: int
    quantity_wastage: int
    ending_inventory: int
    vials_needed: int
    max_allocation: int
    stock_level_percentage: int
    status: str
    merged_vaccine_ids: List[int] = []


class MonthlyReportResponse(BaseModel):
    month: str
    reports: List[MonthlyReportRow]
    skipped_sessions: List[int] = []
    persisted: Optional[bool] = None


class WastageRequest(BaseModel):
    vaccine_id: int
    doses: int = Field(..., description="Wasted doses to add to the month")


class AvailableMonthsResponse(BaseModel):
    months: List[str]
