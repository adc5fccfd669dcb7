"""Barangay Inventory Schemas"""

from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List
from datetime import datetime, date


# Ledger Requests
class LedgerRequest(BaseModel):
    barangay_id: int
    dose_definition_id: int
    vials: int = Field(..., description="Whole vials to deduct, add back or reserve")


class ReleaseRequest(BaseModel):
    barangay_id: int
    inventory_batch_id: int
    vials: int


class RecalculateRequest(BaseModel):
    barangay_id: int
    dose_definition_id: int


class ReceiveStockRequest(BaseModel):
    barangay_id: int
    dose_definition_id: int
    vials: int
    batch_number: Optional[str] = Field(None, max_length=50)
    expiry_date: Optional[date] = None
    received_date: Optional[datetime] = None
    notes: Optional[str] = None


class AggregateRequest(BaseModel):
    doses: int = Field(..., description="Doses to deduct from or add back to the vaccine")


# Sessions
class ScheduleSessionRequest(BaseModel):
    barangay_id: int
    dose_definition_id: int
    session_date: date
    target: int = Field(..., description="Vials to reserve for the session")


class AdministrationRequest(BaseModel):
    administered: int = Field(..., description="Total vials administered so far")
    status: Optional[str] = None


# Requests
class RejectRequest(BaseModel):
    notes: Optional[str] = None


# Responses
class InventoryBatchResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    barangay_id: int
    dose_definition_id: int
    quantity_vial: int
    quantity_dose: int
    reserved_vial: int
    available_vial: int
    batch_number: Optional[str] = None
    expiry_date: Optional[date] = None
    received_date: datetime
    notes: Optional[str] = None
    created_at: datetime


class BarangayInventoryResponse(BaseModel):
    barangay_id: int
    batches: List[InventoryBatchResponse]
    total: int


class LowStockResponse(BaseModel):
    barangay_id: int
    threshold: int
    batches: List[InventoryBatchResponse]


class AvailabilityResponse(BaseModel):
    barangay_id: int
    dose_definition_id: int
    total_vials: int
    available_vials: int
