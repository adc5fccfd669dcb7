"""
Barangay Inventory API endpoints
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from vaxsync.api import deps
from vaxsync.core.config import settings
from vaxsync.schemas.inventory import (
    LedgerRequest, ReleaseRequest, RecalculateRequest, ReceiveStockRequest,
    InventoryBatchResponse, BarangayInventoryResponse, LowStockResponse, AvailabilityResponse
)
from vaxsync.services.inventory import (
    BatchInventoryStore, FifoLedgerService, ReservationService, StockReceiptService
)
from vaxsync.services.reference_tables import ReferenceTables

router = APIRouter()


@router.post("/deduct")
def deduct_vials(
    payload: LedgerRequest,
    db: Session = Depends(deps.get_db),
    tables: ReferenceTables = Depends(deps.get_reference_tables),
):
    """
    Deduct vials from a barangay's batches, oldest first.

    A shortage is not an error: the unapplied vials come back in `remaining`.
    """
    result = FifoLedgerService(db, tables).deduct(payload.barangay_id, payload.dose_definition_id, payload.vials)
    deps.raise_for_result(result)
    return result.to_dict()


@router.post("/add-back")
def add_back_vials(
    payload: LedgerRequest,
    db: Session = Depends(deps.get_db),
    tables: ReferenceTables = Depends(deps.get_reference_tables),
):
    """
    Return vials to the oldest batch.
    """
    result = FifoLedgerService(db, tables).add_back(payload.barangay_id, payload.dose_definition_id, payload.vials)
    deps.raise_for_result(result)
    return result.to_dict()


@router.post("/reserve")
def reserve_vials(
    payload: LedgerRequest,
    db: Session = Depends(deps.get_db),
    tables: ReferenceTables = Depends(deps.get_reference_tables),
):
    result = ReservationService(db, tables).reserve(payload.barangay_id, payload.dose_definition_id, payload.vials)
    deps.raise_for_result(result)
    return result.to_dict()


@router.post("/release")
def release_vials(
    payload: ReleaseRequest,
    db: Session = Depends(deps.get_db),
    tables: ReferenceTables = Depends(deps.get_reference_tables),
):
    result = ReservationService(db, tables).release(payload.barangay_id, payload.inventory_batch_id, payload.vials)
    deps.raise_for_result(result)
    return result.to_dict()


@router.post("/recalculate-reserved")
def recalculate_reserved(
    payload: RecalculateRequest,
    db: Session = Depends(deps.get_db),
    tables: ReferenceTables = Depends(deps.get_reference_tables),
):
    """
    Rebuild reserved vials from the active sessions.
    """
    result = ReservationService(db, tables).recalculate(payload.barangay_id, payload.dose_definition_id)
    deps.raise_for_result(result)
    return result.to_dict()


@router.post("/receive", status_code=201)
def receive_stock(
    payload: ReceiveStockRequest,
    db: Session = Depends(deps.get_db),
    tables: ReferenceTables = Depends(deps.get_reference_tables),
):
    """
    Receive vials into a new batch.
    """
    result = StockReceiptService(db, tables).receive_stock(
        barangay_id=payload.barangay_id,
        dose_definition_id=payload.dose_definition_id,
        vials=payload.vials,
        batch_number=payload.batch_number,
        expiry_date=payload.expiry_date,
        received_date=payload.received_date,
        notes=payload.notes,
    )
    deps.raise_for_result(result)
    return result.to_dict()


@router.get("/barangays/{barangay_id}", response_model=BarangayInventoryResponse)
def list_barangay_inventory(
    barangay_id: int,
    db: Session = Depends(deps.get_db),
    tables: ReferenceTables = Depends(deps.get_reference_tables),
):
    """
    Barangay inventory batches, newest first.
    """
    batches = BatchInventoryStore(db, tables).list_inventory(barangay_id)
    return {
        "barangay_id": barangay_id,
        "batches": [InventoryBatchResponse.model_validate(batch) for batch in batches],
        "total": len(batches),
    }


@router.get("/barangays/{barangay_id}/low-stock", response_model=LowStockResponse)
def list_low_stock(
    barangay_id: int,
    threshold: Optional[int] = Query(None, ge=0),
    db: Session = Depends(deps.get_db),
    tables: ReferenceTables = Depends(deps.get_reference_tables),
):
    threshold = settings.LOW_STOCK_THRESHOLD if threshold is None else threshold
    batches = BatchInventoryStore(db, tables).low_stock(barangay_id, threshold)
    return {
        "barangay_id": barangay_id,
        "threshold": threshold,
        "batches": [InventoryBatchResponse.model_validate(batch) for batch in batches],
    }


@router.get("/barangays/{barangay_id}/availability", response_model=AvailabilityResponse)
def get_availability(
    barangay_id: int,
    dose_definition_id: int = Query(...),
    db: Session = Depends(deps.get_db),
    tables: ReferenceTables = Depends(deps.get_reference_tables),
):
    """
    Vials on hand and not reserved for a barangay/dose pair.
    """
    store = BatchInventoryStore(db, tables)
    return {
        "barangay_id": barangay_id,
        "dose_definition_id": dose_definition_id,
        "total_vials": store.total_vials(barangay_id, dose_definition_id),
        "available_vials": store.available_vials(barangay_id, dose_definition_id),
    }
