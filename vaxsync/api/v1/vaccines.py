"""
Vaccine Aggregate API endpoints
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from vaxsync.api import deps
from vaxsync.schemas.inventory import AggregateRequest
from vaxsync.services.inventory import AggregateMirrorService
from vaxsync.services.reference_tables import ReferenceTables

router = APIRouter()


@router.get("/vial-mapping")
def list_vial_mapping(tables: ReferenceTables = Depends(deps.get_reference_tables)):
    """
    Doses per vial for each mapped vaccine.
    """
    return {"vaccines": tables.all_vial_info()}


@router.post("/{vaccine_id}/deduct")
def deduct_aggregate(vaccine_id: int, payload: AggregateRequest, db: Session = Depends(deps.get_db)):
    result = AggregateMirrorService(db).deduct_aggregate(vaccine_id, payload.doses)
    deps.raise_for_result(result)
    return result.to_dict()


@router.post("/{vaccine_id}/add-back")
def add_back_aggregate(vaccine_id: int, payload: AggregateRequest, db: Session = Depends(deps.get_db)):
    result = AggregateMirrorService(db).add_back_aggregate(vaccine_id, payload.doses)
    deps.raise_for_result(result)
    return result.to_dict()


@router.post("/{vaccine_id}/reconcile")
def reconcile_aggregate(vaccine_id: int, db: Session = Depends(deps.get_db)):
    """
    Rebuild the vaccine's doses available from its barangay batches.
    """
    result = AggregateMirrorService(db).reconcile_aggregate(vaccine_id)
    deps.raise_for_result(result)
    return result.to_dict()
