"""
Vaccination Session API endpoints
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from vaxsync.api import deps
from vaxsync.schemas.inventory import ScheduleSessionRequest, AdministrationRequest
from vaxsync.services.inventory import SessionInventoryService
from vaxsync.services.reference_tables import ReferenceTables

router = APIRouter()


@router.post("/", status_code=201)
def schedule_session(
    payload: ScheduleSessionRequest,
    db: Session = Depends(deps.get_db),
    tables: ReferenceTables = Depends(deps.get_reference_tables),
):
    """
    Schedule a session and reserve its target vials.
    """
    result = SessionInventoryService(db, tables).schedule_session(
        payload.barangay_id, payload.dose_definition_id, payload.session_date, payload.target
    )
    deps.raise_for_result(result)
    return result.to_dict()


@router.post("/{session_id}/administer")
def record_administration(
    session_id: int,
    payload: AdministrationRequest,
    db: Session = Depends(deps.get_db),
    tables: ReferenceTables = Depends(deps.get_reference_tables),
):
    """
    Record the administered count; the change is released, deducted and mirrored.
    """
    result = SessionInventoryService(db, tables).record_administration(
        session_id, payload.administered, payload.status
    )
    deps.raise_for_result(result)
    return result.to_dict()


@router.post("/{session_id}/cancel")
def cancel_session(
    session_id: int,
    db: Session = Depends(deps.get_db),
    tables: ReferenceTables = Depends(deps.get_reference_tables),
):
    result = SessionInventoryService(db, tables).cancel_session(session_id)
    deps.raise_for_result(result)
    return result.to_dict()
