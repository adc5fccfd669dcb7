"""
Vaccine Request API endpoints
"""

from typing import List, Optional
from fastapi import APIRouter, Body, Depends
from sqlalchemy.orm import Session

from vaxsync.api import deps
from vaxsync.schemas.inventory import RejectRequest
from vaxsync.services.inventory import RequestApprovalService
from vaxsync.services.reference_tables import ReferenceTables

router = APIRouter()


@router.post("/batch-approve")
def batch_approve_requests(
    request_ids: List[int] = Body(..., embed=True),
    db: Session = Depends(deps.get_db),
    tables: ReferenceTables = Depends(deps.get_reference_tables),
):
    """
    Approve several requests; failures are counted, not raised.
    """
    return RequestApprovalService(db, tables).batch_approve(request_ids)


@router.post("/{request_id}/approve")
def approve_request(
    request_id: int,
    db: Session = Depends(deps.get_db),
    tables: ReferenceTables = Depends(deps.get_reference_tables),
):
    """
    Approve a pending request into the requesting barangay's inventory.
    """
    result = RequestApprovalService(db, tables).approve_request(request_id)
    deps.raise_for_result(result)
    return result.to_dict()


@router.post("/{request_id}/reject")
def reject_request(
    request_id: int,
    payload: Optional[RejectRequest] = None,
    db: Session = Depends(deps.get_db),
    tables: ReferenceTables = Depends(deps.get_reference_tables),
):
    result = RequestApprovalService(db, tables).reject_request(request_id, payload.notes if payload else None)
    deps.raise_for_result(result)
    return result.to_dict()
