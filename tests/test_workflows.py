"""
Tests for the stock receipt, request approval and session workflows
"""

import pytest
from datetime import date, datetime

from vaxsync.core.exceptions import InsufficientStockError, NotFoundError, ValidationError
from vaxsync.models import (
    InventoryBatch, RequestStatus, SessionStatus, VaccinationSession, Vaccine, VaccineRequest
)
from vaxsync.services.inventory import (
    RequestApprovalService, SessionInventoryService, StockReceiptService
)


@pytest.fixture
def stocked_dose(make_vaccine):
    """Unmapped vaccine, 5 doses per vial, 50 doses mirrored"""
    return make_vaccine(quantity_available=50)


@pytest.fixture
def stocked_batch(barangay, stocked_dose, make_batch):
    return make_batch(barangay, stocked_dose, 10, datetime(2025, 1, 1))


def _vaccine_total(db_session, dose):
    db_session.expire_all()
    return db_session.get(Vaccine, dose.vaccine_id).quantity_available


class TestReceiveStock:
    """Stock receipt into a new batch"""

    def test_receive_creates_batch_and_mirrors(self, db_session, reference_tables, barangay, dose):
        result = StockReceiptService(db_session, reference_tables).receive_stock(
            barangay.id, dose.id, 4, batch_number="RCV-1", expiry_date=date(2026, 6, 30)
        )

        assert result.success
        assert result.completed_steps == ["create_batch", "mirror_add_back"]
        batch = db_session.get(InventoryBatch, result.details["batch_id"])
        assert batch.quantity_vial == 4
        assert batch.quantity_dose == 20
        assert batch.reserved_vial == 0
        assert batch.batch_number == "RCV-1"
        assert _vaccine_total(db_session, dose) == 20
        assert dose.quantity_available == 20

    def test_unknown_dose_definition(self, db_session, reference_tables, barangay):
        result = StockReceiptService(db_session, reference_tables).receive_stock(barangay.id, 999, 4)

        assert isinstance(result.error, NotFoundError)
        assert db_session.query(InventoryBatch).count() == 0

    def test_unknown_barangay(self, db_session, reference_tables, dose):
        result = StockReceiptService(db_session, reference_tables).receive_stock(999, dose.id, 4)

        assert isinstance(result.error, NotFoundError)

    @pytest.mark.parametrize("vials", [0, -2])
    def test_invalid_quantity(self, db_session, reference_tables, barangay, dose, vials):
        result = StockReceiptService(db_session, reference_tables).receive_stock(barangay.id, dose.id, vials)

        assert isinstance(result.error, ValidationError)


class TestApproveRequest:
    """Request approval and inter-barangay transfer"""

    def _request(self, db_session, dose, barangay, vials=0, doses=0, source=None):
        request = VaccineRequest(
            vaccine_id=dose.vaccine_id,
            barangay_id=barangay.id,
            source_barangay_id=source.id if source else None,
            quantity_vial=vials,
            quantity_dose=doses,
        )
        db_session.add(request)
        db_session.commit()
        return request

    def test_approve_adds_batch_at_requester(self, db_session, reference_tables, barangay, stocked_dose):
        request = self._request(db_session, stocked_dose, barangay, vials=3, doses=15)

        result = RequestApprovalService(db_session, reference_tables).approve_request(request.id)

        assert result.success
        assert result.completed_steps == ["mark_approved", "create_batch", "mirror_add_back"]
        assert request.status == RequestStatus.APPROVED.value
        assert request.approved_at is not None
        assert request.dose_definition_id == stocked_dose.id

        batch = db_session.get(InventoryBatch, result.details["batch_id"])
        assert batch.barangay_id == barangay.id
        assert (batch.quantity_vial, batch.quantity_dose) == (3, 15)
        assert batch.batch_number == "LOT-001"
        assert batch.notes == f"Auto-added from approved request #{request.id}"
        assert _vaccine_total(db_session, stocked_dose) == 65

    def test_vials_derived_from_doses(self, db_session, reference_tables, barangay, make_vaccine):
        pentavalent = make_vaccine(name="Pentavalent", doses_per_vial=None)
        request = self._request(db_session, pentavalent, barangay, doses=25)

        result = RequestApprovalService(db_session, reference_tables).approve_request(request.id)

        assert result.success
        assert result.details["quantity_vial"] == 3
        assert result.details["quantity_dose"] == 30

    def test_transfer_moves_stock(self, db_session, reference_tables, barangay, stocked_dose,
                                  stocked_batch, make_barangay):
        destination = make_barangay("Poblacion")
        request = self._request(db_session, stocked_dose, destination, vials=4, source=barangay)

        result = RequestApprovalService(db_session, reference_tables).approve_request(request.id)

        assert result.success
        assert result.completed_steps == [
            "source_deduct", "source_mirror_deduct", "mark_approved", "create_batch", "mirror_add_back"
        ]
        assert (stocked_batch.quantity_vial, stocked_batch.quantity_dose) == (6, 30)
        received = db_session.get(InventoryBatch, result.details["batch_id"])
        assert received.barangay_id == destination.id
        assert received.quantity_vial == 4
        # Moved between barangays, so the vaccine total is unchanged
        assert _vaccine_total(db_session, stocked_dose) == 50

    def test_transfer_shortage_is_compensated(self, db_session, reference_tables, barangay,
                                              stocked_dose, make_batch, make_barangay):
        source_batch = make_batch(barangay, stocked_dose, 2, datetime(2025, 1, 1))
        destination = make_barangay("Poblacion")
        request = self._request(db_session, stocked_dose, destination, vials=4, source=barangay)

        result = RequestApprovalService(db_session, reference_tables).approve_request(request.id)

        assert not result.success
        assert isinstance(result.error, InsufficientStockError)
        assert result.error.available == 2
        assert result.error.requested == 4
        assert result.completed_steps == ["source_compensation"]
        db_session.expire_all()
        assert (source_batch.quantity_vial, source_batch.quantity_dose) == (2, 10)
        assert request.status == RequestStatus.PENDING.value
        assert db_session.query(InventoryBatch).filter(InventoryBatch.barangay_id == destination.id).count() == 0
        assert _vaccine_total(db_session, stocked_dose) == 50

    def test_only_pending_requests(self, db_session, reference_tables, barangay, stocked_dose):
        request = self._request(db_session, stocked_dose, barangay, vials=1)
        service = RequestApprovalService(db_session, reference_tables)
        service.approve_request(request.id)

        result = service.approve_request(request.id)

        assert isinstance(result.error, ValidationError)

    def test_unknown_request(self, db_session, reference_tables):
        result = RequestApprovalService(db_session, reference_tables).approve_request(404)

        assert isinstance(result.error, NotFoundError)

    def test_batch_approve(self, db_session, reference_tables, barangay, stocked_dose):
        first = self._request(db_session, stocked_dose, barangay, vials=1)
        second = self._request(db_session, stocked_dose, barangay, vials=2)

        outcome = RequestApprovalService(db_session, reference_tables).batch_approve([first.id, 9999, second.id])

        assert outcome["success_count"] == 2
        assert outcome["failure_count"] == 1
        assert outcome["errors"][0]["request_id"] == 9999
        assert outcome["errors"][0]["error"]["code"] == "NOT_FOUND"

    def test_reject(self, db_session, reference_tables, barangay, stocked_dose):
        request = self._request(db_session, stocked_dose, barangay, vials=1)
        service = RequestApprovalService(db_session, reference_tables)

        result = service.reject_request(request.id, notes="Duplicate request")

        assert result.success
        assert request.status == RequestStatus.REJECTED.value
        assert request.notes == "Duplicate request"
        assert isinstance(service.reject_request(request.id).error, ValidationError)
        assert db_session.query(InventoryBatch).count() == 0


class TestSessionWorkflows:
    """Scheduling, administration and cancellation"""

    def _schedule(self, db_session, reference_tables, barangay, dose, target):
        result = SessionInventoryService(db_session, reference_tables).schedule_session(
            barangay.id, dose.id, date(2025, 3, 10), target
        )
        assert result.success
        return db_session.get(VaccinationSession, result.details["session_id"])

    def test_schedule_reserves_target(self, db_session, reference_tables, barangay, stocked_dose, stocked_batch):
        session = self._schedule(db_session, reference_tables, barangay, stocked_dose, 4)

        assert session.status == SessionStatus.SCHEDULED.value
        assert session.inventory_batch_id == stocked_batch.id
        assert stocked_batch.reserved_vial == 4

    def test_schedule_without_stock_creates_nothing(self, db_session, reference_tables, barangay,
                                                    stocked_dose, make_batch):
        make_batch(barangay, stocked_dose, 3, datetime(2025, 1, 1))

        result = SessionInventoryService(db_session, reference_tables).schedule_session(
            barangay.id, stocked_dose.id, date(2025, 3, 10), 5
        )

        assert isinstance(result.error, InsufficientStockError)
        assert result.completed_steps == []
        assert db_session.query(VaccinationSession).count() == 0

    def test_schedule_missing_date(self, db_session, reference_tables, barangay, stocked_dose, stocked_batch):
        result = SessionInventoryService(db_session, reference_tables).schedule_session(
            barangay.id, stocked_dose.id, None, 2
        )

        assert isinstance(result.error, ValidationError)

    def test_administration_sequence(self, db_session, reference_tables, barangay, stocked_dose, stocked_batch):
        service = SessionInventoryService(db_session, reference_tables)
        session = self._schedule(db_session, reference_tables, barangay, stocked_dose, 4)

        result = service.record_administration(session.id, 3)
        assert result.completed_steps == ["release", "deduct", "mirror_deduct", "update_session"]
        assert stocked_batch.reserved_vial == 1
        assert (stocked_batch.quantity_vial, stocked_batch.quantity_dose) == (7, 35)
        assert _vaccine_total(db_session, stocked_dose) == 35

        # Corrected down by one vial
        result = service.record_administration(session.id, 2)
        assert result.completed_steps == ["add_back", "mirror_add_back", "restore_reservation", "update_session"]
        assert (stocked_batch.quantity_vial, stocked_batch.quantity_dose) == (8, 40)
        assert stocked_batch.reserved_vial == 2
        assert _vaccine_total(db_session, stocked_dose) == 40

        result = service.record_administration(session.id, 4, status=SessionStatus.COMPLETED.value)
        assert result.success
        assert stocked_batch.reserved_vial == 0
        assert (stocked_batch.quantity_vial, stocked_batch.quantity_dose) == (6, 30)
        assert session.administered == 4
        assert session.status == SessionStatus.COMPLETED.value

    def test_completing_releases_outstanding(self, db_session, reference_tables, barangay,
                                             stocked_dose, stocked_batch):
        session = self._schedule(db_session, reference_tables, barangay, stocked_dose, 4)

        result = SessionInventoryService(db_session, reference_tables).record_administration(
            session.id, 3, status=SessionStatus.COMPLETED.value
        )

        assert "release_outstanding" in result.completed_steps
        assert stocked_batch.reserved_vial == 0
        assert stocked_batch.quantity_vial == 7

    def test_administration_shortage_reported(self, db_session, reference_tables, barangay,
                                              stocked_dose, make_batch, make_session):
        batch = make_batch(barangay, stocked_dose, 2, datetime(2025, 1, 1), reserved=2)
        session = make_session(barangay, stocked_dose, date(2025, 3, 10), target=5, batch=batch)

        result = SessionInventoryService(db_session, reference_tables).record_administration(session.id, 5)

        assert result.success
        assert result.details["shortage"] == 3
        assert batch.quantity_vial == 0
        assert _vaccine_total(db_session, stocked_dose) == 40

    def test_invalid_administration(self, db_session, reference_tables, barangay, stocked_dose, stocked_batch):
        service = SessionInventoryService(db_session, reference_tables)
        session = self._schedule(db_session, reference_tables, barangay, stocked_dose, 2)

        assert isinstance(service.record_administration(session.id, -1).error, ValidationError)
        assert isinstance(service.record_administration(session.id, 1, status="Paused").error, ValidationError)
        assert isinstance(service.record_administration(999, 1).error, NotFoundError)

    def test_cancel_releases_outstanding(self, db_session, reference_tables, barangay, stocked_dose, stocked_batch):
        service = SessionInventoryService(db_session, reference_tables)
        session = self._schedule(db_session, reference_tables, barangay, stocked_dose, 4)
        service.record_administration(session.id, 1)
        assert stocked_batch.reserved_vial == 3

        result = service.cancel_session(session.id)

        assert result.success
        assert stocked_batch.reserved_vial == 0
        assert session.status == SessionStatus.CANCELLED.value
        assert isinstance(service.cancel_session(session.id).error, ValidationError)
        assert isinstance(service.record_administration(session.id, 2).error, ValidationError)
