"""
Tests for the FIFO Ledger Engine
Critical business logic testing for barangay batch deduction and add-back
"""

import pytest
from datetime import datetime
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from vaxsync.core.exceptions import NotFoundError, StorageError, ValidationError
from vaxsync.services.inventory import FifoLedgerService


DAY_1 = datetime(2025, 1, 1, 8, 0)
DAY_2 = datetime(2025, 1, 2, 8, 0)
DAY_3 = datetime(2025, 1, 3, 8, 0)
DAY_5 = datetime(2025, 1, 5, 8, 0)


def _vials(db_session: Session, *batches):
    for batch in batches:
        db_session.refresh(batch)
    return [batch.quantity_vial for batch in batches]


class TestDeduct:
    """Test suite for FIFO deduction"""

    def test_oldest_batches_consumed_first(self, db_session, reference_tables, barangay, dose, make_batch):
        """Three batches of 5 vials, deduct 8: first emptied, second left with 2, third untouched"""
        third = make_batch(barangay, dose, 5, DAY_3)
        first = make_batch(barangay, dose, 5, DAY_1)
        second = make_batch(barangay, dose, 5, DAY_2)

        result = FifoLedgerService(db_session, reference_tables).deduct(barangay.id, dose.id, 8)

        assert result.success
        assert result.remaining == 0
        assert _vials(db_session, first, second, third) == [0, 2, 5]
        assert [change.batch_id for change in result.touched] == [first.id, second.id]

    def test_received_date_tie_broken_by_id(self, db_session, reference_tables, barangay, dose, make_batch):
        earlier_id = make_batch(barangay, dose, 3, DAY_1)
        later_id = make_batch(barangay, dose, 3, DAY_1)

        FifoLedgerService(db_session, reference_tables).deduct(barangay.id, dose.id, 2)

        assert _vials(db_session, earlier_id, later_id) == [1, 3]

    def test_twelve_vials_across_two_batches(self, db_session, reference_tables, barangay, dose, make_batch):
        """Batch A (day 1) and C (day 5) of 10 vials at 5 doses per vial; deduct 12"""
        batch_a = make_batch(barangay, dose, 10, DAY_1)
        batch_c = make_batch(barangay, dose, 10, DAY_5)

        result = FifoLedgerService(db_session, reference_tables).deduct(barangay.id, dose.id, 12)

        db_session.refresh(batch_a)
        db_session.refresh(batch_c)
        assert (batch_a.quantity_vial, batch_a.quantity_dose) == (0, 0)
        assert (batch_c.quantity_vial, batch_c.quantity_dose) == (8, 40)

        assert len(result.touched) == 2
        first, second = result.touched
        assert (first.batch_id, first.vials_before, first.vials_after) == (batch_a.id, 10, 0)
        assert (first.doses_before, first.doses_after) == (50, 0)
        assert (second.batch_id, second.vials_before, second.vials_after) == (batch_c.id, 10, 8)
        assert (second.doses_before, second.doses_after) == (50, 40)

    def test_mapped_vaccine_uses_mapping(self, db_session, reference_tables, barangay, make_vaccine, make_batch):
        pentavalent = make_vaccine(name="Pentavalent", doses_per_vial=None)
        batch = make_batch(barangay, pentavalent, 4, DAY_1, doses=40)

        FifoLedgerService(db_session, reference_tables).deduct(barangay.id, pentavalent.id, 1)

        db_session.refresh(batch)
        assert (batch.quantity_vial, batch.quantity_dose) == (3, 30)

    def test_shortage_reported_not_failed(self, db_session, reference_tables, barangay, dose, make_batch):
        """Deducting more than is on hand never drives a batch negative"""
        first = make_batch(barangay, dose, 3, DAY_1)
        second = make_batch(barangay, dose, 4, DAY_2)

        result = FifoLedgerService(db_session, reference_tables).deduct(barangay.id, dose.id, 20)

        assert result.success
        assert result.remaining == 13
        assert result.shortage == 13
        assert not result.fully_applied
        db_session.refresh(first)
        db_session.refresh(second)
        assert first.quantity_vial == 0 and first.quantity_dose == 0
        assert second.quantity_vial == 0 and second.quantity_dose == 0

    def test_dose_count_never_negative(self, db_session, reference_tables, barangay, dose, make_batch):
        """A batch whose doses drifted below vials x per-vial still stops at zero"""
        batch = make_batch(barangay, dose, 4, DAY_1, doses=12)

        FifoLedgerService(db_session, reference_tables).deduct(barangay.id, dose.id, 4)

        db_session.refresh(batch)
        assert batch.quantity_vial == 0
        assert batch.quantity_dose == 0

    def test_empty_batches_not_touched(self, db_session, reference_tables, barangay, dose, make_batch):
        empty = make_batch(barangay, dose, 0, DAY_1)
        stocked = make_batch(barangay, dose, 5, DAY_2)

        result = FifoLedgerService(db_session, reference_tables).deduct(barangay.id, dose.id, 2)

        assert [change.batch_id for change in result.touched] == [stocked.id]
        assert _vials(db_session, empty, stocked) == [0, 3]

    def test_reserved_clamped_to_remaining_vials(self, db_session, reference_tables, barangay, dose, make_batch):
        batch = make_batch(barangay, dose, 5, DAY_1, reserved=4)

        FifoLedgerService(db_session, reference_tables).deduct(barangay.id, dose.id, 3)

        db_session.refresh(batch)
        assert batch.quantity_vial == 2
        assert batch.reserved_vial == 2

    @pytest.mark.parametrize("vials", [0, -3, True, 2.5, None])
    def test_invalid_quantity(self, db_session, reference_tables, barangay, dose, vials):
        result = FifoLedgerService(db_session, reference_tables).deduct(barangay.id, dose.id, vials)

        assert not result.success
        assert isinstance(result.error, ValidationError)

    def test_missing_identifier(self, db_session, reference_tables, dose):
        result = FifoLedgerService(db_session, reference_tables).deduct(None, dose.id, 1)

        assert isinstance(result.error, ValidationError)

    def test_unknown_dose_definition(self, db_session, reference_tables, barangay):
        result = FifoLedgerService(db_session, reference_tables).deduct(barangay.id, 999, 1)

        assert not result.success
        assert isinstance(result.error, NotFoundError)
        assert result.remaining == 1

    def test_no_batches(self, db_session, reference_tables, barangay, dose):
        result = FifoLedgerService(db_session, reference_tables).deduct(barangay.id, dose.id, 1)

        assert not result.success
        assert isinstance(result.error, NotFoundError)

    def test_storage_failure_mid_walk(self, db_session, reference_tables, barangay, dose, make_batch, monkeypatch):
        """A failed batch update stops the walk and reports what was already updated"""
        first = make_batch(barangay, dose, 5, DAY_1)
        second = make_batch(barangay, dose, 5, DAY_2)

        real_flush = db_session.flush
        calls = {"count": 0}

        def failing_flush(*args, **kwargs):
            calls["count"] += 1
            if calls["count"] == 2:
                raise OperationalError("UPDATE barangay_vaccine_inventory", {}, Exception("connection lost"))
            return real_flush(*args, **kwargs)

        monkeypatch.setattr(db_session, "flush", failing_flush)
        result = FifoLedgerService(db_session, reference_tables).deduct(barangay.id, dose.id, 8)
        monkeypatch.undo()

        assert not result.success
        assert isinstance(result.error, StorageError)
        assert result.committed is False
        assert [change.batch_id for change in result.touched] == [first.id]
        assert result.remaining == 3
        # The unit of work was rolled back
        assert _vials(db_session, first, second) == [5, 5]


class TestAddBack:
    """Test suite for FIFO add-back"""

    def test_whole_quantity_goes_to_oldest_batch(self, db_session, reference_tables, barangay, dose, make_batch):
        newer = make_batch(barangay, dose, 1, DAY_2)
        oldest = make_batch(barangay, dose, 1, DAY_1)

        result = FifoLedgerService(db_session, reference_tables).add_back(barangay.id, dose.id, 6)

        assert result.success
        assert result.remaining == 0
        db_session.refresh(oldest)
        assert (oldest.quantity_vial, oldest.quantity_dose) == (7, 35)
        assert _vials(db_session, newer) == [1]
        assert result.touched[0].batch_id == oldest.id

    def test_missing_dose_definition_is_no_op(self, db_session, reference_tables, barangay):
        result = FifoLedgerService(db_session, reference_tables).add_back(barangay.id, 999, 3)

        assert result.success
        assert result.touched == []
        assert result.remaining == 3

    def test_no_batches_is_no_op(self, db_session, reference_tables, barangay, dose):
        result = FifoLedgerService(db_session, reference_tables).add_back(barangay.id, dose.id, 3)

        assert result.success
        assert result.committed is False

    def test_invalid_quantity(self, db_session, reference_tables, barangay, dose):
        result = FifoLedgerService(db_session, reference_tables).add_back(barangay.id, dose.id, 0)

        assert isinstance(result.error, ValidationError)


class TestDeductAddBackSymmetry:
    """Round trips through deduct and add-back"""

    def test_round_trip_on_single_batch(self, db_session, reference_tables, barangay, dose, make_batch):
        batch = make_batch(barangay, dose, 10, DAY_1)
        ledger = FifoLedgerService(db_session, reference_tables)

        ledger.deduct(barangay.id, dose.id, 4)
        ledger.add_back(barangay.id, dose.id, 4)

        db_session.refresh(batch)
        assert (batch.quantity_vial, batch.quantity_dose) == (10, 50)

    def test_add_back_does_not_mirror_spread(self, db_session, reference_tables, barangay, dose, make_batch):
        """Deduct spreads over two batches but add-back lands on the oldest only"""
        first = make_batch(barangay, dose, 5, DAY_1)
        second = make_batch(barangay, dose, 5, DAY_2)
        ledger = FifoLedgerService(db_session, reference_tables)

        ledger.deduct(barangay.id, dose.id, 8)
        ledger.add_back(barangay.id, dose.id, 8)

        # Totals are restored...
        assert sum(_vials(db_session, first, second)) == 10
        # ...but not the per-batch distribution
        assert _vials(db_session, first, second) == [8, 2]
        assert (first.quantity_dose, second.quantity_dose) == (40, 10)
