"""
Main Vaccine Aggregate Mirror
Keeps the cross-barangay doses-available counters in step with batch changes

The mirror is denormalized state: a vaccine or dose definition that no longer
exists is logged and skipped rather than failing the caller.
"""
import logging
from typing import List

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from vaxsync.core.exceptions import StorageError, ValidationError
from vaxsync.models import InventoryBatch, Vaccine, VaccineDoseDefinition
from vaxsync.services.inventory.fifo_ledger import validate_quantity_request
from vaxsync.services.inventory.results import AggregateResult, DoseChange

logger = logging.getLogger(__name__)


class AggregateMirrorService:
    """Vaccine-level doses counter and its per-dose-definition children"""

    def __init__(self, db: Session):
        self.db = db

    def _children(self, vaccine_id: int) -> List[VaccineDoseDefinition]:
        return (
            self.db.query(VaccineDoseDefinition)
            .filter(VaccineDoseDefinition.vaccine_id == vaccine_id)
            .order_by(VaccineDoseDefinition.created_at.asc(), VaccineDoseDefinition.id.asc())
            .all()
        )

    def deduct_aggregate(self, vaccine_id: int, doses: int) -> AggregateResult:
        """
        Deduct doses from the vaccine and spread them over its dose definitions

        The vaccine counter is clamped at zero. Children are walked
        oldest first; doses that no child can absorb are reported in
        `remaining`.
        """
        try:
            validate_quantity_request(doses, vaccine_id=vaccine_id)
        except ValidationError as e:
            return AggregateResult(success=False, error=e, vaccine_id=vaccine_id)

        try:
            vaccine = self.db.get(Vaccine, vaccine_id)
            if vaccine is None:
                logger.warning(f"Aggregate deduct of {doses} dose(s) skipped: vaccine {vaccine_id} not found")
                return AggregateResult(success=True, vaccine_id=vaccine_id, remaining=doses, skipped=True)

            before = vaccine.quantity_available or 0
            vaccine.quantity_available = max(0, before - doses)

            remaining = doses
            touched = []
            children = self._children(vaccine_id)
            if not children:
                logger.warning(f"Vaccine {vaccine_id} has no dose definitions to deduct from")

            for child in children:
                if remaining <= 0:
                    break
                take = min(remaining, child.quantity_available or 0)
                if take <= 0:
                    continue
                change = DoseChange(
                    dose_definition_id=child.id,
                    dose_code=child.dose_code,
                    doses_before=child.quantity_available,
                    doses_after=child.quantity_available - take,
                )
                child.quantity_available = change.doses_after
                touched.append(change)
                remaining -= take

            self.db.commit()

        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error deducting {doses} dose(s) from vaccine {vaccine_id}: {e}")
            return AggregateResult(
                success=False, error=StorageError("deduct vaccine aggregate", e),
                vaccine_id=vaccine_id, remaining=doses
            )

        if remaining > 0 and children:
            logger.warning(
                f"Dose definitions of vaccine {vaccine_id} could not absorb {remaining} of {doses} dose(s)"
            )
        logger.info(f"Vaccine {vaccine_id} doses {before}->{vaccine.quantity_available}")
        return AggregateResult(
            success=True, vaccine_id=vaccine_id, quantity_before=before,
            quantity_after=vaccine.quantity_available, remaining=remaining, touched=touched
        )

    def add_back_aggregate(self, vaccine_id: int, doses: int) -> AggregateResult:
        """Add doses to the vaccine and to its oldest dose definition"""
        try:
            validate_quantity_request(doses, vaccine_id=vaccine_id)
        except ValidationError as e:
            return AggregateResult(success=False, error=e, vaccine_id=vaccine_id)

        try:
            vaccine = self.db.get(Vaccine, vaccine_id)
            if vaccine is None:
                logger.warning(f"Aggregate add-back of {doses} dose(s) skipped: vaccine {vaccine_id} not found")
                return AggregateResult(success=True, vaccine_id=vaccine_id, remaining=doses, skipped=True)

            before = vaccine.quantity_available or 0
            vaccine.quantity_available = before + doses

            touched = []
            remaining = doses
            children = self._children(vaccine_id)
            if children:
                target = children[0]
                change = DoseChange(
                    dose_definition_id=target.id,
                    dose_code=target.dose_code,
                    doses_before=target.quantity_available or 0,
                    doses_after=(target.quantity_available or 0) + doses,
                )
                target.quantity_available = change.doses_after
                touched.append(change)
                remaining = 0
            else:
                logger.warning(f"Vaccine {vaccine_id} has no dose definitions to add back to")

            self.db.commit()

        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error adding back {doses} dose(s) to vaccine {vaccine_id}: {e}")
            return AggregateResult(
                success=False, error=StorageError("add back vaccine aggregate", e),
                vaccine_id=vaccine_id, remaining=doses
            )

        logger.info(f"Vaccine {vaccine_id} doses {before}->{vaccine.quantity_available}")
        return AggregateResult(
            success=True, vaccine_id=vaccine_id, quantity_before=before,
            quantity_after=vaccine.quantity_available, remaining=remaining, touched=touched
        )

    def reconcile_aggregate(self, vaccine_id: int) -> AggregateResult:
        """
        Rebuild the mirror from the barangay batches

        Each dose definition becomes the sum of its batches' doses and the
        vaccine becomes the sum of its dose definitions.
        """
        if not vaccine_id:
            return AggregateResult(success=False, error=ValidationError("vaccine_id is required"))

        try:
            vaccine = self.db.get(Vaccine, vaccine_id)
            if vaccine is None:
                logger.warning(f"Reconciliation skipped: vaccine {vaccine_id} not found")
                return AggregateResult(success=True, vaccine_id=vaccine_id, skipped=True)

            before = vaccine.quantity_available or 0
            touched = []
            total = 0
            for child in self._children(vaccine_id):
                doses = sum(
                    batch.quantity_dose or 0
                    for batch in self.db.query(InventoryBatch).filter(
                        InventoryBatch.dose_definition_id == child.id
                    )
                )
                if doses != (child.quantity_available or 0):
                    touched.append(DoseChange(
                        dose_definition_id=child.id,
                        dose_code=child.dose_code,
                        doses_before=child.quantity_available or 0,
                        doses_after=doses,
                    ))
                    child.quantity_available = doses
                total += doses

            vaccine.quantity_available = total
            self.db.commit()

        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error reconciling vaccine {vaccine_id}: {e}")
            return AggregateResult(
                success=False, error=StorageError("reconcile vaccine aggregate", e), vaccine_id=vaccine_id
            )

        if before != total:
            logger.warning(f"Vaccine {vaccine_id} mirror drifted: {before} -> {total} dose(s)")
        return AggregateResult(
            success=True, vaccine_id=vaccine_id, quantity_before=before,
            quantity_after=total, touched=touched
        )
