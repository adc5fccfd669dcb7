"""
Monthly Rollup Calculator
Per vaccine, per calendar month NIP stock report across all barangays

All figures are doses. For each vaccine with a session or a request in the
month:

    OUT     = administered vials of the month's sessions x doses per vial
    IN      = doses received in the month
              + for each request approved in the month:
                request doses + the vaccine's current doses available
    ending  = max(0, IN - OUT)
    percent = round(ending / max allocation x 100), 0 when unmapped

Vaccines sharing a name are merged into one row under the lowest id.
"""
import logging
import threading
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import delete, or_
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from vaxsync.core.exceptions import NotFoundError, StorageError, ValidationError
from vaxsync.models import (
    InventoryBatch, MonthlyReport, RequestStatus, StockStatus,
    VaccinationSession, Vaccine, VaccineDoseDefinition, VaccineRequest
)
from vaxsync.services.reference_tables import ReferenceTables, normalize_name

logger = logging.getLogger(__name__)

MonthLike = Union[date, datetime, str]


def month_start(value: MonthLike) -> date:
    """First day of the month for a date or a 'YYYY-MM' / 'YYYY-MM-DD' string"""
    if isinstance(value, datetime):
        return value.date().replace(day=1)
    if isinstance(value, date):
        return value.replace(day=1)
    if isinstance(value, str):
        text = value.strip()
        for fmt in ("%Y-%m-%d", "%Y-%m"):
            try:
                return datetime.strptime(text, fmt).date().replace(day=1)
            except ValueError:
                continue
    raise ValidationError(f"Invalid month: {value!r}, expected YYYY-MM or YYYY-MM-DD")


def next_month(month: date) -> date:
    if month.month == 12:
        return date(month.year + 1, 1, 1)
    return date(month.year, month.month + 1, 1)


def previous_month(month: date) -> date:
    if month.month == 1:
        return date(month.year - 1, 12, 1)
    return date(month.year, month.month - 1, 1)


def stock_percentage(ending_inventory: int, max_allocation: int) -> int:
    """Ending inventory as a whole percentage of max allocation, halves rounded up"""
    if not max_allocation:
        return 0
    ratio = Decimal(ending_inventory) * 100 / Decimal(max_allocation)
    return int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def classify_status(percentage: int) -> StockStatus:
    """
    NIP stock level classification

    0-24 STOCKOUT, 25-49 UNDERSTOCK, 50-75 GOOD, above 75 OVERSTOCK.
    """
    if percentage < 25:
        return StockStatus.STOCKOUT
    if percentage < 50:
        return StockStatus.UNDERSTOCK
    if percentage > 75:
        return StockStatus.OVERSTOCK
    return StockStatus.GOOD


@dataclass
class MonthlyFigures:
    """Computed report row for one vaccine (or merged vaccine name) in a month"""
    vaccine_id: int
    vaccine_name: str
    month: date
    initial_inventory: int = 0
    quantity_supplied: int = 0
    quantity_used: int = 0
    quantity_wastage: int = 0
    ending_inventory: int = 0
    vials_needed: int = 0
    max_allocation: int = 0
    stock_level_percentage: int = 0
    status: str = StockStatus.STOCKOUT.value
    merged_vaccine_ids: List[int] = field(default_factory=list)

    def finalize(self) -> "MonthlyFigures":
        self.ending_inventory = max(0, self.quantity_supplied - self.quantity_used)
        self.stock_level_percentage = stock_percentage(self.ending_inventory, self.max_allocation)
        self.status = classify_status(self.stock_level_percentage).value
        return self

    def row(self) -> Dict[str, Any]:
        """Column values for the vaccine_monthly_report table"""
        return {
            "vaccine_id": self.vaccine_id,
            "month": self.month,
            "initial_inventory": max(0, self.initial_inventory),
            "quantity_supplied": max(0, self.quantity_supplied),
            "quantity_used": max(0, self.quantity_used),
            "quantity_wastage": max(0, self.quantity_wastage),
            "ending_inventory": max(0, self.ending_inventory),
            "vials_needed": max(0, self.vials_needed),
            "max_allocation": max(0, self.max_allocation),
            "stock_level_percentage": max(0, self.stock_level_percentage),
            "status": self.status,
        }

    def to_dict(self) -> Dict[str, Any]:
        data = self.row()
        data["month"] = self.month.isoformat()
        data["vaccine_name"] = self.vaccine_name
        data["merged_vaccine_ids"] = list(self.merged_vaccine_ids)
        return data


@dataclass
class MonthlyReportResult:
    success: bool
    month: Optional[date] = None
    error: Optional[Any] = None
    reports: List[MonthlyFigures] = field(default_factory=list)
    skipped_sessions: List[int] = field(default_factory=list)
    persisted: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "month": self.month.isoformat() if self.month else None,
            "error": self.error.to_dict() if self.error else None,
            "reports": [report.to_dict() for report in self.reports],
            "skipped_sessions": list(self.skipped_sessions),
            "persisted": self.persisted,
        }


class MonthlyReportCache:
    """In-memory figures keyed by month, then vaccine id"""

    def __init__(self):
        self._months: Dict[date, Dict[int, Dict[str, int]]] = {}
        self._lock = threading.Lock()

    def put(self, month: date, reports: List[MonthlyFigures]) -> None:
        with self._lock:
            self._months[month] = {
                report.vaccine_id: {
                    "initial_inventory": report.initial_inventory,
                    "quantity_supplied": report.quantity_supplied,
                    "quantity_used": report.quantity_used,
                    "quantity_wastage": report.quantity_wastage,
                    "ending_inventory": report.ending_inventory,
                }
                for report in reports
            }

    def ending_inventory(self, month: date, vaccine_id: int) -> Optional[int]:
        with self._lock:
            figures = self._months.get(month, {}).get(vaccine_id)
        return figures["ending_inventory"] if figures else None

    def remember_ending(self, month: date, vaccine_id: int, ending: int) -> None:
        with self._lock:
            self._months.setdefault(month, {})[vaccine_id] = {"ending_inventory": ending}

    def invalidate(self, month: Optional[date] = None) -> None:
        with self._lock:
            if month is None:
                self._months.clear()
            else:
                self._months.pop(month, None)


class MonthlyReportService:
    """Computes, persists and reads the monthly vaccine report"""

    def __init__(self, db: Session, tables: ReferenceTables, cache: Optional[MonthlyReportCache] = None):
        self.db = db
        self.tables = tables
        self.cache = cache if cache is not None else MonthlyReportCache()

    # Computation

    def compute_monthly_report(self, month: MonthLike) -> MonthlyReportResult:
        """
        Compute, persist and cache the report for a month

        Re-running a month with unchanged data produces the same figures and
        overwrites the same rows. Sessions whose batch, dose definition or
        vaccine link is missing are skipped and listed in the result.
        """
        try:
            start = month_start(month)
        except ValidationError as e:
            return MonthlyReportResult(success=False, error=e)
        end = next_month(start)
        start_dt, end_dt = datetime.combine(start, datetime.min.time()), datetime.combine(end, datetime.min.time())

        try:
            vaccines = {vaccine.id: vaccine for vaccine in self.db.query(Vaccine).order_by(Vaccine.id).all()}
            used, skipped = self._administered_doses(start, end, vaccines)
            requests = self._approved_requests(start_dt, end_dt)
            active_ids = set(used) | self._requested_vaccine_ids(start_dt, end_dt)
            groups = self._name_groups(vaccines)

            active_names = set()
            for vaccine_id in sorted(active_ids):
                vaccine = vaccines.get(vaccine_id)
                if vaccine is None:
                    logger.warning(f"Monthly report {start}: vaccine {vaccine_id} not found, skipped")
                    continue
                active_names.add(normalize_name(vaccine.name))

            reports = sorted(
                (
                    self._group_figures(groups[name], vaccines, start, start_dt, end_dt, used, requests)
                    for name in active_names
                ),
                key=lambda report: report.vaccine_id,
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error computing monthly report for {start}: {e}")
            return MonthlyReportResult(success=False, month=start, error=StorageError("compute monthly report", e))

        persisted = self._save(reports, start)
        self.cache.put(start, reports)

        logger.info(
            f"Monthly report {start}: {len(reports)} vaccine row(s), {len(skipped)} session(s) skipped, "
            f"persisted={persisted}"
        )
        return MonthlyReportResult(
            success=True, month=start, reports=reports, skipped_sessions=skipped, persisted=persisted
        )

    def _administered_doses(self, start: date, end: date, vaccines: Dict[int, Vaccine]):
        """OUT per vaccine id, attributed by batch number through the session's batch chain"""
        by_batch_number = {}
        for vaccine in vaccines.values():
            if vaccine.batch_number:
                by_batch_number.setdefault((normalize_name(vaccine.name), vaccine.batch_number), vaccine.id)

        used: Dict[int, int] = {}
        skipped: List[int] = []
        sessions = self.db.query(VaccinationSession).filter(
            VaccinationSession.session_date >= start,
            VaccinationSession.session_date < end,
        ).order_by(VaccinationSession.id).all()

        for session in sessions:
            batch = session.inventory_batch
            dose_definition = batch.dose_definition if batch else None
            vaccine = dose_definition.vaccine if dose_definition else None
            if vaccine is None:
                logger.warning(f"Monthly report {start}: session {session.id} has no batch/vaccine link, skipped")
                skipped.append(session.id)
                continue

            vaccine_id = by_batch_number.get((normalize_name(vaccine.name), batch.batch_number), vaccine.id)
            per_vial = self.tables.doses_per_vial(vaccine.name, fallback=dose_definition.doses_per_vial)
            used[vaccine_id] = used.get(vaccine_id, 0) + (session.administered or 0) * per_vial

        return used, skipped

    def _approved_requests(self, start_dt: datetime, end_dt: datetime) -> List[VaccineRequest]:
        candidates = self.db.query(VaccineRequest).filter(
            VaccineRequest.status == RequestStatus.APPROVED.value,
            or_(
                VaccineRequest.approved_at.is_(None),
                (VaccineRequest.approved_at >= start_dt) & (VaccineRequest.approved_at < end_dt),
            ),
        ).all()
        return [
            request for request in candidates
            if start_dt <= (request.approved_at or request.created_at) < end_dt
        ]

    def _requested_vaccine_ids(self, start_dt: datetime, end_dt: datetime) -> set:
        rows = self.db.query(VaccineRequest.vaccine_id).filter(
            or_(
                (VaccineRequest.created_at >= start_dt) & (VaccineRequest.created_at < end_dt),
                (VaccineRequest.approved_at >= start_dt) & (VaccineRequest.approved_at < end_dt),
            )
        ).distinct().all()
        return {row[0] for row in rows}

    def _received_doses(self, vaccine_ids: List[int], start_dt: Optional[datetime], end_dt: datetime) -> int:
        query = self.db.query(InventoryBatch).join(VaccineDoseDefinition).filter(
            VaccineDoseDefinition.vaccine_id.in_(vaccine_ids),
            InventoryBatch.received_date < end_dt,
        )
        if start_dt is not None:
            query = query.filter(InventoryBatch.received_date >= start_dt)
        return sum(batch.quantity_dose or 0 for batch in query.all())

    @staticmethod
    def _name_groups(vaccines: Dict[int, Vaccine]) -> Dict[str, List[int]]:
        """Catalog vaccine ids per normalized name, lowest (canonical) id first"""
        groups: Dict[str, List[int]] = {}
        for vaccine_id in sorted(vaccines):
            groups.setdefault(normalize_name(vaccines[vaccine_id].name), []).append(vaccine_id)
        return groups

    def _initial_inventory(self, canonical_id: int, member_ids: List[int], start: date, start_dt: datetime) -> int:
        """
        Previous month's merged ending (cache, then table), corrected up to the
        receipts before the month of every vaccine sharing the name
        """
        received_before = self._received_doses(member_ids, None, start_dt)
        prior = previous_month(start)

        initial = self.cache.ending_inventory(prior, canonical_id)
        if initial is None:
            previous = self.db.query(MonthlyReport).filter(
                MonthlyReport.vaccine_id == canonical_id,
                MonthlyReport.month == prior,
            ).first()
            if previous is not None and previous.ending_inventory is not None:
                initial = previous.ending_inventory
                self.cache.remember_ending(prior, canonical_id, initial)
            else:
                initial = received_before

        return max(initial, received_before)

    def _group_figures(self, member_ids: List[int], vaccines: Dict[int, Vaccine], start: date,
                       start_dt: datetime, end_dt: datetime, used: Dict[int, int],
                       requests: List[VaccineRequest]) -> MonthlyFigures:
        """One row for all vaccines sharing a name, stored under the lowest id"""
        canonical = vaccines[member_ids[0]]
        members = set(member_ids)

        supplied = self._received_doses(member_ids, start_dt, end_dt)
        for request in requests:
            if request.vaccine_id in members:
                # Counted against the live aggregate, not a snapshot at approval
                supplied += (request.quantity_dose or 0) + (vaccines[request.vaccine_id].quantity_available or 0)

        existing = self.db.query(MonthlyReport).filter(
            MonthlyReport.vaccine_id == canonical.id,
            MonthlyReport.month == start,
        ).first()

        return MonthlyFigures(
            vaccine_id=canonical.id,
            vaccine_name=canonical.name,
            month=start,
            initial_inventory=self._initial_inventory(canonical.id, member_ids, start, start_dt),
            quantity_supplied=supplied,
            quantity_used=sum(used.get(vaccine_id, 0) for vaccine_id in member_ids),
            quantity_wastage=existing.quantity_wastage if existing else 0,
            vials_needed=self.tables.monthly_needed(canonical.name),
            max_allocation=self.tables.max_allocation(canonical.name),
            merged_vaccine_ids=list(member_ids),
        ).finalize()

    # Persistence

    def _save(self, reports: List[MonthlyFigures], month: date) -> bool:
        if not reports:
            return True
        rows = [report.row() for report in reports]
        try:
            self._upsert(rows)
            self.db.commit()
            return True
        except (SQLAlchemyError, NotImplementedError) as e:
            self.db.rollback()
            logger.error(f"Monthly report upsert failed for {month}: {e}; falling back to delete and insert")

        try:
            self.db.execute(
                delete(MonthlyReport).where(
                    MonthlyReport.month == month,
                    MonthlyReport.vaccine_id.in_([row["vaccine_id"] for row in rows]),
                )
            )
            self.db.add_all(MonthlyReport(**row) for row in rows)
            self.db.commit()
            return True
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Monthly report delete/insert failed for {month}: {e}")
            return False

    def _upsert(self, rows: List[Dict[str, Any]]) -> None:
        dialect = self.db.get_bind().dialect.name
        if dialect == "postgresql":
            statement = postgresql.insert(MonthlyReport).values(rows)
        elif dialect == "sqlite":
            statement = sqlite.insert(MonthlyReport).values(rows)
        else:
            raise NotImplementedError(f"No upsert for dialect {dialect}")

        updates = {
            column: getattr(statement.excluded, column)
            for column in rows[0]
            if column not in ("vaccine_id", "month")
        }
        updates["updated_at"] = datetime.now()
        self.db.execute(
            statement.on_conflict_do_update(index_elements=["vaccine_id", "month"], set_=updates)
        )

    # Wastage and lookups

    def record_wastage(self, vaccine_id: int, month: MonthLike, doses: int) -> MonthlyReportResult:
        """
        Add wasted doses to a month's report row

        Wastage is kept on the row of the lowest vaccine id sharing the name,
        the row merged reports are stored under. Later recomputations keep it.
        """
        try:
            start = month_start(month)
        except ValidationError as e:
            return MonthlyReportResult(success=False, error=e)
        if isinstance(doses, bool) or not isinstance(doses, int) or doses <= 0:
            return MonthlyReportResult(
                success=False, month=start, error=ValidationError(f"Wastage must be a positive whole number of doses, got {doses!r}")
            )

        try:
            vaccine = self.db.get(Vaccine, vaccine_id)
            if vaccine is None:
                return MonthlyReportResult(success=False, month=start, error=NotFoundError("Vaccine", vaccine_id))
            canonical_id = min(
                other.id for other in self.db.query(Vaccine).all()
                if normalize_name(other.name) == normalize_name(vaccine.name)
            )

            report = self.db.query(MonthlyReport).filter(
                MonthlyReport.vaccine_id == canonical_id,
                MonthlyReport.month == start,
            ).first()
            if report is None:
                report = MonthlyReport(
                    vaccine_id=canonical_id,
                    month=start,
                    vials_needed=self.tables.monthly_needed(vaccine.name),
                    max_allocation=self.tables.max_allocation(vaccine.name),
                    status=StockStatus.STOCKOUT.value,
                )
                self.db.add(report)
            report.quantity_wastage = (report.quantity_wastage or 0) + doses
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error recording wastage for vaccine {vaccine_id} in {start}: {e}")
            return MonthlyReportResult(success=False, month=start, error=StorageError("record wastage", e))

        self.cache.invalidate(start)
        logger.info(f"Recorded {doses} wasted dose(s) for vaccine {canonical_id} in {start}")
        return MonthlyReportResult(success=True, month=start, reports=[self._figures_from_row(report, vaccine.name)], persisted=True)

    def _figures_from_row(self, report: MonthlyReport, vaccine_name: str) -> MonthlyFigures:
        return MonthlyFigures(
            vaccine_id=report.vaccine_id,
            vaccine_name=vaccine_name,
            month=report.month,
            initial_inventory=report.initial_inventory or 0,
            quantity_supplied=report.quantity_supplied or 0,
            quantity_used=report.quantity_used or 0,
            quantity_wastage=report.quantity_wastage or 0,
            ending_inventory=report.ending_inventory or 0,
            vials_needed=report.vials_needed or 0,
            max_allocation=report.max_allocation or 0,
            stock_level_percentage=report.stock_level_percentage or 0,
            status=report.status,
            merged_vaccine_ids=[report.vaccine_id],
        )

    def get_reports(self, month: MonthLike) -> List[MonthlyFigures]:
        """Persisted rows for a month, ordered by vaccine name"""
        start = month_start(month)
        rows = (
            self.db.query(MonthlyReport, Vaccine.name)
            .join(Vaccine, MonthlyReport.vaccine_id == Vaccine.id)
            .filter(MonthlyReport.month == start)
            .order_by(Vaccine.name, MonthlyReport.vaccine_id)
            .all()
        )
        return [self._figures_from_row(report, name) for report, name in rows]

    def available_months(self) -> List[date]:
        """Months with sessions or persisted reports, newest first"""
        months = {row[0] for row in self.db.query(MonthlyReport.month).distinct().all()}
        for (session_date,) in self.db.query(VaccinationSession.session_date).distinct().all():
            if session_date:
                months.add(month_start(session_date))
        return sorted(months, reverse=True)
