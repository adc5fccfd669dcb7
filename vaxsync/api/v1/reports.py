"""
Monthly Report API endpoints
"""

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from vaxsync.api import deps
from vaxsync.schemas.reports import MonthlyReportResponse, WastageRequest, AvailableMonthsResponse
from vaxsync.services.reference_tables import ReferenceTables
from vaxsync.services.reporting import ExportService, MonthlyReportCache, MonthlyReportService, month_start

router = APIRouter()

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _service(db: Session, tables: ReferenceTables, cache: MonthlyReportCache) -> MonthlyReportService:
    return MonthlyReportService(db, tables, cache)


@router.get("/months", response_model=AvailableMonthsResponse)
def list_available_months(
    db: Session = Depends(deps.get_db),
    tables: ReferenceTables = Depends(deps.get_reference_tables),
    cache: MonthlyReportCache = Depends(deps.get_report_cache),
):
    months = _service(db, tables, cache).available_months()
    return {"months": [month.isoformat() for month in months]}


@router.post("/monthly/{month}", response_model=MonthlyReportResponse)
def compute_monthly_report(
    month: str,
    db: Session = Depends(deps.get_db),
    tables: ReferenceTables = Depends(deps.get_reference_tables),
    cache: MonthlyReportCache = Depends(deps.get_report_cache),
):
    """
    Compute and persist the report for a month (YYYY-MM or YYYY-MM-DD).
    """
    result = _service(db, tables, cache).compute_monthly_report(month)
    deps.raise_for_result(result)
    return result.to_dict()


@router.get("/monthly/{month}", response_model=MonthlyReportResponse)
def get_monthly_report(
    month: str,
    db: Session = Depends(deps.get_db),
    tables: ReferenceTables = Depends(deps.get_reference_tables),
    cache: MonthlyReportCache = Depends(deps.get_report_cache),
):
    """
    Persisted report rows for a month.
    """
    start = month_start(month)
    reports = _service(db, tables, cache).get_reports(start)
    return {"month": start.isoformat(), "reports": [report.to_dict() for report in reports]}


@router.get("/monthly/{month}/export")
def export_monthly_report(
    month: str,
    db: Session = Depends(deps.get_db),
    tables: ReferenceTables = Depends(deps.get_reference_tables),
    cache: MonthlyReportCache = Depends(deps.get_report_cache),
):
    """
    Download the persisted report as an Excel workbook.
    """
    start = month_start(month)
    reports = _service(db, tables, cache).get_reports(start)
    content = ExportService().to_bytes(start, reports)
    filename = f"vaccine_monthly_report_{start.strftime('%Y_%m')}.xlsx"
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/monthly/{month}/wastage", response_model=MonthlyReportResponse)
def record_wastage(
    month: str,
    payload: WastageRequest,
    db: Session = Depends(deps.get_db),
    tables: ReferenceTables = Depends(deps.get_reference_tables),
    cache: MonthlyReportCache = Depends(deps.get_report_cache),
):
    result = _service(db, tables, cache).record_wastage(payload.vaccine_id, month, payload.doses)
    deps.raise_for_result(result)
    return result.to_dict()
