"""
Reporting Services
Monthly NIP vaccine rollup, its scheduler and Excel export
"""
from .monthly_report import (
    MonthlyFigures, MonthlyReportCache, MonthlyReportResult, MonthlyReportService,
    classify_status, month_start, stock_percentage
)
from .export_service import ExportService

__all__ = [
    "MonthlyFigures",
    "MonthlyReportCache",
    "MonthlyReportResult",
    "MonthlyReportService",
    "classify_status",
    "month_start",
    "stock_percentage",
    "ExportService",
]
