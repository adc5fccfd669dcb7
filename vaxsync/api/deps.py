"""
API Dependencies
Common dependencies for API endpoints
"""

from functools import lru_cache
from typing import Generator

from fastapi import status

from vaxsync.core.config import settings
from vaxsync.core.database import SessionLocal
from vaxsync.core.exceptions import (
    InsufficientStockError, NotFoundError, StorageError, ValidationError, VaxSyncException
)
from vaxsync.services.reference_tables import ReferenceTables, load_reference_tables
from vaxsync.services.reporting.monthly_report import MonthlyReportCache

ERROR_STATUS_CODES = {
    ValidationError: status.HTTP_400_BAD_REQUEST,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    InsufficientStockError: status.HTTP_409_CONFLICT,
    StorageError: status.HTTP_503_SERVICE_UNAVAILABLE,
}

_report_cache = MonthlyReportCache()


def get_db() -> Generator:
    """
    Database dependency - creates a new database session for each request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@lru_cache()
def get_reference_tables() -> ReferenceTables:
    """Reference tables, loaded once from the configured overrides file"""
    return load_reference_tables(settings.REFERENCE_TABLES_FILE)


def get_report_cache() -> MonthlyReportCache:
    return _report_cache


def status_code_for(exc: VaxSyncException) -> int:
    for error_type, code in ERROR_STATUS_CODES.items():
        if isinstance(exc, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def raise_for_result(result) -> None:
    """Raise the error carried by a failed service result"""
    if not result.success:
        raise result.error or VaxSyncException("Operation failed")
