"""
Main API Router - Consolidates all module routes
"""

from fastapi import APIRouter
from vaxsync.api.v1 import inventory, vaccines, requests, sessions, reports

api_router = APIRouter()

# Barangay inventory ledger
api_router.include_router(inventory.router, prefix="/inventory", tags=["inventory"])

# Vaccine aggregate mirror
api_router.include_router(vaccines.router, prefix="/vaccines", tags=["vaccines"])

# Workflows
api_router.include_router(requests.router, prefix="/requests", tags=["requests"])
api_router.include_router(sessions.router, prefix="/sessions", tags=["sessions"])

# Monthly NIP reports
api_router.include_router(reports.router, prefix="/reports", tags=["reports"])
