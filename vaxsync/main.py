"""
VaxSync FastAPI Main Application
Entry point for the barangay vaccine inventory REST API
"""
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging

from vaxsync.api.deps import get_reference_tables, get_report_cache, status_code_for
from vaxsync.api.v1.api_router import api_router
from vaxsync.core.config import settings
from vaxsync.core.database import check_db_connection, init_db
from vaxsync.core.exceptions import VaxSyncException
from vaxsync.core.logging import setup_logging

logger = logging.getLogger(__name__)

# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="""
    ## VaxSync Barangay Vaccine Inventory API

    ### Key Features:
    - **FIFO Ledger**: vial and dose deduction/add-back across barangay batches
    - **Reservations**: vials held for scheduled sessions, self-healing from the session list
    - **Vaccine Mirror**: cross-barangay doses available per vaccine
    - **Monthly Report**: NIP stock level classification per vaccine per month
    """,
    docs_url=settings.DOCS_URL,
    openapi_url=settings.OPENAPI_URL,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

report_scheduler = None


# Health check endpoint
@app.get("/health", tags=["System"])
async def health_check():
    """
    Health check endpoint for monitoring and load balancers

    Returns system status and database connectivity
    """
    try:
        db_status = check_db_connection()

        return {
            "status": "healthy" if db_status else "degraded",
            "version": settings.APP_VERSION,
            "database": "connected" if db_status else "disconnected",
        }
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        raise HTTPException(status_code=503, detail="Service unavailable")


# Application startup event
@app.on_event("startup")
async def startup_event():
    """
    Application startup tasks

    Configure logging, create tables and start the report scheduler
    """
    global report_scheduler

    setup_logging()
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")

    if not check_db_connection():
        logger.error("Failed to connect to database on startup")
        raise RuntimeError("Database connection failed")

    init_db()
    logger.info("Database connection established")

    if settings.ENABLE_REPORT_SCHEDULER:
        from vaxsync.services.reporting.report_scheduler import MonthlyReportScheduler

        report_scheduler = MonthlyReportScheduler(get_reference_tables(), get_report_cache())
        await report_scheduler.start_scheduler()

    logger.info("Application startup completed successfully")


# Application shutdown event
@app.on_event("shutdown")
async def shutdown_event():
    if report_scheduler is not None:
        await report_scheduler.stop_scheduler()
    logger.info("Shutting down application")


@app.exception_handler(VaxSyncException)
async def vaxsync_exception_handler(request: Request, exc: VaxSyncException):
    """
    Map service errors to HTTP responses

    Insufficient stock answers 409 with the available/requested figures
    """
    code = status_code_for(exc)
    if code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=code, content={"detail": exc.message, "error": exc.to_dict()})


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """
    Global exception handler for unhandled errors
    """
    logger.error(f"Unhandled exception: {exc}", exc_info=True)

    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "detail": str(exc) if settings.DEBUG else "An unexpected error occurred",
            "type": "server_error"
        }
    )


# Include API routers
app.include_router(api_router, prefix=settings.API_V1_STR)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "vaxsync.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
