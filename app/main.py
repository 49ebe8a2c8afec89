from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.api.v1.router import api_router
from app.core.exceptions import (
    BillingError,
    BillNotFoundError,
    BillStorageError,
    BillValidationError,
    InvalidTransitionError,
    LedgerUnavailableError,
    SequenceRegressionError,
)
from app.database import dispose_engine
from app.database_init import BillingServices, startup_initialization
from app.jobs.scheduler import get_job_status, start_scheduler, shutdown_scheduler

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

ERROR_STATUS_CODES = {
    BillValidationError: 400,
    BillNotFoundError: 404,
    InvalidTransitionError: 409,
    SequenceRegressionError: 409,
    LedgerUnavailableError: 503,
    BillStorageError: 503,
}


def error_status_code(exc: BillingError) -> int:
    for exc_type, status_code in ERROR_STATUS_CODES.items():
        if isinstance(exc, exc_type):
            return status_code
    return 400


# OpenAPI Tags with detailed descriptions
OPENAPI_TAGS = [
    {"name": "Bills", "description": "Draft, final and void POS bills with GST totals"},
    {"name": "Admin", "description": "Invoice counter administration"},
    {"name": "Health", "description": "Service health"},
]

FULL_API_DESCRIPTION = """
## POS Billing API

Point-of-sale billing with GST compliant, financial-year invoice numbering.

### Invoice Numbers

- Format: `{FY}/{SERIAL}`, e.g. `2025-26/000123`
- Financial year runs April to March
- Drafts never consume a number; finalize consumes exactly one
- Voided numbers are never reused

### Error Codes

| Code | Description |
|------|-------------|
| 400 | Bad Request - Validation failed |
| 404 | Not Found - Bill doesn't exist |
| 409 | Conflict - Transition not allowed, or counter would go backwards |
| 422 | Unprocessable Entity - Malformed request body |
| 503 | Service Unavailable - Ledger unreachable (no number issued), or bill storage failed after numbering |
"""


def create_app(
    services: Optional[BillingServices] = None,
    enable_scheduler: Optional[bool] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        services: Pre-built billing services (tests); built from settings when omitted
        enable_scheduler: Overrides SCHEDULER_ENABLED
    """
    run_scheduler = settings.SCHEDULER_ENABLED if enable_scheduler is None else enable_scheduler

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Startup:
        - Build allocator, lifecycle and bill service (one per process)
        - Start background scheduler

        Shutdown:
        - Stop scheduler, dispose database engine
        """
        logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")

        bundle = services or await startup_initialization()
        app.state.services = bundle
        app.state.allocator = bundle.allocator
        app.state.bill_service = bundle.bill_service

        if run_scheduler:
            start_scheduler(bundle)

        yield

        if run_scheduler:
            shutdown_scheduler()
        if bundle.engine is not None:
            await dispose_engine()
        logger.info("Shutting down...")

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description=FULL_API_DESCRIPTION,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_tags=OPENAPI_TAGS,
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include API router
    app.include_router(api_router)

    @app.exception_handler(BillingError)
    async def billing_exception_handler(request: Request, exc: BillingError):
        status_code = error_status_code(exc)
        if status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(
            status_code=status_code,
            content={"ok": False, "error": exc.message, "type": type(exc).__name__},
        )

    @app.get("/health", tags=["Health"])
    async def health_check():
        """Health check endpoint with invoice counter state."""
        state = app.state.allocator.snapshot()
        return {
            "status": "healthy",
            "app": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "checks": {
                "ledger_backend": settings.LEDGER_BACKEND,
                "fiscal_year": state.current_fiscal_year,
                "last_issued_serial": state.last_issued_serial,
            },
            "jobs": get_job_status(),
        }

    return app


app = create_app()
