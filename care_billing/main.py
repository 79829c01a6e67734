"""
Care Billing API - Main Application

Invoice generation and reconciliation for care agency billing.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging

from care_billing.api.v2.router import api_router
from care_billing.config import settings
from care_billing.database import init_db
from care_billing.exceptions import BillingAPIException, create_exception_handlers
from care_billing.tasks.source_repair import start_source_repair_scheduler, stop_source_repair_scheduler
# Import all models to register them with SQLAlchemy metadata before init_db()
from care_billing.models import (
    Client, Booking, ClientRateSchedule, ServiceRate, ClientRateAssignment,
    ExpenseClaim, ExtraTimeRecord, BankHoliday, ClientInvoice, InvoiceLineItem, PaymentRecord,
)

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info("Starting Care Billing API...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    # Don't log the full database URL, just the prefix
    if settings.DATABASE_URL:
        logger.info(f"Database URL prefix: {settings.DATABASE_URL[:30]}...")
    try:
        await init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Database initialization failed: {type(e).__name__}")
        logger.warning("App starting without database - some features may not work")

    if settings.SOURCE_REPAIR_ENABLED:
        start_source_repair_scheduler()
    yield
    logger.info("Shutting down Care Billing API...")
    stop_source_repair_scheduler()


docs_url = "/docs" if settings.DOCS_ENABLED else None
redoc_url = "/redoc" if settings.DOCS_ENABLED else None

app = FastAPI(
    title="Care Billing API",
    description="Invoice generation and reconciliation for care agency billing",
    version="2.0.0",
    docs_url=docs_url,
    redoc_url=redoc_url,
    lifespan=lifespan,
)

allowed_origins = [
    settings.FRONTEND_URL,
    "http://localhost:5173",  # Vite dev server
    "http://localhost:3000",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

handlers = create_exception_handlers(allowed_origins)
app.add_exception_handler(BillingAPIException, handlers["api"])
app.add_exception_handler(StarletteHTTPException, handlers["http"])
app.add_exception_handler(RequestValidationError, handlers["validation"])
app.add_exception_handler(Exception, handlers["generic"])

app.include_router(api_router, prefix="/api/v2")


@app.get("/")
async def root():
    """Root endpoint - API info."""
    response = {
        "name": "Care Billing API",
        "version": "2.0.0",
        "health": "/health",
    }
    if settings.DOCS_ENABLED:
        response["docs"] = "/docs"
    return response


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": "2.0.0",
        "environment": settings.ENVIRONMENT,
    }


# For running with uvicorn directly (development only)
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "care_billing.main:app",
        host="0.0.0.0",
        port=5001,
        reload=settings.DEBUG,
    )
