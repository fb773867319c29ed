"""
FastAPI application initialization
"""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from api.routes import health, prices, sync
from api.middleware import RequestContextMiddleware
from core.config import settings
from core.database import async_session_maker, init_models, wait_for_database
from core.exceptions import (
    MarketAPIError,
    NoDataFoundError,
    PriceSyncException,
    ValidationError,
)
from core.logging import setup_logging
from ingestion.health import HealthMonitor
from ingestion.runner import SyncEngine
from ingestion.scheduler import SyncScheduler
import logging

setup_logging()
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Electricity Price Sync API",
    description="Day-ahead electricity prices for the Baltic and Finnish bidding zones",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(RequestContextMiddleware)

# Services shared by the scheduler and the HTTP layer
sync_engine = SyncEngine(async_session_maker)
health_monitor = HealthMonitor(async_session_maker, sync_engine)
scheduler = SyncScheduler(sync_engine, health_monitor)
health_monitor.scheduler = scheduler

app.state.sync_engine = sync_engine
app.state.health_monitor = health_monitor
app.state.scheduler = scheduler

# Include routers
app.include_router(health.router)
app.include_router(prices.router)
app.include_router(sync.router)


# ============================================================================
# Error handlers
# ============================================================================

def _error(status_code: int, message: str, code: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": message, "code": code}
    )


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return _error(400, exc.message, "INVALID_PARAMETERS")


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    details = "; ".join(
        f"{'.'.join(str(p) for p in err.get('loc', []))}: {err.get('msg')}" for err in exc.errors()
    )
    return _error(400, details or "Invalid request parameters", "INVALID_PARAMETERS")


@app.exception_handler(NoDataFoundError)
async def no_data_handler(request: Request, exc: NoDataFoundError):
    return _error(404, exc.message, "NO_DATA_FOUND")


@app.exception_handler(MarketAPIError)
async def market_api_error_handler(request: Request, exc: MarketAPIError):
    logger.error(f"Upstream failure: {exc}")
    return _error(502, exc.message, "UPSTREAM_ERROR")


@app.exception_handler(PriceSyncException)
async def sync_error_handler(request: Request, exc: PriceSyncException):
    logger.error(f"Sync failure: {exc}")
    return _error(500, exc.message, "SYNC_FAILED")


# ============================================================================
# Lifecycle
# ============================================================================

@app.on_event("startup")
async def startup_event():
    """Application startup event"""
    logger.info("Starting Electricity Price Sync API")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Database: {settings.DATABASE_URL.split('@')[1] if '@' in settings.DATABASE_URL else 'configured'}")

    # Fatal if the database never comes up
    await wait_for_database()
    if settings.AUTO_CREATE_TABLES:
        await init_models()

    if settings.SCHEDULER_ENABLED:
        scheduler.start()
    else:
        logger.info("Scheduler disabled by configuration")


@app.on_event("shutdown")
async def shutdown_event():
    """Application shutdown event"""
    logger.info("Shutting down Electricity Price Sync API")
    scheduler.stop()


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Electricity Price Sync API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "countries": "/api/v1/countries",
            "prices": "/api/v1/nps/prices",
            "latest": "/api/v1/latest",
            "sync": "/api/v1/sync",
            "health": "/api/v1/health"
        },
        "countries": settings.COUNTRIES,
        "timezone": settings.BUSINESS_TIMEZONE
    }
