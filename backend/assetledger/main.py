"""
Main FastAPI Application
"""
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging

from assetledger.core.config import settings
from assetledger.core.database import init_db
from assetledger.core.exceptions import (
    AssetLedgerError, AssetNotFoundError, ConflictError, LedgerAppendError,
    PeriodLockedError, ValidationError
)
from assetledger.api.v1 import fixed_assets, financial_periods

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)

ERROR_STATUS_CODES = {
    ValidationError: 422,
    AssetNotFoundError: 404,
    PeriodLockedError: 423,
    ConflictError: 409,
    LedgerAppendError: 503,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    # Startup
    logger.info("Starting up...")
    init_db()
    logger.info("Database initialized")

    yield

    # Shutdown
    logger.info("Shutting down...")


# Create app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Exception handlers
@app.exception_handler(AssetLedgerError)
async def asset_ledger_exception_handler(request: Request, exc: AssetLedgerError):
    status_code = next(
        (code for error_type, code in ERROR_STATUS_CODES.items() if isinstance(exc, error_type)),
        400
    )
    content = {
        "detail": exc.message,
        "error": type(exc).__name__,
        "retryable": exc.retryable,
    }
    if isinstance(exc, PeriodLockedError):
        content["periods"] = [f"{year}-{month:02d}" for year, month in exc.periods]
    return JSONResponse(status_code=status_code, content=content)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "An unexpected error occurred", "error": str(exc)}
    )


# Health check
@app.get("/health")
async def health_check():
    return {"status": "healthy", "version": settings.APP_VERSION}


# Include routers
app.include_router(fixed_assets.router, prefix="/api/v1")
app.include_router(financial_periods.router, prefix="/api/v1")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
