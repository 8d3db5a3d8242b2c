"""
FastAPI application factory and entry point.

This module creates and configures the FastAPI application:
  1. Lifespan manager: logging setup, DB table creation, cleanup
  2. CORS middleware: allows frontend origins to make cross-origin requests
  3. Exception handlers: maps domain errors to HTTP responses
  4. Router registration: mounts all API endpoint groups

Running locally:
    uvicorn bank_ledger.main:app --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from bank_ledger.config import settings
from bank_ledger.database import Base, engine
from bank_ledger.exceptions import register_exception_handlers
from bank_ledger.logging_config import setup_logging
from bank_ledger.routers import (
    accounts,
    api_keys,
    auth,
    billpay,
    manager,
    transactions,
    transfers,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup:
      Configures logging, then creates all database tables if they don't
      exist. In production, schema changes would go through migrations
      instead.

    Shutdown:
      Disposes of the database engine, closing all connections cleanly.
    """
    # --- Startup ---
    setup_logging()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Started", extra={"version": settings.APP_VERSION})
    yield
    # --- Shutdown ---
    await engine.dispose()


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Banking REST API: accounts, idempotent postings, transfers, bill pay",
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------

register_exception_handlers(app)

# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------

app.include_router(auth.router, prefix="/auth", tags=["Auth"])
app.include_router(accounts.router, prefix="/accounts", tags=["Accounts"])
app.include_router(transactions.router, prefix="/transactions", tags=["Transactions"])
app.include_router(transfers.router, prefix="/transfers", tags=["Transfers"])
app.include_router(billpay.router, prefix="/billpay", tags=["Bill Pay"])
app.include_router(api_keys.router, prefix="/api-keys", tags=["API Keys"])
app.include_router(manager.router, prefix="/manager", tags=["Manager"])


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------

@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for deployment probes."""
    return {"status": "ok", "version": settings.APP_VERSION}
