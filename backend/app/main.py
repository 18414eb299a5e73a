"""
Cashu Wallet Ledger API

Main FastAPI application entry point.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.middleware import ErrorHandlerMiddleware
from app.routes import mint, wallet
from app.services.wallet_factory import get_wallet_service, reset_wallet_service

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events."""
    # Startup
    service = get_wallet_service()
    await service.resume_pending_quotes()
    yield
    # Shutdown
    reset_wallet_service()


app = FastAPI(
    title="Cashu Wallet Ledger API",
    description="Custodial ecash wallet with automatic minting of paid quotes",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Error handling middleware
app.add_middleware(ErrorHandlerMiddleware)

# Register routers
app.include_router(wallet.router, prefix="/api", tags=["Wallet"])
app.include_router(mint.router, prefix="/api", tags=["Mint"])


@app.get("/")
async def root():
    """Health check endpoint"""
    return {
        "status": "ok",
        "service": "Cashu Wallet Ledger API",
        "version": "1.0.0",
    }


@app.get("/health")
async def health_check():
    """
    Detailed health check endpoint.

    Returns service health status plus the quote monitor state.
    """
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": "1.0.0",
        "quoteMonitor": get_wallet_service()
        .get_quote_pool_status()
        .model_dump(by_alias=True),
    }
