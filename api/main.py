"""
FastAPI application initialization
"""

from fastapi import FastAPI
from api.routes import health, etl
from core.config import settings
from core.logging import setup_logging
import logging

logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Market Data ETL API",
    description="Trigger, health and metrics surface of the market data ETL service",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# Include routers
app.include_router(health.router)
app.include_router(etl.router)


@app.on_event("startup")
async def startup_event():
    """Application startup event"""
    setup_logging()
    logger.info("Starting Market Data ETL API")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Database: {settings.DATABASE_URL.split('@')[1] if '@' in settings.DATABASE_URL else 'configured'}")


@app.on_event("shutdown")
async def shutdown_event():
    """Application shutdown event"""
    logger.info("Shutting down Market Data ETL API")


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Market Data ETL API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "refresh": "/refresh",
            "metrics": "/metrics"
        }
    }
