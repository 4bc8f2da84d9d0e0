"""FastAPI Application Entry Point"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import structlog

from apartment_viewing.config import settings
from apartment_viewing.api.routes import submit_form, wizard
from apartment_viewing.wizard.sessions import wizard_sessions

# Configure structured logging
structlog.configure(
    processors=[
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.add_log_level,
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.make_filtering_bound_logger(
        logging.getLevelName(settings.log_level.upper())
    ),
)

logger = structlog.get_logger()

# Initialize FastAPI app
app = FastAPI(
    title="Apartment Viewing Request API",
    description="Collects viewing requests for the studio apartments and relays them to the landlord",
    version="0.1.0",
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Health check endpoint
@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring"""
    return JSONResponse(
        content={
            "status": "healthy",
            "environment": settings.environment,
            "version": "0.1.0",
            "telegram_configured": settings.telegram_configured,
        }
    )


# Root endpoint
@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Apartment Viewing Request API",
        "version": "0.1.0",
        "docs": "/docs" if settings.is_development else None
    }


# Include routers
app.include_router(submit_form.router, prefix="/api", tags=["relay"])
app.include_router(wizard.router, prefix="/api/v1", tags=["wizard"])


# Startup event
@app.on_event("startup")
async def startup_event():
    """Run on application startup"""
    logger.info(
        "application_starting",
        environment=settings.environment,
        base_url=settings.api_base_url,
        scheduling_mode=settings.scheduling_mode,
    )
    if not settings.telegram_configured:
        logger.warning("telegram_not_configured")


# Shutdown event
@app.on_event("shutdown")
async def shutdown_event():
    """Run on application shutdown"""
    wizard_sessions.close_all()
    logger.info("application_shutting_down")


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Handle uncaught exceptions"""
    logger.error(
        "uncaught_exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        exc_info=True
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "message": "An unexpected error occurred" if settings.is_production else str(exc)
        }
    )
