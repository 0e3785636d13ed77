"""
CERA Incident Response - FastAPI Application Entry Point

Residents report emergencies, coordinators triage and dispatch volunteers,
volunteers accept, decline, start and complete tasks.

DESIGN PRINCIPLES:
- One state machine owns every incident status change
- Every state change is atomic per incident and leaves an audit entry
- Notification is best-effort and never rolls back a state change
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from cera.core.errors import CeraError
from cera.core.settings import settings
from cera.routes import health, incidents, notifications, users

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


# Initialize FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Incident-response coordination backend for residents, coordinators and volunteers",
    debug=settings.DEBUG
)


@app.exception_handler(CeraError)
async def cera_error_handler(request: Request, exc: CeraError):
    """Render typed service errors as {"kind", "detail"}."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} → {exc.kind}: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} → {exc.kind}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Global exception handler to catch ALL exceptions
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch all unhandled exceptions and log them with full traceback."""
    logger.error(f"Unhandled exception on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"kind": "internal_error", "detail": "Internal server error"}
    )


# Pydantic validation error handler
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Log request validation errors and return them in FastAPI's usual shape."""
    logger.info(f"Validation error on {request.method} {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": exc.errors()}
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Application lifecycle events
@app.on_event("startup")
async def startup_event():
    """
    Initialize services on application startup.
    Currently: Firestore connection (skipped with USE_MOCK_DB)
    """
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")

    if settings.USE_MOCK_DB:
        logger.info("USE_MOCK_DB enabled: using in-process stores")
        return

    from cera.config.firebase import initialize_firestore

    try:
        initialize_firestore()
    except Exception as e:
        logger.warning(f"Firestore initialization failed: {e}. The app will start but database operations may fail.")


@app.on_event("shutdown")
async def shutdown_event():
    """
    Cleanup on application shutdown.
    """
    logger.info(f"Shutting down {settings.APP_NAME}")


# Include routers
app.include_router(health.router)
app.include_router(incidents.router)
app.include_router(users.router)
app.include_router(notifications.router)


# Root endpoint
@app.get("/")
async def root():
    """
    Root endpoint - API information.
    """
    return {
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running",
        "docs": "/docs",
        "health": "/health"
    }
