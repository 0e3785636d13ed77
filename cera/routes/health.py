"""
Health check endpoints.
Used for monitoring, deployment readiness checks, and basic connectivity tests.
"""

from fastapi import APIRouter, Depends, HTTPException

from cera.core.settings import settings
from cera.repositories import get_incident_repository
from cera.repositories.base import IncidentRepository
from cera.utils.timestamps import utcnow


router = APIRouter(prefix="/health", tags=["Health"])


@router.get("")
async def health_check():
    """
    Basic health check endpoint.
    Returns 200 if service is running.
    """
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "timestamp": utcnow().isoformat()
    }


@router.get("/db")
def database_health(incidents: IncidentRepository = Depends(get_incident_repository)):
    """
    Database connectivity check.
    Runs a bounded read against the incident store.
    """
    backend = "memory" if settings.USE_MOCK_DB else "firestore"
    try:
        # A degenerate box keeps the read tiny on either backend
        incidents.list_in_bounds(0.0, 0.0, 0.0, 0.0)
    except Exception as e:
        raise HTTPException(
            status_code=503,
            detail=f"Database connection failed: {str(e)}"
        )

    return {
        "status": "healthy",
        "database": backend,
        "connected": True,
        "timestamp": utcnow().isoformat()
    }
