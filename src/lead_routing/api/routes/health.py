"""Health check routes."""

from fastapi import APIRouter, Depends

from ..dependencies import get_services

router = APIRouter(tags=["health"])


@router.get("/health")
async def health():
    return {"status": "healthy", "service": "lead-routing-api", "version": "1.0.0"}


@router.get("/ready")
async def ready(services=Depends(get_services)):
    """Readiness check - verifies database is accessible."""
    try:
        services.db.ping()
        return {"status": "ready"}
    except Exception as e:
        return {"status": "not_ready", "detail": str(e)}
