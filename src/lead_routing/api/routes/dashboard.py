"""Capacity and performance routes for the routing dashboard."""

from fastapi import APIRouter, Depends

from ..dependencies import get_services, get_tenant_id
from ..middleware.auth import verify_secret

router = APIRouter(prefix="/v1/routing", tags=["dashboard"], dependencies=[Depends(verify_secret)])


@router.get("/capacity")
async def capacity(tenant_id: str = Depends(get_tenant_id), services=Depends(get_services)):
    """Per-agent pipeline and remaining capacity."""
    return services.metrics.get_capacity_view(tenant_id)


@router.get("/metrics")
async def metrics(tenant_id: str = Depends(get_tenant_id), services=Depends(get_services)):
    """First-touch timing, breach rates and kept-appointment rates."""
    return services.metrics.get_metrics(tenant_id)


@router.get("/unescalated")
async def unescalated(tenant_id: str = Depends(get_tenant_id), services=Depends(get_services)):
    """Breached timers whose pond fallback is missing."""
    return [breach.to_dict() for breach in services.metrics.find_unescalated_breaches(tenant_id)]
