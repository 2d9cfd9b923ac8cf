"""SLA sweep, satisfy-signal and dashboard routes."""

from fastapi import APIRouter, Depends

from ..dependencies import get_services, get_tenant_id
from ..middleware.auth import verify_secret
from ..schemas import SlaSignalRequest

router = APIRouter(prefix="/v1/routing/sla", tags=["sla"], dependencies=[Depends(verify_secret)])


@router.get("")
async def sla_dashboard(tenant_id: str = Depends(get_tenant_id), services=Depends(get_services)):
    """Status summary over the earliest-due timers."""
    return services.metrics.get_sla_dashboard(tenant_id)


@router.post("/process")
async def process(tenant_id: str = Depends(get_tenant_id), services=Depends(get_services)):
    """Breach this tenant's overdue timers now."""
    return services.sla.process_sla_timers(tenant_id)


@router.post("/first-touch")
async def first_touch(payload: SlaSignalRequest, tenant_id: str = Depends(get_tenant_id),
                      services=Depends(get_services)):
    return services.sla.record_first_touch(tenant_id, payload.lead_id, payload.occurred_at)


@router.post("/kept-appointment")
async def kept_appointment(payload: SlaSignalRequest, tenant_id: str = Depends(get_tenant_id),
                           services=Depends(get_services)):
    return services.sla.record_kept_appointment(tenant_id, payload.lead_id, payload.occurred_at)
