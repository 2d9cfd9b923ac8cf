"""Lead assignment and route event routes."""

import logging
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException

from ...errors import UnknownTenantError
from ...storage.models import Lead, Listing
from ..dependencies import get_services, get_tenant_id
from ..middleware.auth import verify_secret
from ..schemas import AssignRequest, ErrorResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/routing", tags=["routing"], dependencies=[Depends(verify_secret)])


@router.post(
    "/assign",
    responses={
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
)
async def assign(payload: AssignRequest, tenant_id: str = Depends(get_tenant_id), services=Depends(get_services)):
    """Route a lead and return the decision with its candidates and reason codes."""
    lead = Lead(id=payload.lead_id, source=payload.source, buyer_rep_status=payload.buyer_rep_status)
    listing = Listing(**payload.listing.model_dump()) if payload.listing else None

    try:
        result = services.engine.assign(tenant_id, lead, listing=listing, actor_user_id=payload.actor_user_id)
    except UnknownTenantError as e:
        raise HTTPException(
            status_code=404,
            detail={"success": False, "error": "not_found", "detail": str(e)},
        )
    return result.to_dict()


@router.get("/events")
async def list_events(
    limit: int = 25,
    cursor: Optional[str] = None,
    tenant_id: str = Depends(get_tenant_id),
    services=Depends(get_services),
):
    """Route events, newest first. Pass the last id as ``cursor`` for the next page."""
    return services.metrics.list_route_events(tenant_id, limit=limit, cursor=cursor)
