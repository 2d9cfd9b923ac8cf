"""Request dependencies shared by the routing routes."""

from fastapi import Header, HTTPException, Request

from ..services import RoutingServices


def get_services(request: Request) -> RoutingServices:
    return request.app.state.services


def get_tenant_id(x_tenant_id: str = Header(default="")) -> str:
    """Tenant for the request, taken from the X-Tenant-ID header."""
    tenant_id = x_tenant_id.strip()
    if not tenant_id:
        raise HTTPException(
            status_code=400,
            detail={"success": False, "error": "validation_error", "detail": "X-Tenant-ID header is required"},
        )
    return tenant_id
