"""Routing rule CRUD routes."""

import logging
from fastapi import APIRouter, Depends, HTTPException

from ...errors import RuleNotFoundError, RuleParseError
from ..dependencies import get_services, get_tenant_id
from ..middleware.auth import verify_secret
from ..schemas import ErrorResponse, RuleCreateRequest, RuleUpdateRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/routing/rules", tags=["rules"], dependencies=[Depends(verify_secret)])


def _invalid_rule(e: RuleParseError) -> HTTPException:
    return HTTPException(
        status_code=422,
        detail={"success": False, "error": "invalid_rule", "detail": str(e)},
    )


@router.get("")
async def list_rules(tenant_id: str = Depends(get_tenant_id), services=Depends(get_services)):
    """Rules in evaluation order."""
    return services.rules.list_rules(tenant_id)


@router.post("", status_code=201, responses={422: {"model": ErrorResponse}})
async def create_rule(payload: RuleCreateRequest, tenant_id: str = Depends(get_tenant_id),
                      services=Depends(get_services)):
    try:
        rule = services.rules.create_rule(tenant_id, **payload.model_dump())
    except RuleParseError as e:
        raise _invalid_rule(e)
    return rule.to_dict()


@router.patch(
    "/{rule_id}",
    responses={404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def update_rule(rule_id: str, payload: RuleUpdateRequest, tenant_id: str = Depends(get_tenant_id),
                      services=Depends(get_services)):
    """Apply the fields present in the body; send null SLA minutes to clear them."""
    try:
        rule = services.rules.update_rule(tenant_id, rule_id, **payload.model_dump(exclude_unset=True))
    except RuleNotFoundError as e:
        raise HTTPException(
            status_code=404,
            detail={"success": False, "error": "not_found", "detail": str(e)},
        )
    except RuleParseError as e:
        raise _invalid_rule(e)
    return rule.to_dict()


@router.delete("/{rule_id}")
async def delete_rule(rule_id: str, tenant_id: str = Depends(get_tenant_id), services=Depends(get_services)):
    return services.rules.delete_rule(tenant_id, rule_id)
