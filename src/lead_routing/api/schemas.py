"""Pydantic models for routing admin requests."""

from datetime import datetime
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field


class ListingPayload(BaseModel):
    id: Optional[str] = None
    price: Optional[float] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None


class AssignRequest(BaseModel):
    lead_id: str = Field(..., min_length=1)
    source: Optional[str] = None
    buyer_rep_status: Optional[str] = None
    listing: Optional[ListingPayload] = None
    actor_user_id: Optional[str] = None


class RuleCreateRequest(BaseModel):
    name: str = Field(..., min_length=1)
    mode: str = "FIRST_MATCH"
    priority: int = 0
    enabled: bool = True
    conditions: Optional[Dict[str, Any]] = None
    targets: List[Dict[str, Any]]
    fallback: Optional[Dict[str, Any]] = None
    sla_first_touch_minutes: Optional[int] = Field(default=None, ge=0)
    sla_kept_appointment_minutes: Optional[int] = Field(default=None, ge=0)
    created_by: Optional[str] = None


class RuleUpdateRequest(BaseModel):
    """Partial update; only fields present in the body are applied."""

    name: Optional[str] = None
    mode: Optional[str] = None
    priority: Optional[int] = None
    enabled: Optional[bool] = None
    conditions: Optional[Dict[str, Any]] = None
    targets: Optional[List[Dict[str, Any]]] = None
    fallback: Optional[Dict[str, Any]] = None
    sla_first_touch_minutes: Optional[int] = Field(default=None, ge=0)
    sla_kept_appointment_minutes: Optional[int] = Field(default=None, ge=0)


class SlaSignalRequest(BaseModel):
    lead_id: str = Field(..., min_length=1)
    occurred_at: Optional[datetime] = None


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    detail: Optional[str] = None
