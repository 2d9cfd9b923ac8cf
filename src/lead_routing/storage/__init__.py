"""Storage layer for routing rules, assignments and SLA timers."""

from .database import RoutingDatabase
from .models import (
    Agent,
    Assignment,
    Lead,
    LeadRouteEvent,
    Listing,
    RoutingMode,
    RoutingRule,
    SlaStatus,
    SlaTimer,
    SlaType,
    Tenant,
)

__all__ = [
    "RoutingDatabase",
    "Agent",
    "Assignment",
    "Lead",
    "LeadRouteEvent",
    "Listing",
    "RoutingMode",
    "RoutingRule",
    "SlaStatus",
    "SlaTimer",
    "SlaType",
    "Tenant",
]
