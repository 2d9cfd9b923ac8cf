"""Scoring, clock and quiet-hours primitives for lead routing."""

from .clock import Clock, SystemClock, FixedClock
from .config import RoutingConfig, RoutingConfigManager
from .quiet_hours import is_quiet_hours, resolve_timezone
from .scorer import AgentSnapshot, AgentScore, RoutingInput, RoutingResult, route_lead, score_agent

__all__ = [
    "Clock",
    "SystemClock",
    "FixedClock",
    "RoutingConfig",
    "RoutingConfigManager",
    "is_quiet_hours",
    "resolve_timezone",
    "AgentSnapshot",
    "AgentScore",
    "RoutingInput",
    "RoutingResult",
    "route_lead",
    "score_agent",
]
