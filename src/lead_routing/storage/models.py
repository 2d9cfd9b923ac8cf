"""Data models for routing storage."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List, Dict, Any


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RoutingMode(Enum):
    """How a matched rule picks its agent."""

    FIRST_MATCH = "FIRST_MATCH"
    SCORE_AND_ASSIGN = "SCORE_AND_ASSIGN"


class SlaType(Enum):
    """Service-level commitments tracked per lead."""

    FIRST_TOUCH = "FIRST_TOUCH"
    KEPT_APPOINTMENT = "KEPT_APPOINTMENT"


class SlaStatus(Enum):
    """SLA timer state. SATISFIED and BREACHED are terminal."""

    PENDING = "PENDING"
    SATISFIED = "SATISFIED"
    BREACHED = "BREACHED"


class AgentRole(Enum):
    """Roster roles."""

    AGENT = "AGENT"
    TEAM_LEAD = "TEAM_LEAD"
    BROKER = "BROKER"
    ISA = "ISA"  # Inside Sales Agent


ROUTABLE_ROLES = (AgentRole.AGENT, AgentRole.TEAM_LEAD)


class TourStatus(Enum):
    """Tour lifecycle."""

    REQUESTED = "REQUESTED"
    CONFIRMED = "CONFIRMED"
    KEPT = "KEPT"
    NO_SHOW = "NO_SHOW"
    CANCELLED = "CANCELLED"


ACTIVE_TOUR_STATUSES = (TourStatus.REQUESTED, TourStatus.CONFIRMED)
OUTCOME_TOUR_STATUSES = (TourStatus.CONFIRMED, TourStatus.KEPT, TourStatus.NO_SHOW)


class MessageChannel(Enum):
    """Consent channels considered for routing."""

    SMS = "SMS"
    EMAIL = "EMAIL"


class ConsentStatus(Enum):
    """Consent state for one channel."""

    GRANTED = "GRANTED"
    REVOKED = "REVOKED"
    UNKNOWN = "UNKNOWN"


@dataclass
class Tenant:
    """Brokerage tenant and its messaging configuration."""

    id: str
    name: str = ""
    timezone: str = "America/New_York"
    quiet_hours_start: int = 21  # Hour of day, local time
    quiet_hours_end: int = 8
    ten_dlc_ready: bool = False


@dataclass
class Agent:
    """Roster entry that may receive leads."""

    id: str
    tenant_id: str
    first_name: str = ""
    last_name: str = ""
    role: AgentRole = AgentRole.AGENT
    # Per-agent channel readiness; None defers to the lead/tenant signal
    consent_ready: Optional[bool] = None
    messaging_ready: Optional[bool] = None
    created_at: datetime = field(default_factory=_utcnow)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass
class Tour:
    """A showing handled by an agent."""

    tenant_id: str
    agent_id: str
    person_id: str = ""
    status: TourStatus = TourStatus.REQUESTED
    listing_city: Optional[str] = None
    listing_price: Optional[float] = None
    start_at: datetime = field(default_factory=_utcnow)
    id: str = field(default_factory=_new_id)


@dataclass
class Consent:
    """A captured consent decision for a lead and channel."""

    tenant_id: str
    person_id: str
    channel: MessageChannel
    status: ConsentStatus
    captured_at: datetime = field(default_factory=_utcnow)


@dataclass
class Lead:
    """The person being routed."""

    id: str
    source: Optional[str] = None
    buyer_rep_status: Optional[str] = None


@dataclass
class Listing:
    """Listing context attached to a tour request."""

    id: Optional[str] = None
    price: Optional[float] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "price": self.price,
            "city": self.city,
            "state": self.state,
            "postal_code": self.postal_code,
        }


@dataclass
class RoutingRule:
    """Operator-defined routing rule.

    ``conditions``, ``targets`` and ``fallback`` hold the decoded JSON exactly
    as stored; they are validated when the rule is evaluated.
    """

    tenant_id: str
    name: str
    priority: int = 0  # Lower = evaluated first
    mode: str = RoutingMode.FIRST_MATCH.value
    enabled: bool = True
    conditions: Any = None
    targets: Any = None
    fallback: Any = None
    sla_first_touch_minutes: Optional[int] = None
    sla_kept_appointment_minutes: Optional[int] = None
    created_by: Optional[str] = None
    id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "priority": self.priority,
            "mode": self.mode,
            "enabled": self.enabled,
            "conditions": self.conditions,
            "targets": self.targets,
            "fallback": self.fallback,
            "sla_first_touch_minutes": self.sla_first_touch_minutes,
            "sla_kept_appointment_minutes": self.sla_kept_appointment_minutes,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass
class AssignmentReason:
    """One weighted factor behind an assignment."""

    type: str
    weight: float
    notes: str = ""


@dataclass
class Assignment:
    """Durable record of a lead handed to an agent or team."""

    tenant_id: str
    person_id: str
    agent_id: Optional[str] = None
    team_id: Optional[str] = None
    score: float = 0.0
    reasons: List[AssignmentReason] = field(default_factory=list)
    id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=_utcnow)


@dataclass
class LeadRouteEvent:
    """Immutable audit record for one routing decision."""

    tenant_id: str
    lead_id: str
    mode: str = RoutingMode.FIRST_MATCH.value
    matched_rule_id: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)
    candidates: List[Dict[str, Any]] = field(default_factory=list)
    assigned_agent_id: Optional[str] = None
    fallback_used: bool = False
    reason_codes: List[str] = field(default_factory=list)
    sla_due_at: Optional[datetime] = None
    sla_satisfied_at: Optional[datetime] = None
    sla_breached_at: Optional[datetime] = None
    actor_user_id: Optional[str] = None
    id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "lead_id": self.lead_id,
            "matched_rule_id": self.matched_rule_id,
            "mode": self.mode,
            "payload": self.payload,
            "candidates": self.candidates,
            "assigned_agent_id": self.assigned_agent_id,
            "fallback_used": self.fallback_used,
            "reason_codes": self.reason_codes,
            "sla_due_at": self.sla_due_at.isoformat() if self.sla_due_at else None,
            "sla_satisfied_at": self.sla_satisfied_at.isoformat() if self.sla_satisfied_at else None,
            "sla_breached_at": self.sla_breached_at.isoformat() if self.sla_breached_at else None,
            "actor_user_id": self.actor_user_id,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class SlaTimer:
    """Deadline for a service-level commitment on a lead."""

    tenant_id: str
    lead_id: str
    type: SlaType
    due_at: datetime
    rule_id: Optional[str] = None
    assigned_agent_id: Optional[str] = None
    status: SlaStatus = SlaStatus.PENDING
    satisfied_at: Optional[datetime] = None
    breached_at: Optional[datetime] = None
    id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "lead_id": self.lead_id,
            "rule_id": self.rule_id,
            "assigned_agent_id": self.assigned_agent_id,
            "type": self.type.value,
            "status": self.status.value,
            "due_at": self.due_at.isoformat(),
            "satisfied_at": self.satisfied_at.isoformat() if self.satisfied_at else None,
            "breached_at": self.breached_at.isoformat() if self.breached_at else None,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass
class OutboxEvent:
    """Domain event waiting for delivery by the outbox/webhook layer."""

    tenant_id: str
    event_type: str
    occurred_at: datetime
    resource: Dict[str, Any] = field(default_factory=dict)
    data: Dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=_utcnow)
    delivered_at: Optional[datetime] = None
