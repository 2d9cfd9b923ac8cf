"""Result types returned by the routing engine."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Dict, Optional, Any

from ..core.scorer import AgentScore
from ..rules.evaluator import EvaluationResult


class CandidateStatus(Enum):
    """How a candidate fared in a decision."""

    SELECTED = "SELECTED"
    REJECTED = "REJECTED"
    DISQUALIFIED = "DISQUALIFIED"


@dataclass
class DecisionCandidate:
    """Audit entry for one agent considered by a decision."""

    agent_id: str
    full_name: str
    status: CandidateStatus
    score: Optional[float] = None
    reasons: List[str] = field(default_factory=list)
    capacity_remaining: int = 0
    consent_ready: bool = True
    ten_dlc_ready: bool = True
    team_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "agent_id": self.agent_id,
            "full_name": self.full_name,
            "status": self.status.value,
            "score": self.score,
            "reasons": list(self.reasons),
            "capacity_remaining": self.capacity_remaining,
            "consent_ready": self.consent_ready,
            "ten_dlc_ready": self.ten_dlc_ready,
            "team_ids": list(self.team_ids),
        }


@dataclass
class RouteAssignmentResult:
    """What ``RoutingEngine.assign`` decided, plus the id of its audit event."""

    lead_id: str
    tenant_id: str
    event_id: str
    selected_agents: List[AgentScore] = field(default_factory=list)
    fallback_team_id: Optional[str] = None
    used_fallback: bool = False
    quiet_hours: bool = False
    rule_id: Optional[str] = None
    rule_name: Optional[str] = None
    candidates: List[DecisionCandidate] = field(default_factory=list)
    evaluation: EvaluationResult = field(default_factory=lambda: EvaluationResult(matched=False))
    reason_codes: List[str] = field(default_factory=list)
    sla_due_at: Optional[datetime] = None

    @property
    def assigned_agent_id(self) -> Optional[str]:
        return self.selected_agents[0].user_id if self.selected_agents else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lead_id": self.lead_id,
            "tenant_id": self.tenant_id,
            "event_id": self.event_id,
            "rule_id": self.rule_id,
            "rule_name": self.rule_name,
            "assigned_agent_id": self.assigned_agent_id,
            "selected_agents": [agent.to_dict() for agent in self.selected_agents],
            "fallback_team_id": self.fallback_team_id,
            "used_fallback": self.used_fallback,
            "quiet_hours": self.quiet_hours,
            "candidates": [candidate.to_dict() for candidate in self.candidates],
            "evaluation": self.evaluation.to_dict(),
            "reason_codes": list(self.reason_codes),
            "sla_due_at": self.sla_due_at.isoformat() if self.sla_due_at else None,
        }
