"""Agent scoring and ranking for score-and-assign routing."""

from dataclasses import dataclass, field
from typing import List, Dict, Optional, Any

from .config import RoutingConfig


@dataclass
class AgentSnapshot:
    """Point-in-time view of an agent's load, fit and readiness."""

    user_id: str
    full_name: str
    capacity_target: int
    active_pipeline: int
    geography_fit: float  # 0 - 1
    price_band_fit: float  # 0 - 1
    kept_appt_rate: float  # 0 - 1
    consent_ready: bool
    ten_dlc_ready: bool
    team_id: Optional[str] = None
    round_robin_order: Optional[int] = None


@dataclass
class ScoreReason:
    """One weighted component of an agent's score."""

    type: str  # CAPACITY, GEOGRAPHY, PRICE_BAND, PERFORMANCE
    description: str
    weight: float

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "description": self.description, "weight": self.weight}


@dataclass
class AgentScore:
    """Score for one agent with the reasons behind it."""

    user_id: str
    full_name: str
    score: float
    reasons: List[ScoreReason] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "full_name": self.full_name,
            "score": self.score,
            "reasons": [reason.to_dict() for reason in self.reasons],
        }


@dataclass
class RoutingInput:
    """Everything the ranking function needs for one lead."""

    lead_id: str
    tenant_id: str
    agents: List[AgentSnapshot]
    geography_importance: float = 0.15
    price_band_importance: float = 0.1
    quiet_hours: bool = False
    fallback_team_id: Optional[str] = None
    config: Optional[RoutingConfig] = None


@dataclass
class RoutingResult:
    """Outcome of ranking: the qualifying agents, best first."""

    lead_id: str
    tenant_id: str
    selected_agents: List[AgentScore] = field(default_factory=list)
    fallback_team_id: Optional[str] = None
    used_fallback: bool = False
    quiet_hours: bool = False
    geography_importance: float = 0.0
    price_band_importance: float = 0.0

    @property
    def top_agent(self) -> Optional[AgentScore]:
        return self.selected_agents[0] if self.selected_agents else None


def _clamp01(value: float) -> float:
    return min(1.0, max(0.0, value))


def _pct(value: float) -> str:
    return f"{value * 100:.0f}%"


def capacity_score(capacity_target: int, active_pipeline: int) -> float:
    """Share of the agent's capacity still free, in [0, 1]."""
    if capacity_target <= 0:
        return 0.0
    remaining = max(capacity_target - active_pipeline, 0)
    return _clamp01(remaining / capacity_target)


def score_agent(snapshot: AgentSnapshot, config: Optional[RoutingConfig] = None) -> Optional[AgentScore]:
    """Score an agent, or return None if consent or messaging readiness gates them."""
    if not snapshot.consent_ready or not snapshot.ten_dlc_ready:
        return None

    config = config or RoutingConfig()

    capacity = capacity_score(snapshot.capacity_target, snapshot.active_pipeline)
    performance = _clamp01(snapshot.kept_appt_rate)
    geography = _clamp01(snapshot.geography_fit)
    price_band = _clamp01(snapshot.price_band_fit)

    score = (
        capacity * config.capacity_weight
        + performance * config.performance_weight
        + geography * config.geography_weight
        + price_band * config.price_band_weight
    )

    reasons = [
        ScoreReason("CAPACITY", f"Capacity remaining {_pct(capacity)}", config.capacity_weight),
        ScoreReason("GEOGRAPHY", f"Geography fit {_pct(geography)}", config.geography_weight),
        ScoreReason("PRICE_BAND", f"Price-band fit {_pct(price_band)}", config.price_band_weight),
        ScoreReason("PERFORMANCE", f"Kept appointment rate {_pct(performance)}", config.performance_weight),
    ]

    return AgentScore(
        user_id=snapshot.user_id,
        full_name=snapshot.full_name,
        score=round(score, 4),
        reasons=reasons,
    )


def route_lead(routing_input: RoutingInput) -> RoutingResult:
    """Rank agents and decide whether the lead needs the fallback team.

    Agents qualify when they reach the minimum score and sit within the
    contention margin of the best score. With no qualifying agent the top
    scorer (if any) is still returned and the fallback team is set.
    """
    config = routing_input.config or RoutingConfig()

    scored = [score_agent(agent, config) for agent in routing_input.agents]
    ranked = sorted(
        (agent for agent in scored if agent is not None),
        key=lambda agent: agent.score,
        reverse=True,
    )

    best_score = ranked[0].score if ranked else 0.0
    selected = [
        agent for agent in ranked
        if agent.score >= config.minimum_score
        and agent.score >= best_score - config.contention_margin
    ]

    used_fallback = not selected
    chosen = ranked[:1] if used_fallback else selected

    return RoutingResult(
        lead_id=routing_input.lead_id,
        tenant_id=routing_input.tenant_id,
        selected_agents=chosen,
        fallback_team_id=routing_input.fallback_team_id if used_fallback else None,
        used_fallback=used_fallback,
        quiet_hours=routing_input.quiet_hours,
        geography_importance=routing_input.geography_importance,
        price_band_importance=routing_input.price_band_importance,
    )
