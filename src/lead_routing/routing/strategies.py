"""Assignment strategies applied once a rule's conditions have matched."""

import logging
from dataclasses import dataclass, field
from typing import List, Dict, Optional

from ..core.config import RoutingConfig
from ..core.scorer import AgentScore, RoutingInput, route_lead, score_agent
from ..rules.schema import AgentTarget, ParsedRule, PondTarget, TeamTarget
from ..storage.models import Listing, RoutingMode
from .results import CandidateStatus, DecisionCandidate
from .snapshots import CandidateSnapshot

logger = logging.getLogger(__name__)


@dataclass
class StrategyOutcome:
    """A strategy's decision for one matched rule."""

    selected_agent: Optional[AgentScore] = None
    assigned_agent_id: Optional[str] = None
    assigned_team_id: Optional[str] = None
    fallback_team_id: Optional[str] = None
    used_fallback: bool = False
    candidates: List[DecisionCandidate] = field(default_factory=list)
    reason_codes: List[str] = field(default_factory=list)
    # Matched rule reached nobody; recorded without an assignment or timers
    no_candidates: bool = False


def build_team_index(snapshots: Dict[str, CandidateSnapshot]) -> Dict[str, List[CandidateSnapshot]]:
    """Team id to member snapshots, in snapshot order."""
    index: Dict[str, List[CandidateSnapshot]] = {}
    for candidate in snapshots.values():
        for team_id in candidate.team_ids:
            index.setdefault(team_id, []).append(candidate)
    return index


def to_decision_candidate(candidate: CandidateSnapshot, assigned_agent_id: Optional[str],
                          score: Optional[AgentScore]) -> DecisionCandidate:
    if assigned_agent_id and candidate.agent_id == assigned_agent_id:
        status = CandidateStatus.SELECTED
    elif score is not None:
        status = CandidateStatus.REJECTED
    else:
        status = CandidateStatus.DISQUALIFIED

    if status == CandidateStatus.DISQUALIFIED:
        reasons = list(candidate.gating_reasons)
    else:
        reasons = [reason.description for reason in score.reasons] if score else []

    return DecisionCandidate(
        agent_id=candidate.agent_id,
        full_name=candidate.snapshot.full_name,
        status=status,
        score=score.score if score else None,
        reasons=reasons,
        capacity_remaining=candidate.capacity_remaining,
        consent_ready=candidate.snapshot.consent_ready,
        ten_dlc_ready=candidate.snapshot.ten_dlc_ready,
        team_ids=list(candidate.team_ids),
    )


class AssignmentStrategy:
    """Base class for rule modes."""

    mode: RoutingMode

    def __init__(self, config: Optional[RoutingConfig] = None):
        self.config = config or RoutingConfig()

    def apply(
        self,
        rule: ParsedRule,
        snapshots: Dict[str, CandidateSnapshot],
        team_index: Dict[str, List[CandidateSnapshot]],
        listing: Optional[Listing] = None,
        quiet_hours: bool = False,
        lead_id: Optional[str] = None,
    ) -> Optional[StrategyOutcome]:
        raise NotImplementedError

    def _score(self, candidate: CandidateSnapshot) -> Optional[AgentScore]:
        if candidate.is_gated:
            return None
        return score_agent(candidate.snapshot, self.config)


class FirstMatchStrategy(AssignmentStrategy):
    """Walk targets in order; the first usable one wins.

    Returns None when every target was unusable and neither a POND target
    nor the rule's fallback team gives the lead somewhere to go.
    """

    mode = RoutingMode.FIRST_MATCH

    def apply(self, rule, snapshots, team_index, listing=None, quiet_hours=False, lead_id=None):
        reason_codes = ["RULE_MATCHED"]
        scores = {agent_id: self._score(candidate) for agent_id, candidate in snapshots.items()}

        assigned: Optional[CandidateSnapshot] = None
        fallback_team_id: Optional[str] = None
        used_fallback = False

        for target in rule.config.targets:
            if isinstance(target, AgentTarget):
                candidate = snapshots.get(target.id)
                if candidate is None or candidate.is_gated or scores.get(target.id) is None:
                    continue
                assigned = candidate
                reason_codes.append("DIRECT_AGENT")
                break

            if isinstance(target, TeamTarget):
                available = [
                    member for member in team_index.get(target.id, [])
                    if not member.is_gated and scores.get(member.agent_id) is not None
                ]
                if not available:
                    continue
                # sorted() is stable, so equal scores keep snapshot order
                ranked = sorted(available, key=lambda member: scores[member.agent_id].score, reverse=True)
                assigned = ranked[0]
                reason_codes.append("ROUND_ROBIN" if target.strategy == "ROUND_ROBIN" else "BEST_FIT")
                break

            if isinstance(target, PondTarget):
                fallback_team_id = target.id
                used_fallback = True
                reason_codes.append("TEAM_POND")
                break

        if assigned is None and not used_fallback:
            fallback_team_id = rule.config.fallback_team_id
            if fallback_team_id is None:
                # Not a final decision: the engine records TARGETS_EXHAUSTED and
                # tries the next rule, so a gated direct-agent rule falls through
                # to a lower-priority team rule instead of ending as a fallback.
                logger.info(f"Rule {rule.id} matched but no target could take the lead")
                return None
            used_fallback = True
            reason_codes.append("TEAM_POND")

        assigned_id = assigned.agent_id if assigned else None
        candidates = [
            to_decision_candidate(candidate, assigned_id, scores.get(candidate.agent_id))
            for candidate in snapshots.values()
        ]

        return StrategyOutcome(
            selected_agent=scores.get(assigned_id) if assigned_id else None,
            assigned_agent_id=assigned_id,
            assigned_team_id=assigned.team_ids[0] if assigned and assigned.team_ids else None,
            fallback_team_id=fallback_team_id if used_fallback else rule.config.fallback_team_id,
            used_fallback=used_fallback,
            candidates=candidates,
            reason_codes=reason_codes,
        )


class ScoreAndAssignStrategy(AssignmentStrategy):
    """Pool every reachable agent and let the ranking function choose."""

    mode = RoutingMode.SCORE_AND_ASSIGN

    def apply(self, rule, snapshots, team_index, listing=None, quiet_hours=False, lead_id=None):
        reason_codes = ["RULE_MATCHED"]

        considered: Dict[str, CandidateSnapshot] = {}
        for target in rule.config.targets:
            if isinstance(target, AgentTarget):
                candidate = snapshots.get(target.id)
                if candidate is not None:
                    considered[candidate.agent_id] = candidate
            elif isinstance(target, TeamTarget):
                for member in team_index.get(target.id, []):
                    considered[member.agent_id] = member

        if not considered:
            reason_codes.append("NO_CANDIDATES")
            return StrategyOutcome(
                fallback_team_id=rule.config.fallback_team_id,
                used_fallback=True,
                reason_codes=reason_codes,
                no_candidates=True,
            )

        scores = {agent_id: score_agent(c.snapshot, self.config) for agent_id, c in considered.items()}
        result = route_lead(RoutingInput(
            lead_id=lead_id or "",
            tenant_id=rule.rule.tenant_id,
            agents=[candidate.snapshot for candidate in considered.values()],
            geography_importance=0.3 if listing and listing.city else 0.15,
            price_band_importance=0.2 if listing and listing.price else 0.1,
            quiet_hours=quiet_hours,
            fallback_team_id=rule.config.fallback_team_id,
            config=self.config,
        ))

        selected = result.top_agent
        assigned = considered.get(selected.user_id) if selected else None
        candidates = [
            to_decision_candidate(candidate, selected.user_id if selected else None, scores.get(agent_id))
            for agent_id, candidate in considered.items()
        ]

        return StrategyOutcome(
            selected_agent=selected,
            assigned_agent_id=selected.user_id if selected else None,
            assigned_team_id=assigned.team_ids[0] if assigned and assigned.team_ids else None,
            fallback_team_id=result.fallback_team_id or rule.config.fallback_team_id,
            used_fallback=result.used_fallback or selected is None,
            candidates=candidates,
            reason_codes=reason_codes,
        )


_STRATEGIES = {
    RoutingMode.FIRST_MATCH: FirstMatchStrategy,
    RoutingMode.SCORE_AND_ASSIGN: ScoreAndAssignStrategy,
}


def get_strategy(mode: RoutingMode, config: Optional[RoutingConfig] = None) -> AssignmentStrategy:
    return _STRATEGIES[mode](config)
