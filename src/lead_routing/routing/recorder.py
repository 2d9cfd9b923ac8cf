"""Persist routing decisions and announce them."""

import logging
from datetime import datetime, timedelta
from typing import List, Dict, Optional, Any, Tuple

from ..events.outbox import OutboxPublisher, RoutingEvent, build_event, publish_safely
from ..rules.evaluator import EvaluationResult, RoutingContext
from ..rules.schema import ParsedRule
from ..storage.database import RoutingDatabase
from ..storage.models import (
    Assignment,
    AssignmentReason,
    LeadRouteEvent,
    RoutingMode,
    RoutingRule,
    SlaTimer,
    SlaType,
)
from .results import RouteAssignmentResult
from .strategies import StrategyOutcome

logger = logging.getLogger(__name__)

POND_REASON_NOTES = "Fallback pond assignment"


def pond_assignment(tenant_id: str, lead_id: str, team_id: str, now: datetime,
                    notes: str = POND_REASON_NOTES) -> Assignment:
    """Team-level assignment used when no agent takes the lead."""
    return Assignment(
        tenant_id=tenant_id,
        person_id=lead_id,
        team_id=team_id,
        score=0.0,
        reasons=[AssignmentReason(type="TEAM_POND", weight=1.0, notes=notes)],
        created_at=now,
    )


def prepare_sla_timers(rule: RoutingRule, tenant_id: str, lead_id: str,
                       assigned_agent_id: Optional[str], now: datetime) -> Tuple[List[SlaTimer], Optional[datetime]]:
    """Timers for each positive SLA field on the rule, plus the first-touch deadline."""
    timers = []
    first_touch_due = None

    for sla_type, minutes in (
        (SlaType.FIRST_TOUCH, rule.sla_first_touch_minutes),
        (SlaType.KEPT_APPOINTMENT, rule.sla_kept_appointment_minutes),
    ):
        if not minutes or minutes <= 0:
            continue
        due_at = now + timedelta(minutes=minutes)
        timers.append(SlaTimer(
            tenant_id=tenant_id,
            lead_id=lead_id,
            type=sla_type,
            due_at=due_at,
            rule_id=rule.id,
            assigned_agent_id=assigned_agent_id,
            created_at=now,
            updated_at=now,
        ))
        if sla_type == SlaType.FIRST_TOUCH:
            first_touch_due = due_at

    return timers, first_touch_due


def _context_payload(context: RoutingContext) -> Dict[str, Any]:
    return {
        "source": context.person.source,
        "buyer_rep_status": context.person.buyer_rep_status,
        "listing": context.listing.to_dict() if context.listing else None,
        "quiet_hours": context.quiet_hours,
    }


class DecisionRecorder:
    """Writes assignment, SLA timers and audit event together, then publishes."""

    def __init__(self, db: RoutingDatabase, publisher: OutboxPublisher):
        self.db = db
        self.publisher = publisher

    def record(
        self,
        tenant_id: str,
        lead_id: str,
        rule: ParsedRule,
        outcome: StrategyOutcome,
        evaluation: EvaluationResult,
        context: RoutingContext,
        actor_user_id: Optional[str] = None,
        prior_reason_codes: Optional[List[str]] = None,
    ) -> RouteAssignmentResult:
        """Record a decision for a matched rule."""
        now = context.now
        reason_codes = list(prior_reason_codes or []) + outcome.reason_codes

        assignment = None
        timers: List[SlaTimer] = []
        first_touch_due = None

        if not outcome.no_candidates:
            if outcome.assigned_agent_id:
                selected = outcome.selected_agent
                assignment = Assignment(
                    tenant_id=tenant_id,
                    person_id=lead_id,
                    agent_id=outcome.assigned_agent_id,
                    team_id=outcome.assigned_team_id,
                    score=selected.score if selected else 0.0,
                    reasons=[
                        AssignmentReason(type=reason.type, weight=reason.weight, notes=reason.description)
                        for reason in (selected.reasons if selected else [])
                    ],
                    created_at=now,
                )
            elif outcome.fallback_team_id:
                assignment = pond_assignment(tenant_id, lead_id, outcome.fallback_team_id, now)

            timers, first_touch_due = prepare_sla_timers(
                rule.rule, tenant_id, lead_id, outcome.assigned_agent_id, now
            )

        event = LeadRouteEvent(
            tenant_id=tenant_id,
            lead_id=lead_id,
            matched_rule_id=rule.id,
            mode=rule.mode.value,
            payload={
                "rule": {
                    "id": rule.rule.id,
                    "name": rule.rule.name,
                    "priority": rule.rule.priority,
                    "mode": rule.mode.value,
                },
                "context": _context_payload(context),
                "evaluation": evaluation.to_dict(),
            },
            candidates=[candidate.to_dict() for candidate in outcome.candidates],
            assigned_agent_id=outcome.assigned_agent_id,
            fallback_used=outcome.used_fallback,
            reason_codes=reason_codes,
            sla_due_at=first_touch_due,
            actor_user_id=actor_user_id,
            created_at=now,
        )

        self.db.record_decision(event, assignment=assignment, timers=timers)
        logger.info(
            f"Lead {lead_id} routed by rule {rule.id}: agent={outcome.assigned_agent_id} "
            f"fallback_team={outcome.fallback_team_id} codes={reason_codes}"
        )

        # Every matched-rule decision is announced, including ones with no assignee
        publish_safely(self.publisher, build_event(
            tenant_id,
            RoutingEvent.ASSIGNED,
            now,
            lead_id,
            {
                "rule_id": rule.id,
                "assigned_agent_id": outcome.assigned_agent_id,
                "fallback_team_id": outcome.fallback_team_id,
                "reason_codes": reason_codes,
                "event_id": event.id,
            },
        ))

        return RouteAssignmentResult(
            lead_id=lead_id,
            tenant_id=tenant_id,
            event_id=event.id,
            selected_agents=[outcome.selected_agent] if outcome.selected_agent else [],
            fallback_team_id=outcome.fallback_team_id,
            used_fallback=outcome.used_fallback,
            quiet_hours=context.quiet_hours,
            rule_id=rule.id,
            rule_name=rule.rule.name,
            candidates=outcome.candidates,
            evaluation=evaluation,
            reason_codes=reason_codes,
            sla_due_at=event.sla_due_at,
        )

    def record_no_match(
        self,
        tenant_id: str,
        lead_id: str,
        context: RoutingContext,
        reason_codes: List[str],
        actor_user_id: Optional[str] = None,
    ) -> RouteAssignmentResult:
        """Record that no rule produced a decision. No assignment is made."""
        codes = list(reason_codes) + ["NO_RULE_MATCH"]
        event = LeadRouteEvent(
            tenant_id=tenant_id,
            lead_id=lead_id,
            matched_rule_id=None,
            mode=RoutingMode.FIRST_MATCH.value,
            payload={"context": _context_payload(context), "evaluation": None},
            candidates=[],
            fallback_used=True,
            reason_codes=codes,
            actor_user_id=actor_user_id,
            created_at=context.now,
        )
        self.db.record_decision(event)
        logger.info(f"No routing rule matched lead {lead_id} for tenant {tenant_id}: {codes}")

        return RouteAssignmentResult(
            lead_id=lead_id,
            tenant_id=tenant_id,
            event_id=event.id,
            used_fallback=True,
            quiet_hours=context.quiet_hours,
            evaluation=EvaluationResult(matched=False),
            reason_codes=codes,
        )
