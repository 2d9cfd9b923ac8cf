"""Routing engine: walk the tenant's rules and record one decision per lead."""

import logging
from typing import Optional

from ..core.clock import Clock, SystemClock
from ..core.config import RoutingConfig
from ..core.quiet_hours import is_quiet_hours
from ..errors import RuleParseError, UnknownTenantError
from ..events.outbox import OutboxPublisher
from ..rules.evaluator import PersonContext, RoutingContext, evaluate_conditions
from ..rules.schema import load_rule
from ..storage.database import RoutingDatabase
from ..storage.models import Lead, Listing
from .recorder import DecisionRecorder
from .results import RouteAssignmentResult
from .snapshots import CandidateSnapshotBuilder, DEFAULT_LOOKBACK_DAYS
from .strategies import build_team_index, get_strategy

logger = logging.getLogger(__name__)


class RoutingEngine:
    """Assigns leads to agents, teams or ponds.

    Rules are tried in (priority, created_at) order. A rule that fails
    validation is skipped with RULE_PARSE_FAILED; a FIRST_MATCH rule whose
    targets all fail and that has nowhere to fall back to is skipped with
    TARGETS_EXHAUSTED. The first rule that produces a decision is recorded.
    Every call records exactly one LeadRouteEvent.
    """

    def __init__(
        self,
        db: RoutingDatabase,
        publisher: OutboxPublisher,
        clock: Optional[Clock] = None,
        config: Optional[RoutingConfig] = None,
        lookback_days: int = DEFAULT_LOOKBACK_DAYS,
    ):
        self.db = db
        self.clock = clock or SystemClock()
        self.config = config or RoutingConfig()
        self.snapshot_builder = CandidateSnapshotBuilder(db, lookback_days=lookback_days)
        self.recorder = DecisionRecorder(db, publisher)

    def assign(
        self,
        tenant_id: str,
        lead: Lead,
        listing: Optional[Listing] = None,
        actor_user_id: Optional[str] = None,
    ) -> RouteAssignmentResult:
        """Route one lead. Raises UnknownTenantError before anything is written."""
        now = self.clock.now()

        tenant = self.db.get_tenant(tenant_id)
        if tenant is None:
            raise UnknownTenantError(tenant_id)

        person = PersonContext(
            source=lead.source,
            buyer_rep_status=lead.buyer_rep_status,
            consent=self.db.get_consent_state(tenant_id, lead.id),
        )
        quiet_hours = is_quiet_hours(now, tenant.timezone, tenant.quiet_hours_start, tenant.quiet_hours_end)
        context = RoutingContext(
            now=now,
            tenant_timezone=tenant.timezone,
            person=person,
            listing=listing,
            quiet_hours=quiet_hours,
        )

        snapshots = self.snapshot_builder.build(
            tenant_id,
            now,
            listing=listing,
            has_consent=person.has_granted_channel,
            ten_dlc_ready=tenant.ten_dlc_ready,
        )
        team_index = build_team_index(snapshots)

        reason_codes = []
        for rule in self.db.list_rules(tenant_id, enabled_only=True):
            try:
                parsed = load_rule(rule)
            except RuleParseError as e:
                logger.warning(f"Skipping routing rule {rule.id}: {e}")
                reason_codes.append("RULE_PARSE_FAILED")
                continue

            evaluation = evaluate_conditions(parsed.config.conditions, context)
            if not evaluation.matched:
                continue

            strategy = get_strategy(parsed.mode, self.config)
            outcome = strategy.apply(
                parsed,
                snapshots,
                team_index,
                listing=listing,
                quiet_hours=quiet_hours,
                lead_id=lead.id,
            )
            if outcome is None:
                reason_codes.append("TARGETS_EXHAUSTED")
                continue

            return self.recorder.record(
                tenant_id,
                lead.id,
                parsed,
                outcome,
                evaluation,
                context,
                actor_user_id=actor_user_id,
                prior_reason_codes=reason_codes,
            )

        return self.recorder.record_no_match(
            tenant_id,
            lead.id,
            context,
            reason_codes,
            actor_user_id=actor_user_id,
        )
