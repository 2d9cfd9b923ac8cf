"""SLA timer sweeps, breach escalation and satisfy signals."""

import logging
from datetime import datetime
from typing import Dict, Optional

from ..core.clock import Clock, SystemClock, ensure_utc
from ..errors import RuleParseError
from ..events.outbox import OutboxPublisher, RoutingEvent, build_event, publish_safely
from ..routing.recorder import pond_assignment
from ..rules.schema import parse_fallback
from ..storage.database import RoutingDatabase
from ..storage.models import SlaTimer, SlaType

logger = logging.getLogger(__name__)

BREACH_POND_NOTES = "SLA breached, routed to pond fallback"

BREACHED_CODES = {
    SlaType.FIRST_TOUCH: "FIRST_TOUCH_BREACHED",
    SlaType.KEPT_APPOINTMENT: "KEPT_APPOINTMENT_BREACHED",
}

SATISFIED_CODES = {
    SlaType.FIRST_TOUCH: "FIRST_TOUCH_SATISFIED",
    SlaType.KEPT_APPOINTMENT: "KEPT_APPOINTMENT_SATISFIED",
}


class SlaProcessor:
    """Drives SLA timers from PENDING to BREACHED or SATISFIED.

    Every transition is a conditional write on status = PENDING, so
    overlapping sweeps and repeated satisfy signals move a timer at most once.
    """

    def __init__(self, db: RoutingDatabase, publisher: OutboxPublisher, clock: Optional[Clock] = None):
        self.db = db
        self.publisher = publisher
        self.clock = clock or SystemClock()

    def process_sla_timers(self, tenant_id: Optional[str] = None) -> Dict[str, int]:
        """Breach every pending timer that is due. Returns how many this run breached."""
        now = self.clock.now()
        timers = self.db.list_due_timers(now, tenant_id=tenant_id)

        processed = 0
        for timer in timers:
            try:
                if self._handle_breach(timer, now):
                    processed += 1
            except Exception:
                logger.exception(f"Failed to process SLA timer {timer.id} for lead {timer.lead_id}")

        if timers:
            logger.info(f"SLA sweep: {processed} of {len(timers)} due timers breached")
        return {"processed": processed}

    def _fallback_team_for(self, timer: SlaTimer) -> Optional[str]:
        if not timer.rule_id:
            return None
        rule = self.db.get_rule(timer.tenant_id, timer.rule_id)
        if rule is None:
            return None
        try:
            fallback = parse_fallback(rule.fallback, rule_id=rule.id)
        except RuleParseError as e:
            logger.warning(f"Timer {timer.id}: cannot escalate, {e}")
            return None
        return fallback.team_id if fallback else None

    def _escalate(self, timer: SlaTimer, now: datetime) -> Optional[str]:
        """Write the pond assignment for a breached timer; returns the pond team, if any."""
        fallback_team_id = self._fallback_team_for(timer)
        if fallback_team_id:
            self.db.create_assignment(pond_assignment(
                timer.tenant_id, timer.lead_id, fallback_team_id, now, notes=BREACH_POND_NOTES
            ))
        return fallback_team_id

    def _handle_breach(self, timer: SlaTimer, now: datetime) -> bool:
        if not self.db.breach_timer(timer, now, BREACHED_CODES[timer.type]):
            logger.debug(f"Timer {timer.id} already moved by another sweep")
            return False

        # The flip has committed; the breach event goes out even if escalation fails
        try:
            fallback_team_id = self._escalate(timer, now)
        except Exception:
            logger.exception(f"Pond fallback failed for breached timer {timer.id} (lead {timer.lead_id})")
            fallback_team_id = None

        logger.info(
            f"{timer.type.value} SLA breached for lead {timer.lead_id} "
            f"(timer {timer.id}, fallback team {fallback_team_id})"
        )

        publish_safely(self.publisher, build_event(
            timer.tenant_id,
            RoutingEvent.SLA_BREACHED,
            now,
            timer.lead_id,
            {
                "timer_id": timer.id,
                "type": timer.type.value,
                "rule_id": timer.rule_id,
                "fallback_team_id": fallback_team_id,
            },
        ))
        return True

    def _satisfy(self, sla_type: SlaType, tenant_id: str, lead_id: str,
                 occurred_at: Optional[datetime]) -> Dict[str, int]:
        occurred_at = ensure_utc(occurred_at) if occurred_at else self.clock.now()

        timer_ids = self.db.satisfy_timers(
            tenant_id,
            lead_id,
            sla_type,
            occurred_at,
            SATISFIED_CODES[sla_type],
            stamp_event=sla_type == SlaType.FIRST_TOUCH,
        )
        if not timer_ids:
            return {"updated": 0}

        logger.info(f"{sla_type.value} SLA satisfied for lead {lead_id} ({len(timer_ids)} timers)")
        publish_safely(self.publisher, build_event(
            tenant_id,
            RoutingEvent.SLA_SATISFIED,
            occurred_at,
            lead_id,
            {"lead_id": lead_id, "type": sla_type.value, "timer_ids": timer_ids},
        ))
        return {"updated": len(timer_ids)}

    def record_first_touch(self, tenant_id: str, lead_id: str,
                           occurred_at: Optional[datetime] = None) -> Dict[str, int]:
        """Satisfy the lead's pending first-touch timers. Idempotent."""
        return self._satisfy(SlaType.FIRST_TOUCH, tenant_id, lead_id, occurred_at)

    def record_kept_appointment(self, tenant_id: str, lead_id: str,
                                occurred_at: Optional[datetime] = None) -> Dict[str, int]:
        """Satisfy the lead's pending kept-appointment timers. Idempotent."""
        return self._satisfy(SlaType.KEPT_APPOINTMENT, tenant_id, lead_id, occurred_at)
