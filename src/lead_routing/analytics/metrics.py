"""Routing dashboards: capacity, SLA status and kept-appointment rates."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Dict, Optional, Any

from ..core.clock import Clock, SystemClock
from ..errors import RuleParseError
from ..routing.snapshots import CandidateSnapshotBuilder, DEFAULT_LOOKBACK_DAYS
from ..rules.schema import parse_fallback
from ..storage.database import RoutingDatabase
from ..storage.models import SlaStatus, SlaTimer, SlaType

logger = logging.getLogger(__name__)

SLA_DASHBOARD_LIMIT = 100
MAX_EVENTS_PAGE = 100
DEFAULT_EVENTS_PAGE = 25


@dataclass
class UnescalatedBreach:
    """A breached timer whose pond fallback was never written."""

    timer_id: str
    lead_id: str
    rule_id: str
    fallback_team_id: str
    breached_at: Optional[datetime]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timer_id": self.timer_id,
            "lead_id": self.lead_id,
            "rule_id": self.rule_id,
            "fallback_team_id": self.fallback_team_id,
            "breached_at": self.breached_at.isoformat() if self.breached_at else None,
        }


def _average_first_touch(timers: List[SlaTimer]) -> Dict[str, Any]:
    satisfied = [t for t in timers if t.status == SlaStatus.SATISFIED and t.satisfied_at]
    if not satisfied:
        return {"count": 0, "average_minutes": None}

    total_minutes = sum(
        (t.satisfied_at - t.created_at).total_seconds() / 60 for t in satisfied
    )
    return {
        "count": len(satisfied),
        "average_minutes": round(total_minutes / len(satisfied), 1),
    }


def _breach_summary(timers: List[SlaTimer]) -> Dict[str, Any]:
    if not timers:
        return {"total": 0, "breached": 0, "percentage": 0}
    breached = len([t for t in timers if t.status == SlaStatus.BREACHED])
    return {
        "total": len(timers),
        "breached": breached,
        "percentage": round(breached / len(timers) * 100, 1),
    }


def _kept_rates(timers: List[SlaTimer], key: str) -> Dict[str, Dict[str, int]]:
    """Group kept-appointment timers by ``rule_id`` or ``assigned_agent_id``."""
    aggregates: Dict[str, Dict[str, int]] = {}
    for timer in timers:
        group = getattr(timer, key)
        if not group:
            continue
        current = aggregates.setdefault(group, {"total": 0, "satisfied": 0})
        current["total"] += 1
        if timer.status == SlaStatus.SATISFIED:
            current["satisfied"] += 1
    return aggregates


def _rate(data: Dict[str, int]) -> float:
    if data["total"] == 0:
        return 0
    return round(data["satisfied"] / data["total"] * 100, 1)


class MetricsAggregator:
    """Read-only views over assignments, timers and route events."""

    def __init__(
        self,
        db: RoutingDatabase,
        clock: Optional[Clock] = None,
        lookback_days: int = DEFAULT_LOOKBACK_DAYS,
    ):
        self.db = db
        self.clock = clock or SystemClock()
        self.snapshot_builder = CandidateSnapshotBuilder(db, lookback_days=lookback_days)

    def get_capacity_view(self, tenant_id: str) -> List[Dict[str, Any]]:
        """Per-agent pipeline and capacity, computed as if consent and messaging were ready."""
        snapshots = self.snapshot_builder.build(
            tenant_id,
            self.clock.now(),
            listing=None,
            has_consent=True,
            ten_dlc_ready=True,
        )
        return [
            {
                "agent_id": candidate.agent_id,
                "name": candidate.snapshot.full_name,
                "active_pipeline": candidate.snapshot.active_pipeline,
                "capacity_target": candidate.snapshot.capacity_target,
                "capacity_remaining": candidate.capacity_remaining,
                "kept_appt_rate": candidate.snapshot.kept_appt_rate,
                "team_ids": candidate.team_ids,
            }
            for candidate in snapshots.values()
        ]

    def get_sla_dashboard(self, tenant_id: str) -> Dict[str, Any]:
        """Status counts over the earliest-due timers, plus the timers themselves."""
        timers = self.db.list_timers(tenant_id, limit=SLA_DASHBOARD_LIMIT)

        summary = {"total": 0, "pending": 0, "breached": 0, "satisfied": 0}
        for timer in timers:
            summary["total"] += 1
            summary[timer.status.value.lower()] += 1

        return {
            "summary": summary,
            "timers": [timer.to_dict() for timer in timers],
        }

    def get_metrics(self, tenant_id: str) -> Dict[str, Any]:
        """First-touch speed, breach percentages and kept rates per rule and agent."""
        first_touch = self.db.list_timers(
            tenant_id,
            sla_type=SlaType.FIRST_TOUCH,
            statuses=[SlaStatus.SATISFIED, SlaStatus.BREACHED],
        )
        kept = self.db.list_timers(tenant_id, sla_type=SlaType.KEPT_APPOINTMENT)

        return {
            "first_touch": _average_first_touch(first_touch),
            "breach": {
                "first_touch": _breach_summary(first_touch),
                "kept_appointment": _breach_summary(kept),
            },
            "rules": self._rule_metrics(tenant_id, kept),
            "agents": self._agent_metrics(tenant_id, kept),
        }

    def _rule_metrics(self, tenant_id: str, kept: List[SlaTimer]) -> List[Dict[str, Any]]:
        rule_names = {rule.id: rule.name for rule in self.db.list_rules(tenant_id)}
        return [
            {
                "rule_id": rule_id,
                "rule_name": rule_names.get(rule_id, "Unknown Rule"),
                "total": data["total"],
                "kept_rate": _rate(data),
            }
            for rule_id, data in _kept_rates(kept, "rule_id").items()
        ]

    def _agent_metrics(self, tenant_id: str, kept: List[SlaTimer]) -> List[Dict[str, Any]]:
        aggregates = _kept_rates(kept, "assigned_agent_id")
        agent_names = self.db.get_agent_names(tenant_id, aggregates.keys())
        return [
            {
                "agent_id": agent_id,
                "agent_name": agent_names.get(agent_id) or "Unknown Agent",
                "total": data["total"],
                "kept_rate": _rate(data),
            }
            for agent_id, data in aggregates.items()
        ]

    def list_route_events(self, tenant_id: str, limit: Optional[int] = None,
                          cursor: Optional[str] = None) -> List[Dict[str, Any]]:
        """Newest-first page of route events. ``limit`` is clamped to 1..100."""
        limit = DEFAULT_EVENTS_PAGE if limit is None else limit
        limit = min(max(limit, 1), MAX_EVENTS_PAGE)
        events = self.db.list_route_events(tenant_id, limit=limit, cursor=cursor)
        return [event.to_dict() for event in events]

    def find_unescalated_breaches(self, tenant_id: str) -> List[UnescalatedBreach]:
        """Breached timers whose rule names a fallback team but no pond assignment followed."""
        breached = self.db.list_timers(tenant_id, statuses=[SlaStatus.BREACHED])
        missing = []
        fallback_cache: Dict[str, Optional[str]] = {}

        for timer in breached:
            if not timer.rule_id:
                continue
            if timer.rule_id not in fallback_cache:
                fallback_cache[timer.rule_id] = self._fallback_team(tenant_id, timer.rule_id)
            team_id = fallback_cache[timer.rule_id]
            if not team_id:
                continue

            ponds = [
                a for a in self.db.list_assignments(tenant_id, person_id=timer.lead_id)
                if a.agent_id is None and a.team_id == team_id
                and (timer.breached_at is None or a.created_at >= timer.breached_at)
            ]
            if not ponds:
                missing.append(UnescalatedBreach(
                    timer_id=timer.id,
                    lead_id=timer.lead_id,
                    rule_id=timer.rule_id,
                    fallback_team_id=team_id,
                    breached_at=timer.breached_at,
                ))

        if missing:
            logger.warning(f"{len(missing)} breached timers without pond fallback for tenant {tenant_id}")
        return missing

    def _fallback_team(self, tenant_id: str, rule_id: str) -> Optional[str]:
        rule = self.db.get_rule(tenant_id, rule_id)
        if rule is None:
            return None
        try:
            fallback = parse_fallback(rule.fallback, rule_id=rule.id)
        except RuleParseError:
            return None
        return fallback.team_id if fallback else None
