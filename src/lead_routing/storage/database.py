"""SQLite database for routing rules, assignments, audit events and SLA timers."""

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Optional, List, Dict, Any, Generator, Iterable

from ..core.clock import ensure_utc
from .models import (
    Agent,
    AgentRole,
    Assignment,
    AssignmentReason,
    Consent,
    ConsentStatus,
    LeadRouteEvent,
    MessageChannel,
    OutboxEvent,
    RoutingRule,
    SlaStatus,
    SlaTimer,
    SlaType,
    Tenant,
    Tour,
    TourStatus,
    ACTIVE_TOUR_STATUSES,
    OUTCOME_TOUR_STATUSES,
    ROUTABLE_ROLES,
)

logger = logging.getLogger(__name__)


def _ts(value: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime so that string order matches time order."""
    if value is None:
        return None
    return ensure_utc(value).isoformat(timespec="microseconds")


def _dt(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return ensure_utc(datetime.fromisoformat(value))


def _dump(value: Any) -> Optional[str]:
    if value is None:
        return None
    return json.dumps(value, default=str)


def _load(value: Optional[str]) -> Any:
    """Decode stored JSON; undecodable text is returned as-is for the caller to reject."""
    if value is None:
        return None
    try:
        return json.loads(value)
    except (TypeError, ValueError):
        return value


def _bool_or_none(value) -> Optional[bool]:
    return None if value is None else bool(value)


class RoutingDatabase:
    """SQLite-backed store for the routing engine and its collaborators' read models."""

    def __init__(self, db_path: Optional[Path] = None):
        """Initialize database connection."""
        if db_path is None:
            db_path = Path.home() / ".lead-routing" / "routing.db"

        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._init_db()

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Get a database connection; commits on success, rolls back on error."""
        conn = sqlite3.connect(self.db_path, timeout=30)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self):
        """Initialize database schema."""
        with self._get_connection() as conn:
            cursor = conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS tenants (
                    id TEXT PRIMARY KEY,
                    name TEXT,
                    timezone TEXT NOT NULL DEFAULT 'America/New_York',
                    quiet_hours_start INTEGER NOT NULL DEFAULT 21,
                    quiet_hours_end INTEGER NOT NULL DEFAULT 8,
                    ten_dlc_ready INTEGER NOT NULL DEFAULT 0
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS agents (
                    id TEXT PRIMARY KEY,
                    tenant_id TEXT NOT NULL,
                    first_name TEXT,
                    last_name TEXT,
                    role TEXT NOT NULL DEFAULT 'AGENT',
                    consent_ready INTEGER,
                    messaging_ready INTEGER,
                    created_at TIMESTAMP
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS team_memberships (
                    tenant_id TEXT NOT NULL,
                    team_id TEXT NOT NULL,
                    agent_id TEXT NOT NULL,
                    PRIMARY KEY (team_id, agent_id)
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS tours (
                    id TEXT PRIMARY KEY,
                    tenant_id TEXT NOT NULL,
                    agent_id TEXT NOT NULL,
                    person_id TEXT,
                    status TEXT NOT NULL,
                    listing_city TEXT,
                    listing_price REAL,
                    start_at TIMESTAMP
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS consents (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    tenant_id TEXT NOT NULL,
                    person_id TEXT NOT NULL,
                    channel TEXT NOT NULL,
                    status TEXT NOT NULL,
                    captured_at TIMESTAMP
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS routing_rules (
                    id TEXT PRIMARY KEY,
                    tenant_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    priority INTEGER NOT NULL DEFAULT 0,
                    mode TEXT NOT NULL,
                    enabled INTEGER NOT NULL DEFAULT 1,
                    conditions_json TEXT,
                    targets_json TEXT,
                    fallback_json TEXT,
                    sla_first_touch_minutes INTEGER,
                    sla_kept_appointment_minutes INTEGER,
                    created_by TEXT,
                    created_at TIMESTAMP NOT NULL,
                    updated_at TIMESTAMP NOT NULL
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS assignments (
                    id TEXT PRIMARY KEY,
                    tenant_id TEXT NOT NULL,
                    person_id TEXT NOT NULL,
                    agent_id TEXT,
                    team_id TEXT,
                    score REAL NOT NULL DEFAULT 0,
                    created_at TIMESTAMP NOT NULL
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS assignment_reasons (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    assignment_id TEXT NOT NULL,
                    type TEXT NOT NULL,
                    weight REAL NOT NULL DEFAULT 0,
                    notes TEXT,

                    FOREIGN KEY (assignment_id) REFERENCES assignments(id) ON DELETE CASCADE
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS lead_route_events (
                    id TEXT PRIMARY KEY,
                    tenant_id TEXT NOT NULL,
                    lead_id TEXT NOT NULL,
                    matched_rule_id TEXT,
                    mode TEXT NOT NULL,
                    payload_json TEXT,
                    candidates_json TEXT,
                    assigned_agent_id TEXT,
                    fallback_used INTEGER NOT NULL DEFAULT 0,
                    reason_codes_json TEXT,
                    sla_due_at TIMESTAMP,
                    sla_satisfied_at TIMESTAMP,
                    sla_breached_at TIMESTAMP,
                    actor_user_id TEXT,
                    created_at TIMESTAMP NOT NULL
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS lead_sla_timers (
                    id TEXT PRIMARY KEY,
                    tenant_id TEXT NOT NULL,
                    lead_id TEXT NOT NULL,
                    rule_id TEXT,
                    assigned_agent_id TEXT,
                    type TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'PENDING',
                    due_at TIMESTAMP NOT NULL,
                    satisfied_at TIMESTAMP,
                    breached_at TIMESTAMP,
                    created_at TIMESTAMP NOT NULL,
                    updated_at TIMESTAMP NOT NULL
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS outbox_events (
                    id TEXT PRIMARY KEY,
                    tenant_id TEXT NOT NULL,
                    event_type TEXT NOT NULL,
                    occurred_at TIMESTAMP NOT NULL,
                    resource_json TEXT,
                    data_json TEXT,
                    created_at TIMESTAMP NOT NULL,
                    delivered_at TIMESTAMP
                )
            """)

            # Indexes for common queries
            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_rules_tenant_order
                ON routing_rules(tenant_id, enabled, priority, created_at)
            """)
            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_timers_due ON lead_sla_timers(status, due_at)
            """)
            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_timers_lead
                ON lead_sla_timers(tenant_id, lead_id, type, status)
            """)
            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_events_lead ON lead_route_events(tenant_id, lead_id)
            """)
            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_events_created ON lead_route_events(tenant_id, created_at)
            """)
            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_tours_agent ON tours(tenant_id, agent_id, status)
            """)
            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_assignments_person ON assignments(tenant_id, person_id)
            """)

    # === ROW CONVERSION ===

    def _row_to_rule(self, row: sqlite3.Row) -> RoutingRule:
        return RoutingRule(
            id=row["id"],
            tenant_id=row["tenant_id"],
            name=row["name"],
            priority=row["priority"],
            mode=row["mode"],
            enabled=bool(row["enabled"]),
            conditions=_load(row["conditions_json"]),
            targets=_load(row["targets_json"]),
            fallback=_load(row["fallback_json"]),
            sla_first_touch_minutes=row["sla_first_touch_minutes"],
            sla_kept_appointment_minutes=row["sla_kept_appointment_minutes"],
            created_by=row["created_by"],
            created_at=_dt(row["created_at"]),
            updated_at=_dt(row["updated_at"]),
        )

    def _row_to_timer(self, row: sqlite3.Row) -> SlaTimer:
        return SlaTimer(
            id=row["id"],
            tenant_id=row["tenant_id"],
            lead_id=row["lead_id"],
            rule_id=row["rule_id"],
            assigned_agent_id=row["assigned_agent_id"],
            type=SlaType(row["type"]),
            status=SlaStatus(row["status"]),
            due_at=_dt(row["due_at"]),
            satisfied_at=_dt(row["satisfied_at"]),
            breached_at=_dt(row["breached_at"]),
            created_at=_dt(row["created_at"]),
            updated_at=_dt(row["updated_at"]),
        )

    def _row_to_event(self, row: sqlite3.Row) -> LeadRouteEvent:
        return LeadRouteEvent(
            id=row["id"],
            tenant_id=row["tenant_id"],
            lead_id=row["lead_id"],
            matched_rule_id=row["matched_rule_id"],
            mode=row["mode"],
            payload=_load(row["payload_json"]) or {},
            candidates=_load(row["candidates_json"]) or [],
            assigned_agent_id=row["assigned_agent_id"],
            fallback_used=bool(row["fallback_used"]),
            reason_codes=_load(row["reason_codes_json"]) or [],
            sla_due_at=_dt(row["sla_due_at"]),
            sla_satisfied_at=_dt(row["sla_satisfied_at"]),
            sla_breached_at=_dt(row["sla_breached_at"]),
            actor_user_id=row["actor_user_id"],
            created_at=_dt(row["created_at"]),
        )

    def _row_to_agent(self, row: sqlite3.Row) -> Agent:
        return Agent(
            id=row["id"],
            tenant_id=row["tenant_id"],
            first_name=row["first_name"] or "",
            last_name=row["last_name"] or "",
            role=AgentRole(row["role"]),
            consent_ready=_bool_or_none(row["consent_ready"]),
            messaging_ready=_bool_or_none(row["messaging_ready"]),
            created_at=_dt(row["created_at"]),
        )

    def _row_to_tour(self, row: sqlite3.Row) -> Tour:
        return Tour(
            id=row["id"],
            tenant_id=row["tenant_id"],
            agent_id=row["agent_id"],
            person_id=row["person_id"] or "",
            status=TourStatus(row["status"]),
            listing_city=row["listing_city"],
            listing_price=row["listing_price"],
            start_at=_dt(row["start_at"]),
        )

    # === TENANTS & ROSTER ===

    def upsert_tenant(self, tenant: Tenant) -> Tenant:
        with self._get_connection() as conn:
            conn.execute("""
                INSERT INTO tenants (id, name, timezone, quiet_hours_start, quiet_hours_end, ten_dlc_ready)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name = excluded.name,
                    timezone = excluded.timezone,
                    quiet_hours_start = excluded.quiet_hours_start,
                    quiet_hours_end = excluded.quiet_hours_end,
                    ten_dlc_ready = excluded.ten_dlc_ready
            """, (
                tenant.id,
                tenant.name,
                tenant.timezone,
                tenant.quiet_hours_start,
                tenant.quiet_hours_end,
                int(tenant.ten_dlc_ready),
            ))
        return tenant

    def get_tenant(self, tenant_id: str) -> Optional[Tenant]:
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM tenants WHERE id = ?", (tenant_id,)).fetchone()
        if not row:
            return None
        return Tenant(
            id=row["id"],
            name=row["name"] or "",
            timezone=row["timezone"],
            quiet_hours_start=row["quiet_hours_start"],
            quiet_hours_end=row["quiet_hours_end"],
            ten_dlc_ready=bool(row["ten_dlc_ready"]),
        )

    def upsert_agent(self, agent: Agent) -> Agent:
        with self._get_connection() as conn:
            conn.execute("""
                INSERT INTO agents (id, tenant_id, first_name, last_name, role,
                                    consent_ready, messaging_ready, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    first_name = excluded.first_name,
                    last_name = excluded.last_name,
                    role = excluded.role,
                    consent_ready = excluded.consent_ready,
                    messaging_ready = excluded.messaging_ready
            """, (
                agent.id,
                agent.tenant_id,
                agent.first_name,
                agent.last_name,
                agent.role.value,
                None if agent.consent_ready is None else int(agent.consent_ready),
                None if agent.messaging_ready is None else int(agent.messaging_ready),
                _ts(agent.created_at),
            ))
        return agent

    def add_team_membership(self, tenant_id: str, team_id: str, agent_id: str):
        with self._get_connection() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO team_memberships (tenant_id, team_id, agent_id) VALUES (?, ?, ?)",
                (tenant_id, team_id, agent_id),
            )

    def list_routable_agents(self, tenant_id: str) -> List[Agent]:
        """Agents and team leads in roster order."""
        roles = [role.value for role in ROUTABLE_ROLES]
        placeholders = ",".join("?" * len(roles))
        with self._get_connection() as conn:
            rows = conn.execute(
                f"SELECT * FROM agents WHERE tenant_id = ? AND role IN ({placeholders}) ORDER BY rowid",
                (tenant_id, *roles),
            ).fetchall()
        return [self._row_to_agent(row) for row in rows]

    def get_agent_names(self, tenant_id: str, agent_ids: Iterable[str]) -> Dict[str, str]:
        ids = list(agent_ids)
        if not ids:
            return {}
        placeholders = ",".join("?" * len(ids))
        with self._get_connection() as conn:
            rows = conn.execute(
                f"SELECT * FROM agents WHERE tenant_id = ? AND id IN ({placeholders})",
                (tenant_id, *ids),
            ).fetchall()
        return {row["id"]: self._row_to_agent(row).full_name for row in rows}

    def get_team_memberships(self, tenant_id: str) -> Dict[str, List[str]]:
        """Map agent id to team ids, in membership order."""
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT agent_id, team_id FROM team_memberships WHERE tenant_id = ? ORDER BY rowid",
                (tenant_id,),
            ).fetchall()
        memberships: Dict[str, List[str]] = {}
        for row in rows:
            memberships.setdefault(row["agent_id"], []).append(row["team_id"])
        return memberships

    # === TOURS & CONSENT ===

    def add_tour(self, tour: Tour) -> Tour:
        with self._get_connection() as conn:
            conn.execute("""
                INSERT INTO tours (id, tenant_id, agent_id, person_id, status,
                                   listing_city, listing_price, start_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                tour.id,
                tour.tenant_id,
                tour.agent_id,
                tour.person_id,
                tour.status.value,
                tour.listing_city,
                tour.listing_price,
                _ts(tour.start_at),
            ))
        return tour

    def list_active_tours(self, tenant_id: str) -> Dict[str, List[Tour]]:
        """In-flight (requested or confirmed) tours grouped by agent."""
        statuses = [status.value for status in ACTIVE_TOUR_STATUSES]
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM tours WHERE tenant_id = ? AND status IN (?, ?) ORDER BY start_at",
                (tenant_id, *statuses),
            ).fetchall()
        tours: Dict[str, List[Tour]] = {}
        for row in rows:
            tours.setdefault(row["agent_id"], []).append(self._row_to_tour(row))
        return tours

    def get_tour_outcome_counts(self, tenant_id: str, since: datetime) -> Dict[str, Dict[TourStatus, int]]:
        """Count confirmed/kept/no-show tours per agent starting at or after ``since``."""
        statuses = [status.value for status in OUTCOME_TOUR_STATUSES]
        with self._get_connection() as conn:
            rows = conn.execute("""
                SELECT agent_id, status, COUNT(*) AS total
                FROM tours
                WHERE tenant_id = ? AND status IN (?, ?, ?) AND start_at >= ?
                GROUP BY agent_id, status
            """, (tenant_id, *statuses, _ts(since))).fetchall()
        counts: Dict[str, Dict[TourStatus, int]] = {}
        for row in rows:
            counts.setdefault(row["agent_id"], {})[TourStatus(row["status"])] = row["total"]
        return counts

    def record_consent(self, consent: Consent) -> Consent:
        with self._get_connection() as conn:
            conn.execute("""
                INSERT INTO consents (tenant_id, person_id, channel, status, captured_at)
                VALUES (?, ?, ?, ?, ?)
            """, (
                consent.tenant_id,
                consent.person_id,
                consent.channel.value,
                consent.status.value,
                _ts(consent.captured_at),
            ))
        return consent

    def get_consent_state(self, tenant_id: str, person_id: str) -> Dict[MessageChannel, ConsentStatus]:
        """Latest consent status per channel; UNKNOWN when never captured."""
        with self._get_connection() as conn:
            rows = conn.execute("""
                SELECT channel, status FROM consents
                WHERE tenant_id = ? AND person_id = ?
                ORDER BY captured_at DESC, id DESC
            """, (tenant_id, person_id)).fetchall()

        state = {channel: ConsentStatus.UNKNOWN for channel in MessageChannel}
        seen = set()
        for row in rows:
            try:
                channel = MessageChannel(row["channel"])
            except ValueError:
                continue
            if channel in seen:
                continue
            seen.add(channel)
            try:
                state[channel] = ConsentStatus(row["status"])
            except ValueError:
                state[channel] = ConsentStatus.UNKNOWN
        return state

    # === ROUTING RULES ===

    def insert_rule(self, rule: RoutingRule) -> RoutingRule:
        with self._get_connection() as conn:
            conn.execute("""
                INSERT INTO routing_rules (
                    id, tenant_id, name, priority, mode, enabled,
                    conditions_json, targets_json, fallback_json,
                    sla_first_touch_minutes, sla_kept_appointment_minutes,
                    created_by, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                rule.id,
                rule.tenant_id,
                rule.name,
                rule.priority,
                rule.mode,
                int(rule.enabled),
                _dump(rule.conditions),
                _dump(rule.targets),
                _dump(rule.fallback),
                rule.sla_first_touch_minutes,
                rule.sla_kept_appointment_minutes,
                rule.created_by,
                _ts(rule.created_at),
                _ts(rule.updated_at),
            ))
        return rule

    def update_rule(self, rule: RoutingRule) -> RoutingRule:
        with self._get_connection() as conn:
            conn.execute("""
                UPDATE routing_rules SET
                    name = ?, priority = ?, mode = ?, enabled = ?,
                    conditions_json = ?, targets_json = ?, fallback_json = ?,
                    sla_first_touch_minutes = ?, sla_kept_appointment_minutes = ?,
                    updated_at = ?
                WHERE id = ? AND tenant_id = ?
            """, (
                rule.name,
                rule.priority,
                rule.mode,
                int(rule.enabled),
                _dump(rule.conditions),
                _dump(rule.targets),
                _dump(rule.fallback),
                rule.sla_first_touch_minutes,
                rule.sla_kept_appointment_minutes,
                _ts(rule.updated_at),
                rule.id,
                rule.tenant_id,
            ))
        return rule

    def delete_rule(self, tenant_id: str, rule_id: str) -> int:
        with self._get_connection() as conn:
            cursor = conn.execute(
                "DELETE FROM routing_rules WHERE id = ? AND tenant_id = ?",
                (rule_id, tenant_id),
            )
            return cursor.rowcount

    def get_rule(self, tenant_id: str, rule_id: str) -> Optional[RoutingRule]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM routing_rules WHERE id = ? AND tenant_id = ?",
                (rule_id, tenant_id),
            ).fetchone()
        return self._row_to_rule(row) if row else None

    def list_rules(self, tenant_id: str, enabled_only: bool = False) -> List[RoutingRule]:
        """Rules in evaluation order: priority ascending, then oldest first."""
        query = "SELECT * FROM routing_rules WHERE tenant_id = ?"
        if enabled_only:
            query += " AND enabled = 1"
        query += " ORDER BY priority ASC, created_at ASC, rowid ASC"
        with self._get_connection() as conn:
            rows = conn.execute(query, (tenant_id,)).fetchall()
        return [self._row_to_rule(row) for row in rows]

    # === DECISIONS ===

    def _insert_assignment(self, conn: sqlite3.Connection, assignment: Assignment):
        conn.execute("""
            INSERT INTO assignments (id, tenant_id, person_id, agent_id, team_id, score, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (
            assignment.id,
            assignment.tenant_id,
            assignment.person_id,
            assignment.agent_id,
            assignment.team_id,
            assignment.score,
            _ts(assignment.created_at),
        ))
        for reason in assignment.reasons:
            conn.execute("""
                INSERT INTO assignment_reasons (assignment_id, type, weight, notes)
                VALUES (?, ?, ?, ?)
            """, (assignment.id, reason.type, reason.weight, reason.notes))

    def _insert_timer(self, conn: sqlite3.Connection, timer: SlaTimer):
        conn.execute("""
            INSERT INTO lead_sla_timers (
                id, tenant_id, lead_id, rule_id, assigned_agent_id, type, status,
                due_at, satisfied_at, breached_at, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            timer.id,
            timer.tenant_id,
            timer.lead_id,
            timer.rule_id,
            timer.assigned_agent_id,
            timer.type.value,
            timer.status.value,
            _ts(timer.due_at),
            _ts(timer.satisfied_at),
            _ts(timer.breached_at),
            _ts(timer.created_at),
            _ts(timer.updated_at),
        ))

    def _insert_event(self, conn: sqlite3.Connection, event: LeadRouteEvent):
        conn.execute("""
            INSERT INTO lead_route_events (
                id, tenant_id, lead_id, matched_rule_id, mode, payload_json, candidates_json,
                assigned_agent_id, fallback_used, reason_codes_json, sla_due_at,
                sla_satisfied_at, sla_breached_at, actor_user_id, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            event.id,
            event.tenant_id,
            event.lead_id,
            event.matched_rule_id,
            event.mode,
            _dump(event.payload),
            _dump(event.candidates),
            event.assigned_agent_id,
            int(event.fallback_used),
            _dump(event.reason_codes),
            _ts(event.sla_due_at),
            _ts(event.sla_satisfied_at),
            _ts(event.sla_breached_at),
            event.actor_user_id,
            _ts(event.created_at),
        ))

    def _pending_due_at(self, conn: sqlite3.Connection, tenant_id: str, lead_id: str,
                        sla_type: SlaType) -> Optional[datetime]:
        row = conn.execute("""
            SELECT due_at FROM lead_sla_timers
            WHERE tenant_id = ? AND lead_id = ? AND type = ? AND status = ?
            ORDER BY due_at LIMIT 1
        """, (tenant_id, lead_id, sla_type.value, SlaStatus.PENDING.value)).fetchone()
        return _dt(row["due_at"]) if row else None

    def record_decision(
        self,
        event: LeadRouteEvent,
        assignment: Optional[Assignment] = None,
        timers: Optional[List[SlaTimer]] = None,
    ) -> List[SlaTimer]:
        """Persist assignment, SLA timers and audit event in one transaction.

        A timer is skipped when the lead already has a pending timer of the
        same type. Returns the timers actually created.
        """
        created: List[SlaTimer] = []
        with self._get_connection() as conn:
            conn.execute("BEGIN IMMEDIATE")

            if assignment is not None:
                self._insert_assignment(conn, assignment)

            for timer in timers or []:
                existing_due = self._pending_due_at(conn, timer.tenant_id, timer.lead_id, timer.type)
                if existing_due is not None:
                    logger.info(f"Lead {timer.lead_id} already has a pending {timer.type.value} timer; not creating another")
                    if timer.type == SlaType.FIRST_TOUCH:
                        event.sla_due_at = existing_due
                    continue
                self._insert_timer(conn, timer)
                created.append(timer)

            self._insert_event(conn, event)

        return created

    def create_assignment(self, assignment: Assignment) -> Assignment:
        with self._get_connection() as conn:
            self._insert_assignment(conn, assignment)
        return assignment

    def list_assignments(self, tenant_id: str, person_id: Optional[str] = None) -> List[Assignment]:
        query = "SELECT * FROM assignments WHERE tenant_id = ?"
        params: List[Any] = [tenant_id]
        if person_id:
            query += " AND person_id = ?"
            params.append(person_id)
        query += " ORDER BY created_at, rowid"

        with self._get_connection() as conn:
            rows = conn.execute(query, params).fetchall()
            assignments = []
            for row in rows:
                reasons = conn.execute(
                    "SELECT type, weight, notes FROM assignment_reasons WHERE assignment_id = ? ORDER BY id",
                    (row["id"],),
                ).fetchall()
                assignments.append(Assignment(
                    id=row["id"],
                    tenant_id=row["tenant_id"],
                    person_id=row["person_id"],
                    agent_id=row["agent_id"],
                    team_id=row["team_id"],
                    score=row["score"],
                    reasons=[
                        AssignmentReason(type=r["type"], weight=r["weight"], notes=r["notes"] or "")
                        for r in reasons
                    ],
                    created_at=_dt(row["created_at"]),
                ))
        return assignments

    # === ROUTE EVENTS ===

    def get_route_event(self, event_id: str) -> Optional[LeadRouteEvent]:
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM lead_route_events WHERE id = ?", (event_id,)).fetchone()
        return self._row_to_event(row) if row else None

    def list_events_for_lead(self, tenant_id: str, lead_id: str) -> List[LeadRouteEvent]:
        with self._get_connection() as conn:
            rows = conn.execute("""
                SELECT * FROM lead_route_events
                WHERE tenant_id = ? AND lead_id = ?
                ORDER BY created_at, rowid
            """, (tenant_id, lead_id)).fetchall()
        return [self._row_to_event(row) for row in rows]

    def list_route_events(self, tenant_id: str, limit: int = 25,
                          cursor: Optional[str] = None) -> List[LeadRouteEvent]:
        """Newest first; ``cursor`` is the id of the last event of the previous page."""
        query = "SELECT * FROM lead_route_events WHERE tenant_id = ?"
        params: List[Any] = [tenant_id]

        with self._get_connection() as conn:
            if cursor:
                anchor = conn.execute(
                    "SELECT created_at FROM lead_route_events WHERE id = ? AND tenant_id = ?",
                    (cursor, tenant_id),
                ).fetchone()
                if anchor:
                    query += " AND (created_at < ? OR (created_at = ? AND id < ?))"
                    params.extend([anchor["created_at"], anchor["created_at"], cursor])
            query += " ORDER BY created_at DESC, id DESC LIMIT ?"
            params.append(limit)
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_event(row) for row in rows]

    def _append_event_reason(self, conn: sqlite3.Connection, tenant_id: str, lead_id: str,
                             reason_code: str, rule_id: Optional[str] = None,
                             breached_at: Optional[datetime] = None,
                             satisfied_at: Optional[datetime] = None) -> int:
        query = "SELECT id, reason_codes_json FROM lead_route_events WHERE tenant_id = ? AND lead_id = ?"
        params: List[Any] = [tenant_id, lead_id]
        if rule_id:
            query += " AND matched_rule_id = ?"
            params.append(rule_id)

        rows = conn.execute(query, params).fetchall()
        for row in rows:
            codes = _load(row["reason_codes_json"]) or []
            if not isinstance(codes, list):
                codes = [codes]
            if reason_code not in codes:
                codes.append(reason_code)

            sets = ["reason_codes_json = ?"]
            values: List[Any] = [_dump(codes)]
            if breached_at is not None:
                sets.append("sla_breached_at = ?")
                values.append(_ts(breached_at))
            if satisfied_at is not None:
                sets.append("sla_satisfied_at = ?")
                values.append(_ts(satisfied_at))
            values.append(row["id"])
            conn.execute(f"UPDATE lead_route_events SET {', '.join(sets)} WHERE id = ?", values)
        return len(rows)

    # === SLA TIMERS ===

    def get_timer(self, timer_id: str) -> Optional[SlaTimer]:
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM lead_sla_timers WHERE id = ?", (timer_id,)).fetchone()
        return self._row_to_timer(row) if row else None

    def list_due_timers(self, now: datetime, tenant_id: Optional[str] = None) -> List[SlaTimer]:
        """Pending timers whose deadline is at or before ``now``."""
        query = "SELECT * FROM lead_sla_timers WHERE status = ? AND due_at <= ?"
        params: List[Any] = [SlaStatus.PENDING.value, _ts(now)]
        if tenant_id:
            query += " AND tenant_id = ?"
            params.append(tenant_id)
        query += " ORDER BY due_at, rowid"
        with self._get_connection() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_timer(row) for row in rows]

    def list_timers(
        self,
        tenant_id: str,
        sla_type: Optional[SlaType] = None,
        statuses: Optional[Iterable[SlaStatus]] = None,
        lead_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[SlaTimer]:
        query = "SELECT * FROM lead_sla_timers WHERE tenant_id = ?"
        params: List[Any] = [tenant_id]
        if sla_type:
            query += " AND type = ?"
            params.append(sla_type.value)
        if statuses:
            values = [status.value for status in statuses]
            query += f" AND status IN ({','.join('?' * len(values))})"
            params.extend(values)
        if lead_id:
            query += " AND lead_id = ?"
            params.append(lead_id)
        query += " ORDER BY due_at ASC, rowid ASC"
        if limit:
            query += " LIMIT ?"
            params.append(limit)
        with self._get_connection() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_timer(row) for row in rows]

    def breach_timer(self, timer: SlaTimer, breached_at: datetime, reason_code: str) -> bool:
        """Flip a pending timer to BREACHED and stamp the lead's route events.

        The flip is conditional on the timer still being PENDING; returns False
        when another sweep already moved it.
        """
        with self._get_connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            cursor = conn.execute("""
                UPDATE lead_sla_timers
                SET status = ?, breached_at = ?, updated_at = ?
                WHERE id = ? AND status = ?
            """, (
                SlaStatus.BREACHED.value,
                _ts(breached_at),
                _ts(breached_at),
                timer.id,
                SlaStatus.PENDING.value,
            ))
            if cursor.rowcount != 1:
                return False

            self._append_event_reason(
                conn,
                timer.tenant_id,
                timer.lead_id,
                reason_code,
                rule_id=timer.rule_id,
                breached_at=breached_at,
            )
        return True

    def satisfy_timers(
        self,
        tenant_id: str,
        lead_id: str,
        sla_type: SlaType,
        occurred_at: datetime,
        reason_code: str,
        stamp_event: bool = False,
    ) -> List[str]:
        """Satisfy pending timers of one type that were still inside their window.

        Returns the ids of the timers moved to SATISFIED.
        """
        updated: List[str] = []
        with self._get_connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            rows = conn.execute("""
                SELECT id FROM lead_sla_timers
                WHERE tenant_id = ? AND lead_id = ? AND type = ? AND status = ? AND due_at >= ?
            """, (
                tenant_id,
                lead_id,
                sla_type.value,
                SlaStatus.PENDING.value,
                _ts(occurred_at),
            )).fetchall()

            for row in rows:
                cursor = conn.execute("""
                    UPDATE lead_sla_timers
                    SET status = ?, satisfied_at = ?, updated_at = ?
                    WHERE id = ? AND status = ?
                """, (
                    SlaStatus.SATISFIED.value,
                    _ts(occurred_at),
                    _ts(occurred_at),
                    row["id"],
                    SlaStatus.PENDING.value,
                ))
                if cursor.rowcount == 1:
                    updated.append(row["id"])

            if updated:
                self._append_event_reason(
                    conn,
                    tenant_id,
                    lead_id,
                    reason_code,
                    satisfied_at=occurred_at if stamp_event else None,
                )
        return updated

    # === OUTBOX ===

    def insert_outbox_event(self, event: OutboxEvent) -> OutboxEvent:
        with self._get_connection() as conn:
            conn.execute("""
                INSERT INTO outbox_events (id, tenant_id, event_type, occurred_at,
                                           resource_json, data_json, created_at, delivered_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                event.id,
                event.tenant_id,
                event.event_type,
                _ts(event.occurred_at),
                _dump(event.resource),
                _dump(event.data),
                _ts(event.created_at),
                _ts(event.delivered_at),
            ))
        return event

    def list_outbox_events(self, tenant_id: Optional[str] = None,
                           event_type: Optional[str] = None) -> List[OutboxEvent]:
        query = "SELECT * FROM outbox_events WHERE 1 = 1"
        params: List[Any] = []
        if tenant_id:
            query += " AND tenant_id = ?"
            params.append(tenant_id)
        if event_type:
            query += " AND event_type = ?"
            params.append(event_type)
        query += " ORDER BY created_at, rowid"
        with self._get_connection() as conn:
            rows = conn.execute(query, params).fetchall()
        return [
            OutboxEvent(
                id=row["id"],
                tenant_id=row["tenant_id"],
                event_type=row["event_type"],
                occurred_at=_dt(row["occurred_at"]),
                resource=_load(row["resource_json"]) or {},
                data=_load(row["data_json"]) or {},
                created_at=_dt(row["created_at"]),
                delivered_at=_dt(row["delivered_at"]),
            )
            for row in rows
        ]

    def ping(self):
        """Raise if the database cannot be queried."""
        with self._get_connection() as conn:
            conn.execute("SELECT 1")
