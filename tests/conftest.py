"""Shared fixtures for routing tests."""

import pytest
import tempfile
from datetime import datetime, timezone
from pathlib import Path

from lead_routing.analytics.metrics import MetricsAggregator
from lead_routing.core.clock import FixedClock
from lead_routing.events.outbox import InMemoryOutbox
from lead_routing.routing.engine import RoutingEngine
from lead_routing.rules.service import RuleService
from lead_routing.sla.processor import SlaProcessor
from lead_routing.storage.database import RoutingDatabase
from lead_routing.storage.models import (
    Agent,
    Consent,
    ConsentStatus,
    MessageChannel,
    Tenant,
    Tour,
    TourStatus,
)

# Tuesday 11:00 in New York, outside the default 21:00-08:00 quiet hours
NOW = datetime(2026, 3, 10, 15, 0, tzinfo=timezone.utc)

TENANT = "tenant-1"


class Roster:
    """Seeds tenants, agents, tours and consent for a test database."""

    def __init__(self, db: RoutingDatabase, clock: FixedClock):
        self.db = db
        self.clock = clock

    def tenant(self, tenant_id: str = TENANT, ten_dlc_ready: bool = True, **kwargs) -> Tenant:
        return self.db.upsert_tenant(Tenant(id=tenant_id, name=tenant_id, ten_dlc_ready=ten_dlc_ready, **kwargs))

    def agent(self, agent_id: str, tenant_id: str = TENANT, teams=(), **kwargs) -> Agent:
        first, _, last = agent_id.partition("-")
        kwargs.setdefault("first_name", first.title())
        kwargs.setdefault("last_name", last.title())
        agent = self.db.upsert_agent(Agent(id=agent_id, tenant_id=tenant_id, **kwargs))
        for team_id in teams:
            self.db.add_team_membership(tenant_id, team_id, agent_id)
        return agent

    def tours(self, agent_id: str, count: int, status: TourStatus = TourStatus.CONFIRMED,
              tenant_id: str = TENANT, **kwargs):
        for _ in range(count):
            kwargs.setdefault("start_at", self.clock.now())
            self.db.add_tour(Tour(tenant_id=tenant_id, agent_id=agent_id, status=status, **kwargs))

    def consent(self, lead_id: str, status: ConsentStatus = ConsentStatus.GRANTED,
                channel: MessageChannel = MessageChannel.SMS, tenant_id: str = TENANT):
        self.db.record_consent(Consent(
            tenant_id=tenant_id,
            person_id=lead_id,
            channel=channel,
            status=status,
            captured_at=self.clock.now(),
        ))


@pytest.fixture
def temp_db():
    """Create database in a temporary directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield RoutingDatabase(Path(tmpdir) / "routing.db")


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def outbox():
    return InMemoryOutbox()


@pytest.fixture
def roster(temp_db, clock):
    return Roster(temp_db, clock)


@pytest.fixture
def engine(temp_db, outbox, clock):
    return RoutingEngine(temp_db, outbox, clock=clock)


@pytest.fixture
def processor(temp_db, outbox, clock):
    return SlaProcessor(temp_db, outbox, clock=clock)


@pytest.fixture
def rule_service(temp_db, clock):
    return RuleService(temp_db, clock=clock)


@pytest.fixture
def metrics(temp_db, clock):
    return MetricsAggregator(temp_db, clock=clock)
