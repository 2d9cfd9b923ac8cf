"""Tests for the routing admin API."""

import json
import pytest
from fastapi.testclient import TestClient

from lead_routing.api.main import create_app
from lead_routing.api.middleware.auth import sign_body
from lead_routing.config import reset_settings
from lead_routing.events.outbox import RoutingEvent
from lead_routing.services import build_services

TENANT = "tenant-1"
HEADERS = {"X-Tenant-ID": TENANT}

TEAM_RULE = {
    "name": "Team",
    "targets": [{"type": "TEAM", "id": "team-1"}],
    "fallback": {"teamId": "pond-1"},
    "sla_first_touch_minutes": 45,
    "sla_kept_appointment_minutes": 2880,
}


@pytest.fixture(autouse=True)
def no_secret(monkeypatch):
    monkeypatch.delenv("LEAD_ROUTING_API_SECRET", raising=False)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def services(temp_db, clock, outbox):
    return build_services(db_path=temp_db.db_path, clock=clock, publisher=outbox)


@pytest.fixture
def client(services):
    return TestClient(create_app(services=services))


@pytest.fixture
def seeded(roster):
    roster.tenant()
    roster.agent("bob-brown", teams=["team-1"])
    roster.consent("lead-1")


def create_rule(client, **overrides):
    response = client.post("/v1/routing/rules", json={**TEAM_RULE, **overrides}, headers=HEADERS)
    assert response.status_code == 201
    return response.json()


class TestHealth:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_ready(self, client):
        assert client.get("/ready").json() == {"status": "ready"}


class TestAssign:
    """Tests for POST /v1/routing/assign."""

    def test_assign_lead(self, client, seeded, outbox):
        rule = create_rule(client)
        response = client.post(
            "/v1/routing/assign",
            json={"lead_id": "lead-1", "listing": {"city": "Columbus", "price": 300000}},
            headers=HEADERS,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["assigned_agent_id"] == "bob-brown"
        assert data["rule_id"] == rule["id"]
        assert data["reason_codes"] == ["RULE_MATCHED", "BEST_FIT"]
        assert data["sla_due_at"] == "2026-03-10T15:45:00+00:00"
        assert data["candidates"][0]["status"] == "SELECTED"
        assert len(outbox.of_type(RoutingEvent.ASSIGNED, lead_id="lead-1")) == 1

    def test_unknown_tenant(self, client):
        response = client.post("/v1/routing/assign", json={"lead_id": "lead-1"}, headers=HEADERS)
        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "not_found"

    def test_missing_tenant_header(self, client):
        response = client.post("/v1/routing/assign", json={"lead_id": "lead-1"})
        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "validation_error"

    def test_missing_lead_id(self, client, seeded):
        response = client.post("/v1/routing/assign", json={}, headers=HEADERS)
        assert response.status_code == 422

    def test_no_rule_match(self, client, seeded):
        data = client.post("/v1/routing/assign", json={"lead_id": "lead-1"}, headers=HEADERS).json()
        assert data["assigned_agent_id"] is None
        assert data["reason_codes"] == ["NO_RULE_MATCH"]


class TestRules:
    """Tests for rule CRUD routes."""

    def test_create_and_list(self, client, seeded):
        create_rule(client, name="Second", priority=5)
        create_rule(client, name="First", priority=1)

        rules = client.get("/v1/routing/rules", headers=HEADERS).json()
        assert [rule["name"] for rule in rules] == ["First", "Second"]
        assert rules[0]["targets"] == [{"type": "TEAM", "id": "team-1", "strategy": "BEST_FIT"}]

    def test_invalid_targets(self, client, seeded):
        response = client.post(
            "/v1/routing/rules",
            json={"name": "Broken", "targets": [{"type": "SOMEONE"}]},
            headers=HEADERS,
        )
        assert response.status_code == 422
        assert response.json()["detail"]["error"] == "invalid_rule"

    def test_empty_targets_rejected(self, client, seeded):
        response = client.post("/v1/routing/rules", json={"name": "Empty", "targets": []}, headers=HEADERS)
        assert response.status_code == 422

    def test_partial_update(self, client, seeded):
        rule = create_rule(client)
        response = client.patch(
            f"/v1/routing/rules/{rule['id']}",
            json={"enabled": False, "sla_first_touch_minutes": None},
            headers=HEADERS,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["enabled"] is False
        assert data["sla_first_touch_minutes"] is None
        assert data["sla_kept_appointment_minutes"] == 2880
        assert data["name"] == "Team"

    def test_update_missing_rule(self, client, seeded):
        response = client.patch("/v1/routing/rules/nope", json={"name": "x"}, headers=HEADERS)
        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "not_found"

    def test_update_other_tenant(self, client, seeded, roster):
        roster.tenant("tenant-2")
        rule = create_rule(client)
        response = client.patch(
            f"/v1/routing/rules/{rule['id']}", json={"name": "x"}, headers={"X-Tenant-ID": "tenant-2"},
        )
        assert response.status_code == 404

    def test_delete(self, client, seeded):
        rule = create_rule(client)
        assert client.delete(f"/v1/routing/rules/{rule['id']}", headers=HEADERS).json() == {"id": rule["id"]}
        assert client.get("/v1/routing/rules", headers=HEADERS).json() == []


class TestSla:
    """Tests for SLA routes."""

    @pytest.fixture
    def assigned(self, client, seeded):
        create_rule(client)
        client.post("/v1/routing/assign", json={"lead_id": "lead-1"}, headers=HEADERS)

    def test_process_breaches(self, client, assigned, clock, services):
        clock.advance(minutes=46)
        assert client.post("/v1/routing/sla/process", headers=HEADERS).json() == {"processed": 1}

        dashboard = client.get("/v1/routing/sla", headers=HEADERS).json()
        assert dashboard["summary"]["breached"] == 1
        pond = [a for a in services.db.list_assignments(TENANT) if a.agent_id is None]
        assert pond[0].team_id == "pond-1"

    def test_first_touch(self, client, assigned, clock):
        clock.advance(minutes=10)
        response = client.post("/v1/routing/sla/first-touch", json={"lead_id": "lead-1"}, headers=HEADERS)
        assert response.json() == {"updated": 1}

        clock.advance(minutes=40)
        assert client.post("/v1/routing/sla/process", headers=HEADERS).json() == {"processed": 0}

    def test_backdated_first_touch(self, client, assigned, clock):
        clock.advance(minutes=60)
        response = client.post(
            "/v1/routing/sla/first-touch",
            json={"lead_id": "lead-1", "occurred_at": "2026-03-10T15:30:00+00:00"},
            headers=HEADERS,
        )
        assert response.json() == {"updated": 1}

    def test_kept_appointment(self, client, assigned):
        response = client.post("/v1/routing/sla/kept-appointment", json={"lead_id": "lead-1"}, headers=HEADERS)
        assert response.json() == {"updated": 1}


class TestDashboard:
    """Tests for capacity, metrics and event routes."""

    def test_capacity(self, client, seeded):
        data = client.get("/v1/routing/capacity", headers=HEADERS).json()
        assert data[0]["agent_id"] == "bob-brown"
        assert data[0]["capacity_remaining"] == 8

    def test_metrics(self, client, seeded):
        data = client.get("/v1/routing/metrics", headers=HEADERS).json()
        assert data["first_touch"] == {"count": 0, "average_minutes": None}

    def test_events_paging(self, client, seeded, roster, clock):
        create_rule(client)
        for lead_id in ("lead-1", "lead-2"):
            roster.consent(lead_id)
            client.post("/v1/routing/assign", json={"lead_id": lead_id}, headers=HEADERS)
            clock.advance(seconds=1)

        first = client.get("/v1/routing/events", params={"limit": 1}, headers=HEADERS).json()
        assert [e["lead_id"] for e in first] == ["lead-2"]

        second = client.get(
            "/v1/routing/events", params={"limit": 1, "cursor": first[0]["id"]}, headers=HEADERS,
        ).json()
        assert [e["lead_id"] for e in second] == ["lead-1"]

    def test_unescalated(self, client, seeded):
        assert client.get("/v1/routing/unescalated", headers=HEADERS).json() == []


class TestAuth:
    """Tests for the shared-secret check."""

    @pytest.fixture
    def secret(self, monkeypatch):
        monkeypatch.setenv("LEAD_ROUTING_API_SECRET", "s3cret")
        reset_settings()
        return "s3cret"

    def test_missing_credentials(self, client, seeded, secret):
        response = client.get("/v1/routing/rules", headers=HEADERS)
        assert response.status_code == 401
        assert response.json()["detail"]["error"] == "auth_error"

    def test_wrong_secret(self, client, seeded, secret):
        response = client.get("/v1/routing/rules", headers={**HEADERS, "X-Routing-Secret": "nope"})
        assert response.status_code == 401

    def test_shared_secret(self, client, seeded, secret):
        response = client.get("/v1/routing/rules", headers={**HEADERS, "X-Routing-Secret": secret})
        assert response.status_code == 200

    def test_signature(self, client, seeded, secret):
        body = json.dumps({"lead_id": "lead-1"}).encode()
        signature = sign_body(secret, body)
        response = client.post(
            "/v1/routing/assign",
            content=body,
            headers={**HEADERS, "X-Routing-Signature": signature, "Content-Type": "application/json"},
        )
        assert response.status_code == 200

    def test_health_is_open(self, client, secret):
        assert client.get("/health").status_code == 200
