"""Tests for the lead-routing command line."""

import json
import pytest
from datetime import datetime, timedelta, timezone
from click.testing import CliRunner

from lead_routing.cli.main import cli
from lead_routing.storage.database import RoutingDatabase
from lead_routing.storage.models import Agent, LeadRouteEvent, SlaStatus, SlaTimer, SlaType


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "routing.db")


@pytest.fixture
def rule_file(tmp_path):
    path = tmp_path / "rule.json"
    path.write_text(json.dumps({
        "name": "Downtown",
        "priority": 1,
        "targets": [{"type": "TEAM", "id": "team-1"}],
        "fallback": {"teamId": "pond-1"},
        "sla_first_touch_minutes": 15,
    }))
    return str(path)


def overdue_timer(db_path, lead_id="lead-1"):
    db = RoutingDatabase(db_path)
    timer = SlaTimer(
        tenant_id="acme",
        lead_id=lead_id,
        type=SlaType.FIRST_TOUCH,
        due_at=datetime.now(timezone.utc) - timedelta(minutes=5),
    )
    db.record_decision(LeadRouteEvent(tenant_id="acme", lead_id=lead_id, mode="FIRST_MATCH"), timers=[timer])
    return db


class TestInit:

    def test_init_with_tenant(self, runner, db_path):
        result = runner.invoke(cli, ["init", "-t", "acme", "--timezone", "America/Chicago", "--ten-dlc-ready",
                                     "--db", db_path])
        assert result.exit_code == 0
        assert "Database initialized" in result.output

        tenant = RoutingDatabase(db_path).get_tenant("acme")
        assert tenant.timezone == "America/Chicago"
        assert tenant.ten_dlc_ready is True
        assert tenant.quiet_hours_start == 21

    def test_init_rejects_bad_hour(self, runner, db_path):
        result = runner.invoke(cli, ["init", "-t", "acme", "--quiet-start", "24", "--db", db_path])
        assert result.exit_code != 0


class TestRuleCommands:

    def test_add_and_list(self, runner, db_path, rule_file):
        result = runner.invoke(cli, ["add-rule", rule_file, "-t", "acme", "--db", db_path])
        assert result.exit_code == 0
        assert "Created rule Downtown" in result.output

        result = runner.invoke(cli, ["rules", "-t", "acme", "--db", db_path])
        assert result.exit_code == 0
        assert "Downtown" in result.output
        assert "pond-1" in result.output

    def test_add_invalid_rule(self, runner, db_path, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text(json.dumps({"name": "Bad", "targets": []}))

        result = runner.invoke(cli, ["add-rule", str(path), "-t", "acme", "--db", db_path])
        assert result.exit_code == 1
        assert "Invalid rule" in result.output
        assert RoutingDatabase(db_path).list_rules("acme") == []

    def test_add_rule_without_name(self, runner, db_path, tmp_path):
        path = tmp_path / "nameless.json"
        path.write_text(json.dumps({"targets": [{"type": "AGENT", "id": "a"}]}))

        result = runner.invoke(cli, ["add-rule", str(path), "-t", "acme", "--db", db_path])
        assert result.exit_code == 1

    def test_no_rules(self, runner, db_path):
        result = runner.invoke(cli, ["rules", "-t", "acme", "--db", db_path])
        assert "No routing rules configured" in result.output


class TestSweep:

    def test_single_sweep(self, runner, db_path):
        db = overdue_timer(db_path)

        result = runner.invoke(cli, ["sweep", "--db", db_path])
        assert result.exit_code == 0
        assert "Processed 1 SLA timer(s)" in result.output
        assert db.list_timers("acme")[0].status == SlaStatus.BREACHED

    def test_sweep_other_tenant(self, runner, db_path):
        overdue_timer(db_path)
        result = runner.invoke(cli, ["sweep", "-t", "other", "--db", db_path])
        assert "Processed 0 SLA timer(s)" in result.output


class TestDashboards:

    def test_sla(self, runner, db_path):
        overdue_timer(db_path)
        result = runner.invoke(cli, ["sla", "-t", "acme", "--db", db_path])
        assert result.exit_code == 0
        assert "Timers: 1" in result.output
        assert "lead-1" in result.output

    def test_metrics(self, runner, db_path):
        result = runner.invoke(cli, ["metrics", "-t", "acme", "--db", db_path])
        assert result.exit_code == 0
        assert "SLA Metrics" in result.output

    def test_capacity(self, runner, db_path):
        db = RoutingDatabase(db_path)
        db.upsert_agent(Agent(id="a1", tenant_id="acme", first_name="Ann", last_name="Lee"))
        db.add_team_membership("acme", "team-1", "a1")

        result = runner.invoke(cli, ["capacity", "-t", "acme", "--db", db_path])
        assert result.exit_code == 0
        assert "Ann Lee" in result.output
        assert "team-1" in result.output

    def test_capacity_empty(self, runner, db_path):
        result = runner.invoke(cli, ["capacity", "-t", "acme", "--db", db_path])
        assert "No routable agents" in result.output
