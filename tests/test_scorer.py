"""Tests for agent scoring and ranking."""

import pytest
from lead_routing.core.config import RoutingConfig, RoutingConfigManager
from lead_routing.core.scorer import (
    AgentSnapshot,
    RoutingInput,
    capacity_score,
    route_lead,
    score_agent,
)


def make_snapshot(user_id="agent-1", active_pipeline=2, **kwargs) -> AgentSnapshot:
    defaults = dict(
        full_name=user_id.title(),
        capacity_target=8,
        geography_fit=0.7,
        price_band_fit=0.7,
        kept_appt_rate=0.5,
        consent_ready=True,
        ten_dlc_ready=True,
    )
    defaults.update(kwargs)
    return AgentSnapshot(user_id=user_id, active_pipeline=active_pipeline, **defaults)


class TestCapacityScore:
    """Tests for capacity_score."""

    def test_free_share(self):
        assert capacity_score(8, 2) == 0.75

    def test_overloaded_is_zero(self):
        assert capacity_score(8, 11) == 0.0

    def test_zero_target_is_zero(self):
        assert capacity_score(0, 0) == 0.0


class TestScoreAgent:
    """Tests for score_agent."""

    def test_weighted_score(self):
        """0.75*0.35 + 0.5*0.25 + 0.7*0.2 + 0.7*0.2"""
        result = score_agent(make_snapshot())
        assert result.score == pytest.approx(0.6675)

    def test_score_is_rounded(self):
        result = score_agent(make_snapshot(active_pipeline=3, kept_appt_rate=1 / 3))
        assert result.score == round(result.score, 4)

    def test_reason_order_and_text(self):
        result = score_agent(make_snapshot())
        assert [r.type for r in result.reasons] == ["CAPACITY", "GEOGRAPHY", "PRICE_BAND", "PERFORMANCE"]
        assert result.reasons[0].description == "Capacity remaining 75%"
        assert result.reasons[3].description == "Kept appointment rate 50%"
        assert result.reasons[0].weight == 0.35

    def test_missing_consent_gates(self):
        assert score_agent(make_snapshot(consent_ready=False)) is None

    def test_messaging_not_ready_gates(self):
        assert score_agent(make_snapshot(ten_dlc_ready=False)) is None

    def test_inputs_are_clamped(self):
        result = score_agent(make_snapshot(active_pipeline=0, geography_fit=1.5, price_band_fit=-1, kept_appt_rate=2))
        assert result.score == pytest.approx(0.35 + 0.25 + 0.2)

    def test_custom_weights(self):
        config = RoutingConfig(capacity_weight=1.0, performance_weight=0, geography_weight=0, price_band_weight=0)
        result = score_agent(make_snapshot(active_pipeline=4), config)
        assert result.score == pytest.approx(0.5)


class TestRouteLead:
    """Tests for route_lead ranking."""

    def routing_input(self, agents, **kwargs):
        return RoutingInput(lead_id="lead-1", tenant_id="tenant-1", agents=agents, **kwargs)

    def test_best_agent_first(self):
        result = route_lead(self.routing_input([
            make_snapshot("busy", active_pipeline=2),
            make_snapshot("free", active_pipeline=0),
        ]))
        assert result.top_agent.user_id == "free"
        assert result.used_fallback is False
        assert result.fallback_team_id is None

    def test_contention_margin(self):
        """0.755 and 0.71125 are within 0.05; 0.6675 is not."""
        result = route_lead(self.routing_input([
            make_snapshot("a", active_pipeline=0),
            make_snapshot("b", active_pipeline=1),
            make_snapshot("c", active_pipeline=2),
        ]))
        assert [agent.user_id for agent in result.selected_agents] == ["a", "b"]

    def test_below_threshold_returns_top_with_fallback(self):
        result = route_lead(self.routing_input(
            [make_snapshot("full", active_pipeline=8)],
            fallback_team_id="pond-1",
        ))
        assert result.used_fallback is True
        assert result.fallback_team_id == "pond-1"
        assert [agent.user_id for agent in result.selected_agents] == ["full"]

    def test_no_agents(self):
        result = route_lead(self.routing_input([], fallback_team_id="pond-1"))
        assert result.selected_agents == []
        assert result.top_agent is None
        assert result.used_fallback is True

    def test_gated_agents_never_selected(self):
        result = route_lead(self.routing_input([
            make_snapshot("gated", active_pipeline=0, consent_ready=False),
            make_snapshot("ok", active_pipeline=1),
        ]))
        assert [agent.user_id for agent in result.selected_agents] == ["ok"]

    def test_importance_carried_through(self):
        result = route_lead(self.routing_input(
            [make_snapshot()],
            geography_importance=0.3,
            price_band_importance=0.2,
            quiet_hours=True,
        ))
        assert result.geography_importance == 0.3
        assert result.price_band_importance == 0.2
        assert result.quiet_hours is True


class TestRoutingConfigManager:
    """Tests for RoutingConfigManager."""

    def test_defaults_without_file(self, tmp_path):
        manager = RoutingConfigManager(tmp_path / "scoring.json")
        assert manager.config.minimum_score == 0.6
        assert manager.config.capacity_weight == 0.35

    def test_weights_persist(self, tmp_path):
        path = tmp_path / "scoring.json"
        manager = RoutingConfigManager(path)
        manager.update_weights(capacity=0.5, geography=0.1)
        manager.set_minimum_score(0.4)

        reloaded = RoutingConfigManager(path)
        assert reloaded.config.capacity_weight == 0.5
        assert reloaded.config.geography_weight == 0.1
        assert reloaded.config.performance_weight == 0.25
        assert reloaded.config.minimum_score == 0.4

    def test_minimum_score_range(self, tmp_path):
        manager = RoutingConfigManager(tmp_path / "scoring.json")
        with pytest.raises(ValueError):
            manager.set_minimum_score(1.5)

    def test_corrupt_file_falls_back(self, tmp_path):
        path = tmp_path / "scoring.json"
        path.write_text("{not json")
        assert RoutingConfigManager(path).config.minimum_score == 0.6
