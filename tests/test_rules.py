"""Tests for rule validation, condition evaluation and quiet hours."""

import pytest
from datetime import datetime, timezone

from lead_routing.core.quiet_hours import is_quiet_hours, resolve_timezone
from lead_routing.errors import RuleParseError
from lead_routing.rules.evaluator import PersonContext, RoutingContext, evaluate_conditions
from lead_routing.rules.schema import (
    PondTarget,
    RuleConditions,
    TeamTarget,
    dump_fallback,
    dump_targets,
    load_rule,
    parse_fallback,
    parse_mode,
    parse_rule_config,
)
from lead_routing.storage.models import ConsentStatus, Listing, MessageChannel, RoutingMode, RoutingRule

# Tuesday 11:00 America/New_York
NOW = datetime(2026, 3, 10, 15, 0, tzinfo=timezone.utc)

TEAM_TARGETS = [{"type": "TEAM", "id": "team-1"}]


def make_context(listing=None, quiet_hours=False, now=NOW, **person) -> RoutingContext:
    return RoutingContext(
        now=now,
        tenant_timezone="America/New_York",
        person=PersonContext(**person),
        listing=listing,
        quiet_hours=quiet_hours,
    )


def conditions(**data) -> RuleConditions:
    return parse_rule_config(data, TEAM_TARGETS).conditions


class TestRuleSchema:
    """Tests for rule config validation."""

    def test_camel_case_keys(self):
        config = parse_rule_config(
            {"priceBand": {"min": 100000}, "buyerRep": "ANY"},
            [{"type": "TEAM", "id": "team-1", "includeRoles": ["AGENT"]}],
            {"teamId": "pond-1"},
        )
        assert config.conditions.price_band.min == 100000
        assert config.targets[0].include_roles == ["AGENT"]
        assert config.fallback_team_id == "pond-1"

    def test_snake_case_keys(self):
        config = parse_rule_config({"price_band": {"max": 500000}}, TEAM_TARGETS, {"team_id": "pond-1"})
        assert config.conditions.price_band.max == 500000
        assert config.fallback_team_id == "pond-1"

    def test_targets_are_discriminated(self):
        config = parse_rule_config(None, [
            {"type": "AGENT", "id": "a-1"},
            {"type": "TEAM", "id": "t-1", "strategy": "ROUND_ROBIN"},
            {"type": "POND", "id": "p-1"},
        ])
        assert isinstance(config.targets[1], TeamTarget)
        assert isinstance(config.targets[2], PondTarget)
        assert config.targets[1].strategy == "ROUND_ROBIN"

    def test_team_strategy_defaults_to_best_fit(self):
        config = parse_rule_config(None, TEAM_TARGETS)
        assert config.targets[0].strategy == "BEST_FIT"

    @pytest.mark.parametrize("targets", [
        None,
        [],
        [{"type": "QUEUE", "id": "q-1"}],
        [{"type": "AGENT"}],
    ])
    def test_bad_targets_rejected(self, targets):
        with pytest.raises(RuleParseError):
            parse_rule_config(None, targets)

    @pytest.mark.parametrize("window", [
        {"timezone": "Mars/Olympus", "start": "09:00", "end": "17:00"},
        {"timezone": "UTC", "start": "24:00", "end": "17:00"},
        {"timezone": "UTC", "start": "9:00", "end": "17:00"},
        {"timezone": "UTC", "start": "09:00", "end": "17:00", "days": [7]},
        {"timezone": "UTC", "start": "09:00", "end": "17:00", "days": []},
    ])
    def test_bad_time_windows_rejected(self, window):
        with pytest.raises(RuleParseError):
            parse_rule_config({"timeWindows": [window]}, TEAM_TARGETS)

    def test_negative_price_rejected(self):
        with pytest.raises(RuleParseError):
            parse_rule_config({"priceBand": {"min": -1}}, TEAM_TARGETS)

    def test_parse_error_carries_detail(self):
        with pytest.raises(RuleParseError) as exc_info:
            parse_rule_config(None, [{"type": "TEAM"}], rule_id="rule-9")
        assert exc_info.value.rule_id == "rule-9"
        assert "targets" in str(exc_info.value)

    def test_parse_mode(self):
        assert parse_mode("score_and_assign") == RoutingMode.SCORE_AND_ASSIGN
        assert parse_mode(RoutingMode.FIRST_MATCH) == RoutingMode.FIRST_MATCH
        with pytest.raises(RuleParseError):
            parse_mode("LOTTERY")

    def test_parse_fallback(self):
        assert parse_fallback(None) is None
        assert parse_fallback({"teamId": "pond-1"}).team_id == "pond-1"
        with pytest.raises(RuleParseError):
            parse_fallback({"label": "no team"})

    def test_load_rule_with_corrupt_json(self):
        rule = RoutingRule(tenant_id="t", name="broken", targets="{not json")
        with pytest.raises(RuleParseError) as exc_info:
            load_rule(rule)
        assert exc_info.value.rule_id == rule.id

    def test_dump_uses_snake_case_and_drops_none(self):
        config = parse_rule_config(None, [{"type": "POND", "id": "p-1"}], {"teamId": "pond-1"})
        assert dump_targets(config.targets) == [{"type": "POND", "id": "p-1"}]
        assert dump_fallback(config.fallback) == {"team_id": "pond-1"}


class TestGeographyAndPrice:
    """Tests for listing-based conditions."""

    def test_state_include_is_case_insensitive(self):
        result = evaluate_conditions(
            conditions(geography={"includeStates": ["OH"]}),
            make_context(listing=Listing(state="oh", city="Columbus")),
        )
        assert result.matched is True

    def test_state_not_in_list(self):
        result = evaluate_conditions(
            conditions(geography={"includeStates": ["OH"]}),
            make_context(listing=Listing(state="KY")),
        )
        assert result.matched is False
        assert result.checks[0].detail == "State ky not in allowed list"

    def test_excluded_city(self):
        result = evaluate_conditions(
            conditions(geography={"excludeCities": ["Dayton"]}),
            make_context(listing=Listing(state="OH", city="Dayton")),
        )
        assert result.matched is False
        assert "explicitly excluded" in result.checks[0].detail

    def test_geography_without_listing(self):
        result = evaluate_conditions(conditions(geography={"includeStates": ["OH"]}), make_context())
        assert result.matched is False
        assert result.checks[0].detail == "No listing context available for geography matching"

    def test_price_band(self):
        band = conditions(priceBand={"min": 100000, "max": 400000})
        assert evaluate_conditions(band, make_context(listing=Listing(price=250000))).matched is True

        below = evaluate_conditions(band, make_context(listing=Listing(price=90000)))
        assert below.matched is False
        assert below.checks[0].detail == "Listing price 90000 below minimum 100000"

        above = evaluate_conditions(band, make_context(listing=Listing(price=500000)))
        assert above.checks[0].detail == "Listing price 500000 above maximum 400000"

    def test_price_band_without_price(self):
        result = evaluate_conditions(conditions(priceBand={"min": 1}), make_context(listing=Listing(city="x")))
        assert result.checks[0].detail == "Listing price unavailable"


class TestPersonConditions:
    """Tests for source, consent and buyer-rep conditions."""

    def test_source_include(self):
        rule = conditions(sources={"include": ["zillow"]})
        assert evaluate_conditions(rule, make_context(source="Zillow")).matched is True
        assert evaluate_conditions(rule, make_context(source="website")).matched is False
        assert evaluate_conditions(rule, make_context()).matched is False

    def test_source_exclude(self):
        rule = conditions(sources={"exclude": ["referral"]})
        assert evaluate_conditions(rule, make_context(source="referral")).matched is False
        assert evaluate_conditions(rule, make_context()).matched is True

    def test_consent_must_be_granted(self):
        rule = conditions(consent={"sms": "GRANTED"})
        result = evaluate_conditions(rule, make_context())
        assert result.matched is False
        assert result.checks[0].detail == "SMS consent must be granted"

        granted = make_context(consent={MessageChannel.SMS: ConsentStatus.GRANTED})
        assert evaluate_conditions(rule, granted).matched is True

    def test_consent_not_revoked(self):
        rule = conditions(consent={"email": "NOT_REVOKED"})
        assert evaluate_conditions(rule, make_context()).matched is True
        revoked = make_context(consent={MessageChannel.EMAIL: ConsentStatus.REVOKED})
        assert evaluate_conditions(rule, revoked).checks[0].detail == "EMAIL consent revoked"

    def test_buyer_rep(self):
        required = conditions(buyerRep="REQUIRED_ACTIVE")
        assert evaluate_conditions(required, make_context(buyer_rep_status="active")).matched is True
        assert evaluate_conditions(required, make_context()).matched is False

        prohibited = conditions(buyerRep="PROHIBIT_ACTIVE")
        assert evaluate_conditions(prohibited, make_context(buyer_rep_status="ACTIVE")).matched is False
        assert evaluate_conditions(prohibited, make_context(buyer_rep_status="NONE")).matched is True


class TestTimeConditions:
    """Tests for time windows and quiet-hours conditions."""

    def window(self, start, end, days=None, tz="America/New_York"):
        window = {"timezone": tz, "start": start, "end": end}
        if days is not None:
            window["days"] = days
        return conditions(timeWindows=[window])

    def test_inside_window(self):
        assert evaluate_conditions(self.window("09:00", "17:00"), make_context()).matched is True

    def test_endpoints_are_inclusive(self):
        assert evaluate_conditions(self.window("11:00", "12:00"), make_context()).matched is True
        assert evaluate_conditions(self.window("10:00", "11:00"), make_context()).matched is True

    def test_day_filter_uses_sunday_zero(self):
        assert evaluate_conditions(self.window("09:00", "17:00", days=[2]), make_context()).matched is True
        result = evaluate_conditions(self.window("09:00", "17:00", days=[0, 6]), make_context())
        assert result.matched is False
        assert result.checks[0].detail == (
            "Outside allowed windows: 09:00-17:00 America/New_York (Su, Sa)"
        )

    def test_overnight_window(self):
        overnight = self.window("22:00", "06:00")
        assert evaluate_conditions(overnight, make_context()).matched is False
        late = datetime(2026, 3, 11, 3, 30, tzinfo=timezone.utc)  # 23:30 local
        assert evaluate_conditions(overnight, make_context(now=late)).matched is True

    def test_window_timezone_is_independent_of_tenant(self):
        # 15:00 UTC
        assert evaluate_conditions(self.window("14:00", "16:00", tz="UTC"), make_context()).matched is True

    def test_any_window_matches(self):
        rule = conditions(timeWindows=[
            {"timezone": "UTC", "start": "00:00", "end": "01:00"},
            {"timezone": "UTC", "start": "14:00", "end": "16:00"},
        ])
        assert evaluate_conditions(rule, make_context()).matched is True

    def test_quiet_hours_condition(self):
        outside = conditions(quietHours="OUTSIDE_ONLY")
        assert evaluate_conditions(outside, make_context(quiet_hours=False)).matched is True
        assert evaluate_conditions(outside, make_context(quiet_hours=True)).matched is False

        inside = conditions(quietHours="INSIDE_ONLY")
        assert evaluate_conditions(inside, make_context(quiet_hours=False)).matched is False

    def test_every_check_is_reported(self):
        rule = conditions(sources={"include": ["zillow"]}, buyerRep="REQUIRED_ACTIVE", quietHours="ANY")
        result = evaluate_conditions(rule, make_context(source="zillow"))
        assert [check.key for check in result.checks] == ["sources", "buyer_rep", "quiet_hours"]
        assert [check.passed for check in result.checks] == [True, False, True]
        assert result.matched is False

    def test_empty_conditions_match(self):
        assert evaluate_conditions(RuleConditions(), make_context()).matched is True
        assert evaluate_conditions(None, make_context()).matched is True


class TestQuietHours:
    """Tests for tenant quiet hours."""

    def at(self, hour, minute=0):
        # New York is UTC-4 after 2026-03-08
        return datetime(2026, 3, 10, (hour + 4) % 24, minute, tzinfo=timezone.utc)

    def test_wrapping_window(self):
        assert is_quiet_hours(self.at(21), "America/New_York", 21, 8) is True
        assert is_quiet_hours(self.at(2), "America/New_York", 21, 8) is True
        assert is_quiet_hours(self.at(8), "America/New_York", 21, 8) is False
        assert is_quiet_hours(self.at(20, 59), "America/New_York", 21, 8) is False

    def test_same_day_window(self):
        assert is_quiet_hours(self.at(13), "America/New_York", 12, 14) is True
        assert is_quiet_hours(self.at(14), "America/New_York", 12, 14) is False

    def test_equal_bounds_disable(self):
        assert is_quiet_hours(self.at(3), "America/New_York", 0, 0) is False

    def test_unknown_timezone_uses_utc(self):
        assert str(resolve_timezone("Nowhere/Special")) == "UTC"
        assert is_quiet_hours(NOW, "Nowhere/Special", 14, 16) is True
