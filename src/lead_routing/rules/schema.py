"""Validated shapes for routing rule conditions, targets and fallback.

Rules are stored as JSON text. They are parsed into these models when a rule
is created or updated and again every time it is evaluated, so a rule that
was corrupted in storage is caught at evaluation time rather than crashing
the assignment.
"""

from dataclasses import dataclass
from typing import Annotated, List, Optional, Union, Any, Dict, Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from ..errors import RuleParseError
from ..storage.models import RoutingMode, RoutingRule

ConsentRequirement = Literal["OPTIONAL", "GRANTED", "NOT_REVOKED"]
BuyerRepRequirement = Literal["ANY", "REQUIRED_ACTIVE", "PROHIBIT_ACTIVE"]
QuietHoursRequirement = Literal["ANY", "OUTSIDE_ONLY", "INSIDE_ONLY"]
TeamStrategy = Literal["BEST_FIT", "ROUND_ROBIN"]

TIME_PATTERN = r"^\d{2}:\d{2}$"


class _RuleModel(BaseModel):
    # Accept both snake_case and the camelCase keys used by API clients
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class GeographyCondition(_RuleModel):
    include_states: Optional[List[str]] = None
    include_cities: Optional[List[str]] = None
    include_postal_codes: Optional[List[str]] = None
    exclude_states: Optional[List[str]] = None
    exclude_cities: Optional[List[str]] = None
    exclude_postal_codes: Optional[List[str]] = None


class PriceBandCondition(_RuleModel):
    min: Optional[float] = Field(default=None, ge=0)
    max: Optional[float] = Field(default=None, gt=0)
    currency: Optional[str] = None


class SourceCondition(_RuleModel):
    include: Optional[List[str]] = None
    exclude: Optional[List[str]] = None


class ConsentCondition(_RuleModel):
    sms: Optional[ConsentRequirement] = None
    email: Optional[ConsentRequirement] = None


class TimeWindow(_RuleModel):
    """Local-time window; start > end wraps past midnight."""

    timezone: str
    start: str = Field(pattern=TIME_PATTERN)
    end: str = Field(pattern=TIME_PATTERN)
    days: Optional[List[Annotated[int, Field(ge=0, le=6)]]] = Field(default=None, min_length=1)

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"unknown timezone {value!r}")
        return value

    @field_validator("start", "end")
    @classmethod
    def _valid_clock_time(cls, value: str) -> str:
        hours, minutes = (int(part) for part in value.split(":"))
        if hours > 23 or minutes > 59:
            raise ValueError(f"{value} is not a valid HH:MM time")
        return value

    @property
    def start_minutes(self) -> int:
        hours, minutes = self.start.split(":")
        return int(hours) * 60 + int(minutes)

    @property
    def end_minutes(self) -> int:
        hours, minutes = self.end.split(":")
        return int(hours) * 60 + int(minutes)


class RuleConditions(_RuleModel):
    geography: Optional[GeographyCondition] = None
    price_band: Optional[PriceBandCondition] = None
    sources: Optional[SourceCondition] = None
    consent: Optional[ConsentCondition] = None
    buyer_rep: Optional[BuyerRepRequirement] = None
    time_windows: Optional[List[TimeWindow]] = None
    quiet_hours: Optional[QuietHoursRequirement] = None


class AgentTarget(_RuleModel):
    type: Literal["AGENT"]
    id: str
    label: Optional[str] = None


class TeamTarget(_RuleModel):
    type: Literal["TEAM"]
    id: str
    strategy: TeamStrategy = "BEST_FIT"
    include_roles: Optional[List[str]] = None


class PondTarget(_RuleModel):
    type: Literal["POND"]
    id: str
    label: Optional[str] = None


RoutingTarget = Annotated[Union[AgentTarget, TeamTarget, PondTarget], Field(discriminator="type")]


class RuleFallback(_RuleModel):
    team_id: str
    label: Optional[str] = None
    escalation_channels: Optional[List[Literal["EMAIL", "SMS", "IN_APP"]]] = None


class RuleConfig(_RuleModel):
    conditions: RuleConditions = Field(default_factory=RuleConditions)
    targets: List[RoutingTarget] = Field(min_length=1)
    fallback: Optional[RuleFallback] = None

    @property
    def fallback_team_id(self) -> Optional[str]:
        return self.fallback.team_id if self.fallback else None


@dataclass
class ParsedRule:
    """A stored rule together with its validated configuration."""

    rule: RoutingRule
    mode: RoutingMode
    config: RuleConfig

    @property
    def id(self) -> str:
        return self.rule.id


def _describe(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ()))
        parts.append(f"{location}: {item.get('msg')}" if location else item.get("msg", ""))
    return "; ".join(parts)


def parse_mode(mode: Any, rule_id: Optional[str] = None) -> RoutingMode:
    if isinstance(mode, RoutingMode):
        return mode
    try:
        return RoutingMode(str(mode).upper())
    except ValueError:
        raise RuleParseError(f"Unknown routing mode {mode!r}", rule_id=rule_id)


def parse_rule_config(
    conditions: Any,
    targets: Any,
    fallback: Any = None,
    rule_id: Optional[str] = None,
) -> RuleConfig:
    """Validate raw rule JSON. Raises RuleParseError on any problem."""
    try:
        return RuleConfig.model_validate({
            "conditions": conditions if conditions is not None else {},
            "targets": targets,
            "fallback": fallback,
        })
    except ValidationError as e:
        raise RuleParseError(f"Invalid routing rule: {_describe(e)}", rule_id=rule_id) from e


def parse_fallback(fallback: Any, rule_id: Optional[str] = None) -> Optional[RuleFallback]:
    """Validate just the fallback block (used by the SLA breach path)."""
    if fallback is None:
        return None
    try:
        return RuleFallback.model_validate(fallback)
    except ValidationError as e:
        raise RuleParseError(f"Invalid rule fallback: {_describe(e)}", rule_id=rule_id) from e


def load_rule(rule: RoutingRule) -> ParsedRule:
    """Validate a stored rule for evaluation."""
    mode = parse_mode(rule.mode, rule_id=rule.id)
    config = parse_rule_config(rule.conditions, rule.targets, rule.fallback, rule_id=rule.id)
    return ParsedRule(rule=rule, mode=mode, config=config)


def dump_conditions(conditions: RuleConditions) -> Dict[str, Any]:
    return conditions.model_dump(exclude_none=True)


def dump_targets(targets: List[Any]) -> List[Dict[str, Any]]:
    return [target.model_dump(exclude_none=True) for target in targets]


def dump_fallback(fallback: Optional[RuleFallback]) -> Optional[Dict[str, Any]]:
    return fallback.model_dump(exclude_none=True) if fallback else None
