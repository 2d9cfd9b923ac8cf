"""Match a rule's conditions against the lead, listing and tenant context."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Dict, Optional, Any, Tuple

from ..core.clock import ensure_utc
from ..core.quiet_hours import resolve_timezone
from ..storage.models import ConsentStatus, Listing, MessageChannel
from .schema import (
    ConsentCondition,
    GeographyCondition,
    PriceBandCondition,
    RuleConditions,
    SourceCondition,
    TimeWindow,
)

DAY_ABBREVIATIONS = ["Su", "Mo", "Tu", "We", "Th", "Fr", "Sa"]


@dataclass
class PersonContext:
    """What routing knows about the lead."""

    source: Optional[str] = None
    buyer_rep_status: Optional[str] = None
    consent: Dict[MessageChannel, ConsentStatus] = field(default_factory=lambda: {
        MessageChannel.SMS: ConsentStatus.UNKNOWN,
        MessageChannel.EMAIL: ConsentStatus.UNKNOWN,
    })

    @property
    def has_granted_channel(self) -> bool:
        return any(status == ConsentStatus.GRANTED for status in self.consent.values())

    def consent_for(self, channel: MessageChannel) -> ConsentStatus:
        return self.consent.get(channel, ConsentStatus.UNKNOWN)


@dataclass
class RoutingContext:
    """Inputs a rule's conditions are evaluated against."""

    now: datetime
    tenant_timezone: str
    person: PersonContext
    listing: Optional[Listing] = None
    quiet_hours: bool = False


@dataclass
class ConditionCheck:
    """Outcome of one condition."""

    key: str
    passed: bool
    detail: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"key": self.key, "passed": self.passed, "detail": self.detail}


@dataclass
class EvaluationResult:
    """All checks for a rule; matched only if every check passed."""

    matched: bool
    checks: List[ConditionCheck] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"matched": self.matched, "checks": [check.to_dict() for check in self.checks]}


Outcome = Tuple[bool, Optional[str]]


def _lower(values: Optional[List[str]]) -> Optional[List[str]]:
    if values is None:
        return None
    return [value.lower() for value in values]


def _match_list(label: str, value: Optional[str], include: Optional[List[str]],
                exclude: Optional[List[str]]) -> Outcome:
    include = _lower(include)
    exclude = _lower(exclude)
    if include and (not value or value not in include):
        return False, f"{label} {value or 'unknown'} not in allowed list"
    if exclude and value and value in exclude:
        return False, f"{label} {value} explicitly excluded"
    return True, None


def _match_geography(condition: GeographyCondition, listing: Optional[Listing]) -> Outcome:
    if listing is None:
        return False, "No listing context available for geography matching"

    state = listing.state.lower() if listing.state else None
    city = listing.city.lower() if listing.city else None
    postal_code = listing.postal_code.lower() if listing.postal_code else None

    for label, value, include, exclude in (
        ("State", state, condition.include_states, condition.exclude_states),
        ("City", city, condition.include_cities, condition.exclude_cities),
        ("Postal code", postal_code, condition.include_postal_codes, condition.exclude_postal_codes),
    ):
        passed, detail = _match_list(label, value, include, exclude)
        if not passed:
            return passed, detail
    return True, None


def _match_price_band(condition: PriceBandCondition, listing: Optional[Listing]) -> Outcome:
    price = listing.price if listing else None
    if price is None:
        return False, "Listing price unavailable"
    if condition.min is not None and price < condition.min:
        return False, f"Listing price {price:g} below minimum {condition.min:g}"
    if condition.max is not None and price > condition.max:
        return False, f"Listing price {price:g} above maximum {condition.max:g}"
    return True, None


def _match_sources(condition: SourceCondition, person: PersonContext) -> Outcome:
    source = person.source.lower() if person.source else None
    return _match_list("Source", source, condition.include, condition.exclude)


def _match_consent_requirement(requirement: Optional[str], state: ConsentStatus,
                               channel: MessageChannel) -> Outcome:
    if not requirement or requirement == "OPTIONAL":
        return True, None
    if requirement == "GRANTED" and state != ConsentStatus.GRANTED:
        return False, f"{channel.value} consent must be granted"
    if requirement == "NOT_REVOKED" and state == ConsentStatus.REVOKED:
        return False, f"{channel.value} consent revoked"
    return True, None


def _match_consent(condition: ConsentCondition, person: PersonContext) -> Outcome:
    sms = _match_consent_requirement(condition.sms, person.consent_for(MessageChannel.SMS), MessageChannel.SMS)
    email = _match_consent_requirement(
        condition.email, person.consent_for(MessageChannel.EMAIL), MessageChannel.EMAIL
    )
    details = "; ".join(detail for _, detail in (sms, email) if detail)
    return sms[0] and email[0], details or None


def _match_buyer_rep(requirement: str, status: Optional[str]) -> Outcome:
    if requirement == "ANY":
        return True, None
    normalized = status.upper() if status else "UNKNOWN"
    if requirement == "REQUIRED_ACTIVE" and normalized != "ACTIVE":
        return False, "Active buyer representation required"
    if requirement == "PROHIBIT_ACTIVE" and normalized == "ACTIVE":
        return False, "Leads with active buyer representation excluded"
    return True, None


def _local_time(now: datetime, timezone_name: str) -> Tuple[int, int]:
    """Minutes past local midnight and day index (0 = Sunday)."""
    local = ensure_utc(now).astimezone(resolve_timezone(timezone_name))
    return local.hour * 60 + local.minute, (local.weekday() + 1) % 7


def _in_window(window: TimeWindow, now: datetime) -> bool:
    minutes, day = _local_time(now, window.timezone)
    if window.days and day not in window.days:
        return False
    start, end = window.start_minutes, window.end_minutes
    if start <= end:
        return start <= minutes <= end
    # Overnight window, e.g. 22:00 - 06:00
    return minutes >= start or minutes <= end


def _describe_window(window: TimeWindow) -> str:
    days = ", ".join(DAY_ABBREVIATIONS[day] for day in window.days) if window.days else "All days"
    return f"{window.start}-{window.end} {window.timezone} ({days})"


def _match_time_windows(windows: List[TimeWindow], now: datetime) -> Outcome:
    if any(_in_window(window, now) for window in windows):
        return True, None
    return False, "Outside allowed windows: " + "; ".join(_describe_window(w) for w in windows)


def _match_quiet_hours(requirement: str, quiet_hours: bool) -> Outcome:
    if requirement == "OUTSIDE_ONLY" and quiet_hours:
        return False, "Rule does not apply during quiet hours"
    if requirement == "INSIDE_ONLY" and not quiet_hours:
        return False, "Rule only applies during quiet hours"
    return True, None


def evaluate_conditions(conditions: Optional[RuleConditions], context: RoutingContext) -> EvaluationResult:
    """Run every present condition; absent conditions always pass."""
    if conditions is None:
        return EvaluationResult(matched=True)

    checks: List[ConditionCheck] = []

    def add(key: str, outcome: Outcome):
        checks.append(ConditionCheck(key=key, passed=outcome[0], detail=outcome[1]))

    if conditions.geography:
        add("geography", _match_geography(conditions.geography, context.listing))

    if conditions.price_band:
        add("price_band", _match_price_band(conditions.price_band, context.listing))

    if conditions.sources:
        add("sources", _match_sources(conditions.sources, context.person))

    if conditions.consent:
        add("consent", _match_consent(conditions.consent, context.person))

    if conditions.buyer_rep:
        add("buyer_rep", _match_buyer_rep(conditions.buyer_rep, context.person.buyer_rep_status))

    if conditions.time_windows:
        add("time_windows", _match_time_windows(conditions.time_windows, context.now))

    if conditions.quiet_hours:
        add("quiet_hours", _match_quiet_hours(conditions.quiet_hours, context.quiet_hours))

    return EvaluationResult(matched=all(check.passed for check in checks), checks=checks)
