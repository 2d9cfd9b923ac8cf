"""Create, update and list routing rules."""

import logging
from typing import List, Dict, Optional, Any

from pydantic import TypeAdapter, ValidationError

from ..core.clock import Clock, SystemClock
from ..errors import RuleNotFoundError, RuleParseError
from ..storage.database import RoutingDatabase
from ..storage.models import RoutingRule
from .schema import (
    RuleConditions,
    RuleFallback,
    RoutingTarget,
    dump_conditions,
    dump_fallback,
    dump_targets,
    parse_mode,
    parse_rule_config,
)

logger = logging.getLogger(__name__)

_UNSET: Any = object()

_targets_adapter = TypeAdapter(List[RoutingTarget])


def _safe_parse(validate, value: Any) -> Any:
    """Validated JSON for display, or None when the stored value is malformed."""
    if value is None:
        return None
    try:
        return validate(value)
    except ValidationError:
        return None


class RuleService:
    """Rule CRUD. Configuration is validated before anything is written."""

    def __init__(self, db: RoutingDatabase, clock: Optional[Clock] = None):
        self.db = db
        self.clock = clock or SystemClock()

    def list_rules(self, tenant_id: str) -> List[Dict[str, Any]]:
        """All rules in evaluation order; malformed parts are shown as None."""
        results = []
        for rule in self.db.list_rules(tenant_id):
            data = rule.to_dict()
            conditions = _safe_parse(RuleConditions.model_validate, rule.conditions)
            targets = _safe_parse(_targets_adapter.validate_python, rule.targets)
            fallback = _safe_parse(RuleFallback.model_validate, rule.fallback)
            data["conditions"] = dump_conditions(conditions) if conditions else None
            data["targets"] = dump_targets(targets) if targets else None
            data["fallback"] = dump_fallback(fallback)
            results.append(data)
        return results

    def get_rule(self, tenant_id: str, rule_id: str) -> RoutingRule:
        rule = self.db.get_rule(tenant_id, rule_id)
        if rule is None:
            raise RuleNotFoundError(rule_id)
        return rule

    def create_rule(
        self,
        tenant_id: str,
        name: str,
        targets: Any,
        mode: Any = "FIRST_MATCH",
        priority: int = 0,
        enabled: bool = True,
        conditions: Any = None,
        fallback: Any = None,
        sla_first_touch_minutes: Optional[int] = None,
        sla_kept_appointment_minutes: Optional[int] = None,
        created_by: Optional[str] = None,
    ) -> RoutingRule:
        """Validate and store a new rule. Raises RuleParseError if malformed."""
        routing_mode = parse_mode(mode)
        config = parse_rule_config(conditions, targets, fallback)
        now = self.clock.now()

        rule = RoutingRule(
            tenant_id=tenant_id,
            name=name,
            priority=priority,
            mode=routing_mode.value,
            enabled=enabled,
            conditions=dump_conditions(config.conditions),
            targets=dump_targets(config.targets),
            fallback=dump_fallback(config.fallback),
            sla_first_touch_minutes=sla_first_touch_minutes,
            sla_kept_appointment_minutes=sla_kept_appointment_minutes,
            created_by=created_by,
            created_at=now,
            updated_at=now,
        )
        self.db.insert_rule(rule)
        logger.info(f"Created routing rule {rule.id} ({rule.name}) for tenant {tenant_id}")
        return rule

    def update_rule(
        self,
        tenant_id: str,
        rule_id: str,
        name: Any = _UNSET,
        priority: Any = _UNSET,
        mode: Any = _UNSET,
        enabled: Any = _UNSET,
        conditions: Any = _UNSET,
        targets: Any = _UNSET,
        fallback: Any = _UNSET,
        sla_first_touch_minutes: Any = _UNSET,
        sla_kept_appointment_minutes: Any = _UNSET,
    ) -> RoutingRule:
        """Apply a partial update; omitted fields keep their stored value.

        SLA minutes may be explicitly cleared by passing None. Past route
        events keep the rule header they were recorded with.
        """
        rule = self.get_rule(tenant_id, rule_id)

        def pick(value, current):
            return current if value is _UNSET or value is None else value

        routing_mode = parse_mode(pick(mode, rule.mode), rule_id=rule_id)
        try:
            config = parse_rule_config(
                pick(conditions, rule.conditions),
                pick(targets, rule.targets),
                pick(fallback, rule.fallback),
                rule_id=rule_id,
            )
        except RuleParseError:
            logger.warning(f"Rejected update to routing rule {rule_id}: invalid configuration")
            raise

        rule.name = pick(name, rule.name)
        rule.priority = pick(priority, rule.priority)
        rule.mode = routing_mode.value
        rule.enabled = pick(enabled, rule.enabled)
        rule.conditions = dump_conditions(config.conditions)
        rule.targets = dump_targets(config.targets)
        rule.fallback = dump_fallback(config.fallback)
        if sla_first_touch_minutes is not _UNSET:
            rule.sla_first_touch_minutes = sla_first_touch_minutes
        if sla_kept_appointment_minutes is not _UNSET:
            rule.sla_kept_appointment_minutes = sla_kept_appointment_minutes
        rule.updated_at = self.clock.now()

        self.db.update_rule(rule)
        logger.info(f"Updated routing rule {rule_id} for tenant {tenant_id}")
        return rule

    def delete_rule(self, tenant_id: str, rule_id: str) -> Dict[str, str]:
        """Delete a rule; deleting a missing rule is not an error."""
        deleted = self.db.delete_rule(tenant_id, rule_id)
        if deleted:
            logger.info(f"Deleted routing rule {rule_id} for tenant {tenant_id}")
        return {"id": rule_id}
