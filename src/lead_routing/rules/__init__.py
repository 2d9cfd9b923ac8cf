"""Routing rule validation, condition evaluation and management."""

from .schema import ParsedRule, RuleConfig, load_rule, parse_rule_config
from .evaluator import PersonContext, RoutingContext, EvaluationResult, evaluate_conditions
from .service import RuleService

__all__ = [
    "ParsedRule",
    "RuleConfig",
    "load_rule",
    "parse_rule_config",
    "PersonContext",
    "RoutingContext",
    "EvaluationResult",
    "evaluate_conditions",
    "RuleService",
]
