"""Exceptions raised by the routing engine."""


class RoutingError(Exception):
    """Base class for lead routing failures."""


class UnknownTenantError(RoutingError):
    """Raised when a tenant id does not resolve to a tenant record."""

    def __init__(self, tenant_id: str):
        super().__init__(f"Unknown tenant: {tenant_id}")
        self.tenant_id = tenant_id


class RuleParseError(RoutingError):
    """Raised when a routing rule's conditions, targets or fallback are malformed."""

    def __init__(self, message: str, rule_id: str = None):
        super().__init__(message)
        self.rule_id = rule_id


class RuleNotFoundError(RoutingError):
    """Raised when a rule does not exist for the given tenant."""

    def __init__(self, rule_id: str):
        super().__init__(f"Routing rule not found: {rule_id}")
        self.rule_id = rule_id
