"""Lead routing and SLA engine."""
