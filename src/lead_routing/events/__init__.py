"""Outbox events emitted by routing and SLA processing."""

from .outbox import OutboxPublisher, DatabaseOutbox, InMemoryOutbox, RoutingEvent

__all__ = ["OutboxPublisher", "DatabaseOutbox", "InMemoryOutbox", "RoutingEvent"]
