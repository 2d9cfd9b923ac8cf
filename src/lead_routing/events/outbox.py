"""Domain events emitted by routing and SLA processing."""

import logging
from datetime import datetime
from enum import Enum
from typing import List, Dict, Optional, Any

from ..storage.database import RoutingDatabase
from ..storage.models import OutboxEvent

logger = logging.getLogger(__name__)


class RoutingEvent(Enum):
    """Event types published to the outbox."""

    ASSIGNED = "lead-routing.assigned"
    SLA_BREACHED = "lead-routing.sla.breached"
    SLA_SATISFIED = "lead-routing.sla.satisfied"


def build_event(
    tenant_id: str,
    event_type: RoutingEvent,
    occurred_at: datetime,
    lead_id: str,
    data: Dict[str, Any],
) -> OutboxEvent:
    """Outbox envelope whose resource is the routed lead."""
    return OutboxEvent(
        tenant_id=tenant_id,
        event_type=event_type.value,
        occurred_at=occurred_at,
        resource={"id": lead_id, "type": "lead"},
        data=data,
    )


class OutboxPublisher:
    """Destination for domain events. Delivery is someone else's job."""

    def enqueue(self, event: OutboxEvent):
        raise NotImplementedError


class DatabaseOutbox(OutboxPublisher):
    """Writes events to the outbox table for a separate delivery worker."""

    def __init__(self, db: RoutingDatabase):
        self.db = db

    def enqueue(self, event: OutboxEvent):
        self.db.insert_outbox_event(event)
        logger.debug(f"Enqueued {event.event_type} for tenant {event.tenant_id}")


class InMemoryOutbox(OutboxPublisher):
    """Keeps events in a list; used by tests and dry runs."""

    def __init__(self):
        self.events: List[OutboxEvent] = []

    def enqueue(self, event: OutboxEvent):
        self.events.append(event)

    def of_type(self, event_type: RoutingEvent, lead_id: Optional[str] = None) -> List[OutboxEvent]:
        return [
            event for event in self.events
            if event.event_type == event_type.value
            and (lead_id is None or event.resource.get("id") == lead_id)
        ]


def publish_safely(publisher: OutboxPublisher, event: OutboxEvent) -> bool:
    """Publish after commit; failures are logged, never raised."""
    try:
        publisher.enqueue(event)
        return True
    except Exception:
        logger.exception(f"Failed to publish {event.event_type} for tenant {event.tenant_id}")
        return False
