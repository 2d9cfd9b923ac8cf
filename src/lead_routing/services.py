"""Wire the routing components together around one database."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .analytics.metrics import MetricsAggregator
from .core.clock import Clock, SystemClock
from .core.config import RoutingConfigManager
from .events.outbox import DatabaseOutbox, OutboxPublisher
from .routing.engine import RoutingEngine
from .routing.snapshots import DEFAULT_LOOKBACK_DAYS
from .rules.service import RuleService
from .sla.processor import SlaProcessor
from .storage.database import RoutingDatabase

logger = logging.getLogger(__name__)


@dataclass
class RoutingServices:
    """Everything the API and CLI need, sharing one database and clock."""

    db: RoutingDatabase
    publisher: OutboxPublisher
    clock: Clock
    config_manager: RoutingConfigManager
    engine: RoutingEngine
    sla: SlaProcessor
    rules: RuleService
    metrics: MetricsAggregator


def build_services(
    db_path: Optional[Path] = None,
    clock: Optional[Clock] = None,
    publisher: Optional[OutboxPublisher] = None,
    scoring_config_path: Optional[Path] = None,
    lookback_days: int = DEFAULT_LOOKBACK_DAYS,
) -> RoutingServices:
    """Build the service graph. Events go to the database outbox unless a publisher is given."""
    db = RoutingDatabase(db_path)
    clock = clock or SystemClock()
    publisher = publisher or DatabaseOutbox(db)
    config_manager = RoutingConfigManager(scoring_config_path)

    logger.debug(f"Routing services using database {db.db_path}")

    return RoutingServices(
        db=db,
        publisher=publisher,
        clock=clock,
        config_manager=config_manager,
        engine=RoutingEngine(
            db,
            publisher,
            clock=clock,
            config=config_manager.config,
            lookback_days=lookback_days,
        ),
        sla=SlaProcessor(db, publisher, clock=clock),
        rules=RuleService(db, clock=clock),
        metrics=MetricsAggregator(db, clock=clock, lookback_days=lookback_days),
    )
