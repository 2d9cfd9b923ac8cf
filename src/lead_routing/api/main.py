"""FastAPI application factory for the lead routing admin API."""

import logging
from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI

from ..config import settings
from ..services import RoutingServices, build_services
from ..sla.runner import SlaTaskRunner
from .routes.health import router as health_router
from .routes.routing import router as routing_router
from .routes.rules import router as rules_router
from .routes.sla import router as sla_router
from .routes.dashboard import router as dashboard_router

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("Starting lead routing API")

    # Start the SLA sweeper if enabled
    runner = None
    if settings.sweeper_enabled:
        runner = SlaTaskRunner(app.state.services.sla, interval_seconds=settings.sweep_interval)
        runner.start()
    app.state.sla_runner = runner

    yield

    # Shutdown
    if runner:
        runner.stop()
    logger.info("Lead routing API shutting down")


def create_app(services: Optional[RoutingServices] = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Lead Routing API",
        description="Lead assignment rules, SLA timers and routing dashboards",
        version="1.0.0",
        lifespan=lifespan,
    )

    if services is None:
        services = build_services(
            db_path=settings.db_path,
            scoring_config_path=settings.scoring_config_path,
            lookback_days=settings.lookback_days,
        )
    app.state.services = services

    # Routes
    app.include_router(health_router)
    app.include_router(routing_router)
    app.include_router(rules_router)
    app.include_router(sla_router)
    app.include_router(dashboard_router)

    return app
