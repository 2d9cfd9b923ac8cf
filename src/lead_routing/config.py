"""Environment-based configuration for the routing service."""

import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)


class Settings:
    """Service configuration loaded from environment variables."""

    def __init__(self):
        self.db_path = os.getenv(
            "LEAD_ROUTING_DB_PATH",
            str(Path.home() / ".lead-routing" / "routing.db"),
        )
        self.host = os.getenv("LEAD_ROUTING_API_HOST", "0.0.0.0")
        self.port = int(os.getenv("LEAD_ROUTING_API_PORT", "8000"))

        # Optional shared secret for the admin API; empty disables the check
        self.api_secret = os.getenv("LEAD_ROUTING_API_SECRET", "")
        if not self.api_secret:
            logger.warning("LEAD_ROUTING_API_SECRET not set; admin API is unauthenticated")

        self.sweep_interval = int(os.getenv("LEAD_ROUTING_SWEEP_INTERVAL", "60"))
        self.sweeper_enabled = (
            os.getenv("LEAD_ROUTING_SWEEPER_ENABLED", "false").lower() == "true"
        )
        self.lookback_days = int(os.getenv("LEAD_ROUTING_LOOKBACK_DAYS", "90"))
        self.scoring_config_path = os.getenv("LEAD_ROUTING_SCORING_CONFIG")
        self.debug = os.getenv("LEAD_ROUTING_ENV", "production") != "production"


_settings = None


def _get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings():
    """Drop cached settings so the next access re-reads the environment."""
    global _settings
    _settings = None


class _SettingsProxy:
    """Lazy proxy so settings aren't loaded until first access."""

    def __getattr__(self, name):
        return getattr(_get_settings(), name)


settings = _SettingsProxy()
