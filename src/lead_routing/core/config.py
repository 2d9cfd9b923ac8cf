"""Configurable scoring weights for score-and-assign routing."""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional, Any

logger = logging.getLogger(__name__)


@dataclass
class RoutingConfig:
    """Scoring weights and the qualification threshold."""

    # Candidates scoring below this are not auto-assigned
    minimum_score: float = 0.6

    capacity_weight: float = 0.35
    performance_weight: float = 0.25
    geography_weight: float = 0.2
    price_band_weight: float = 0.2

    # Candidates within this margin of the best score stay in contention
    contention_margin: float = 0.05

    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "minimum_score": self.minimum_score,
            "capacity_weight": self.capacity_weight,
            "performance_weight": self.performance_weight,
            "geography_weight": self.geography_weight,
            "price_band_weight": self.price_band_weight,
            "contention_margin": self.contention_margin,
            "updated_at": self.updated_at.isoformat(),
        }


class RoutingConfigManager:
    """Manage and persist scoring configuration."""

    def __init__(self, config_path: Optional[Path] = None):
        """Initialize config manager."""
        self.config_path = Path(config_path) if config_path else Path.home() / ".lead-routing" / "scoring_config.json"
        self.config = self._load_config()

    def _load_config(self) -> RoutingConfig:
        """Load configuration from file."""
        if self.config_path.exists():
            try:
                with open(self.config_path, 'r') as f:
                    data = json.load(f)
                defaults = RoutingConfig()
                return RoutingConfig(
                    minimum_score=float(data.get("minimum_score", defaults.minimum_score)),
                    capacity_weight=float(data.get("capacity_weight", defaults.capacity_weight)),
                    performance_weight=float(data.get("performance_weight", defaults.performance_weight)),
                    geography_weight=float(data.get("geography_weight", defaults.geography_weight)),
                    price_band_weight=float(data.get("price_band_weight", defaults.price_band_weight)),
                    contention_margin=float(data.get("contention_margin", defaults.contention_margin)),
                )
            except (OSError, ValueError, TypeError) as e:
                logger.error(f"Error loading scoring config: {e}")

        return RoutingConfig()

    def save_config(self):
        """Save configuration to file."""
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.config_path, 'w') as f:
            json.dump(self.config.to_dict(), f, indent=2)

    def update_weights(
        self,
        capacity: Optional[float] = None,
        performance: Optional[float] = None,
        geography: Optional[float] = None,
        price_band: Optional[float] = None,
    ):
        """Update scoring weights; omitted weights are left unchanged."""
        if capacity is not None:
            self.config.capacity_weight = capacity
        if performance is not None:
            self.config.performance_weight = performance
        if geography is not None:
            self.config.geography_weight = geography
        if price_band is not None:
            self.config.price_band_weight = price_band
        self.config.updated_at = datetime.now(timezone.utc)
        self.save_config()

    def set_minimum_score(self, minimum: float):
        """Set the qualification threshold."""
        if not 0 <= minimum <= 1:
            raise ValueError("minimum score must be between 0 and 1")
        self.config.minimum_score = minimum
        self.config.updated_at = datetime.now(timezone.utc)
        self.save_config()
