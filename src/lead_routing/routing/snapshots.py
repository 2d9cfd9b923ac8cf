"""Build per-agent candidate snapshots for one routing call."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Dict, Optional

from ..core.scorer import AgentSnapshot
from ..storage.database import RoutingDatabase
from ..storage.models import Agent, Listing, Tour, TourStatus

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY_TARGET = 8
DEFAULT_LOOKBACK_DAYS = 90

MISSING_CONSENT_REASON = "Missing compliant contact channel"
MESSAGING_NOT_READY_REASON = "Tenant messaging readiness incomplete"


@dataclass
class CandidateSnapshot:
    """An agent snapshot plus what routing needs to know about eligibility."""

    snapshot: AgentSnapshot
    capacity_remaining: int
    gating_reasons: List[str] = field(default_factory=list)
    team_ids: List[str] = field(default_factory=list)

    @property
    def agent_id(self) -> str:
        return self.snapshot.user_id

    @property
    def is_gated(self) -> bool:
        return bool(self.gating_reasons)


def compute_geography_fit(tours: List[Tour], listing: Optional[Listing]) -> float:
    """1.0 for a city the agent already tours in, 0.6 for elsewhere, 0.7 when unknown."""
    if listing is None or not listing.city:
        return 0.7
    cities = [tour.listing_city.lower() for tour in tours if tour.listing_city]
    if listing.city.lower() in cities:
        return 1.0
    return 0.6 if cities else 0.7


def compute_price_band_fit(tours: List[Tour], listing: Optional[Listing]) -> float:
    """Closeness of the listing price to the agent's average toured price."""
    if listing is None or not listing.price:
        return 0.7
    prices = [tour.listing_price for tour in tours if tour.listing_price and tour.listing_price > 0]
    if not prices:
        return 0.75
    average = sum(prices) / len(prices)
    spread = max(listing.price, average) or 1
    fit = max(0.4, 1 - abs(average - listing.price) / spread)
    return round(fit, 2)


def compute_kept_rate(outcomes: Dict[TourStatus, int]) -> float:
    """KEPT / (KEPT + CONFIRMED + NO_SHOW); 0.5 with no history."""
    total = sum(outcomes.values())
    if total == 0:
        return 0.5
    return outcomes.get(TourStatus.KEPT, 0) / total


class CandidateSnapshotBuilder:
    """Loads the roster and derives fresh snapshots. Nothing is cached between calls."""

    def __init__(self, db: RoutingDatabase, lookback_days: int = DEFAULT_LOOKBACK_DAYS,
                 capacity_target: int = DEFAULT_CAPACITY_TARGET):
        self.db = db
        self.lookback_days = lookback_days
        self.capacity_target = capacity_target

    def build(
        self,
        tenant_id: str,
        now: datetime,
        listing: Optional[Listing] = None,
        has_consent: bool = True,
        ten_dlc_ready: bool = True,
    ) -> Dict[str, CandidateSnapshot]:
        """Snapshots keyed by agent id, in roster order."""
        agents = self.db.list_routable_agents(tenant_id)
        memberships = self.db.get_team_memberships(tenant_id)
        active_tours = self.db.list_active_tours(tenant_id)
        outcomes = self.db.get_tour_outcome_counts(tenant_id, since=now - timedelta(days=self.lookback_days))

        snapshots: Dict[str, CandidateSnapshot] = {}
        for agent in agents:
            snapshots[agent.id] = self._build_one(
                agent,
                tours=active_tours.get(agent.id, []),
                outcomes=outcomes.get(agent.id, {}),
                team_ids=memberships.get(agent.id, []),
                listing=listing,
                has_consent=has_consent,
                ten_dlc_ready=ten_dlc_ready,
            )

        logger.debug(f"Built {len(snapshots)} candidate snapshots for tenant {tenant_id}")
        return snapshots

    def _build_one(
        self,
        agent: Agent,
        tours: List[Tour],
        outcomes: Dict[TourStatus, int],
        team_ids: List[str],
        listing: Optional[Listing],
        has_consent: bool,
        ten_dlc_ready: bool,
    ) -> CandidateSnapshot:
        consent_ready = has_consent and agent.consent_ready is not False
        messaging_ready = ten_dlc_ready and agent.messaging_ready is not False

        snapshot = AgentSnapshot(
            user_id=agent.id,
            full_name=agent.full_name,
            capacity_target=self.capacity_target,
            active_pipeline=len(tours),
            geography_fit=compute_geography_fit(tours, listing),
            price_band_fit=compute_price_band_fit(tours, listing),
            kept_appt_rate=compute_kept_rate(outcomes),
            consent_ready=consent_ready,
            ten_dlc_ready=messaging_ready,
            team_id=team_ids[0] if team_ids else None,
            round_robin_order=0,
        )

        gating_reasons = []
        if not snapshot.consent_ready:
            gating_reasons.append(MISSING_CONSENT_REASON)
        if not snapshot.ten_dlc_ready:
            gating_reasons.append(MESSAGING_NOT_READY_REASON)

        return CandidateSnapshot(
            snapshot=snapshot,
            capacity_remaining=max(snapshot.capacity_target - snapshot.active_pipeline, 0),
            gating_reasons=gating_reasons,
            team_ids=list(team_ids),
        )
