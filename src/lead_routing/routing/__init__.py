"""Lead assignment across agents, teams and ponds."""

from .engine import RoutingEngine
from .results import RouteAssignmentResult, DecisionCandidate, CandidateStatus
from .snapshots import CandidateSnapshot, CandidateSnapshotBuilder

__all__ = [
    "RoutingEngine",
    "RouteAssignmentResult",
    "DecisionCandidate",
    "CandidateStatus",
    "CandidateSnapshot",
    "CandidateSnapshotBuilder",
]
