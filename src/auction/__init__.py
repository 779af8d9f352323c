"""
Auction module: placement requests, offers, feasibility and ranking.

The auctioneer itself lives in auction.auctioneer; it depends on the
transport package, which in turn depends on the models exported here.
"""

from .models import (
    ValidationError,
    PlacementRequest,
    Offer,
    ScoredOffer,
    RejectReason,
    CommitResult,
    ranked,
)
from .config import AuctionConfig
from .selection import (
    FeasibilityFilter,
    SelectionStrategy,
    ScoringStrategy,
    RandomStrategy,
    STRATEGIES,
    get_strategy,
    rank_offers,
)
from .backoff import calculate_backoff

__all__ = [
    "ValidationError",
    "PlacementRequest",
    "Offer",
    "ScoredOffer",
    "RejectReason",
    "CommitResult",
    "ranked",
    "AuctionConfig",
    "FeasibilityFilter",
    "SelectionStrategy",
    "ScoringStrategy",
    "RandomStrategy",
    "STRATEGIES",
    "get_strategy",
    "rank_offers",
    "calculate_backoff",
]
