"""
Offer Selection: feasibility filtering and ranking strategies.
"""

import random
import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple

from objective.evaluator import ObjectiveConfig, ObjectiveEvaluator

from .models import Offer, PlacementRequest, ScoredOffer, ranked

logger = logging.getLogger(__name__)


class FeasibilityFilter:
    """
    Discards offers that cannot host a request.

    An offer is infeasible when it lacks memory or disk, or runs a
    different stack.
    """

    def check(self, request: PlacementRequest, offer: Offer) -> Optional[str]:
        """
        Check one offer.

        Returns:
            None if feasible, otherwise the name of the failed constraint
        """
        if offer.stack != request.stack:
            return "stack"
        if offer.available_memory_mb < request.required_memory_mb:
            return "memory"
        if offer.available_disk_mb < request.required_disk_mb:
            return "disk"
        return None

    def split(
        self, request: PlacementRequest, offers: Dict[str, Offer]
    ) -> Tuple[Dict[str, Offer], Dict[str, str]]:
        """
        Partition offers into feasible ones and rejected worker ids.

        Args:
            request: Placement being auctioned
            offers: Offers keyed by worker id

        Returns:
            (feasible offers by worker id, failed constraint by worker id)
        """
        feasible: Dict[str, Offer] = {}
        infeasible: Dict[str, str] = {}

        for worker_id, offer in offers.items():
            reason = self.check(request, offer)
            if reason is None:
                feasible[worker_id] = offer
            else:
                infeasible[worker_id] = reason
                logger.debug(f"Worker {worker_id} infeasible for {request.placement_id}: {reason}")

        logger.info(f"Feasibility filtering: {len(offers)} → {len(feasible)} offers")
        return feasible, infeasible


class SelectionStrategy(ABC):
    """Ranks feasible offers best first"""

    name = "abstract"

    @abstractmethod
    def rank(self, request: PlacementRequest, offers: Dict[str, Offer]) -> List[ScoredOffer]:
        """
        Rank offers for a request.

        Args:
            request: Placement being auctioned
            offers: Feasible offers keyed by worker id

        Returns:
            ScoredOffers ordered best first, ties by lowest worker id
        """


class ScoringStrategy(SelectionStrategy):
    """Ranks offers with the objective evaluator"""

    name = "scoring"

    def __init__(self, evaluator: ObjectiveEvaluator):
        self.evaluator = evaluator

    def rank(self, request: PlacementRequest, offers: Dict[str, Offer]) -> List[ScoredOffer]:
        # FormulaError propagates: a broken formula fails the auction
        scored = [
            ScoredOffer(worker_id=worker_id, offer=offer, score=self.evaluator.score(request, offer))
            for worker_id, offer in offers.items()
        ]
        return ranked(scored)


class RandomStrategy(SelectionStrategy):
    """
    Baseline strategy: a random order over feasible offers.

    Used by the simulation harness to compare against scoring.
    """

    name = "random"

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    def rank(self, request: PlacementRequest, offers: Dict[str, Offer]) -> List[ScoredOffer]:
        # Sort first so the draw depends only on the seed, not dict order
        scored = [
            ScoredOffer(worker_id=worker_id, offer=offers[worker_id], score=self.rng.random())
            for worker_id in sorted(offers)
        ]
        return ranked(scored)


STRATEGIES = ("scoring", "random")


def get_strategy(
    name: str,
    objective: Optional[ObjectiveConfig] = None,
    seed: Optional[int] = None,
) -> SelectionStrategy:
    """
    Create a selection strategy by name.

    Args:
        name: "scoring" or "random"
        objective: Objective configuration, required for "scoring"
        seed: Seed for the random strategy

    Returns:
        SelectionStrategy instance
    """
    if name == "scoring":
        if objective is None:
            raise ValueError("the scoring strategy needs an objective configuration")
        return ScoringStrategy(ObjectiveEvaluator(objective))
    if name == "random":
        return RandomStrategy(random.Random(seed))
    raise ValueError(f"unknown strategy {name!r}; expected one of {', '.join(STRATEGIES)}")


def rank_offers(
    request: PlacementRequest,
    offers: Dict[str, Offer],
    strategy: SelectionStrategy,
    feasibility: Optional[FeasibilityFilter] = None,
) -> Tuple[List[ScoredOffer], Dict[str, str]]:
    """
    Filter offers for feasibility and rank the survivors.

    Args:
        request: Placement being auctioned
        offers: Offers keyed by worker id
        strategy: Ranking strategy
        feasibility: Filter to apply (a default FeasibilityFilter if None)

    Returns:
        (ranked feasible offers, failed constraint by infeasible worker id)

    Raises:
        FormulaError: If the strategy's objective cannot be evaluated
    """
    feasible, infeasible = (feasibility or FeasibilityFilter()).split(request, offers)
    if not feasible:
        return [], infeasible
    return strategy.rank(request, feasible), infeasible
