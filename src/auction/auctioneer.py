"""
Auctioneer: drives one placement request to a committed worker.

Each auction is an explicit state machine:

    COLLECTING -> SCORING -> COMMITTING -> RESOLVED
                     |           |
                     +-> NEXT_ROUND <-+ -> COLLECTING

with FAILED reachable from every non-terminal state. The candidate pool
only shrinks: workers whose offers are infeasible or whose commits are
rejected never come back within the same auction. Workers that do not
answer an offer request sit out the current round only.
"""

import asyncio
import random
import time
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Set, Tuple

from objective.errors import FormulaError
from observability.metrics import MetricsCollector, metrics_collector
from observability.tracing import create_span
from transport.base import (
    LoggingResultSink,
    ResultSink,
    WorkerDirectory,
    WorkerTransport,
    WorkerUnavailable,
)

from .backoff import calculate_backoff
from .config import AuctionConfig
from .models import CommitResult, Offer, PlacementRequest, RejectReason, ScoredOffer
from .selection import FeasibilityFilter, SelectionStrategy, rank_offers

logger = logging.getLogger(__name__)


class AuctionState(Enum):
    COLLECTING = "collecting"
    SCORING = "scoring"
    COMMITTING = "committing"
    NEXT_ROUND = "next_round"
    RESOLVED = "resolved"
    FAILED = "failed"


class AuctionFailure(Enum):
    """Terminal failure reasons surfaced to the caller"""
    NO_FEASIBLE_OFFER = "no_feasible_offer"
    EXHAUSTED = "exhausted"
    TIMEOUT = "timeout"
    FORMULA_ERROR = "formula_error"


TRANSITIONS: Dict[AuctionState, Set[AuctionState]] = {
    AuctionState.COLLECTING: {AuctionState.SCORING, AuctionState.FAILED},
    AuctionState.SCORING: {AuctionState.COMMITTING, AuctionState.NEXT_ROUND, AuctionState.FAILED},
    AuctionState.COMMITTING: {AuctionState.RESOLVED, AuctionState.NEXT_ROUND, AuctionState.FAILED},
    AuctionState.NEXT_ROUND: {AuctionState.COLLECTING, AuctionState.FAILED},
    AuctionState.RESOLVED: set(),
    AuctionState.FAILED: set(),
}


class AuctionStateError(RuntimeError):
    """Raised on a transition the state table does not allow"""
    pass


@dataclass
class CommitAttempt:
    worker_id: str
    score: float
    committed: bool
    reason: Optional[RejectReason] = None


@dataclass
class RoundRecord:
    """What happened in one collect-score-commit cycle"""
    number: int
    candidates: int
    requested: List[str] = field(default_factory=list)
    unavailable: List[str] = field(default_factory=list)
    infeasible: Dict[str, str] = field(default_factory=dict)
    ranking: List[Tuple[str, float]] = field(default_factory=list)
    commits: List[CommitAttempt] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "number": self.number,
            "candidates": self.candidates,
            "requested": list(self.requested),
            "unavailable": list(self.unavailable),
            "infeasible": dict(self.infeasible),
            "ranking": [[worker_id, score] for worker_id, score in self.ranking],
            "commits": [
                {
                    "worker_id": attempt.worker_id,
                    "score": attempt.score,
                    "committed": attempt.committed,
                    "reason": attempt.reason.value if attempt.reason else None,
                }
                for attempt in self.commits
            ],
        }


@dataclass
class AuctionResult:
    """Terminal outcome of one auction"""
    request: PlacementRequest
    status: AuctionState
    winner_id: Optional[str] = None
    score: Optional[float] = None
    failure: Optional[AuctionFailure] = None
    error: Optional[str] = None
    rounds: int = 0
    offer_requests: int = 0
    commit_attempts: int = 0
    duration: float = 0.0
    history: List[RoundRecord] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.status == AuctionState.RESOLVED

    @property
    def outcome(self) -> str:
        return "resolved" if self.succeeded else self.failure.value

    def summary(self) -> str:
        if self.succeeded:
            return (
                f"resolved on {self.winner_id} (score {self.score:.4f}) "
                f"after {self.rounds} round(s)"
            )
        detail = f": {self.error}" if self.error else ""
        return f"failed with {self.failure.value} after {self.rounds} round(s){detail}"

    def to_dict(self) -> dict:
        return {
            "placement_id": self.request.placement_id,
            "app_id": self.request.app_id,
            "instance_number": self.request.instance_number,
            "outcome": self.outcome,
            "winner_id": self.winner_id,
            "score": self.score,
            "error": self.error,
            "rounds": self.rounds,
            "offer_requests": self.offer_requests,
            "commit_attempts": self.commit_attempts,
            "duration": self.duration,
            "history": [record.to_dict() for record in self.history],
        }


class Auction:
    """Mutable state of one auction in flight"""

    def __init__(self, request: PlacementRequest, pool: Iterable[str], deadline: Optional[float]):
        self.request = request
        self.pool: Set[str] = set(pool)
        self.deadline = deadline
        self.state = AuctionState.COLLECTING
        self.history: List[RoundRecord] = []
        self.offers: Dict[str, Offer] = {}
        self.ranked: List[ScoredOffer] = []
        self.winner: Optional[ScoredOffer] = None
        self.failure: Optional[AuctionFailure] = None
        self.error: Optional[str] = None
        self.offer_requests = 0
        self.commit_attempts = 0

    @property
    def round(self) -> Optional[RoundRecord]:
        return self.history[-1] if self.history else None

    def transition(self, new_state: AuctionState) -> None:
        if new_state not in TRANSITIONS[self.state]:
            raise AuctionStateError(
                f"illegal transition {self.state.value} -> {new_state.value} "
                f"for {self.request.placement_id}"
            )
        logger.debug(f"Auction {self.request.placement_id}: {self.state.value} -> {new_state.value}")
        self.state = new_state

    def fail(self, failure: AuctionFailure, error: Optional[str] = None) -> None:
        self.failure = failure
        self.error = error
        self.transition(AuctionState.FAILED)

    def remaining(self) -> Optional[float]:
        if self.deadline is None:
            return None
        return self.deadline - time.monotonic()

    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0


class Auctioneer:
    """
    Runs placement auctions against a worker pool.

    Responsibilities:
    - Collect fresh offers from the candidate pool in parallel
    - Filter infeasible offers and rank the rest with a strategy
    - Commit against the best offer, falling back down the same ranking
    - Start new rounds until a commit succeeds or the budget is spent
    """

    def __init__(
        self,
        transport: WorkerTransport,
        directory: WorkerDirectory,
        strategy: SelectionStrategy,
        config: Optional[AuctionConfig] = None,
        result_sink: Optional[ResultSink] = None,
        metrics: Optional[MetricsCollector] = None,
        seed: Optional[int] = None,
    ):
        """
        Initialize auctioneer.

        Args:
            transport: Request/reply primitive to workers
            directory: Membership collaborator listing candidate workers
            strategy: Ranking strategy for feasible offers
            config: Auction configuration
            result_sink: Receives every terminal outcome
            metrics: Metrics collector (global collector by default)
            seed: Seed for offer sampling and backoff jitter
        """
        self.transport = transport
        self.directory = directory
        self.strategy = strategy
        self.config = config or AuctionConfig()
        self.result_sink = result_sink or LoggingResultSink()
        self.metrics = metrics or metrics_collector
        self.feasibility = FeasibilityFilter()
        self.rng = random.Random(seed)

    async def run_auction(self, request: PlacementRequest) -> AuctionResult:
        """
        Run one auction to a terminal state.

        Args:
            request: Validated placement request

        Returns:
            AuctionResult, resolved or failed; never raises for
            per-auction failures
        """
        started = time.monotonic()
        deadline = started + self.config.auction_timeout if self.config.auction_timeout else None
        pool = await self.directory.list_candidate_workers()
        auction = Auction(request, pool, deadline)

        logger.info(
            f"[AUCTION] Starting {request.placement_id} (app {request.app_id} "
            f"instance {request.instance_number}/{request.total_instances}, "
            f"{request.required_memory_mb}MB/{request.required_disk_mb}MB, "
            f"stack {request.stack}) over {len(auction.pool)} workers"
        )
        self.metrics.auction_started()

        with create_span(
            "auction",
            {"placement_id": request.placement_id, "app_id": request.app_id, "strategy": self.strategy.name},
        ) as span:
            while auction.state not in (AuctionState.RESOLVED, AuctionState.FAILED):
                if auction.state == AuctionState.COLLECTING:
                    await self._collect(auction)
                elif auction.state == AuctionState.SCORING:
                    self._score(auction)
                elif auction.state == AuctionState.COMMITTING:
                    await self._commit(auction)
                elif auction.state == AuctionState.NEXT_ROUND:
                    await self._next_round(auction)
            span.set_attribute("outcome", auction.failure.value if auction.failure else "resolved")

        result = self._result(auction, time.monotonic() - started)
        self.metrics.auction_finished(result.outcome, result.rounds, result.duration)
        self.metrics.record_worker_message("offer", result.offer_requests)
        self.metrics.record_worker_message("commit", result.commit_attempts)

        if result.succeeded:
            logger.info(f"[AUCTION] {request.placement_id} {result.summary()}")
        else:
            logger.warning(f"[AUCTION] {request.placement_id} {result.summary()}")

        await self._submit(request, result)
        return result

    async def run_many(
        self, requests: Iterable[PlacementRequest], concurrency: Optional[int] = None
    ) -> List[AuctionResult]:
        """
        Run auctions concurrently, one control flow per auction.

        Args:
            requests: Placement requests
            concurrency: Maximum auctions in flight (unbounded when None)

        Returns:
            Results in request order
        """
        requests = list(requests)
        if not concurrency:
            return list(await asyncio.gather(*(self.run_auction(r) for r in requests)))

        semaphore = asyncio.Semaphore(concurrency)

        async def bounded(request: PlacementRequest) -> AuctionResult:
            async with semaphore:
                return await self.run_auction(request)

        return list(await asyncio.gather(*(bounded(r) for r in requests)))

    async def release(self, result: AuctionResult) -> bool:
        """
        Give back a won placement when a downstream step fails after commit.

        Returns:
            True if the worker released the reservation
        """
        if not result.succeeded:
            return False
        try:
            return await self.transport.request_release(result.winner_id, result.request.placement_id)
        except WorkerUnavailable as e:
            logger.warning(f"Release of {result.request.placement_id} failed: {e}")
            return False

    # ------------------------------------------------------------------
    # States
    # ------------------------------------------------------------------

    async def _collect(self, auction: Auction) -> None:
        if auction.expired():
            auction.fail(AuctionFailure.TIMEOUT, "auction time budget spent before collecting")
            return

        record = RoundRecord(number=len(auction.history) + 1, candidates=len(auction.pool))
        auction.history.append(record)
        record.requested = self._targets(auction.pool)

        timeout = self.config.offer_timeout
        remaining = auction.remaining()
        if remaining is not None:
            timeout = max(0.0, min(timeout, remaining))

        with create_span("auction.collect", {"round": record.number, "workers": len(record.requested)}):
            replies = await asyncio.gather(
                *(self._request_offer(worker_id, timeout) for worker_id in record.requested)
            )

        auction.offer_requests += len(record.requested)
        auction.offers = {}
        for worker_id, offer in replies:
            if offer is None:
                record.unavailable.append(worker_id)
            else:
                auction.offers[worker_id] = offer

        if record.unavailable:
            self.metrics.record_unavailable(len(record.unavailable))
            logger.warning(
                f"[AUCTION] Round {record.number} of {auction.request.placement_id}: "
                f"{len(record.unavailable)} worker(s) unavailable"
            )

        auction.transition(AuctionState.SCORING)

    def _targets(self, pool: Set[str]) -> List[str]:
        candidates = sorted(pool)
        sample_size = self.config.sample_size
        if sample_size is not None and sample_size < len(candidates):
            return sorted(self.rng.sample(candidates, sample_size))
        return candidates

    async def _request_offer(self, worker_id: str, timeout: float) -> Tuple[str, Optional[Offer]]:
        try:
            offer = await asyncio.wait_for(self.transport.request_offer(worker_id), timeout=timeout)
            return worker_id, offer
        except asyncio.TimeoutError:
            logger.debug(f"Offer request to {worker_id} timed out after {timeout:.3f}s")
        except WorkerUnavailable as e:
            logger.debug(f"Offer request failed: {e}")
        return worker_id, None

    def _score(self, auction: Auction) -> None:
        request = auction.request
        record = auction.round

        try:
            ranking, infeasible = rank_offers(request, auction.offers, self.strategy, self.feasibility)
        except FormulaError as e:
            logger.error(f"[AUCTION] Objective formula failed for {request.placement_id}: {e}")
            auction.fail(AuctionFailure.FORMULA_ERROR, str(e))
            return

        record.infeasible = infeasible
        auction.pool.difference_update(infeasible)

        if not ranking:
            if auction.pool:
                # Unsampled or unanswered workers may still fit
                auction.transition(AuctionState.NEXT_ROUND)
            else:
                auction.fail(AuctionFailure.NO_FEASIBLE_OFFER)
            return

        auction.ranked = ranking
        record.ranking = [(scored.worker_id, scored.score) for scored in ranking]
        logger.debug(
            f"Round {record.number} ranking for {request.placement_id}: "
            f"best {ranking[0].worker_id} ({ranking[0].score:.4f}) of {len(ranking)}"
        )
        auction.transition(AuctionState.COMMITTING)

    async def _commit(self, auction: Auction) -> None:
        request = auction.request
        record = auction.round

        while auction.ranked:
            if auction.expired():
                auction.fail(AuctionFailure.TIMEOUT, "auction time budget spent while committing")
                return

            candidate = auction.ranked.pop(0)
            result = await self._request_commit(candidate.worker_id, request)
            auction.commit_attempts += 1
            record.commits.append(
                CommitAttempt(
                    worker_id=candidate.worker_id,
                    score=candidate.score,
                    committed=result.committed,
                    reason=result.reason,
                )
            )

            if result.committed:
                auction.winner = candidate
                auction.transition(AuctionState.RESOLVED)
                return

            auction.pool.discard(candidate.worker_id)
            self.metrics.record_commit_rejection(result.reason.value)
            logger.warning(
                f"[AUCTION] Commit of {request.placement_id} on {candidate.worker_id} "
                f"rejected ({result.reason.value}); trying next offer"
            )

        auction.transition(AuctionState.NEXT_ROUND)

    async def _request_commit(self, worker_id: str, request: PlacementRequest) -> CommitResult:
        try:
            return await self.transport.request_commit(worker_id, request)
        except WorkerUnavailable as e:
            logger.warning(f"Commit request failed: {e}")
            await self._release_unconfirmed(worker_id, request.placement_id)
            return CommitResult.rejected(worker_id, request.placement_id, RejectReason.UNAVAILABLE)

    async def _release_unconfirmed(self, worker_id: str, placement_id: str) -> None:
        # The commit may have been applied before its reply was lost
        try:
            released = await self.transport.request_release(worker_id, placement_id)
        except WorkerUnavailable as e:
            logger.error(
                f"[AUCTION] Could not release unconfirmed commit of {placement_id} on {worker_id}: {e}"
            )
            return
        if released:
            logger.warning(f"[AUCTION] Released unconfirmed commit of {placement_id} on {worker_id}")

    async def _next_round(self, auction: Auction) -> None:
        completed = len(auction.history)
        if completed >= self.config.max_rounds:
            auction.fail(AuctionFailure.EXHAUSTED, f"no commit after {completed} round(s)")
            return
        if not auction.pool:
            auction.fail(AuctionFailure.NO_FEASIBLE_OFFER, "candidate pool exhausted")
            return

        delay = calculate_backoff(
            completed - 1,
            base=self.config.round_backoff_base,
            max_delay=self.config.round_backoff_max,
            jitter=self.config.round_backoff_jitter,
            rng=self.rng,
        )
        remaining = auction.remaining()
        if remaining is not None:
            delay = min(delay, max(0.0, remaining))
        if delay > 0:
            await asyncio.sleep(delay)

        logger.info(
            f"[AUCTION] {auction.request.placement_id} starting round {completed + 1} "
            f"with {len(auction.pool)} candidate(s)"
        )
        auction.transition(AuctionState.COLLECTING)

    # ------------------------------------------------------------------

    def _result(self, auction: Auction, duration: float) -> AuctionResult:
        winner = auction.winner
        return AuctionResult(
            request=auction.request,
            status=auction.state,
            winner_id=winner.worker_id if winner else None,
            score=winner.score if winner else None,
            failure=auction.failure,
            error=auction.error,
            rounds=len(auction.history),
            offer_requests=auction.offer_requests,
            commit_attempts=auction.commit_attempts,
            duration=duration,
            history=auction.history,
        )

    async def _submit(self, request: PlacementRequest, result: AuctionResult) -> None:
        try:
            await self.result_sink.submit(request, result)
        except Exception as e:
            # The outcome is still returned to the caller
            logger.error(f"Result sink failed for {request.placement_id}: {e}", exc_info=True)
