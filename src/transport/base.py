"""
Transport abstractions between the auctioneer and its collaborators.

The auction engine needs only:
- RequestOffer(worker_id) -> Offer | Unavailable
- RequestCommit(worker_id, request) -> CommitResult
- ListCandidateWorkers() -> set of worker ids
- SubmitAuctionResult(request, outcome)
"""

import logging
from abc import ABC, abstractmethod
from collections import Counter
from typing import Any, Dict, Iterable, List, Set, Tuple

from auction.models import CommitResult, Offer, PlacementRequest

logger = logging.getLogger(__name__)


class WorkerUnavailable(Exception):
    """Raised when a worker cannot be reached or does not answer"""

    def __init__(self, worker_id: str, reason: str = "unreachable"):
        super().__init__(f"worker {worker_id} unavailable: {reason}")
        self.worker_id = worker_id
        self.reason = reason


class MessageStats:
    """Counts messages crossing a transport, by kind"""

    def __init__(self):
        self.counts: Counter = Counter()

    def record(self, kind: str, count: int = 1) -> None:
        self.counts[kind] += count

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    def snapshot(self) -> Dict[str, int]:
        return dict(sorted(self.counts.items()))

    def reset(self) -> None:
        self.counts.clear()


class WorkerTransport(ABC):
    """Request/reply primitive to individual workers"""

    def __init__(self):
        self.stats = MessageStats()

    @abstractmethod
    async def request_offer(self, worker_id: str) -> Offer:
        """
        Ask a worker for a fresh offer.

        Raises:
            WorkerUnavailable: If the worker cannot answer
        """

    @abstractmethod
    async def request_commit(self, worker_id: str, request: PlacementRequest) -> CommitResult:
        """
        Ask a worker to reserve capacity for a request.

        Raises:
            WorkerUnavailable: If the worker cannot answer
        """

    @abstractmethod
    async def request_release(self, worker_id: str, placement_id: str) -> bool:
        """Ask a worker to return a committed reservation"""


class WorkerDirectory(ABC):
    """Membership collaborator: which workers may take part in auctions"""

    @abstractmethod
    async def list_candidate_workers(self) -> Set[str]:
        """Current worker ids"""


class StaticDirectory(WorkerDirectory):
    """Fixed worker set, for deployments with static membership and tests"""

    def __init__(self, worker_ids: Iterable[str]):
        self.worker_ids = set(worker_ids)

    async def list_candidate_workers(self) -> Set[str]:
        return set(self.worker_ids)


class ResultSink(ABC):
    """Orchestration collaborator that acts on auction outcomes"""

    @abstractmethod
    async def submit(self, request: PlacementRequest, result: Any) -> None:
        """Receive the terminal outcome of one auction"""


class LoggingResultSink(ResultSink):
    """Logs outcomes; the default when nothing downstream is wired"""

    async def submit(self, request: PlacementRequest, result: Any) -> None:
        logger.info(f"Auction result for {request.placement_id}: {result.summary()}")


class CollectingResultSink(ResultSink):
    """Keeps every outcome in memory"""

    def __init__(self):
        self.results: List[Tuple[PlacementRequest, Any]] = []

    async def submit(self, request: PlacementRequest, result: Any) -> None:
        self.results.append((request, result))
