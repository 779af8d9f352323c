"""
Worker Agent: per-executor capacity owner.

Produces offers from current capacity and serializes commit attempts so
that two auctions can never reserve the same capacity.
"""

import asyncio
import time
import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set

from auction.models import (
    CommitResult,
    Offer,
    PlacementRequest,
    RejectReason,
    ValidationError,
)

logger = logging.getLogger(__name__)


@dataclass
class Capacity:
    """Mutable capacity owned by exactly one WorkerAgent"""
    total_memory_mb: int
    total_disk_mb: int
    available_memory_mb: int = -1
    available_disk_mb: int = -1

    def __post_init__(self):
        if self.available_memory_mb < 0:
            self.available_memory_mb = self.total_memory_mb
        if self.available_disk_mb < 0:
            self.available_disk_mb = self.total_disk_mb
        if self.total_memory_mb <= 0 or self.total_disk_mb <= 0:
            raise ValidationError("worker totals must be positive")
        if self.available_memory_mb > self.total_memory_mb or self.available_disk_mb > self.total_disk_mb:
            raise ValidationError("available capacity exceeds total capacity")


@dataclass
class ReservationRecord:
    """Single committed placement on a worker"""
    placement_id: str
    app_id: int
    instance_number: int
    memory_mb: int
    disk_mb: int
    created_at: int = field(default_factory=time.time_ns)  # Nanosecond timestamp


class WorkerAgent:
    """
    Owns one executor's capacity.

    Provides:
    - Offer snapshots (lock-free, may be stale by commit time)
    - Serialized commits against live capacity
    - Release of committed placements
    """

    def __init__(
        self,
        worker_id: str,
        zone_id: int,
        total_memory_mb: int,
        total_disk_mb: int,
        stack: str,
        cached_artifact_ids: Optional[Iterable[str]] = None,
        commit_delay: float = 0.0,
    ):
        """
        Initialize worker agent.

        Args:
            worker_id: Unique worker identifier
            zone_id: Availability zone the worker belongs to
            total_memory_mb: Total memory capacity (must be positive)
            total_disk_mb: Total disk capacity (must be positive)
            stack: Runtime stack tag the worker supports
            cached_artifact_ids: Artifacts already staged locally
            commit_delay: Simulated reservation work, awaited inside the commit lock
        """
        self.worker_id = worker_id
        self.zone_id = zone_id
        self.stack = stack
        self.commit_delay = commit_delay

        self._capacity = Capacity(total_memory_mb=total_memory_mb, total_disk_mb=total_disk_mb)
        self._reservations: Dict[str, ReservationRecord] = {}
        self._running_apps: Counter = Counter()
        self._cached_artifacts: Set[str] = set(cached_artifact_ids or [])
        self._commit_lock = asyncio.Lock()

        self.commits_accepted = 0
        self.commits_rejected = 0

    def snapshot_offer(self) -> Offer:
        """
        Read current capacity and composition.

        Returns:
            Immutable Offer; no side effect
        """
        capacity = self._capacity
        return Offer(
            available_memory_mb=capacity.available_memory_mb,
            available_disk_mb=capacity.available_disk_mb,
            total_memory_mb=capacity.total_memory_mb,
            total_disk_mb=capacity.total_disk_mb,
            zone_id=self.zone_id,
            stack=self.stack,
            running_app_ids=tuple(sorted(self._running_apps.elements())),
            cached_artifact_ids=frozenset(self._cached_artifacts),
        )

    async def try_commit(self, request: PlacementRequest) -> CommitResult:
        """
        Atomically reserve capacity for a request.

        Live capacity is re-checked under the worker's lock; the offer the
        auctioneer scored is never trusted here.

        Args:
            request: Placement to reserve

        Returns:
            CommitResult, committed or rejected with a reason
        """
        async with self._commit_lock:
            if self.commit_delay > 0:
                await asyncio.sleep(self.commit_delay)

            reason = self._check(request)
            if reason is not None:
                self.commits_rejected += 1
                logger.info(
                    f"[WORKER] {self.worker_id} rejected {request.placement_id}: {reason.value}"
                )
                return CommitResult.rejected(self.worker_id, request.placement_id, reason)

            self._capacity.available_memory_mb -= request.required_memory_mb
            self._capacity.available_disk_mb -= request.required_disk_mb
            self._reservations[request.placement_id] = ReservationRecord(
                placement_id=request.placement_id,
                app_id=request.app_id,
                instance_number=request.instance_number,
                memory_mb=request.required_memory_mb,
                disk_mb=request.required_disk_mb,
            )
            self._running_apps[request.app_id] += 1
            self._cached_artifacts.add(request.source_artifact_id)
            self.commits_accepted += 1

            logger.debug(
                f"[WORKER] {self.worker_id} committed {request.placement_id} "
                f"(mem left: {self._capacity.available_memory_mb}MB, "
                f"disk left: {self._capacity.available_disk_mb}MB)"
            )
            return CommitResult.accepted(self.worker_id, request.placement_id)

    def _check(self, request: PlacementRequest) -> Optional[RejectReason]:
        if request.placement_id in self._reservations:
            return RejectReason.ALREADY_RESERVED
        if request.stack != self.stack:
            return RejectReason.STACK_MISMATCH
        if (
            self._capacity.available_memory_mb < request.required_memory_mb
            or self._capacity.available_disk_mb < request.required_disk_mb
        ):
            return RejectReason.INSUFFICIENT_CAPACITY
        return None

    async def release(self, placement_id: str) -> bool:
        """
        Return previously committed resources.

        Args:
            placement_id: Reservation to release

        Returns:
            True if released, False if not found
        """
        async with self._commit_lock:
            record = self._reservations.pop(placement_id, None)
            if record is None:
                return False

            self._capacity.available_memory_mb += record.memory_mb
            self._capacity.available_disk_mb += record.disk_mb
            self._running_apps[record.app_id] -= 1
            if self._running_apps[record.app_id] <= 0:
                del self._running_apps[record.app_id]

        logger.info(f"[WORKER] {self.worker_id} released {placement_id}")
        return True

    def reservations(self) -> List[ReservationRecord]:
        """Committed reservations, oldest first"""
        return sorted(self._reservations.values(), key=lambda r: r.created_at)

    def instance_count(self) -> int:
        return len(self._reservations)

    def consume_out_of_band(self, memory_mb: int, disk_mb: int) -> None:
        """
        Shrink available capacity outside the auction protocol.

        Models capacity taken by something the auctioneer never saw, which
        is what makes previously produced offers stale.
        """
        self._capacity.available_memory_mb = max(0, self._capacity.available_memory_mb - memory_mb)
        self._capacity.available_disk_mb = max(0, self._capacity.available_disk_mb - disk_mb)
