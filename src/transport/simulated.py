"""
Simulated message bus: wraps another transport and adds the costs of a
pub/sub deployment.

Models:
- Per-leg latency (base + uniform jitter)
- A shared bus with a fixed publish cost per message, so broadcast
  fan-out gets slower as the worker pool grows
- Dropped offer requests, which the auctioneer sees as timeouts
"""

import asyncio
import random
import logging
from dataclasses import dataclass
from typing import Optional

from auction.models import CommitResult, Offer, PlacementRequest

from .base import WorkerTransport

logger = logging.getLogger(__name__)


@dataclass
class BusModel:
    """Cost model for the simulated bus"""
    latency: float = 0.002  # seconds per leg
    jitter: float = 0.001  # seconds, uniform ±
    publish_cost: float = 0.0  # seconds the shared bus is held per message
    drop_probability: float = 0.0  # offer requests only

    def __post_init__(self):
        if self.latency < 0 or self.jitter < 0 or self.publish_cost < 0:
            raise ValueError("bus timings must be non-negative")
        if not 0.0 <= self.drop_probability <= 1.0:
            raise ValueError(f"drop_probability must be in [0, 1], got {self.drop_probability}")


class SimulatedBusTransport(WorkerTransport):
    """
    Adds bus latency, fan-out cost and loss to an inner transport.

    Commit and release requests are never dropped: a lost commit would
    leave the auctioneer unsure whether capacity was reserved.
    """

    # Long enough that any sane offer timeout fires first
    DROPPED_HANG = 3600.0

    def __init__(
        self,
        inner: WorkerTransport,
        model: Optional[BusModel] = None,
        seed: Optional[int] = None,
    ):
        super().__init__()
        self.inner = inner
        self.model = model or BusModel()
        self.rng = random.Random(seed)
        self._bus = asyncio.Lock()
        self.dropped = 0

    async def _leg(self, kind: str) -> None:
        self.stats.record(kind)
        if self.model.publish_cost > 0:
            async with self._bus:
                await asyncio.sleep(self.model.publish_cost)
        delay = self.model.latency
        if self.model.jitter > 0:
            delay += self.rng.uniform(-self.model.jitter, self.model.jitter)
        if delay > 0:
            await asyncio.sleep(delay)

    async def request_offer(self, worker_id: str) -> Offer:
        await self._leg("offer_request")
        if self.model.drop_probability > 0 and self.rng.random() < self.model.drop_probability:
            self.dropped += 1
            logger.debug(f"[BUS] dropped offer request to {worker_id}")
            await asyncio.sleep(self.DROPPED_HANG)
        offer = await self.inner.request_offer(worker_id)
        await self._leg("offer_reply")
        return offer

    async def request_commit(self, worker_id: str, request: PlacementRequest) -> CommitResult:
        await self._leg("commit_request")
        result = await self.inner.request_commit(worker_id, request)
        await self._leg("commit_reply")
        return result

    async def request_release(self, worker_id: str, placement_id: str) -> bool:
        await self._leg("release_request")
        released = await self.inner.request_release(worker_id, placement_id)
        await self._leg("release_reply")
        return released
