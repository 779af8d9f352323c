"""
In-process transport: direct calls into WorkerAgents living in the same
event loop. Also serves as the worker directory for those agents.
"""

import logging
from typing import Dict, Iterable, Optional, Set

from auction.models import CommitResult, Offer, PlacementRequest
from executor.agent import WorkerAgent

from .base import WorkerDirectory, WorkerTransport, WorkerUnavailable

logger = logging.getLogger(__name__)


class InProcessTransport(WorkerTransport, WorkerDirectory):
    """
    Direct-call transport.

    Workers can be marked unreachable to model partitions; an unreachable
    worker raises WorkerUnavailable for every request.
    """

    def __init__(self, agents: Optional[Iterable[WorkerAgent]] = None):
        super().__init__()
        self.agents: Dict[str, WorkerAgent] = {}
        self._unreachable: Set[str] = set()
        for agent in agents or []:
            self.register(agent)

    def register(self, agent: WorkerAgent) -> None:
        if agent.worker_id in self.agents:
            raise ValueError(f"worker {agent.worker_id} already registered")
        self.agents[agent.worker_id] = agent

    def unregister(self, worker_id: str) -> None:
        self.agents.pop(worker_id, None)
        self._unreachable.discard(worker_id)

    def set_reachable(self, worker_id: str, reachable: bool) -> None:
        if reachable:
            self._unreachable.discard(worker_id)
        else:
            self._unreachable.add(worker_id)

    def _agent(self, worker_id: str) -> WorkerAgent:
        agent = self.agents.get(worker_id)
        if agent is None:
            raise WorkerUnavailable(worker_id, "not registered")
        if worker_id in self._unreachable:
            raise WorkerUnavailable(worker_id, "unreachable")
        return agent

    async def list_candidate_workers(self) -> Set[str]:
        return set(self.agents)

    async def request_offer(self, worker_id: str) -> Offer:
        self.stats.record("offer_request")
        offer = self._agent(worker_id).snapshot_offer()
        self.stats.record("offer_reply")
        return offer

    async def request_commit(self, worker_id: str, request: PlacementRequest) -> CommitResult:
        self.stats.record("commit_request")
        result = await self._agent(worker_id).try_commit(request)
        self.stats.record("commit_reply")
        return result

    async def request_release(self, worker_id: str, placement_id: str) -> bool:
        self.stats.record("release_request")
        released = await self._agent(worker_id).release(placement_id)
        self.stats.record("release_reply")
        return released
