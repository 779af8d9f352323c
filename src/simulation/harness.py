"""
Simulation harness: runs a synthetic request stream through the real
auctioneer and transports, then reports.
"""

import time
import logging
from dataclasses import replace
from typing import Dict, Iterable, Optional

from auction.auctioneer import Auctioneer
from auction.selection import STRATEGIES, get_strategy
from executor.agent import WorkerAgent
from transport.base import CollectingResultSink, WorkerTransport
from transport.inprocess import InProcessTransport
from transport.simulated import BusModel, SimulatedBusTransport

from .config import SimulationConfig
from .pool import build_requests, build_worker_pool
from .report import SimulationReport

logger = logging.getLogger(__name__)


class SimulationHarness:
    """
    Wires a synthetic pool to an auctioneer.

    Everything random (pool composition, request order, bus jitter, the
    random strategy, offer sampling) derives from config.seed.
    """

    def __init__(self, config: Optional[SimulationConfig] = None):
        self.config = config or SimulationConfig()
        self.workers = build_worker_pool(self.config)
        self.directory = InProcessTransport(self.workers)
        self.transport = self._build_transport()
        self.sink = CollectingResultSink()
        self.auctioneer = Auctioneer(
            transport=self.transport,
            directory=self.directory,
            strategy=get_strategy(self.config.strategy, self.config.objective(), seed=self.config.seed),
            config=self.config.auction,
            result_sink=self.sink,
            seed=self.config.seed,
        )

    def _build_transport(self) -> WorkerTransport:
        if self.config.transport == "direct":
            return self.directory
        model = BusModel(
            latency=self.config.bus_latency,
            jitter=self.config.bus_jitter,
            publish_cost=self.config.bus_publish_cost,
            drop_probability=self.config.bus_drop_probability,
        )
        return SimulatedBusTransport(self.directory, model, seed=self.config.seed)

    def worker(self, worker_id: str) -> WorkerAgent:
        return self.directory.agents[worker_id]

    async def run(self) -> SimulationReport:
        """
        Run every request concurrently and build the report.

        A harness runs once; build a new one for another run.
        """
        config = self.config
        requests = build_requests(config)
        logger.info(
            f"Simulating {len(requests)} placements on {config.workers} workers "
            f"({config.strategy} strategy, {config.transport} transport)"
        )

        started = time.monotonic()
        results = await self.auctioneer.run_many(requests, concurrency=config.concurrency)
        wall_clock = time.monotonic() - started

        report = SimulationReport.from_run(
            strategy=config.strategy,
            transport=config.transport,
            seed=config.seed,
            results=results,
            workers=self.workers,
            messages=self.transport.stats.snapshot(),
            wall_clock=wall_clock,
        )
        logger.info(
            f"Simulation done: {report.resolved}/{report.auctions} resolved "
            f"in {wall_clock:.3f}s, {report.total_messages} messages"
        )
        return report


async def compare_strategies(
    config: SimulationConfig, strategies: Iterable[str] = STRATEGIES
) -> Dict[str, SimulationReport]:
    """
    Run the same scenario once per strategy on fresh pools.

    Returns:
        Reports keyed by strategy name
    """
    reports = {}
    for name in strategies:
        harness = SimulationHarness(replace(config, strategy=name))
        reports[name] = await harness.run()
    return reports
