"""
Simulation report: outcome counts, convergence, messaging cost and
placement spread for one run.
"""

import json
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Set

import numpy as np

from auction.auctioneer import AuctionResult
from executor.agent import WorkerAgent


@dataclass
class SimulationReport:
    """Aggregated results of one simulation run"""
    strategy: str
    transport: str
    seed: int
    auctions: int = 0
    resolved: int = 0
    failures: Dict[str, int] = field(default_factory=dict)
    rounds: Dict[int, int] = field(default_factory=dict)
    messages: Dict[str, int] = field(default_factory=dict)
    commit_rejections: int = 0
    wall_clock: float = 0.0
    worker_instances: Dict[str, int] = field(default_factory=dict)
    zone_instances: Dict[int, int] = field(default_factory=dict)
    app_zone_spread: Dict[int, int] = field(default_factory=dict)

    @classmethod
    def from_run(
        cls,
        strategy: str,
        transport: str,
        seed: int,
        results: Iterable[AuctionResult],
        workers: Iterable[WorkerAgent],
        messages: Dict[str, int],
        wall_clock: float,
    ) -> "SimulationReport":
        results = list(results)
        workers = list(workers)
        zone_of = {worker.worker_id: worker.zone_id for worker in workers}

        failures: Counter = Counter()
        rounds: Counter = Counter()
        rejections = 0
        app_zones: Dict[int, Set[int]] = defaultdict(set)

        for result in results:
            rounds[result.rounds] += 1
            rejections += sum(
                1 for record in result.history for attempt in record.commits if not attempt.committed
            )
            if result.succeeded:
                app_zones[result.request.app_id].add(zone_of[result.winner_id])
            else:
                failures[result.failure.value] += 1

        zone_instances: Counter = Counter({zone: 0 for zone in set(zone_of.values())})
        for worker in workers:
            zone_instances[worker.zone_id] += worker.instance_count()

        return cls(
            strategy=strategy,
            transport=transport,
            seed=seed,
            auctions=len(results),
            resolved=sum(1 for result in results if result.succeeded),
            failures=dict(sorted(failures.items())),
            rounds=dict(sorted(rounds.items())),
            messages=dict(messages),
            commit_rejections=rejections,
            wall_clock=wall_clock,
            worker_instances={worker.worker_id: worker.instance_count() for worker in workers},
            zone_instances=dict(sorted(zone_instances.items())),
            app_zone_spread={app_id: len(zones) for app_id, zones in sorted(app_zones.items())},
        )

    @property
    def failed(self) -> int:
        return self.auctions - self.resolved

    @property
    def total_messages(self) -> int:
        return sum(self.messages.values())

    @property
    def mean_rounds(self) -> float:
        if not self.rounds:
            return 0.0
        values = np.repeat(list(self.rounds.keys()), list(self.rounds.values()))
        return float(np.mean(values))

    @property
    def worker_variance(self) -> float:
        """Variance of instances per worker; lower is a more even spread"""
        if not self.worker_instances:
            return 0.0
        return float(np.var(np.array(list(self.worker_instances.values()), dtype=float)))

    @property
    def zone_variance(self) -> float:
        if not self.zone_instances:
            return 0.0
        return float(np.var(np.array(list(self.zone_instances.values()), dtype=float)))

    @property
    def mean_zone_spread(self) -> float:
        if not self.app_zone_spread:
            return 0.0
        return float(np.mean(list(self.app_zone_spread.values())))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "strategy": self.strategy,
            "transport": self.transport,
            "seed": self.seed,
            "auctions": self.auctions,
            "resolved": self.resolved,
            "failed": self.failed,
            "failures": dict(self.failures),
            "rounds": {str(k): v for k, v in self.rounds.items()},
            "mean_rounds": self.mean_rounds,
            "messages": dict(self.messages),
            "total_messages": self.total_messages,
            "commit_rejections": self.commit_rejections,
            "wall_clock": self.wall_clock,
            "worker_instances": dict(self.worker_instances),
            "worker_variance": self.worker_variance,
            "zone_instances": {str(k): v for k, v in self.zone_instances.items()},
            "zone_variance": self.zone_variance,
            "app_zone_spread": {str(k): v for k, v in self.app_zone_spread.items()},
            "mean_zone_spread": self.mean_zone_spread,
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    def render(self) -> str:
        """Human-readable summary"""
        lines: List[str] = [
            f"Strategy: {self.strategy}   Transport: {self.transport}   Seed: {self.seed}",
            f"Auctions: {self.auctions}   Resolved: {self.resolved}   Failed: {self.failed}",
        ]
        for reason, count in self.failures.items():
            lines.append(f"  {reason:<20} {count}")

        lines.append(f"Rounds per auction (mean {self.mean_rounds:.2f}):")
        for rounds, count in self.rounds.items():
            lines.append(f"  {rounds:>3} round(s): {count}")

        lines.append(f"Messages: {self.total_messages}   Commit rejections: {self.commit_rejections}")
        for kind, count in sorted(self.messages.items()):
            lines.append(f"  {kind:<20} {count}")

        lines.append(f"Wall clock: {self.wall_clock:.3f}s")
        lines.append(f"Instances per zone: {self.zone_instances}   variance {self.zone_variance:.3f}")
        lines.append(f"Instances per worker variance: {self.worker_variance:.3f}")
        lines.append(f"Mean zones per app: {self.mean_zone_spread:.2f}")
        return "\n".join(lines)
