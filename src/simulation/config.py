"""
Simulation scenario configuration.
"""

from dataclasses import dataclass, field
from typing import Optional, Tuple

from auction.config import AuctionConfig
from auction.selection import STRATEGIES
from objective.errors import ConfigError
from objective.evaluator import RECOMMENDED_FORMULA, ObjectiveConfig

TRANSPORTS = ("direct", "bus")


@dataclass
class SimulationConfig:
    """One synthetic placement scenario"""
    workers: int = 20
    zones: int = 3
    apps: int = 10
    instances_per_app: int = 3
    worker_memory_mb: int = 8192
    worker_disk_mb: int = 20480
    instance_memory_mb: int = 1024
    instance_disk_mb: int = 2048
    stack: str = "cflinuxfs4"
    cache_probability: float = 0.2
    commit_delay: float = 0.0

    strategy: str = "scoring"
    weights: Tuple[float, float, float, float] = (0.4, 0.3, 0.2, 0.1)
    formula: str = RECOMMENDED_FORMULA

    transport: str = "direct"
    bus_latency: float = 0.002
    bus_jitter: float = 0.001
    bus_publish_cost: float = 0.0
    bus_drop_probability: float = 0.0

    concurrency: Optional[int] = None
    seed: int = 42
    auction: AuctionConfig = field(default_factory=AuctionConfig)

    def __post_init__(self):
        if self.workers < 1:
            raise ConfigError(f"workers must be at least 1, got {self.workers}")
        if self.zones < 1:
            raise ConfigError(f"zones must be at least 1, got {self.zones}")
        if self.apps < 0:
            raise ConfigError(f"apps must be non-negative, got {self.apps}")
        if self.instances_per_app < 1:
            raise ConfigError(f"instances_per_app must be at least 1, got {self.instances_per_app}")
        if not 0.0 <= self.cache_probability <= 1.0:
            raise ConfigError(f"cache_probability must be in [0, 1], got {self.cache_probability}")
        if self.strategy not in STRATEGIES:
            raise ConfigError(f"unknown strategy {self.strategy!r}; expected one of {', '.join(STRATEGIES)}")
        if self.transport not in TRANSPORTS:
            raise ConfigError(f"unknown transport {self.transport!r}; expected one of {', '.join(TRANSPORTS)}")
        if len(self.weights) != 4:
            raise ConfigError(f"weights needs four values (alpha, beta, gamma, delta), got {len(self.weights)}")
        if self.concurrency is not None and self.concurrency < 1:
            raise ConfigError(f"concurrency must be at least 1, got {self.concurrency}")

    @property
    def total_instances(self) -> int:
        return self.apps * self.instances_per_app

    def objective(self) -> ObjectiveConfig:
        alpha, beta, gamma, delta = self.weights
        return ObjectiveConfig(
            alpha=alpha,
            beta=beta,
            gamma=gamma,
            delta=delta,
            zones=self.zones,
            formula=self.formula,
        )
