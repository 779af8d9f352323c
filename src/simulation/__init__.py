"""
Simulation module: synthetic worker pools and request streams run through
the auctioneer, with reports for comparing strategies and transports.
"""

from .config import SimulationConfig, TRANSPORTS
from .pool import build_worker_pool, build_requests
from .report import SimulationReport
from .harness import SimulationHarness, compare_strategies

__all__ = [
    "SimulationConfig",
    "TRANSPORTS",
    "build_worker_pool",
    "build_requests",
    "SimulationReport",
    "SimulationHarness",
    "compare_strategies",
]
