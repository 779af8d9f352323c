"""
Transport module: how the auctioneer reaches workers, membership and
result delivery.
"""

from .base import (
    WorkerUnavailable,
    MessageStats,
    WorkerTransport,
    WorkerDirectory,
    StaticDirectory,
    ResultSink,
    LoggingResultSink,
    CollectingResultSink,
)
from .inprocess import InProcessTransport
from .simulated import BusModel, SimulatedBusTransport

__all__ = [
    "WorkerUnavailable",
    "MessageStats",
    "WorkerTransport",
    "WorkerDirectory",
    "StaticDirectory",
    "ResultSink",
    "LoggingResultSink",
    "CollectingResultSink",
    "InProcessTransport",
    "BusModel",
    "SimulatedBusTransport",
]
