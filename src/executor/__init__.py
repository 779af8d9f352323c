"""
Executor module: worker-side capacity ownership and commits.
"""

from .agent import WorkerAgent, CommitResult, RejectReason, Capacity, ReservationRecord

__all__ = [
    "WorkerAgent",
    "CommitResult",
    "RejectReason",
    "Capacity",
    "ReservationRecord",
]
