"""
Resource Model: placement requests, worker offers, and scored offers.

Pure value types. Construction validates every quantity so that nothing
malformed ever reaches an auction.
"""

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Iterable, Optional, Tuple


class ValidationError(ValueError):
    """Raised when a request or offer carries malformed quantities"""
    pass


def _require_non_negative(owner: str, **quantities: int) -> None:
    for name, value in quantities.items():
        if not isinstance(value, int) or isinstance(value, bool):
            raise ValidationError(f"{owner}.{name} must be an integer, got {value!r}")
        if value < 0:
            raise ValidationError(f"{owner}.{name} must be non-negative, got {value}")


@dataclass(frozen=True)
class PlacementRequest:
    """
    One app instance waiting to be placed on a worker.

    Owned by the Auctioneer for the lifetime of one auction. The
    placement_id names the reservation a worker records on commit.
    """

    required_memory_mb: int
    required_disk_mb: int
    app_id: int
    instance_number: int
    total_instances: int
    source_artifact_id: str
    stack: str
    placement_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def __post_init__(self):
        _require_non_negative(
            "PlacementRequest",
            required_memory_mb=self.required_memory_mb,
            required_disk_mb=self.required_disk_mb,
            app_id=self.app_id,
            instance_number=self.instance_number,
            total_instances=self.total_instances,
        )
        if self.instance_number >= self.total_instances:
            raise ValidationError(
                f"instance_number {self.instance_number} must be below "
                f"total_instances {self.total_instances}"
            )
        if not self.stack:
            raise ValidationError("PlacementRequest.stack must not be empty")

    def to_dict(self) -> dict:
        return {
            "required_memory_mb": self.required_memory_mb,
            "required_disk_mb": self.required_disk_mb,
            "app_id": self.app_id,
            "instance_number": self.instance_number,
            "total_instances": self.total_instances,
            "source_artifact_id": self.source_artifact_id,
            "stack": self.stack,
            "placement_id": self.placement_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PlacementRequest":
        return cls(**data)


@dataclass(frozen=True)
class Offer:
    """
    A worker's self-reported snapshot of its capacity.

    Valid only as of the instant it was produced; the worker re-checks
    its live state when a commit arrives.
    """

    available_memory_mb: int
    available_disk_mb: int
    total_memory_mb: int
    total_disk_mb: int
    zone_id: int
    stack: str
    running_app_ids: Tuple[int, ...] = ()
    cached_artifact_ids: FrozenSet[str] = frozenset()

    def __post_init__(self):
        _require_non_negative(
            "Offer",
            available_memory_mb=self.available_memory_mb,
            available_disk_mb=self.available_disk_mb,
            total_memory_mb=self.total_memory_mb,
            total_disk_mb=self.total_disk_mb,
        )
        if self.available_memory_mb > self.total_memory_mb:
            raise ValidationError(
                f"available_memory_mb {self.available_memory_mb} exceeds "
                f"total_memory_mb {self.total_memory_mb}"
            )
        if self.available_disk_mb > self.total_disk_mb:
            raise ValidationError(
                f"available_disk_mb {self.available_disk_mb} exceeds "
                f"total_disk_mb {self.total_disk_mb}"
            )
        # Normalise collection types so offers built from lists stay hashable
        object.__setattr__(self, "running_app_ids", tuple(self.running_app_ids))
        object.__setattr__(self, "cached_artifact_ids", frozenset(self.cached_artifact_ids))

    def satisfies(self, request: PlacementRequest) -> bool:
        """True if this snapshot could host the request"""
        return (
            self.available_memory_mb >= request.required_memory_mb
            and self.available_disk_mb >= request.required_disk_mb
            and self.stack == request.stack
        )

    def to_dict(self) -> dict:
        return {
            "available_memory_mb": self.available_memory_mb,
            "available_disk_mb": self.available_disk_mb,
            "total_memory_mb": self.total_memory_mb,
            "total_disk_mb": self.total_disk_mb,
            "zone_id": self.zone_id,
            "stack": self.stack,
            "running_app_ids": list(self.running_app_ids),
            "cached_artifact_ids": sorted(self.cached_artifact_ids),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Offer":
        return cls(
            available_memory_mb=data["available_memory_mb"],
            available_disk_mb=data["available_disk_mb"],
            total_memory_mb=data["total_memory_mb"],
            total_disk_mb=data["total_disk_mb"],
            zone_id=data["zone_id"],
            stack=data["stack"],
            running_app_ids=tuple(data.get("running_app_ids", ())),
            cached_artifact_ids=frozenset(data.get("cached_artifact_ids", ())),
        )


@dataclass(frozen=True)
class ScoredOffer:
    """Offer paired with its score and the worker that produced it"""

    worker_id: str
    offer: Offer
    score: float

    def sort_key(self) -> Tuple[float, str]:
        # Descending score, then lowest worker id
        return (-self.score, self.worker_id)


def ranked(scored: Iterable[ScoredOffer]) -> list:
    """Order scored offers best first with a deterministic tie-break"""
    return sorted(scored, key=ScoredOffer.sort_key)


class RejectReason(Enum):
    """Why a commit did not reserve capacity"""
    INSUFFICIENT_CAPACITY = "insufficient_capacity"
    STACK_MISMATCH = "stack_mismatch"
    ALREADY_RESERVED = "already_reserved"
    UNAVAILABLE = "unavailable"  # Commit call itself failed or timed out


@dataclass(frozen=True)
class CommitResult:
    """Outcome of one commit attempt"""
    worker_id: str
    placement_id: str
    committed: bool
    reason: Optional[RejectReason] = None

    @classmethod
    def accepted(cls, worker_id: str, placement_id: str) -> "CommitResult":
        return cls(worker_id=worker_id, placement_id=placement_id, committed=True)

    @classmethod
    def rejected(cls, worker_id: str, placement_id: str, reason: RejectReason) -> "CommitResult":
        return cls(worker_id=worker_id, placement_id=placement_id, committed=False, reason=reason)

    def to_dict(self) -> dict:
        return {
            "worker_id": self.worker_id,
            "placement_id": self.placement_id,
            "committed": self.committed,
            "reason": self.reason.value if self.reason else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CommitResult":
        reason = data.get("reason")
        return cls(
            worker_id=data["worker_id"],
            placement_id=data["placement_id"],
            committed=data["committed"],
            reason=RejectReason(reason) if reason else None,
        )
