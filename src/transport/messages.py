"""
Wire models for worker request/reply messages.

Bodies are JSON; pydantic validates them on both ends before they are
turned back into domain values.
"""

from typing import List, Optional

from pydantic import BaseModel, Field

from auction.models import CommitResult, Offer, PlacementRequest, RejectReason


class PlacementRequestMessage(BaseModel):
    """Commit request body"""

    required_memory_mb: int = Field(..., ge=0)
    required_disk_mb: int = Field(..., ge=0)
    app_id: int = Field(..., ge=0)
    instance_number: int = Field(..., ge=0)
    total_instances: int = Field(..., ge=1)
    source_artifact_id: str
    stack: str = Field(..., min_length=1)
    placement_id: str

    @classmethod
    def from_domain(cls, request: PlacementRequest) -> "PlacementRequestMessage":
        return cls(**request.to_dict())

    def to_domain(self) -> PlacementRequest:
        return PlacementRequest.from_dict(self.model_dump())


class OfferMessage(BaseModel):
    """Offer reply body"""

    available_memory_mb: int = Field(..., ge=0)
    available_disk_mb: int = Field(..., ge=0)
    total_memory_mb: int = Field(..., ge=0)
    total_disk_mb: int = Field(..., ge=0)
    zone_id: int
    stack: str
    running_app_ids: List[int] = Field(default_factory=list)
    cached_artifact_ids: List[str] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, offer: Offer) -> "OfferMessage":
        return cls(**offer.to_dict())

    def to_domain(self) -> Offer:
        return Offer.from_dict(self.model_dump())


class CommitReplyMessage(BaseModel):
    """Commit reply body"""

    worker_id: str
    placement_id: str
    committed: bool
    reason: Optional[RejectReason] = None

    @classmethod
    def from_domain(cls, result: CommitResult) -> "CommitReplyMessage":
        return cls(
            worker_id=result.worker_id,
            placement_id=result.placement_id,
            committed=result.committed,
            reason=result.reason,
        )

    def to_domain(self) -> CommitResult:
        return CommitResult(
            worker_id=self.worker_id,
            placement_id=self.placement_id,
            committed=self.committed,
            reason=self.reason,
        )


class ReleaseRequestMessage(BaseModel):
    placement_id: str


class ReleaseReplyMessage(BaseModel):
    placement_id: str
    released: bool


class ErrorReplyMessage(BaseModel):
    """Sent instead of a normal reply when the worker could not process a request"""

    error: str
