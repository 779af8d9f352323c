"""
Unit tests for the resource model.

Tests:
- PlacementRequest and Offer validation
- Offer collection normalisation
- Ranking order and tie-break
- CommitResult construction and dict form
"""

import sys
import os

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

import pytest
from auction.models import (
    CommitResult,
    Offer,
    PlacementRequest,
    RejectReason,
    ScoredOffer,
    ValidationError,
    ranked,
)


def make_request(**overrides):
    fields = dict(
        required_memory_mb=512,
        required_disk_mb=1024,
        app_id=7,
        instance_number=0,
        total_instances=2,
        source_artifact_id="artifact-7",
        stack="cflinuxfs4",
    )
    fields.update(overrides)
    return PlacementRequest(**fields)


def make_offer(**overrides):
    fields = dict(
        available_memory_mb=4096,
        available_disk_mb=8192,
        total_memory_mb=8192,
        total_disk_mb=16384,
        zone_id=0,
        stack="cflinuxfs4",
    )
    fields.update(overrides)
    return Offer(**fields)


class TestPlacementRequest:
    """Test placement request validation"""

    def test_valid_request(self):
        """Verify a well-formed request is accepted"""
        request = make_request()

        assert request.required_memory_mb == 512
        assert request.placement_id

    def test_placement_ids_are_unique(self):
        """Verify generated placement ids differ"""
        assert make_request().placement_id != make_request().placement_id

    @pytest.mark.parametrize("field", ["required_memory_mb", "required_disk_mb", "app_id"])
    def test_negative_quantity_rejected(self, field):
        """Verify negative quantities raise ValidationError"""
        with pytest.raises(ValidationError):
            make_request(**{field: -1})

    def test_instance_number_must_be_below_total(self):
        """Verify instance_number >= total_instances is rejected"""
        with pytest.raises(ValidationError):
            make_request(instance_number=2, total_instances=2)

    def test_bool_is_not_a_quantity(self):
        """Verify booleans are not accepted as integers"""
        with pytest.raises(ValidationError):
            make_request(required_memory_mb=True)

    def test_validation_error_is_value_error(self):
        """Verify callers can catch ValueError"""
        with pytest.raises(ValueError):
            make_request(required_disk_mb=-5)

    def test_dict_form(self):
        """Verify from_dict(to_dict()) rebuilds an equal request"""
        request = make_request()

        assert PlacementRequest.from_dict(request.to_dict()) == request


class TestOffer:
    """Test offer validation"""

    def test_available_cannot_exceed_total(self):
        """Verify available > total is rejected"""
        with pytest.raises(ValidationError):
            make_offer(available_memory_mb=9000)
        with pytest.raises(ValidationError):
            make_offer(available_disk_mb=20000)

    def test_negative_capacity_rejected(self):
        """Verify negative capacity is rejected"""
        with pytest.raises(ValidationError):
            make_offer(available_disk_mb=-1)

    def test_collections_normalised(self):
        """Verify lists become a tuple and a frozenset"""
        offer = make_offer(running_app_ids=[3, 3, 1], cached_artifact_ids=["a", "b"])

        assert offer.running_app_ids == (3, 3, 1)
        assert offer.cached_artifact_ids == frozenset({"a", "b"})
        hash(offer)

    def test_satisfies(self):
        """Verify satisfies checks memory, disk and stack"""
        request = make_request()

        assert make_offer().satisfies(request)
        assert not make_offer(available_memory_mb=100).satisfies(request)
        assert not make_offer(available_disk_mb=100).satisfies(request)
        assert not make_offer(stack="windows").satisfies(request)

    def test_dict_form(self):
        """Verify from_dict(to_dict()) rebuilds an equal offer"""
        offer = make_offer(running_app_ids=(1, 2), cached_artifact_ids={"x"})

        assert Offer.from_dict(offer.to_dict()) == offer


class TestRanking:
    """Test ranking of scored offers"""

    def test_descending_score(self):
        """Verify higher scores rank first"""
        offer = make_offer()
        scored = [
            ScoredOffer("w1", offer, 1.0),
            ScoredOffer("w2", offer, 3.0),
            ScoredOffer("w3", offer, 2.0),
        ]

        assert [s.worker_id for s in ranked(scored)] == ["w2", "w3", "w1"]

    def test_tie_broken_by_lowest_worker_id(self):
        """Verify equal scores are ordered by worker id"""
        offer = make_offer()
        scored = [
            ScoredOffer("worker-b", offer, 2.0),
            ScoredOffer("worker-a", offer, 2.0),
            ScoredOffer("worker-c", offer, 2.5),
        ]

        assert [s.worker_id for s in ranked(scored)] == ["worker-c", "worker-a", "worker-b"]


class TestCommitResult:
    """Test commit results"""

    def test_accepted(self):
        result = CommitResult.accepted("w1", "p1")

        assert result.committed is True
        assert result.reason is None

    def test_rejected_dict_form(self):
        """Verify the reason survives the dict form"""
        result = CommitResult.rejected("w1", "p1", RejectReason.STACK_MISMATCH)
        data = result.to_dict()

        assert data["reason"] == "stack_mismatch"
        assert CommitResult.from_dict(data) == result
