"""
Unit tests for transports.

Tests:
- In-process transport and directory
- Simulated bus latency, fan-out cost and loss
- Result sinks
"""

import sys
import os
import asyncio
import time

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

import pytest
from auction.models import PlacementRequest
from executor.agent import WorkerAgent
from transport import (
    BusModel,
    CollectingResultSink,
    InProcessTransport,
    MessageStats,
    SimulatedBusTransport,
    StaticDirectory,
    WorkerUnavailable,
)


def make_worker(worker_id="w1"):
    return WorkerAgent(
        worker_id=worker_id,
        zone_id=0,
        total_memory_mb=4096,
        total_disk_mb=4096,
        stack="linux",
    )


def make_request(placement_id="p-1"):
    return PlacementRequest(
        required_memory_mb=1024,
        required_disk_mb=1024,
        app_id=1,
        instance_number=0,
        total_instances=1,
        source_artifact_id="a",
        stack="linux",
        placement_id=placement_id,
    )


class TestMessageStats:
    """Test message counting"""

    def test_record_and_snapshot(self):
        stats = MessageStats()
        stats.record("offer_request")
        stats.record("offer_request")
        stats.record("commit_request", 3)

        assert stats.total == 5
        assert stats.snapshot() == {"commit_request": 3, "offer_request": 2}

        stats.reset()
        assert stats.total == 0


class TestInProcessTransport:
    """Test direct-call transport"""

    @pytest.mark.asyncio
    async def test_offer_commit_release(self):
        worker = make_worker()
        transport = InProcessTransport([worker])

        offer = await transport.request_offer("w1")
        result = await transport.request_commit("w1", make_request())
        released = await transport.request_release("w1", "p-1")

        assert offer.available_memory_mb == 4096
        assert result.committed
        assert released
        assert transport.stats.snapshot() == {
            "commit_reply": 1,
            "commit_request": 1,
            "offer_reply": 1,
            "offer_request": 1,
            "release_reply": 1,
            "release_request": 1,
        }

    @pytest.mark.asyncio
    async def test_directory(self):
        transport = InProcessTransport([make_worker("w1"), make_worker("w2")])

        assert await transport.list_candidate_workers() == {"w1", "w2"}

        transport.unregister("w2")
        assert await transport.list_candidate_workers() == {"w1"}

    def test_duplicate_registration(self):
        transport = InProcessTransport([make_worker()])

        with pytest.raises(ValueError):
            transport.register(make_worker())

    @pytest.mark.asyncio
    async def test_unreachable(self):
        transport = InProcessTransport([make_worker()])
        transport.set_reachable("w1", False)

        with pytest.raises(WorkerUnavailable):
            await transport.request_offer("w1")

        transport.set_reachable("w1", True)
        await transport.request_offer("w1")

    @pytest.mark.asyncio
    async def test_unknown_worker(self):
        with pytest.raises(WorkerUnavailable):
            await InProcessTransport().request_commit("ghost", make_request())


class TestSimulatedBus:
    """Test the simulated bus model"""

    @pytest.mark.asyncio
    async def test_latency_per_leg(self):
        inner = InProcessTransport([make_worker()])
        bus = SimulatedBusTransport(inner, BusModel(latency=0.02, jitter=0.0), seed=1)

        started = time.monotonic()
        await bus.request_offer("w1")
        elapsed = time.monotonic() - started

        assert elapsed >= 0.035
        assert bus.stats.snapshot() == {"offer_reply": 1, "offer_request": 1}

    @pytest.mark.asyncio
    async def test_publish_cost_serializes_fan_out(self):
        """The shared bus makes fan-out cost grow with the number of messages"""
        workers = [make_worker(f"w{i}") for i in range(5)]
        bus = SimulatedBusTransport(
            InProcessTransport(workers), BusModel(latency=0.0, jitter=0.0, publish_cost=0.01), seed=1
        )

        started = time.monotonic()
        await asyncio.gather(*(bus.request_offer(w.worker_id) for w in workers))
        elapsed = time.monotonic() - started

        # 5 requests and 5 replies through a single bus
        assert elapsed >= 0.09

    @pytest.mark.asyncio
    async def test_drop_hangs_until_cancelled(self):
        bus = SimulatedBusTransport(
            InProcessTransport([make_worker()]), BusModel(latency=0.0, jitter=0.0, drop_probability=1.0), seed=1
        )

        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(bus.request_offer("w1"), timeout=0.05)
        assert bus.dropped == 1

    @pytest.mark.asyncio
    async def test_commits_never_dropped(self):
        bus = SimulatedBusTransport(
            InProcessTransport([make_worker()]), BusModel(latency=0.0, jitter=0.0, drop_probability=1.0), seed=1
        )

        result = await bus.request_commit("w1", make_request())

        assert result.committed

    def test_invalid_model(self):
        with pytest.raises(ValueError):
            BusModel(drop_probability=1.5)
        with pytest.raises(ValueError):
            BusModel(latency=-1)


class TestDirectoryAndSinks:
    """Test static directory and result sinks"""

    @pytest.mark.asyncio
    async def test_static_directory_returns_copy(self):
        directory = StaticDirectory(["a", "b"])
        workers = await directory.list_candidate_workers()
        workers.discard("a")

        assert await directory.list_candidate_workers() == {"a", "b"}

    @pytest.mark.asyncio
    async def test_collecting_sink(self):
        sink = CollectingResultSink()
        request = make_request()

        await sink.submit(request, "outcome")

        assert sink.results == [(request, "outcome")]
