"""
Prometheus metrics for the placement auction engine.

Covers auction outcomes, rounds, latency, worker messaging and commit
rejections.
"""

from prometheus_client import (
    Counter,
    Histogram,
    Gauge,
    Info,
    generate_latest,
    REGISTRY,
)


# ============================================================================
# CORE METRICS
# ============================================================================

auctions_total = Counter(
    "placement_auctions_total",
    "Total number of auctions that reached a terminal state",
    ["outcome"],
)

auction_rounds = Histogram(
    "placement_auction_rounds",
    "Rounds taken by each auction",
    buckets=[1, 2, 3, 4, 5, 8, 13],
)

auction_latency = Histogram(
    "placement_auction_latency_seconds",
    "Wall-clock time from auction start to terminal state",
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

worker_messages_total = Counter(
    "placement_worker_messages_total",
    "Requests sent from auctioneers to workers",
    ["kind"],
)

commit_rejections_total = Counter(
    "placement_commit_rejections_total",
    "Commit attempts a worker refused",
    ["reason"],
)

unavailable_workers_total = Counter(
    "placement_unavailable_workers_total",
    "Offer requests that timed out or could not be delivered",
)

active_auctions = Gauge("placement_active_auctions", "Auctions currently in progress")

system_info = Info("placement_engine", "Auction engine information")


# ============================================================================
# METRICS COLLECTOR
# ============================================================================


class MetricsCollector:
    """
    Centralized metrics collection and export.

    The auctioneer reports through this class so tests can swap in their
    own collector.
    """

    def __init__(self):
        self._update_system_info()

    def _update_system_info(self):
        import platform

        system_info.info(
            {
                "version": "1.0.0",
                "platform": platform.system(),
                "python_version": platform.python_version(),
            }
        )

    def auction_started(self):
        active_auctions.inc()

    def auction_finished(self, outcome: str, rounds: int, duration: float):
        """Record a terminal auction outcome."""
        active_auctions.dec()
        auctions_total.labels(outcome=outcome).inc()
        auction_rounds.observe(rounds)
        auction_latency.observe(duration)

    def record_worker_message(self, kind: str, count: int = 1):
        worker_messages_total.labels(kind=kind).inc(count)

    def record_commit_rejection(self, reason: str):
        commit_rejections_total.labels(reason=reason).inc()

    def record_unavailable(self, count: int = 1):
        unavailable_workers_total.inc(count)

    def get_metrics(self) -> bytes:
        """
        Get metrics in Prometheus format.

        Returns:
            Metrics as bytes in Prometheus exposition format
        """
        return generate_latest(REGISTRY)


# Global metrics collector instance
metrics_collector = MetricsCollector()
