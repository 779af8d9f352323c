"""
Synthetic worker pools and request streams.
"""

import random
import logging
from typing import List

from auction.models import PlacementRequest
from executor.agent import WorkerAgent

from .config import SimulationConfig

logger = logging.getLogger(__name__)


def artifact_id(app_id: int) -> str:
    return f"artifact-{app_id:04d}"


def build_worker_pool(config: SimulationConfig) -> List[WorkerAgent]:
    """
    Create identical-capacity workers spread round-robin over zones.

    Each worker independently starts with each app's artifact cached with
    probability config.cache_probability, drawn from a seeded RNG.
    """
    rng = random.Random(config.seed)
    workers = []

    for index in range(config.workers):
        cached = [
            artifact_id(app_id)
            for app_id in range(config.apps)
            if rng.random() < config.cache_probability
        ]
        workers.append(
            WorkerAgent(
                worker_id=f"worker-{index:03d}",
                zone_id=index % config.zones,
                total_memory_mb=config.worker_memory_mb,
                total_disk_mb=config.worker_disk_mb,
                stack=config.stack,
                cached_artifact_ids=cached,
                commit_delay=config.commit_delay,
            )
        )

    logger.info(f"Built pool of {len(workers)} workers over {config.zones} zones")
    return workers


def build_requests(config: SimulationConfig) -> List[PlacementRequest]:
    """
    One placement request per app instance, in a seeded random order.

    Placement ids are derived from app and instance so runs with the same
    seed are comparable.
    """
    requests = [
        PlacementRequest(
            required_memory_mb=config.instance_memory_mb,
            required_disk_mb=config.instance_disk_mb,
            app_id=app_id,
            instance_number=instance,
            total_instances=config.instances_per_app,
            source_artifact_id=artifact_id(app_id),
            stack=config.stack,
            placement_id=f"app{app_id}-i{instance}",
        )
        for app_id in range(config.apps)
        for instance in range(config.instances_per_app)
    ]
    random.Random(config.seed + 1).shuffle(requests)
    return requests
