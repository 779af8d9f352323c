"""
Command-line entry points for placement over NATS.

    python -m transport worker --worker-id w1 --zone 0 --memory 8192 --disk 20480
    python -m transport place --workers w1,w2,w3 --zones 3 --app 7 --instance 1 --instances 3 \
        --memory 512 --disk 1024 --artifact artifact-0007
"""

import sys
import json
import asyncio
import argparse
import logging
from typing import List, Optional

from auction.auctioneer import Auctioneer, AuctionResult
from auction.config import AuctionConfig
from auction.models import PlacementRequest
from auction.selection import STRATEGIES, get_strategy
from executor.agent import WorkerAgent
from objective import ConfigError, FormulaError, ObjectiveConfig
from observability.tracing import setup_tracing_from_env, shutdown_tracing

from .base import StaticDirectory
from .nats_bus import NATS_URL, SUBJECT_PREFIX, NatsTransport, NatsWorkerServer, connect

logger = logging.getLogger(__name__)


def _csv(value: str) -> List[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


def _weights(value: str):
    try:
        parts = tuple(float(part) for part in _csv(value))
    except ValueError:
        raise argparse.ArgumentTypeError(f"weights must be four comma-separated numbers, got {value!r}")
    if len(parts) != 4:
        raise argparse.ArgumentTypeError(f"weights must be four comma-separated numbers, got {value!r}")
    return parts


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Placement auctions over NATS")
    parser.add_argument("--nats-url", default=NATS_URL, help=f"NATS server (default: {NATS_URL})")
    parser.add_argument("--prefix", default=SUBJECT_PREFIX, help="Worker subject prefix")
    parser.add_argument("--verbose", action="store_true", help="Verbose logging")
    commands = parser.add_subparsers(dest="command", required=True)

    worker = commands.add_parser("worker", help="Serve one worker agent")
    worker.add_argument("--worker-id", required=True)
    worker.add_argument("--zone", type=int, required=True, help="Availability zone id")
    worker.add_argument("--memory", type=int, required=True, help="Total memory in MB")
    worker.add_argument("--disk", type=int, required=True, help="Total disk in MB")
    worker.add_argument("--stack", default="cflinuxfs4", help="Runtime stack tag")
    worker.add_argument("--cached", type=_csv, default=[], help="Comma-separated cached artifact ids")

    place = commands.add_parser("place", help="Run one auction against NATS workers")
    place.add_argument("--workers", type=_csv, required=True, help="Comma-separated worker ids")
    place.add_argument("--zones", type=int, required=True, help="Number of zones")
    place.add_argument("--weights", type=_weights, default=(0.4, 0.3, 0.2, 0.1),
                       help="alpha,beta,gamma,delta (default: 0.4,0.3,0.2,0.1)")
    place.add_argument("--strategy", choices=STRATEGIES, default="scoring", help="Selection strategy")
    place.add_argument("--app", type=int, required=True, help="App id")
    place.add_argument("--instance", type=int, required=True, help="Instance number")
    place.add_argument("--instances", type=int, required=True, help="Total instances of the app")
    place.add_argument("--memory", type=int, required=True, help="Required memory in MB")
    place.add_argument("--disk", type=int, required=True, help="Required disk in MB")
    place.add_argument("--artifact", required=True, help="Source artifact id")
    place.add_argument("--stack", default="cflinuxfs4", help="Required stack")
    place.add_argument("--placement-id", default=None)
    place.add_argument("--commit-timeout", type=float, default=10.0, help="Seconds to wait for a commit reply")
    return parser


async def start_worker(args: argparse.Namespace, nc) -> NatsWorkerServer:
    agent = WorkerAgent(
        worker_id=args.worker_id,
        zone_id=args.zone,
        total_memory_mb=args.memory,
        total_disk_mb=args.disk,
        stack=args.stack,
        cached_artifact_ids=args.cached,
    )
    server = NatsWorkerServer(agent, nc, prefix=args.prefix)
    await server.start()
    return server


async def place(args: argparse.Namespace, nc) -> AuctionResult:
    """Run one auction; auction settings come from AUCTION_* variables"""
    alpha, beta, gamma, delta = args.weights
    objective = ObjectiveConfig(alpha=alpha, beta=beta, gamma=gamma, delta=delta, zones=args.zones)
    fields = dict(
        required_memory_mb=args.memory,
        required_disk_mb=args.disk,
        app_id=args.app,
        instance_number=args.instance,
        total_instances=args.instances,
        source_artifact_id=args.artifact,
        stack=args.stack,
    )
    if args.placement_id:
        fields["placement_id"] = args.placement_id
    request = PlacementRequest(**fields)
    auctioneer = Auctioneer(
        transport=NatsTransport(nc, prefix=args.prefix, commit_timeout=args.commit_timeout),
        directory=StaticDirectory(args.workers),
        strategy=get_strategy(args.strategy, objective),
        config=AuctionConfig.from_env(),
    )
    return await auctioneer.run_auction(request)


async def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s'
    )
    setup_tracing_from_env(f"placement-{args.command}")

    nc = await connect(args.nats_url)
    try:
        if args.command == "worker":
            server = await start_worker(args, nc)
            try:
                # Serve until interrupted
                await asyncio.Event().wait()
            finally:
                await server.stop()
            return 0

        try:
            result = await place(args, nc)
        except (ConfigError, FormulaError, ValueError) as e:
            logger.error(f"Invalid placement: {e}")
            return 2
        print(json.dumps(result.to_dict(), indent=2))
        return 0 if result.succeeded else 1
    finally:
        await nc.close()
        shutdown_tracing()


def run() -> None:
    """Console-script entry point"""
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        sys.exit(130)
