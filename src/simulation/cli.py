"""
Command-line entry point for the placement simulation.

    python -m simulation --workers 50 --zones 3 --apps 20 --instances 4
    python -m simulation --compare --transport bus --output report.json
"""

import sys
import json
import asyncio
import argparse
import logging
from pathlib import Path
from typing import List, Optional

from auction.config import AuctionConfig
from auction.selection import STRATEGIES
from objective.errors import ConfigError, FormulaError
from observability.tracing import setup_tracing_from_env, shutdown_tracing

from .config import TRANSPORTS, SimulationConfig
from .harness import SimulationHarness, compare_strategies

logger = logging.getLogger(__name__)


def _weights(value: str):
    try:
        parts = tuple(float(part) for part in value.split(","))
    except ValueError:
        raise argparse.ArgumentTypeError(f"weights must be four comma-separated numbers, got {value!r}")
    if len(parts) != 4:
        raise argparse.ArgumentTypeError(f"weights must be four comma-separated numbers, got {value!r}")
    return parts


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Placement auction simulation")

    pool = parser.add_argument_group("pool")
    pool.add_argument("--workers", type=int, default=20, help="Number of workers (default: 20)")
    pool.add_argument("--zones", type=int, default=3, help="Number of zones (default: 3)")
    pool.add_argument("--worker-memory", type=int, default=8192, help="Memory per worker in MB")
    pool.add_argument("--worker-disk", type=int, default=20480, help="Disk per worker in MB")
    pool.add_argument("--stack", default="cflinuxfs4", help="Stack of every worker and request")
    pool.add_argument("--cache-probability", type=float, default=0.2,
                      help="Chance a worker starts with an app's artifact cached")
    pool.add_argument("--commit-delay", type=float, default=0.0,
                      help="Seconds a worker spends reserving inside its commit lock")

    load = parser.add_argument_group("load")
    load.add_argument("--apps", type=int, default=10, help="Number of apps (default: 10)")
    load.add_argument("--instances", type=int, default=3, help="Instances per app (default: 3)")
    load.add_argument("--instance-memory", type=int, default=1024, help="Memory per instance in MB")
    load.add_argument("--instance-disk", type=int, default=2048, help="Disk per instance in MB")
    load.add_argument("--concurrency", type=int, default=None,
                      help="Maximum auctions in flight (default: all at once)")

    auction = parser.add_argument_group("auction")
    auction.add_argument("--strategy", choices=STRATEGIES, default="scoring", help="Selection strategy")
    auction.add_argument("--weights", type=_weights, default=(0.4, 0.3, 0.2, 0.1),
                         help="alpha,beta,gamma,delta (default: 0.4,0.3,0.2,0.1)")
    auction.add_argument("--max-rounds", type=int, default=3, help="Rounds before giving up")
    auction.add_argument("--offer-timeout", type=float, default=1.0, help="Seconds per offer request")
    auction.add_argument("--auction-timeout", type=float, default=None, help="Seconds per auction")
    auction.add_argument("--sample-size", type=int, default=None, help="Offers requested per round")
    auction.add_argument("--backoff-base", type=float, default=0.0, help="Base delay between rounds")

    bus = parser.add_argument_group("transport")
    bus.add_argument("--transport", choices=TRANSPORTS, default="direct", help="Transport model")
    bus.add_argument("--bus-latency", type=float, default=0.002, help="Seconds per message leg")
    bus.add_argument("--bus-jitter", type=float, default=0.001, help="Uniform latency jitter")
    bus.add_argument("--bus-publish-cost", type=float, default=0.0,
                     help="Seconds the shared bus is held per message")
    bus.add_argument("--bus-drop", type=float, default=0.0, help="Probability an offer request is lost")

    parser.add_argument("--seed", type=int, default=42, help="Random seed (default: 42)")
    parser.add_argument("--compare", action="store_true", help="Run every strategy on the same scenario")
    parser.add_argument("--output", type=Path, default=None, help="Write the JSON report here")
    parser.add_argument("--verbose", action="store_true", help="Verbose logging")
    return parser


def config_from_args(args: argparse.Namespace) -> SimulationConfig:
    return SimulationConfig(
        workers=args.workers,
        zones=args.zones,
        apps=args.apps,
        instances_per_app=args.instances,
        worker_memory_mb=args.worker_memory,
        worker_disk_mb=args.worker_disk,
        instance_memory_mb=args.instance_memory,
        instance_disk_mb=args.instance_disk,
        stack=args.stack,
        cache_probability=args.cache_probability,
        commit_delay=args.commit_delay,
        strategy=args.strategy,
        weights=args.weights,
        transport=args.transport,
        bus_latency=args.bus_latency,
        bus_jitter=args.bus_jitter,
        bus_publish_cost=args.bus_publish_cost,
        bus_drop_probability=args.bus_drop,
        concurrency=args.concurrency,
        seed=args.seed,
        auction=AuctionConfig(
            max_rounds=args.max_rounds,
            offer_timeout=args.offer_timeout,
            auction_timeout=args.auction_timeout,
            sample_size=args.sample_size,
            round_backoff_base=args.backoff_base,
        ),
    )


async def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s'
    )
    setup_tracing_from_env("placement-simulation")

    try:
        config = config_from_args(args)
        if args.compare:
            reports = await compare_strategies(config)
        else:
            reports = {config.strategy: await SimulationHarness(config).run()}
    except (ConfigError, FormulaError) as e:
        logger.error(f"Invalid configuration: {e}")
        return 2
    finally:
        shutdown_tracing()

    for name, report in reports.items():
        print(f"\n=== {name} ===")
        print(report.render())

    if args.output:
        payload = {name: report.to_dict() for name, report in reports.items()}
        args.output.write_text(json.dumps(payload, indent=2))
        print(f"\nReport written to {args.output}")

    return 0


def run() -> None:
    """Console-script entry point"""
    sys.exit(asyncio.run(main()))
