#!/usr/bin/env python3
"""
TTL-Cache Command Line Entry Point

Runs a concurrent read stress test against a fresh cache: a few keys are
added with a TTL, many reads are fired from a thread pool, and the run ends
once the eviction sweep has removed every key.

Usage:
    ttl-cache                              # Default run
    ttl-cache --reads 1000000 --threads 8  # Heavier run
    ttl-cache --ttl 2 --eviction-period 0.5
    ttl-cache --debug                      # Enable debug logging

Environment Variables:
    TTL_CACHE_EVICTION_PERIOD   - Seconds between eviction sweeps
    TTL_CACHE_MAX_PENDING       - Worker queue capacity (0 = unbounded)
    TTL_CACHE_DEBUG             - Enable debug mode (true/false)
"""

import argparse
import asyncio
import logging
import random
import sys
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional

from .cache.store import CacheStore
from .config.settings import settings


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="TTL-Cache: concurrent read stress test",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "--keys",
        type=int,
        default=3,
        help="Number of keys to add",
    )

    parser.add_argument(
        "--reads",
        type=int,
        default=100_000,
        help="Number of reads to submit",
    )

    parser.add_argument(
        "--threads",
        type=int,
        default=4,
        help="Number of submitting threads",
    )

    parser.add_argument(
        "--ttl",
        type=int,
        default=5,
        help="TTL of every key, in seconds",
    )

    parser.add_argument(
        "--eviction-period",
        type=float,
        default=settings.EVICTION_PERIOD,
        help="Seconds between eviction sweeps",
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        default=settings.DEBUG,
        help="Enable debug logging",
    )

    args = parser.parse_args(argv)
    if args.keys <= 0 or args.threads <= 0 or args.ttl <= 0:
        parser.error("--keys, --threads and --ttl must be positive")
    if args.eviction_period <= 0:
        parser.error("--eviction-period must be positive")
    if args.reads < 0:
        parser.error("--reads must not be negative")
    return args


def setup_logging(debug: bool = False) -> None:
    """Configure logging based on debug flag."""
    level = logging.DEBUG if debug else getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout),
        ]
    )


async def run_stress(cache: CacheStore, keys: int, reads: int, threads: int, ttl: int) -> Dict[str, float]:
    """
    Add ``keys`` entries, fire ``reads`` random reads from ``threads``
    threads, then wait for the sweep to empty the cache.

    Returns:
        Dictionary with succeeded/failed read counts and timings
    """
    for i in range(keys):
        await cache.add(f"key{i}", f"value{i}", ttl)

    counts = {"succeeded": 0, "failed": 0}
    lock = threading.Lock()

    def count(ar) -> None:
        with lock:
            counts["succeeded" if ar.succeeded() else "failed"] += 1

    def submit(batch: int) -> None:
        for _ in range(batch):
            cache.get(f"key{random.randrange(keys)}").on_complete(count)

    batches = [reads // threads + (1 if i < reads % threads else 0) for i in range(threads)]

    start = time.perf_counter()
    with ThreadPoolExecutor(max_workers=threads) as pool:
        list(pool.map(submit, batches))
    # Queued after every read, so all reads have completed once it resolves
    await cache.get_keys_count()
    read_seconds = time.perf_counter() - start

    while await cache.get_keys_count() > 0:
        await asyncio.sleep(0.05)
    expiry_seconds = time.perf_counter() - start - read_seconds

    return {
        "succeeded": counts["succeeded"],
        "failed": counts["failed"],
        "read_seconds": read_seconds,
        "expiry_seconds": expiry_seconds,
    }


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    setup_logging(debug=args.debug)
    logger = logging.getLogger(__name__)

    logger.info("Starting TTL-Cache stress run")
    logger.info(f"  Keys: {args.keys}")
    logger.info(f"  Reads: {args.reads}")
    logger.info(f"  Threads: {args.threads}")
    logger.info(f"  TTL: {args.ttl}s")

    with CacheStore(eviction_period=args.eviction_period) as cache:
        try:
            stats = asyncio.run(run_stress(cache, args.keys, args.reads, args.threads, args.ttl))
        except KeyboardInterrupt:
            logger.info("Keyboard interrupt received")
            cache.shut_down_now()
            return 130

    print(
        f"{args.reads} reads in {stats['read_seconds']:.2f}s: "
        f"successful read [{stats['succeeded']}], failure read [{stats['failed']}]"
    )
    print(f"all keys expired {stats['expiry_seconds']:.2f}s after the last read")
    return 0


if __name__ == "__main__":
    sys.exit(main())
