"""Command line entry point: dump every manifest of a registry to JSON lines."""

import argparse
import asyncio
import logging
import os
import sys
from typing import Optional, Sequence

from .core.types import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_CONCURRENCY,
    DEFAULT_PAGE_SIZE,
    RegistryConfig,
)
from .exceptions import RegistryError
from .registry import dump_registry

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="registry-dump",
        description="Dump all image manifests of a container registry as JSON lines.",
    )
    parser.add_argument("output", help="Path of the JSON lines file to write")
    parser.add_argument(
        "--registry",
        default=os.getenv("REGISTRY_URL", "http://localhost:5000"),
        help="Registry URL (default: $REGISTRY_URL or http://localhost:5000)",
    )
    parser.add_argument(
        "-c", "--concurrency", type=int, default=DEFAULT_CONCURRENCY,
        help="Repositories and batch calls processed concurrently",
    )
    parser.add_argument(
        "--include", action="append", metavar="GLOB",
        help="Only dump repositories matching this glob (repeatable)",
    )
    parser.add_argument(
        "--exclude", action="append", metavar="GLOB",
        help="Skip repositories matching this glob (repeatable)",
    )
    parser.add_argument("--page-size", type=int, default=DEFAULT_PAGE_SIZE)
    parser.add_argument("--chunk-size", type=int, default=DEFAULT_CHUNK_SIZE)
    parser.add_argument("--timeout", type=int, default=30, help="Request timeout in seconds")
    parser.add_argument(
        "--no-verify-digests", dest="verify_digests", action="store_false",
        help="Do not check manifest content against its digest",
    )
    parser.add_argument(
        "--progress", action="store_true",
        help="Show a progress bar on stderr instead of logging throughput",
    )
    parser.add_argument(
        "--log-level", default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        stream=sys.stderr,
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = RegistryConfig(
            url=args.registry,
            timeout=args.timeout,
            page_size=args.page_size,
            chunk_size=args.chunk_size,
            concurrency=args.concurrency,
            verify_digests=args.verify_digests,
        )
    except ValueError as e:
        parser.error(str(e))

    logger.info("Started")
    try:
        summary = asyncio.run(
            dump_registry(
                args.registry,
                args.output,
                args.include,
                args.exclude,
                config,
                show_progress=args.progress,
            )
        )
    except RegistryError as e:
        logger.error(f"Registry error: {e}")
        return 1

    logger.info(
        f"Wrote {summary.manifests} manifests of {summary.images} images "
        f"from {summary.repositories} repositories to {args.output}"
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
