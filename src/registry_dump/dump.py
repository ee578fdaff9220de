"""Dump pipeline: discover and resolve every repository, emitting results."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from .core.registry_client import RegistryClient
from .core.types import RegistryConfig
from .discovery import ImageDiscoverer
from .exceptions import RegistryError
from .models import ImageWithManifests
from .progress import NullProgress, OutputSink, ProgressReporter
from .resolver import ManifestResolver

logger = logging.getLogger(__name__)


@dataclass
class DumpSummary:
    repositories: int = 0
    images: int = 0
    manifests: int = 0


async def fetch_repository(
    client: RegistryClient,
    repository: str,
    config: RegistryConfig,
    progress: Optional[ProgressReporter] = None,
) -> list[ImageWithManifests]:
    """Discover a repository's images and resolve their manifests."""
    try:
        images = await ImageDiscoverer(
            client, repository, page_size=config.page_size
        ).discover()
        logger.debug(f"Found {len(images)} images in {repository}")
        resolved = await ManifestResolver(
            client,
            repository,
            chunk_size=config.chunk_size,
            concurrency=config.concurrency,
            progress=progress,
        ).resolve(images)
    except RegistryError as e:
        e.with_context(repository=repository)
        raise
    logger.debug(f"Resolved {len(resolved)} images with manifests in {repository}")
    return resolved


async def run(
    client: RegistryClient,
    repositories: Sequence[str],
    sink: OutputSink,
    config: RegistryConfig,
    progress: Optional[ProgressReporter] = None,
) -> DumpSummary:
    """Process repositories concurrently and emit results as they complete.

    The first failing repository cancels the others and its error
    propagates. Results already flushed to the sink are kept.
    """
    progress = progress or NullProgress()
    semaphore = asyncio.Semaphore(config.concurrency)
    summary = DumpSummary()

    async def process(repository: str) -> tuple[str, list[ImageWithManifests]]:
        async with semaphore:
            return repository, await fetch_repository(client, repository, config)

    tasks = [asyncio.create_task(process(name)) for name in repositories]
    try:
        for next_done in asyncio.as_completed(tasks):
            name, images = await next_done
            logger.info(f"Discovered {len(images)} images in repository {name}")
            for image in images:
                await sink.emit(image)
                summary.manifests += len(image.manifests)
            await sink.flush()
            summary.repositories += 1
            summary.images += len(images)
            progress.increment(1)
    finally:
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    return summary
