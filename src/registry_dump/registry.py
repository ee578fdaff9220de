"""Async functional registry operations."""

from dataclasses import replace
from pathlib import Path
from typing import Optional, Sequence, Union

from .core.registry_client import DistributionRegistryClient
from .core.types import DEFAULT_CONCURRENCY, RegistryConfig
from .discovery import ImageDiscoverer
from .dump import DumpSummary, fetch_repository, run
from .models import ImageWithManifests, RepositoryImage
from .progress import JsonLinesSink, LoggingProgress, TqdmProgress
from .repositories import RepositoryFilter, RepositoryLister


async def list_repositories(
    registry_url: str,
    include: Optional[Sequence[str]] = None,
    exclude: Optional[Sequence[str]] = None,
    timeout: int = 30,
) -> list[str]:
    """List the registry's repositories, filtered by glob patterns.

    Args:
        registry_url: Registry URL (e.g. "http://localhost:15000")
        include: Glob patterns a repository must match (e.g. ["prod-*"])
        exclude: Glob patterns a repository must not match
        timeout: Request timeout in seconds

    Returns:
        list[str]: Sorted repository names

    Raises:
        TransportError: If the catalog cannot be listed

    Examples:
        repos = await list_repositories("http://localhost:15000", include=["prod-*"])
    """
    config = RegistryConfig(url=registry_url, timeout=timeout)
    async with DistributionRegistryClient(config) as client:
        lister = RepositoryLister(
            client, RepositoryFilter(include, exclude), page_size=config.page_size
        )
        return await lister.list()


async def list_images(
    registry_url: str, repository: str, timeout: int = 30
) -> list[RepositoryImage]:
    """List the images of one repository.

    Args:
        registry_url: Registry URL (e.g. "http://localhost:15000")
        repository: Repository name (e.g. "nginx", "mycompany/myapp")
        timeout: Request timeout in seconds

    Returns:
        list[RepositoryImage]: One entry per distinct manifest digest

    Raises:
        TransportError: If listing fails
    """
    config = RegistryConfig(url=registry_url, timeout=timeout)
    async with DistributionRegistryClient(config) as client:
        return await ImageDiscoverer(
            client, repository, page_size=config.page_size
        ).discover()


async def resolve_repository(
    registry_url: str,
    repository: str,
    concurrency: int = DEFAULT_CONCURRENCY,
    timeout: int = 30,
) -> list[ImageWithManifests]:
    """Discover a repository's images and resolve them into concrete manifests.

    Args:
        registry_url: Registry URL (e.g. "http://localhost:15000")
        repository: Repository name (e.g. "nginx")
        concurrency: Maximum number of batch calls in flight
        timeout: Request timeout in seconds

    Returns:
        list[ImageWithManifests]: One entry per image, lists expanded

    Raises:
        RegistryError: If discovery or resolution fails

    Examples:
        for image in await resolve_repository("http://localhost:15000", "nginx"):
            print(image.image, len(image.manifests))
    """
    config = RegistryConfig(url=registry_url, timeout=timeout, concurrency=concurrency)
    async with DistributionRegistryClient(config) as client:
        return await fetch_repository(client, repository, config)


async def dump_registry(
    registry_url: str,
    output: Union[str, Path],
    include: Optional[Sequence[str]] = None,
    exclude: Optional[Sequence[str]] = None,
    config: Optional[RegistryConfig] = None,
    show_progress: bool = False,
) -> DumpSummary:
    """Write one JSON line per resolved manifest of every selected repository.

    Args:
        registry_url: Registry URL (e.g. "http://localhost:15000")
        output: Path of the JSON lines file to create
        include: Glob patterns a repository must match
        exclude: Glob patterns a repository must not match
        config: Tuning settings; its url is replaced by registry_url
        show_progress: Draw a progress bar instead of logging throughput

    Returns:
        DumpSummary: Counts of repositories, images and manifests written

    Raises:
        RegistryError: On the first repository that fails

    Examples:
        summary = await dump_registry("http://localhost:15000", "dump.jsonl")
    """
    if config is None:
        config = RegistryConfig(url=registry_url)
    elif config.url != registry_url:
        config = replace(config, url=registry_url)

    async with DistributionRegistryClient(config) as client:
        lister = RepositoryLister(
            client, RepositoryFilter(include, exclude), page_size=config.page_size
        )
        repositories = await lister.list()
        total = len(repositories)
        async with JsonLinesSink(output) as sink:
            if show_progress:
                with TqdmProgress("repositories", total=total, unit="repo") as bar:
                    return await run(client, repositories, sink, config, bar)
            progress = LoggingProgress("repositories", total=total)
            return await run(client, repositories, sink, config, progress)
