"""Resolution of discovered images into their concrete manifests.

Resolution runs in two phases over one repository:

1. Every distinct image digest is fetched. Image manifests complete
   immediately; manifest lists are parsed and their descriptors deferred.
2. The descriptors of all deferred lists are fetched together and each
   child must be an image manifest. Lists nest at most one level.

Both phases use :meth:`ManifestResolver.batch_resolve`, which
deduplicates digests, splits them into chunks no larger than the
registry's batch limit and keeps at most ``concurrency`` chunk calls in
flight.
"""

import asyncio
import logging
from collections import defaultdict
from typing import Mapping, Optional, Sequence, TypeVar

from .core.registry_client import RegistryClient
from .core.types import DEFAULT_CHUNK_SIZE, DEFAULT_CONCURRENCY
from .exceptions import MissingManifestError, ProtocolError, RegistryError
from .models import (
    Descriptor,
    ImageIndex,
    ImageManifest,
    ImageWithManifests,
    ManifestType,
    ManifestWithDescriptor,
    RepositoryImage,
    ResolvedManifest,
)
from .progress import NullProgress, ProgressReporter

logger = logging.getLogger(__name__)

P = TypeVar("P")

DeferredList = tuple[RepositoryImage, list[Descriptor]]


def chunked(items: Sequence[str], size: int) -> list[Sequence[str]]:
    """Split items into consecutive chunks of at most size elements."""
    return [items[i : i + size] for i in range(0, len(items), size)]


class ManifestResolver:
    """Resolve a repository's images into ImageWithManifests."""

    def __init__(
        self,
        client: RegistryClient,
        repository: str,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        concurrency: int = DEFAULT_CONCURRENCY,
        progress: Optional[ProgressReporter] = None,
    ) -> None:
        if chunk_size < 1 or concurrency < 1:
            raise ValueError("chunk_size and concurrency must be positive")
        self.client = client
        self.repository = repository
        self.chunk_size = min(chunk_size, client.max_batch_size)
        self.concurrency = concurrency
        self.progress = progress or NullProgress()

    def __str__(self) -> str:
        return self.repository

    async def resolve(self, images: Sequence[RepositoryImage]) -> list[ImageWithManifests]:
        """Resolve every image, expanding manifest lists one level.

        Raises:
            TransportError: If a batch call fails
            ProtocolError: On unexpected media types or digests
            ParseError: On malformed manifest JSON
        """
        try:
            resolved, deferred = await self.resolve_direct(images)
            logger.debug(
                f"Resolved {len(resolved)} images, and {len(deferred)} images "
                f"with manifest lists to be resolved in {self.repository}"
            )
            if deferred:
                expanded = await self.expand_lists(deferred)
                logger.debug(
                    f"Resolved {len(expanded)} images from manifest lists "
                    f"in {self.repository}"
                )
                resolved.extend(expanded)
        except RegistryError as e:
            e.with_context(repository=self.repository)
            raise
        return resolved

    async def resolve_direct(
        self, images: Sequence[RepositoryImage]
    ) -> tuple[list[ImageWithManifests], list[DeferredList]]:
        """Fetch each image's own manifest, deferring manifest lists."""
        requests: dict[str, list[RepositoryImage]] = defaultdict(list)
        for image in images:
            requests[image.manifest_digest].append(image)

        resolved: list[ImageWithManifests] = []
        deferred: list[DeferredList] = []
        for image, manifest in await self.batch_resolve(requests):
            manifest_type = self._classify(manifest)
            if manifest_type is ManifestType.IMAGE:
                parsed = self._parse(ImageManifest, manifest)
                resolved.append(
                    ImageWithManifests(image, [ManifestWithDescriptor(parsed)])
                )
            else:
                index = self._parse(ImageIndex, manifest)
                deferred.append((image, index.manifests))
        return resolved, deferred

    async def expand_lists(
        self, deferred: Sequence[DeferredList]
    ) -> list[ImageWithManifests]:
        """Fetch the children of deferred manifest lists, grouped by owning image."""
        requests: dict[str, list[tuple[RepositoryImage, Descriptor]]] = defaultdict(
            list
        )
        grouped: dict[RepositoryImage, ImageWithManifests] = {}
        for image, descriptors in deferred:
            grouped.setdefault(image, ImageWithManifests(image))
            for descriptor in descriptors:
                requests[descriptor.digest].append((image, descriptor))

        for (image, descriptor), manifest in await self.batch_resolve(requests):
            manifest_type = self._classify(manifest)
            if manifest_type is not ManifestType.IMAGE:
                raise ProtocolError(
                    f"Manifest list {image.manifest_digest} references "
                    "another manifest list",
                    repository=self.repository,
                    digest=manifest.digest,
                )
            parsed = self._parse(ImageManifest, manifest)
            grouped[image].manifests.append(ManifestWithDescriptor(parsed, descriptor))
        return list(grouped.values())

    async def batch_resolve(
        self, requests: Mapping[str, Sequence[P]]
    ) -> list[tuple[P, ResolvedManifest]]:
        """Fetch the manifest of every requested digest.

        Args:
            requests: Passengers keyed by the digest they need resolved

        Returns:
            One (passenger, manifest) pair per passenger, in chunk completion order

        Raises:
            ProtocolError: If the registry returns unrequested digests
            MissingManifestError: If the registry omits requested digests
        """
        chunks = chunked(list(requests), self.chunk_size)
        semaphore = asyncio.Semaphore(self.concurrency)
        results: list[tuple[P, ResolvedManifest]] = []

        async def resolve_chunk(chunk: Sequence[str]) -> None:
            async with semaphore:
                manifests = await self._fetch_chunk(chunk)
            for manifest in manifests:
                for passenger in requests[manifest.digest]:
                    results.append((passenger, manifest))
            self.progress.increment(len(chunk))

        logger.debug(
            f"Resolving {len(requests)} digests in {len(chunks)} chunks "
            f"in {self.repository}"
        )
        await asyncio.gather(*(resolve_chunk(chunk) for chunk in chunks))
        return results

    async def _fetch_chunk(self, chunk: Sequence[str]) -> list[ResolvedManifest]:
        response = await self.client.batch_get_manifests(self.repository, list(chunk))
        # Registries may return the same manifest more than once
        manifests = list(dict.fromkeys(response))

        requested = set(chunk)
        returned = set()
        for manifest in manifests:
            if manifest.digest not in requested:
                raise ProtocolError(
                    "Registry returned a manifest that was not requested",
                    repository=self.repository,
                    digest=manifest.digest,
                )
            if manifest.digest in returned:
                raise ProtocolError(
                    "Registry returned conflicting manifests for one digest",
                    repository=self.repository,
                    digest=manifest.digest,
                )
            returned.add(manifest.digest)

        missing = requested - returned
        if missing:
            raise MissingManifestError(self.repository, sorted(missing))
        return manifests

    def _classify(self, manifest: ResolvedManifest) -> ManifestType:
        manifest_type = ManifestType.from_media_type(manifest.media_type)
        if manifest_type is None:
            raise ProtocolError(
                f"Unexpected manifest media type {manifest.media_type!r}",
                repository=self.repository,
                digest=manifest.digest,
            )
        return manifest_type

    def _parse(self, model, manifest: ResolvedManifest):
        try:
            return model.parse(manifest.manifest)
        except RegistryError as e:
            e.with_context(repository=self.repository, digest=manifest.digest)
            raise
