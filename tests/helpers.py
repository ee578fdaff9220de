"""Test helpers: an in-memory registry client and manifest builders."""

import asyncio
import hashlib
import json
from datetime import datetime, timezone
from typing import Optional

from registry_dump.exceptions import TransportError
from registry_dump.models import (
    OCI_INDEX,
    OCI_MANIFEST,
    ImageDetail,
    ManifestType,
    RepositoryImage,
    ResolvedManifest,
    TagStatus,
)

PUSHED_AT = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_digest(name: str) -> str:
    """Deterministic sha256 digest for a readable name."""
    return f"sha256:{hashlib.sha256(name.encode('utf-8')).hexdigest()}"


def image_manifest_json(name: str, media_type: str = OCI_MANIFEST) -> str:
    return json.dumps(
        {
            "schemaVersion": 2,
            "mediaType": media_type,
            "config": {
                "mediaType": "application/vnd.oci.image.config.v1+json",
                "digest": make_digest(f"{name}-config"),
                "size": 100,
            },
            "layers": [
                {
                    "mediaType": "application/vnd.oci.image.layer.v1.tar+gzip",
                    "digest": make_digest(f"{name}-layer"),
                    "size": 1000,
                }
            ],
        }
    )


def index_json(children: list[tuple[str, str]], media_type: str = OCI_INDEX) -> str:
    """Index referencing (digest, architecture) children."""
    return json.dumps(
        {
            "schemaVersion": 2,
            "mediaType": media_type,
            "manifests": [
                {
                    "mediaType": OCI_MANIFEST,
                    "digest": digest,
                    "size": 500,
                    "platform": {"architecture": arch, "os": "linux"},
                }
                for digest, arch in children
            ],
        }
    )


def make_image(
    digest: str,
    kind: ManifestType = ManifestType.IMAGE,
    tags: tuple[str, ...] = ("latest",),
    repository: str = "app",
) -> RepositoryImage:
    return RepositoryImage(
        repository_name=repository,
        manifest_digest=digest,
        manifest_type=kind,
        image_tags=tags,
        image_pushed_at=PUSHED_AT,
    )


def make_detail(
    digest: str,
    media_type: Optional[str] = OCI_MANIFEST,
    tags: Optional[list[str]] = None,
    repository: str = "app",
) -> ImageDetail:
    return ImageDetail(
        repository_name=repository,
        image_digest=digest,
        media_type=media_type,
        image_tags=tags or [],
        pushed_at=PUSHED_AT,
    )


class FakeRegistryClient:
    """In-memory RegistryClient recording batch calls and their concurrency."""

    def __init__(
        self,
        manifests: Optional[dict[str, tuple[str, str]]] = None,
        images: Optional[dict[str, list[list[ImageDetail]]]] = None,
        repositories: Optional[list[list[str]]] = None,
        max_batch_size: int = 100,
        delay: float = 0,
    ) -> None:
        self.manifests = manifests or {}
        self.images = images or {}
        self.repositories = repositories or []
        self.max_batch_size = max_batch_size
        self.delay = delay
        self.calls: list[list[str]] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.duplicate_results = False
        self.extra_results: list[ResolvedManifest] = []
        self.fail_digests: set[str] = set()
        self.fail_image_pages = False

    def add_image(self, digest: str, name: Optional[str] = None) -> None:
        self.manifests[digest] = (image_manifest_json(name or digest), OCI_MANIFEST)

    def add_index(self, digest: str, children: list[tuple[str, str]]) -> None:
        self.manifests[digest] = (index_json(children), OCI_INDEX)

    async def list_repositories(self, page_size: int):
        for page in self.repositories:
            await asyncio.sleep(0)
            yield page

    async def list_images(
        self, repository: str, page_size: int, tag_status: TagStatus = TagStatus.ANY
    ):
        for page in self.images.get(repository, []):
            if self.fail_image_pages:
                raise TransportError("page fetch failed")
            await asyncio.sleep(0)
            yield page

    async def batch_get_manifests(self, repository: str, digests):
        if len(digests) > self.max_batch_size:
            raise ValueError("batch too large")
        self.calls.append(list(digests))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            if self.fail_digests.intersection(digests):
                raise TransportError("batch call failed")
        finally:
            self.in_flight -= 1

        results = []
        for digest in digests:
            if digest not in self.manifests:
                continue
            text, media_type = self.manifests[digest]
            result = ResolvedManifest(digest=digest, manifest=text, media_type=media_type)
            results.append(result)
            if self.duplicate_results:
                results.append(result)
        return results + self.extra_results
