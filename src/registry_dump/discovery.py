"""Discovery of the images stored in a repository."""

import logging
from dataclasses import replace
from datetime import datetime
from typing import Optional

from .core.registry_client import RegistryClient
from .core.types import DEFAULT_PAGE_SIZE
from .exceptions import RegistryError
from .models import RepositoryImage, TagStatus
from .progress import NullProgress, ProgressReporter

logger = logging.getLogger(__name__)


def _earliest(*values: Optional[datetime]) -> Optional[datetime]:
    known = [t for t in values if t is not None]
    return min(known) if known else None


def _latest(*values: Optional[datetime]) -> Optional[datetime]:
    known = [t for t in values if t is not None]
    return max(known) if known else None


def _merge(first: RepositoryImage, second: RepositoryImage) -> RepositoryImage:
    tags = first.image_tags + tuple(
        tag for tag in second.image_tags if tag not in first.image_tags
    )
    return replace(
        first,
        image_tags=tags,
        image_pushed_at=_earliest(first.image_pushed_at, second.image_pushed_at),
        last_recorded_pull_time=_latest(
            first.last_recorded_pull_time, second.last_recorded_pull_time
        ),
    )


class ImageDiscoverer:
    """Page through a repository's images and normalize them."""

    def __init__(
        self,
        client: RegistryClient,
        repository: str,
        page_size: int = DEFAULT_PAGE_SIZE,
        progress: Optional[ProgressReporter] = None,
    ) -> None:
        self.client = client
        self.repository = repository
        self.page_size = page_size
        self.progress = progress or NullProgress()

    async def discover(self) -> list[RepositoryImage]:
        """List every image with a recognized manifest media type.

        Returns:
            Images keyed uniquely by digest, in listing order

        Raises:
            TransportError: If any page fetch fails
        """
        images: dict[str, RepositoryImage] = {}
        skipped = 0
        try:
            async for page in self.client.list_images(
                self.repository, self.page_size, TagStatus.ANY
            ):
                self.progress.increment(len(page))
                for detail in page:
                    image = RepositoryImage.from_image_detail(detail)
                    if image is None:
                        logger.debug(
                            f"Skipping {detail.image_digest or '<no digest>'} in "
                            f"{self.repository}: media type {detail.media_type} "
                            f"is not an image manifest or digest is missing"
                        )
                        skipped += 1
                        continue
                    existing = images.get(image.manifest_digest)
                    images[image.manifest_digest] = (
                        _merge(existing, image) if existing else image
                    )
        except RegistryError as e:
            e.with_context(repository=self.repository)
            raise

        logger.debug(
            f"Discovered {len(images)} images in {self.repository}, skipped {skipped}"
        )
        return list(images.values())
