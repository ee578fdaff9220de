"""Example usage of the async registry-dump API."""

import asyncio
import logging
import sys

# Add parent directory to path
sys.path.insert(0, "src")

from registry_dump import (
    RegistryError,
    list_repositories,
    resolve_repository,
)

# Set up logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def main():
    """Resolve the first few repositories and print their platforms."""
    registry_url = "http://localhost:15000"

    try:
        logger.info("Listing repositories...")
        repos = await list_repositories(registry_url)
        logger.info(f"Found {len(repos)} repositories: {repos}")

        results = await asyncio.gather(
            *(resolve_repository(registry_url, repo) for repo in repos[:3])
        )
        for repo, images in zip(repos[:3], results):
            for image in images:
                platforms = [
                    entry.descriptor.platform.architecture
                    for entry in image.manifests
                    if entry.descriptor and entry.descriptor.platform
                ]
                logger.info(
                    f"{repo} {image.image.manifest_digest[:19]} "
                    f"tags={list(image.image.image_tags)} platforms={platforms or '-'}"
                )

    except RegistryError as e:
        logger.error(f"Registry error: {e}")


if __name__ == "__main__":
    asyncio.run(main())
