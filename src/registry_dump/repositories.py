"""Repository listing and include/exclude filtering."""

import logging
from fnmatch import fnmatchcase
from typing import Iterable, Optional, Sequence

from .core.registry_client import RegistryClient
from .core.types import DEFAULT_PAGE_SIZE

logger = logging.getLogger(__name__)


class RepositoryFilter:
    """Select repositories by shell-style include and exclude globs.

    A name is selected when it matches an include pattern (or no include
    patterns are configured) and matches no exclude pattern.
    """

    def __init__(
        self,
        include: Optional[Sequence[str]] = None,
        exclude: Optional[Sequence[str]] = None,
    ) -> None:
        self.include = list(include) if include else None
        self.exclude = list(exclude) if exclude else None

    def matches(self, name: str) -> bool:
        if self.include and not any(fnmatchcase(name, p) for p in self.include):
            logger.debug(f"No include filter matched {name}, skipping")
            return False
        if self.exclude and any(fnmatchcase(name, p) for p in self.exclude):
            logger.debug(f"Exclude filter matched {name}, skipping")
            return False
        return True

    def apply(self, names: Iterable[str]) -> list[str]:
        """Return the sorted, deduplicated names that pass the filter."""
        return sorted({name for name in names if self.matches(name)})


class RepositoryLister:
    """List the registry's repositories that pass a RepositoryFilter."""

    def __init__(
        self,
        client: RegistryClient,
        repository_filter: Optional[RepositoryFilter] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        self.client = client
        self.repository_filter = repository_filter or RepositoryFilter()
        self.page_size = page_size

    async def list(self) -> list[str]:
        names: list[str] = []
        async for page in self.client.list_repositories(self.page_size):
            names.extend(page)
        selected = self.repository_filter.apply(names)
        logger.debug(f"Selected {len(selected)} of {len(names)} repositories")
        return selected
