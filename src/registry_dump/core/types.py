"""Configuration types shared by the client and the pipeline."""

from dataclasses import dataclass

DEFAULT_PAGE_SIZE = 1000
DEFAULT_CHUNK_SIZE = 100
DEFAULT_CONCURRENCY = 10
DEFAULT_MAX_REQUESTS = 100


@dataclass(frozen=True)
class RegistryConfig:
    """Registry connection and pipeline tuning settings."""

    url: str
    timeout: int = 30
    page_size: int = DEFAULT_PAGE_SIZE
    chunk_size: int = DEFAULT_CHUNK_SIZE
    concurrency: int = DEFAULT_CONCURRENCY
    verify_digests: bool = True

    def __post_init__(self) -> None:
        for name in ("timeout", "page_size", "chunk_size", "concurrency"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")

    @property
    def base_url(self) -> str:
        """Registry URL without a trailing slash."""
        return self.url.rstrip("/")
