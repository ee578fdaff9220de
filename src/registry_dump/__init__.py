"""registry-dump - Inventory every image manifest stored in a container registry."""

__version__ = "0.1.0"

from .core.registry_client import DistributionRegistryClient, RegistryClient
from .core.types import RegistryConfig
from .discovery import ImageDiscoverer
from .dump import DumpSummary, fetch_repository, run
from .exceptions import (
    MissingManifestError,
    ParseError,
    ProtocolError,
    RegistryError,
    TransportError,
)
from .models import (
    Descriptor,
    ImageManifest,
    ImageWithManifests,
    ManifestType,
    RepositoryImage,
)
from .progress import JsonLinesSink, LoggingProgress, MemorySink, TqdmProgress
from .registry import dump_registry, list_images, list_repositories, resolve_repository
from .repositories import RepositoryFilter, RepositoryLister
from .resolver import ManifestResolver

__all__ = [
    "DistributionRegistryClient",
    "RegistryClient",
    "RegistryConfig",
    "ImageDiscoverer",
    "ManifestResolver",
    "RepositoryFilter",
    "RepositoryLister",
    "DumpSummary",
    "fetch_repository",
    "run",
    "dump_registry",
    "list_images",
    "list_repositories",
    "resolve_repository",
    "Descriptor",
    "ImageManifest",
    "ImageWithManifests",
    "ManifestType",
    "RepositoryImage",
    "JsonLinesSink",
    "LoggingProgress",
    "TqdmProgress",
    "MemorySink",
    "RegistryError",
    "TransportError",
    "ProtocolError",
    "MissingManifestError",
    "ParseError",
]
