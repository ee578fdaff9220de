"""Registry client and configuration."""

from .registry_client import DistributionRegistryClient, RegistryClient
from .types import RegistryConfig

__all__ = ["DistributionRegistryClient", "RegistryClient", "RegistryConfig"]
