"""Custom exceptions for registry-dump."""

from typing import Optional


class RegistryError(Exception):
    """Base exception for all registry-related errors.

    Carries the repository and digest the error relates to, when known.
    """

    def __init__(
        self,
        message: str,
        repository: Optional[str] = None,
        digest: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.repository = repository
        self.digest = digest

    def with_context(
        self, repository: Optional[str] = None, digest: Optional[str] = None
    ) -> "RegistryError":
        """Fill in context that is not already set and return self."""
        if self.repository is None:
            self.repository = repository
        if self.digest is None:
            self.digest = digest
        return self

    def __str__(self) -> str:
        context = []
        if self.repository:
            context.append(f"repository={self.repository}")
        if self.digest:
            context.append(f"digest={self.digest}")
        if not context:
            return self.message
        return f"{self.message} ({', '.join(context)})"


class TransportError(RegistryError):
    """Raised when a registry call fails on the network or with an HTTP error."""

    pass


class ProtocolError(RegistryError):
    """Raised when the registry returns data that breaks the manifest protocol."""

    pass


class MissingManifestError(ProtocolError):
    """Raised when a batch response lacks manifests that were requested."""

    def __init__(self, repository: Optional[str], missing: list[str]) -> None:
        super().__init__(
            f"Registry did not return {len(missing)} requested manifest(s): "
            f"{', '.join(sorted(missing))}",
            repository=repository,
        )
        self.missing = missing


class ParseError(RegistryError):
    """Raised when manifest or index JSON cannot be parsed."""

    pass
