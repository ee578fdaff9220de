"""Data models for discovered images and resolved manifests."""

import copy
import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Iterator, Optional

from .exceptions import ParseError

OCI_MANIFEST = "application/vnd.oci.image.manifest.v1+json"
OCI_INDEX = "application/vnd.oci.image.index.v1+json"
DOCKER_MANIFEST = "application/vnd.docker.distribution.manifest.v2+json"
DOCKER_MANIFEST_LIST = "application/vnd.docker.distribution.manifest.list.v2+json"

MANIFEST_MEDIA_TYPES = (OCI_MANIFEST, DOCKER_MANIFEST, OCI_INDEX, DOCKER_MANIFEST_LIST)


class ManifestType(Enum):
    IMAGE = "Image"
    LIST = "List"

    @classmethod
    def from_media_type(cls, media_type: Optional[str]) -> Optional["ManifestType"]:
        """Classify a manifest media type, or return None if it is not recognized."""
        if media_type in (OCI_MANIFEST, DOCKER_MANIFEST):
            return cls.IMAGE
        if media_type in (OCI_INDEX, DOCKER_MANIFEST_LIST):
            return cls.LIST
        return None


class TagStatus(Enum):
    ANY = "ANY"
    TAGGED = "TAGGED"
    UNTAGGED = "UNTAGGED"


@dataclass
class ImageDetail:
    """One image entry as listed by the registry, before normalization."""

    repository_name: str
    image_digest: Optional[str] = None
    media_type: Optional[str] = None
    image_tags: list[str] = field(default_factory=list)
    pushed_at: Optional[datetime] = None
    last_pulled_at: Optional[datetime] = None


@dataclass(frozen=True)
class RepositoryImage:
    """An image discovered in a repository, identified by its manifest digest."""

    repository_name: str
    manifest_digest: str
    manifest_type: ManifestType
    image_tags: tuple[str, ...]
    image_pushed_at: Optional[datetime] = None
    last_recorded_pull_time: Optional[datetime] = None

    @classmethod
    def from_image_detail(cls, detail: ImageDetail) -> Optional["RepositoryImage"]:
        """Normalize a listing entry, or return None if it is not a manifest we inventory.

        Entries without a push time are kept; the registry may not report one.
        """
        manifest_type = ManifestType.from_media_type(detail.media_type)
        if manifest_type is None or not detail.image_digest:
            return None
        return cls(
            repository_name=detail.repository_name,
            manifest_digest=detail.image_digest,
            manifest_type=manifest_type,
            image_tags=tuple(detail.image_tags),
            image_pushed_at=detail.pushed_at,
            last_recorded_pull_time=detail.last_pulled_at,
        )

    def __str__(self) -> str:
        return (
            f"{self.repository_name} digest={self.manifest_digest} "
            f"type={self.manifest_type.value} tags={list(self.image_tags)}"
        )


def _require_object(data: Any, kind: str) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise ParseError(f"Invalid {kind}: expected an object, got {type(data).__name__}")
    return data


@dataclass(frozen=True)
class Platform:
    architecture: str
    os: str
    variant: Optional[str] = None
    os_version: Optional[str] = None
    os_features: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Any) -> "Platform":
        data = _require_object(data, "platform")
        return cls(
            architecture=data.get("architecture", ""),
            os=data.get("os", ""),
            variant=data.get("variant"),
            os_version=data.get("os.version"),
            os_features=tuple(data.get("os.features") or ()),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"architecture": self.architecture, "os": self.os}
        if self.variant:
            data["variant"] = self.variant
        if self.os_version:
            data["os.version"] = self.os_version
        if self.os_features:
            data["os.features"] = list(self.os_features)
        return data


@dataclass(frozen=True)
class Descriptor:
    """Reference to content by digest, as found in manifests and indexes.

    The parsed JSON object is kept in ``raw`` so that fields not modelled
    here (``data``, extension annotations, ...) survive serialization.

    ref: https://github.com/opencontainers/image-spec/blob/main/descriptor.md
    """

    digest: str
    media_type: str
    size: int
    platform: Optional[Platform] = None
    urls: tuple[str, ...] = ()
    artifact_type: Optional[str] = None
    annotations: Optional[dict[str, str]] = field(default=None, hash=False)
    raw: dict[str, Any] = field(
        default_factory=dict, hash=False, compare=False, repr=False
    )

    @classmethod
    def from_dict(cls, data: Any) -> "Descriptor":
        data = _require_object(data, "descriptor")
        try:
            platform = data.get("platform")
            return cls(
                digest=data["digest"],
                media_type=data.get("mediaType", ""),
                size=int(data.get("size", 0)),
                platform=Platform.from_dict(platform) if platform is not None else None,
                urls=tuple(data.get("urls") or ()),
                artifact_type=data.get("artifactType"),
                annotations=data.get("annotations"),
                raw=data,
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ParseError(f"Invalid descriptor: {e}") from e

    def to_dict(self) -> dict[str, Any]:
        if self.raw:
            return copy.deepcopy(self.raw)
        data: dict[str, Any] = {
            "mediaType": self.media_type,
            "digest": self.digest,
            "size": self.size,
        }
        if self.platform is not None:
            data["platform"] = self.platform.to_dict()
        if self.urls:
            data["urls"] = list(self.urls)
        if self.artifact_type:
            data["artifactType"] = self.artifact_type
        if self.annotations:
            data["annotations"] = self.annotations
        return data


def _load_json_object(text: str, kind: str) -> dict[str, Any]:
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, TypeError) as e:
        raise ParseError(f"Malformed {kind} JSON: {e}") from e
    return _require_object(data, f"{kind} JSON")


@dataclass
class ImageManifest:
    """A single-architecture image manifest (OCI or Docker v2 schema 2).

    ``to_dict`` returns the document as the registry served it.
    """

    schema_version: int
    media_type: Optional[str]
    config: Descriptor
    layers: list[Descriptor]
    artifact_type: Optional[str] = None
    subject: Optional[Descriptor] = None
    annotations: Optional[dict[str, str]] = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def parse(cls, text: str) -> "ImageManifest":
        data = _load_json_object(text, "manifest")
        if "config" not in data or not isinstance(data.get("layers"), list):
            raise ParseError("Manifest is missing config or layers")
        subject = data.get("subject")
        return cls(
            schema_version=data.get("schemaVersion", 2),
            media_type=data.get("mediaType"),
            config=Descriptor.from_dict(data["config"]),
            layers=[Descriptor.from_dict(layer) for layer in data["layers"]],
            artifact_type=data.get("artifactType"),
            subject=Descriptor.from_dict(subject) if subject is not None else None,
            annotations=data.get("annotations"),
            raw=data,
        )

    def to_dict(self) -> dict[str, Any]:
        if self.raw:
            return copy.deepcopy(self.raw)
        data: dict[str, Any] = {"schemaVersion": self.schema_version}
        if self.media_type:
            data["mediaType"] = self.media_type
        if self.artifact_type:
            data["artifactType"] = self.artifact_type
        data["config"] = self.config.to_dict()
        data["layers"] = [layer.to_dict() for layer in self.layers]
        if self.subject is not None:
            data["subject"] = self.subject.to_dict()
        if self.annotations:
            data["annotations"] = self.annotations
        return data


@dataclass
class ImageIndex:
    """A manifest list / image index referencing per-platform manifests."""

    schema_version: int
    media_type: Optional[str]
    manifests: list[Descriptor]

    @classmethod
    def parse(cls, text: str) -> "ImageIndex":
        data = _load_json_object(text, "index")
        if not isinstance(data.get("manifests"), list):
            raise ParseError("Index is missing manifests")
        return cls(
            schema_version=data.get("schemaVersion", 2),
            media_type=data.get("mediaType"),
            manifests=[Descriptor.from_dict(d) for d in data["manifests"]],
        )


@dataclass(frozen=True)
class ResolvedManifest:
    """Raw manifest content returned by a batch call, before classification."""

    digest: str
    manifest: str
    media_type: str


@dataclass
class ManifestWithDescriptor:
    manifest: ImageManifest
    descriptor: Optional[Descriptor] = None


def _epoch(value: Optional[datetime]) -> Optional[int]:
    return int(value.timestamp()) if value is not None else None


@dataclass
class ImageWithManifests:
    """An image together with the concrete manifests it resolved to."""

    image: RepositoryImage
    manifests: list[ManifestWithDescriptor] = field(default_factory=list)

    def records(self) -> Iterator[dict[str, Any]]:
        """Yield one output record per resolved manifest."""
        image = self.image
        for entry in self.manifests:
            descriptor = entry.descriptor
            yield {
                "repository_name": image.repository_name,
                "image_digest": image.manifest_digest,
                "image_tags": list(image.image_tags),
                "manifest_type": image.manifest_type.value,
                "manifest_digest": (
                    descriptor.digest if descriptor else image.manifest_digest
                ),
                "descriptor": descriptor.to_dict() if descriptor else None,
                "manifest": entry.manifest.to_dict(),
                "image_pushed_at": _epoch(image.image_pushed_at),
                "last_recorded_pull_time": _epoch(image.last_recorded_pull_time),
            }
