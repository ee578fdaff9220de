"""Registry clients used to list repositories and fetch manifests."""

import asyncio
import json
import logging
import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import AsyncIterator, Optional, Protocol, Sequence
from urllib.parse import quote, urljoin

import aiohttp

from ..exceptions import ParseError, ProtocolError, TransportError
from ..models import (
    MANIFEST_MEDIA_TYPES,
    ImageDetail,
    ImageIndex,
    ImageManifest,
    ManifestType,
    ResolvedManifest,
    TagStatus,
)
from ..utils.digest import calculate_digest, validate_digest, verify_digest
from .types import DEFAULT_CHUNK_SIZE, DEFAULT_MAX_REQUESTS, RegistryConfig

logger = logging.getLogger(__name__)

MANIFEST_ACCEPT = ", ".join(MANIFEST_MEDIA_TYPES)

# Python < 3.11 rejects more than six fractional digits
_FRACTION_PATTERN = re.compile(r"(\.\d{6})\d+")


class RegistryClient(Protocol):
    """Read-only registry operations needed to inventory a registry."""

    max_batch_size: int

    def list_repositories(self, page_size: int) -> AsyncIterator[list[str]]:
        """Yield repository names, one list per page."""
        ...

    def list_images(
        self,
        repository: str,
        page_size: int,
        tag_status: TagStatus = TagStatus.ANY,
    ) -> AsyncIterator[list[ImageDetail]]:
        """Yield image details of a repository, one list per page."""
        ...

    async def batch_get_manifests(
        self, repository: str, digests: Sequence[str]
    ) -> list[ResolvedManifest]:
        """Fetch the manifests for up to max_batch_size digests."""
        ...


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an RFC 3339 timestamp as found in image configs."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(
            _FRACTION_PATTERN.sub(r"\1", value.replace("Z", "+00:00"))
        )
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _media_type(headers, body: bytes) -> Optional[str]:
    content_type = headers.get("Content-Type", "").split(";")[0].strip()
    if content_type in MANIFEST_MEDIA_TYPES:
        return content_type
    try:
        return json.loads(body).get("mediaType") or content_type or None
    except (ValueError, AttributeError):
        return content_type or None


class DistributionRegistryClient:
    """Async client for registries speaking the Docker Registry HTTP API v2.

    Every request holds a slot of a client-wide semaphore, so callers may
    fan out freely without queueing unbounded work on the connection pool.
    """

    def __init__(
        self,
        config: RegistryConfig,
        connector: Optional[aiohttp.TCPConnector] = None,
        max_batch_size: int = DEFAULT_CHUNK_SIZE,
        max_requests: int = DEFAULT_MAX_REQUESTS,
    ) -> None:
        """Initialize the registry client.

        Args:
            config: Registry configuration
            connector: aiohttp connector for connection pooling
            max_batch_size: Maximum number of digests per batch_get_manifests call
            max_requests: Maximum number of HTTP requests in flight
        """
        if max_requests < 1:
            raise ValueError(f"max_requests must be at least 1, got {max_requests}")
        self.config = config
        self.connector = connector
        self.max_batch_size = max_batch_size
        self.max_requests = max_requests
        self.session: Optional[aiohttp.ClientSession] = None
        self._requests = asyncio.Semaphore(max_requests)

    async def __aenter__(self) -> "DistributionRegistryClient":
        """Enter async context manager."""
        if not self.session:
            # Per-socket timeouts: time spent waiting for a request slot
            # or a pooled connection does not count against a request
            self.session = aiohttp.ClientSession(
                connector=self.connector,
                timeout=aiohttp.ClientTimeout(
                    total=None,
                    sock_connect=self.config.timeout,
                    sock_read=self.config.timeout,
                ),
            )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit async context manager."""
        await self.close()

    async def close(self) -> None:
        """Close the client session."""
        if self.session and not self.session.closed:
            await self.session.close()

    def _url(self, path: str) -> str:
        return f"{self.config.base_url}/v2/{path}"

    async def _request(
        self,
        url: str,
        repository: Optional[str],
        params: Optional[dict],
        headers: Optional[dict],
        allow_missing: bool,
    ) -> Optional[tuple[bytes, aiohttp.ClientResponse]]:
        if self.session is None:
            raise RuntimeError("Client session is not open, use 'async with'")
        try:
            async with self._requests:
                async with self.session.get(
                    url, params=params, headers=headers
                ) as resp:
                    if resp.status == 404 and allow_missing:
                        return None
                    resp.raise_for_status()
                    return await resp.read(), resp
        except aiohttp.ClientResponseError as e:
            raise TransportError(
                f"GET {url} failed with HTTP {e.status}: {e.message}",
                repository=repository,
            ) from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(
                f"GET {url} failed: {e!r}", repository=repository
            ) from e

    async def _get(
        self,
        url: str,
        repository: Optional[str] = None,
        params: Optional[dict] = None,
        headers: Optional[dict] = None,
    ) -> tuple[bytes, aiohttp.ClientResponse]:
        """GET a URL and return its body and response.

        Raises:
            TransportError: On connection failures and HTTP errors, 404 included
        """
        result = await self._request(url, repository, params, headers, False)
        if result is None:
            raise TransportError(f"GET {url} returned no response", repository=repository)
        return result

    async def _get_optional(
        self,
        url: str,
        repository: Optional[str] = None,
        headers: Optional[dict] = None,
    ) -> Optional[tuple[bytes, aiohttp.ClientResponse]]:
        """Like ``_get``, but return None when the registry answers 404."""
        return await self._request(url, repository, None, headers, True)

    async def _paginate(
        self, path: str, key: str, page_size: int, repository: Optional[str] = None
    ) -> AsyncIterator[list]:
        """Follow Link rel="next" headers, yielding the list under key per page."""
        url: Optional[str] = self._url(path)
        params: Optional[dict] = {"n": page_size}
        while url:
            body, resp = await self._get(url, repository=repository, params=params)
            try:
                data = json.loads(body)
            except ValueError as e:
                raise ParseError(
                    f"Malformed page from {url}: {e}", repository=repository
                ) from e
            yield data.get(key) or []

            next_link = resp.links.get("next")
            url = urljoin(url, str(next_link["url"])) if next_link else None
            params = None

    async def list_repositories(self, page_size: int) -> AsyncIterator[list[str]]:
        async for page in self._paginate("_catalog", "repositories", page_size):
            logger.debug(f"Listed {len(page)} repositories")
            yield page

    async def list_images(
        self,
        repository: str,
        page_size: int,
        tag_status: TagStatus = TagStatus.ANY,
    ) -> AsyncIterator[list[ImageDetail]]:
        # The v2 API can only enumerate manifests through their tags
        if tag_status is TagStatus.UNTAGGED:
            return
        semaphore = asyncio.Semaphore(self.config.concurrency)

        async def describe(tag: str) -> ImageDetail:
            async with semaphore:
                return await self._describe_tag(repository, tag)

        path = f"{quote(repository, safe='/')}/tags/list"
        async for tags in self._paginate(path, "tags", page_size, repository):
            details: dict[str, ImageDetail] = {}
            for detail in await asyncio.gather(*(describe(tag) for tag in tags)):
                existing = details.get(detail.image_digest)
                if existing is None:
                    details[detail.image_digest] = detail
                else:
                    existing.image_tags.extend(detail.image_tags)
            logger.debug(
                f"Listed {len(tags)} tags as {len(details)} images in {repository}"
            )
            yield list(details.values())

    def _manifest_url(self, repository: str, reference: str) -> str:
        return self._url(f"{quote(repository, safe='/')}/manifests/{reference}")

    async def _describe_tag(self, repository: str, tag: str) -> ImageDetail:
        body, resp = await self._get(
            self._manifest_url(repository, tag),
            repository=repository,
            headers={"Accept": MANIFEST_ACCEPT},
        )
        digest = resp.headers.get("Docker-Content-Digest") or calculate_digest(body)
        media_type = _media_type(resp.headers, body)

        pushed_at = None
        last_modified = resp.headers.get("Last-Modified")
        if last_modified:
            try:
                pushed_at = parsedate_to_datetime(last_modified)
            except (TypeError, ValueError):
                logger.debug(f"Unparseable Last-Modified {last_modified!r}")
        if pushed_at is None:
            pushed_at = await self._created_at(repository, body, media_type)
        if pushed_at is None:
            logger.debug(f"No push time for {repository}:{tag} ({digest})")

        return ImageDetail(
            repository_name=repository,
            image_digest=digest,
            media_type=media_type,
            image_tags=[tag],
            pushed_at=pushed_at,
        )

    async def _created_at(
        self, repository: str, body: bytes, media_type: Optional[str]
    ) -> Optional[datetime]:
        """Read the creation time from the image config, via the first child of a list.

        Returns None when the config has no ``created`` field or cannot be read.
        """
        manifest_type = ManifestType.from_media_type(media_type)
        try:
            if manifest_type is ManifestType.LIST:
                index = ImageIndex.parse(body.decode("utf-8"))
                if not index.manifests:
                    return None
                result = await self._get_optional(
                    self._manifest_url(repository, index.manifests[0].digest),
                    repository=repository,
                    headers={"Accept": MANIFEST_ACCEPT},
                )
                if result is None:
                    return None
                body = result[0]
            elif manifest_type is not ManifestType.IMAGE:
                return None

            manifest = ImageManifest.parse(body.decode("utf-8"))
            url = self._url(
                f"{quote(repository, safe='/')}/blobs/{manifest.config.digest}"
            )
            result = await self._get_optional(url, repository=repository)
        except (ParseError, UnicodeDecodeError) as e:
            logger.debug(f"Cannot determine creation time in {repository}: {e}")
            return None
        if result is None:
            return None
        try:
            created = json.loads(result[0]).get("created")
        except (ValueError, AttributeError):
            return None
        return parse_timestamp(created)

    async def batch_get_manifests(
        self, repository: str, digests: Sequence[str]
    ) -> list[ResolvedManifest]:
        """Fetch manifests by digest, omitting digests the registry does not have.

        Raises:
            ValueError: If more than max_batch_size digests are requested
            TransportError: If any request fails
            ProtocolError: If a manifest does not match its digest
        """
        if len(digests) > self.max_batch_size:
            raise ValueError(
                f"Batch of {len(digests)} digests exceeds limit of {self.max_batch_size}"
            )
        results = await asyncio.gather(
            *(self._get_by_digest(repository, digest) for digest in digests)
        )
        return [result for result in results if result is not None]

    async def _get_by_digest(
        self, repository: str, digest: str
    ) -> Optional[ResolvedManifest]:
        result = await self._get_optional(
            self._manifest_url(repository, digest),
            repository=repository,
            headers={"Accept": MANIFEST_ACCEPT},
        )
        if result is None:
            logger.debug(f"Manifest {digest} not found in {repository}")
            return None
        body, resp = result

        if self.config.verify_digests and validate_digest(digest):
            if not verify_digest(body, digest):
                raise ProtocolError(
                    "Manifest content does not match its digest",
                    repository=repository,
                    digest=digest,
                )
        try:
            text = body.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ParseError(
                f"Manifest is not valid UTF-8: {e}", repository=repository, digest=digest
            ) from e

        return ResolvedManifest(
            digest=resp.headers.get("Docker-Content-Digest") or digest,
            manifest=text,
            media_type=_media_type(resp.headers, body) or "",
        )
