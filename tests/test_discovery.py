"""Tests for image discovery."""

from datetime import datetime, timezone

import pytest

from registry_dump.discovery import ImageDiscoverer
from registry_dump.exceptions import TransportError
from registry_dump.models import OCI_INDEX, ManifestType
from registry_dump.progress import CallbackProgress
from tests.helpers import FakeRegistryClient, make_detail, make_digest


@pytest.mark.asyncio
async def test_follows_pagination():
    pages = [
        [make_detail(make_digest("a"), tags=["a"]), make_detail(make_digest("b"))],
        [make_detail(make_digest("c"), OCI_INDEX, tags=["c"])],
    ]
    client = FakeRegistryClient(images={"app": pages})

    images = await ImageDiscoverer(client, "app", page_size=2).discover()

    assert [i.manifest_digest for i in images] == [
        make_digest("a"),
        make_digest("b"),
        make_digest("c"),
    ]
    assert images[1].image_tags == ()
    assert images[2].manifest_type is ManifestType.LIST


@pytest.mark.asyncio
async def test_filters_unrecognized_media_types():
    pages = [
        [
            make_detail(make_digest("image")),
            make_detail(make_digest("helm"), "application/vnd.cncf.helm.config.v1+json"),
            make_detail(make_digest("none"), None),
        ]
    ]
    client = FakeRegistryClient(images={"app": pages})

    images = await ImageDiscoverer(client, "app").discover()

    assert [i.manifest_digest for i in images] == [make_digest("image")]


@pytest.mark.asyncio
async def test_empty_repository():
    client = FakeRegistryClient(images={"empty": []})
    assert await ImageDiscoverer(client, "empty").discover() == []


@pytest.mark.asyncio
async def test_duplicate_digests_are_merged():
    digest = make_digest("shared")
    later = make_detail(digest, tags=["v2", "latest"])
    later.pushed_at = datetime(2024, 6, 1, tzinfo=timezone.utc)
    later.last_pulled_at = datetime(2024, 7, 1, tzinfo=timezone.utc)
    pages = [[make_detail(digest, tags=["v1", "latest"])], [later]]
    client = FakeRegistryClient(images={"app": pages})

    [image] = await ImageDiscoverer(client, "app").discover()

    assert image.image_tags == ("v1", "latest", "v2")
    assert image.image_pushed_at == datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert image.last_recorded_pull_time == datetime(2024, 7, 1, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_images_without_push_time_are_kept():
    undated = make_detail(make_digest("chart"), tags=["1.0.0"])
    undated.pushed_at = None
    shared = make_detail(make_digest("shared"), tags=["v1"])
    shared_undated = make_detail(make_digest("shared"), tags=["v2"])
    shared_undated.pushed_at = None
    client = FakeRegistryClient(images={"app": [[undated, shared], [shared_undated]]})

    images = await ImageDiscoverer(client, "app").discover()

    assert [i.manifest_digest for i in images] == [
        make_digest("chart"),
        make_digest("shared"),
    ]
    assert images[0].image_pushed_at is None
    assert images[1].image_tags == ("v1", "v2")
    assert images[1].image_pushed_at == datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_page_failure_carries_repository():
    client = FakeRegistryClient(images={"app": [[make_detail(make_digest("a"))]]})
    client.fail_image_pages = True

    with pytest.raises(TransportError) as exc_info:
        await ImageDiscoverer(client, "app").discover()

    assert exc_info.value.repository == "app"
    assert "repository=app" in str(exc_info.value)


@pytest.mark.asyncio
async def test_progress_counts_listed_entries():
    pages = [[make_detail(make_digest(str(i))) for i in range(3)], [make_detail("x", None)]]
    client = FakeRegistryClient(images={"app": pages})
    seen = []

    await ImageDiscoverer(
        client, "app", progress=CallbackProgress(lambda done, total, msg: seen.append(done))
    ).discover()

    assert seen == [3, 4]
