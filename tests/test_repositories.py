"""Tests for repository listing and filtering."""

import pytest

from registry_dump.repositories import RepositoryFilter, RepositoryLister
from tests.helpers import FakeRegistryClient


class TestRepositoryFilter:
    """Test include/exclude glob selection."""

    def test_no_patterns_selects_everything(self):
        assert RepositoryFilter().apply(["b", "a", "b"]) == ["a", "b"]

    def test_include_and_exclude(self):
        repository_filter = RepositoryFilter(include=["prod-*"], exclude=["prod-test"])
        assert repository_filter.apply(["prod-api", "prod-test", "dev-api"]) == [
            "prod-api"
        ]

    def test_include_only(self):
        repository_filter = RepositoryFilter(include=["team/*", "base"])
        assert repository_filter.apply(["team/web", "base", "other"]) == [
            "base",
            "team/web",
        ]

    def test_exclude_only(self):
        repository_filter = RepositoryFilter(exclude=["*-cache", "tmp?"])
        assert repository_filter.apply(["api", "build-cache", "tmp1", "tmp12"]) == [
            "api",
            "tmp12",
        ]

    def test_matching_is_case_sensitive(self):
        assert not RepositoryFilter(include=["Prod-*"]).matches("prod-api")


@pytest.mark.asyncio
async def test_lister_reads_all_pages():
    client = FakeRegistryClient(
        repositories=[["prod-web", "dev-web"], ["prod-api", "prod-web"]]
    )
    lister = RepositoryLister(client, RepositoryFilter(include=["prod-*"]))

    assert await lister.list() == ["prod-api", "prod-web"]


@pytest.mark.asyncio
async def test_lister_without_filter():
    client = FakeRegistryClient(repositories=[["b"], [], ["a"]])
    assert await RepositoryLister(client).list() == ["a", "b"]
