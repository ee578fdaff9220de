"""Test configuration and fixtures."""

import os

import pytest

from tests.helpers import FakeRegistryClient


@pytest.fixture
def fake_client():
    """Empty in-memory registry client."""
    return FakeRegistryClient()


@pytest.fixture(scope="session")
def registry_url():
    """URL of a live registry for integration tests."""
    return os.getenv("REGISTRY_URL", "http://localhost:15000")


# Pytest configuration
def pytest_configure(config):
    """Configure pytest markers and settings."""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test requiring registry"
    )
    config.addinivalue_line("markers", "unit: mark test as unit test (default)")


def pytest_collection_modifyitems(config, items):
    """Modify test collection."""
    # Skip integration tests if no registry
    skip_integration = pytest.mark.skip(reason="Registry not available")

    for item in items:
        if (
            "integration" in item.keywords
            and os.getenv("REGISTRY_AVAILABLE", "false").lower() != "true"
        ):
            item.add_marker(skip_integration)
