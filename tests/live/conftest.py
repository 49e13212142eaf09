"""Fixtures for live tests against a real Swift cluster.

These tests require credentials set via environment variables (a ``.env``
file in the working directory is loaded first):
- SWIFT_USERNAME: account and user, e.g. ``test:tester``
- SWIFT_PASSWORD: the user's key
- SWIFT_ENDPOINTS: comma separated storage URLs
- SWIFT_TEST_CONTAINER: optional container to use (default ``swiftbox-live``)
"""

import os
from collections.abc import Generator

import pytest
from dotenv import load_dotenv

from swiftbox.storage import StorageClient, StorageConfig, StorageConfigError

load_dotenv()


@pytest.fixture
def swift_config() -> StorageConfig:
    """Cluster configuration from the environment, or skip."""
    try:
        return StorageConfig.from_env()
    except StorageConfigError as exc:
        pytest.skip(str(exc))


@pytest.fixture
def live_container() -> str:
    return os.getenv("SWIFT_TEST_CONTAINER", "swiftbox-live")


@pytest.fixture
def live_client(swift_config, live_container) -> Generator[StorageClient, None, None]:
    with StorageClient(config=swift_config) as client:
        client.create_container(live_container).raise_for_status()
        yield client


@pytest.fixture
def cleanup_prefix(live_client, live_container, unique_test_name) -> Generator[str, None, None]:
    """Prefix for objects created by a test; everything under it is bulk-deleted afterwards."""
    prefix = f"{unique_test_name}/"
    yield prefix
    live_client.delete_container_contents(live_container, prefix=prefix)
    live_client.delete_container_contents(f"{live_container}_segments", prefix=prefix)
