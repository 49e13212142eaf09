"""Fixtures for integration tests using respx mocking."""

from collections.abc import Generator

import pytest
import respx

SWIFT_HOSTS = ("swift-a.example.com", "swift-b.example.com", "swift-c.example.com")


@pytest.fixture
def swift_cluster(fake_swift) -> Generator[respx.MockRouter, None, None]:
    """Route every Swift host to the same in-memory cluster.

    Each host gets a named route (``swift-a``...) so a test can make one of
    them misbehave by replacing its side effect.
    """
    with respx.mock(assert_all_called=False) as router:
        for host in SWIFT_HOSTS:
            router.route(name=host.split(".")[0], host=host).mock(side_effect=fake_swift.httpx_handler)
        yield router
