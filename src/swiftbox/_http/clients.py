"""Client factory functions for creating pre-configured httpx clients."""

from __future__ import annotations

import httpx

from .config import DEFAULT_TIMEOUT

# Swift clusters answer large listings and copies slowly; keep pools modest.
DEFAULT_LIMITS = httpx.Limits(max_connections=32, max_keepalive_connections=16)


def create_base_client(
    timeout: float | None = None,
    *,
    transport: httpx.BaseTransport | None = None,
) -> httpx.Client:
    """Create a sync httpx client with basic configuration (no auth).

    Auth is attached per request by the dispatcher, since the token depends
    on the endpoint an attempt is sent to.

    Args:
        timeout: Request timeout in seconds. Defaults to DEFAULT_TIMEOUT.
        transport: Optional httpx transport, e.g. ``httpx.MockTransport``.

    Returns:
        An httpx.Client with basic configuration.
    """
    effective_timeout = timeout if timeout is not None else DEFAULT_TIMEOUT
    kwargs: dict = {"timeout": httpx.Timeout(effective_timeout), "limits": DEFAULT_LIMITS}
    if transport is not None:
        kwargs["transport"] = transport
    return httpx.Client(**kwargs)


def create_base_async_client(
    timeout: float | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Create an async httpx client with basic configuration (no auth).

    Args:
        timeout: Request timeout in seconds. Defaults to DEFAULT_TIMEOUT.
        transport: Optional httpx transport, e.g. ``httpx.MockTransport``.

    Returns:
        An httpx.AsyncClient with basic configuration.
    """
    effective_timeout = timeout if timeout is not None else DEFAULT_TIMEOUT
    kwargs: dict = {"timeout": httpx.Timeout(effective_timeout), "limits": DEFAULT_LIMITS}
    if transport is not None:
        kwargs["transport"] = transport
    return httpx.AsyncClient(**kwargs)


__all__ = [
    "create_base_client",
    "create_base_async_client",
]
