"""Shared HTTP infrastructure for object storage clients."""

from .clients import create_base_async_client, create_base_client
from .config import DEFAULT_TIMEOUT, USER_AGENT, HTTPConfig
from .iter_coroutine import iter_coroutine
from .transport import (
    AsyncTransport,
    BaseTransport,
    BlockingTransport,
    BytesBody,
    JSONBody,
    RequestBody,
)

__all__ = [
    "DEFAULT_TIMEOUT",
    "USER_AGENT",
    "HTTPConfig",
    "iter_coroutine",
    "BaseTransport",
    "BlockingTransport",
    "AsyncTransport",
    "JSONBody",
    "BytesBody",
    "RequestBody",
    "create_base_client",
    "create_base_async_client",
]
