"""HTTP transport implementations for sync and async clients."""

from __future__ import annotations

import abc
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import anyio
import httpx

from .config import HTTPConfig

if TYPE_CHECKING:
    from ..storage.cancel import CancelToken


@dataclass(frozen=True, slots=True)
class JSONBody:
    """JSON request body - automatically sets Content-Type to application/json."""

    data: Any


@dataclass(frozen=True, slots=True)
class BytesBody:
    """Raw bytes request body with explicit content type."""

    data: bytes
    content_type: str = "application/octet-stream"


RequestBody = JSONBody | BytesBody | None


def _build_request_kwargs(
    config: HTTPConfig,
    *,
    params: dict[str, Any] | None,
    body: RequestBody,
    headers: Mapping[str, str | bytes] | None,
    timeout: float | None,
) -> dict[str, Any]:
    request_headers = httpx.Headers(config.get_headers())
    if headers:
        request_headers.update(headers)

    # Unpack content based on type
    json_data: Any | None = None
    raw_content: bytes | None = None
    if isinstance(body, JSONBody):
        json_data = body.data
    elif isinstance(body, BytesBody):
        raw_content = body.data
        request_headers.setdefault("content-type", body.content_type)

    effective_timeout = timeout if timeout is not None else config.timeout
    return {
        "params": params or None,
        "json": json_data,
        "content": raw_content,
        "headers": request_headers,
        "timeout": httpx.Timeout(effective_timeout),
    }


class BaseTransport(abc.ABC):
    """Abstract base class for HTTP transports.

    ``send`` is the only I/O primitive the storage layer depends on. It returns
    the response for any status code and raises ``httpx.TransportError`` for
    network level failures.
    """

    def __init__(self, config: HTTPConfig | None = None) -> None:
        self._config = config or HTTPConfig()

    @property
    def config(self) -> HTTPConfig:
        return self._config

    @abc.abstractmethod
    async def send(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        body: RequestBody = None,
        headers: Mapping[str, str | bytes] | None = None,
        timeout: float | None = None,
        cancel: CancelToken | None = None,
    ) -> httpx.Response:
        """Send an HTTP request and return the response."""
        ...

    @abc.abstractmethod
    def close(self) -> None:
        """Close any underlying resources."""
        ...


class BlockingTransport(BaseTransport):
    """
    Synchronous HTTP transport using httpx.Client.

    Methods are declared async but don't actually await anything,
    allowing them to be executed via iter_coroutine().
    """

    def __init__(self, client: httpx.Client, config: HTTPConfig | None = None) -> None:
        super().__init__(config)
        self._client = client

    async def send(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        body: RequestBody = None,
        headers: Mapping[str, str | bytes] | None = None,
        timeout: float | None = None,
        cancel: CancelToken | None = None,
    ) -> httpx.Response:
        """Send a synchronous HTTP request (wrapped as async for iter_coroutine)."""
        kwargs = _build_request_kwargs(
            self._config, params=params, body=body, headers=headers, timeout=timeout
        )
        # A blocking call cannot be interrupted; honour the token on both sides of it.
        if cancel is not None:
            cancel.raise_if_cancelled()
        resp = self._client.request(method, url, **kwargs)
        if cancel is not None and cancel.cancelled:
            resp.close()
            cancel.raise_if_cancelled()
        return resp

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self._client.close()


class AsyncTransport(BaseTransport):
    """Asynchronous HTTP transport using httpx.AsyncClient."""

    def __init__(self, client: httpx.AsyncClient, config: HTTPConfig | None = None) -> None:
        super().__init__(config)
        self._client = client

    async def send(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        body: RequestBody = None,
        headers: Mapping[str, str | bytes] | None = None,
        timeout: float | None = None,
        cancel: CancelToken | None = None,
    ) -> httpx.Response:
        """Send an asynchronous HTTP request, aborting it if ``cancel`` fires."""
        kwargs = _build_request_kwargs(
            self._config, params=params, body=body, headers=headers, timeout=timeout
        )
        if cancel is None:
            return await self._client.request(method, url, **kwargs)

        cancel.raise_if_cancelled()
        resp: httpx.Response | None = None
        error: Exception | None = None
        async with anyio.create_task_group() as tg:

            async def watch() -> None:
                await cancel.wait()
                tg.cancel_scope.cancel()

            tg.start_soon(watch)
            # Task groups wrap errors raised in their body; keep them out of it.
            try:
                resp = await self._client.request(method, url, **kwargs)
            except Exception as exc:
                error = exc
            tg.cancel_scope.cancel()

        if error is not None:
            raise error
        if resp is None:
            cancel.raise_if_cancelled()
            raise RuntimeError("request was interrupted without a cancellation signal")
        return resp

    def close(self) -> None:
        """Synchronous close is not available for async transports; use aclose()."""
        raise RuntimeError("use 'await transport.aclose()' to close an async transport")

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()


__all__ = [
    "BaseTransport",
    "BlockingTransport",
    "AsyncTransport",
    "JSONBody",
    "BytesBody",
    "RequestBody",
]
