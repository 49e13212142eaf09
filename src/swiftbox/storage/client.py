"""Public object storage clients.

``StorageClient`` and ``AsyncStorageClient`` wire one transport, one
dispatcher, the object operations, the chunked uploader and range streams
together. The sync client runs the same coroutines as the async one with
``iter_coroutine`` over a blocking transport.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterable, Iterator, Mapping
from typing import Any, cast

import httpx

from .._http import (
    DEFAULT_TIMEOUT,
    AsyncTransport,
    BaseTransport,
    BlockingTransport,
    HTTPConfig,
    create_base_async_client,
    create_base_client,
    iter_coroutine,
)
from .auth import SwiftV1TokenAuthority, TokenAuthority, TokenCache
from .cancel import CancelToken
from .config import StorageConfig
from .dispatcher import Dispatcher, create_sync_dispatcher
from .errors import RangeReadError, StorageError
from .ops import DEFAULT_LIST_LIMIT, ObjectOpsClient
from .sinks import RetryLogger
from .stream import DEFAULT_PREFETCH_SIZE, AsyncRangeStream, RangeStream
from .types import (
    BulkDeleteResult,
    Credentials,
    DeleteObjectResult,
    GetObjectResult,
    HeadObjectResult,
    ListObjectsResult,
    ManifestRef,
    ObjectInfo,
    Operation,
    PutObjectResult,
    RetryPolicy,
)
from .upload import (
    DEFAULT_SEGMENT_SIZE,
    ChunkedUploadCoordinator,
    SegmentCallback,
    SyncSegmentCallback,
    blocking_upload_segment_fn,
    create_async_segment_upload_runtime,
    create_sync_segment_upload_runtime,
)


def _resolve_config(
    credentials: Credentials | None,
    config: StorageConfig | None,
    retry_policy: RetryPolicy | None,
    timeout: float | None,
    segment_size: int | None,
    prefetch_size: int | None,
) -> tuple[Credentials, RetryPolicy, float, int, int]:
    if credentials is None:
        config = config if config is not None else StorageConfig.from_env()
        credentials = config.credentials()
    if config is not None:
        return (
            credentials,
            retry_policy or config.retry_policy(),
            timeout or config.timeout,
            segment_size or config.segment_size,
            prefetch_size or config.prefetch_size,
        )
    return (
        credentials,
        retry_policy or RetryPolicy(),
        timeout or DEFAULT_TIMEOUT,
        segment_size or DEFAULT_SEGMENT_SIZE,
        prefetch_size or DEFAULT_PREFETCH_SIZE,
    )


class _BaseStorageClient:
    def __init__(
        self,
        *,
        transport: BaseTransport,
        ops: ObjectOpsClient,
        uploader: ChunkedUploadCoordinator,
        prefetch_size: int,
    ) -> None:
        self._transport = transport
        self._ops = ops
        self._dispatcher = ops.dispatcher
        self._uploader = uploader
        self._prefetch_size = prefetch_size
        self._closed = False

    @property
    def credentials(self) -> Credentials:
        return self._dispatcher.credentials

    @property
    def policy(self) -> RetryPolicy:
        return self._dispatcher.policy

    @property
    def closed(self) -> bool:
        return self._closed

    def _ensure_open(self) -> None:
        if self._closed:
            raise StorageError("Client is closed")

    def _range_fns(self, container: str, name: str) -> tuple[Any, Any]:
        ops = self._ops

        async def fetch_range(start: int, end: int, cancel: CancelToken | None) -> bytes:
            return await ops.get_range(container, name, start, end, cancel=cancel)

        async def get_length(cancel: CancelToken | None) -> int:
            head = await ops.head_object(container, name, cancel=cancel)
            head.raise_for_status()
            if head.content_length is None:
                raise RangeReadError(f"{container}/{name} has no Content-Length")
            return head.content_length

        return fetch_range, get_length


class StorageClient(_BaseStorageClient):
    """Synchronous Swift client.

    Built from explicit ``credentials`` or a ``StorageConfig``; with neither,
    the configuration is read from ``SWIFT_*`` environment variables.
    """

    def __init__(
        self,
        credentials: Credentials | None = None,
        *,
        config: StorageConfig | None = None,
        retry_policy: RetryPolicy | None = None,
        token_authority: TokenAuthority | None = None,
        token_cache: TokenCache | None = None,
        logger: RetryLogger | None = None,
        timeout: float | None = None,
        segment_size: int | None = None,
        prefetch_size: int | None = None,
        http_transport: httpx.BaseTransport | None = None,
    ) -> None:
        credentials, policy, timeout, segment_size, prefetch_size = _resolve_config(
            credentials, config, retry_policy, timeout, segment_size, prefetch_size
        )
        transport = BlockingTransport(
            create_base_client(timeout=timeout, transport=http_transport),
            HTTPConfig(timeout=timeout),
        )
        authority = token_authority or SwiftV1TokenAuthority(
            credentials, transport, cache=token_cache, timeout=timeout
        )
        dispatcher = create_sync_dispatcher(
            transport=transport,
            credentials=credentials,
            token_authority=authority,
            policy=policy,
            logger=logger,
        )
        ops = ObjectOpsClient(dispatcher)
        uploader = ChunkedUploadCoordinator(
            ops,
            create_sync_segment_upload_runtime(),
            segment_size=segment_size,
            make_upload_segment_fn=blocking_upload_segment_fn,
        )
        super().__init__(
            transport=transport,
            ops=ops,
            uploader=uploader,
            prefetch_size=prefetch_size,
        )

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._transport.close()

    def __enter__(self) -> StorageClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def dispatch(self, operation: Operation, *, cancel: CancelToken | None = None) -> httpx.Response:
        """Send a raw operation through the retrying dispatcher."""
        self._ensure_open()
        return iter_coroutine(self._dispatcher.dispatch(operation, cancel=cancel))

    def create_container(self, container: str, *, cancel: CancelToken | None = None) -> PutObjectResult:
        self._ensure_open()
        return iter_coroutine(self._ops.create_container(container, cancel=cancel))

    def put_object(
        self,
        container: str,
        name: str,
        data: bytes | bytearray | memoryview | str,
        *,
        content_type: str | None = None,
        metadata: Mapping[str, str] | None = None,
        filename: str | None = None,
        headers: Mapping[str, str] | None = None,
        cancel: CancelToken | None = None,
    ) -> PutObjectResult:
        self._ensure_open()
        return iter_coroutine(
            self._ops.put_object(
                container,
                name,
                data,
                content_type=content_type,
                metadata=metadata,
                filename=filename,
                headers=headers,
                cancel=cancel,
            )
        )

    def get_object(
        self,
        container: str,
        name: str,
        *,
        byte_range: tuple[int, int] | None = None,
        cancel: CancelToken | None = None,
    ) -> GetObjectResult:
        self._ensure_open()
        return iter_coroutine(self._ops.get_object(container, name, byte_range=byte_range, cancel=cancel))

    def get_range(
        self, container: str, name: str, start: int, end: int, *, cancel: CancelToken | None = None
    ) -> bytes:
        self._ensure_open()
        return iter_coroutine(self._ops.get_range(container, name, start, end, cancel=cancel))

    def head_object(self, container: str, name: str, *, cancel: CancelToken | None = None) -> HeadObjectResult:
        self._ensure_open()
        return iter_coroutine(self._ops.head_object(container, name, cancel=cancel))

    def delete_object(
        self, container: str, name: str, *, cancel: CancelToken | None = None
    ) -> DeleteObjectResult:
        self._ensure_open()
        return iter_coroutine(self._ops.delete_object(container, name, cancel=cancel))

    def copy_object(
        self,
        src_container: str,
        src_name: str,
        dst_container: str,
        dst_name: str,
        *,
        content_type: str | None = None,
        metadata: Mapping[str, str] | None = None,
        filename: str | None = None,
        cancel: CancelToken | None = None,
    ) -> PutObjectResult:
        self._ensure_open()
        return iter_coroutine(
            self._ops.copy_object(
                src_container,
                src_name,
                dst_container,
                dst_name,
                content_type=content_type,
                metadata=metadata,
                filename=filename,
                cancel=cancel,
            )
        )

    def put_manifest(
        self,
        container: str,
        name: str,
        segment_container: str,
        segment_prefix: str,
        *,
        content_type: str | None = None,
        cancel: CancelToken | None = None,
    ) -> PutObjectResult:
        self._ensure_open()
        return iter_coroutine(
            self._ops.put_manifest(
                container, name, segment_container, segment_prefix, content_type=content_type, cancel=cancel
            )
        )

    def list_objects(
        self,
        container: str,
        *,
        prefix: str | None = None,
        marker: str | None = None,
        limit: int | None = None,
        cancel: CancelToken | None = None,
    ) -> ListObjectsResult:
        self._ensure_open()
        return iter_coroutine(
            self._ops.list_objects(container, prefix=prefix, marker=marker, limit=limit, cancel=cancel)
        )

    def iter_objects(
        self,
        container: str,
        *,
        prefix: str | None = None,
        marker: str | None = None,
        batch_size: int = DEFAULT_LIST_LIMIT,
        cancel: CancelToken | None = None,
    ) -> Iterator[ObjectInfo]:
        next_marker = marker
        while True:
            page = self.list_objects(
                container, prefix=prefix, marker=next_marker, limit=batch_size, cancel=cancel
            )
            page.raise_for_status()
            yield from page.objects
            if len(page.objects) < batch_size or not page.next_marker:
                break
            next_marker = page.next_marker

    def bulk_delete(self, paths: Iterable[str], *, cancel: CancelToken | None = None) -> BulkDeleteResult:
        self._ensure_open()
        return iter_coroutine(self._ops.bulk_delete(paths, cancel=cancel))

    def delete_container_contents(
        self, container: str, *, prefix: str | None = None, cancel: CancelToken | None = None
    ) -> BulkDeleteResult:
        self._ensure_open()
        return iter_coroutine(self._ops.delete_container_contents(container, prefix=prefix, cancel=cancel))

    def upload_large(
        self,
        container: str,
        object_name: str,
        data: Any,
        *,
        segment_size: int | None = None,
        segment_container: str | None = None,
        content_type: str | None = None,
        metadata: Mapping[str, str] | None = None,
        filename: str | None = None,
        finalize: bool = True,
        on_segment_uploaded: SyncSegmentCallback | None = None,
        cancel: CancelToken | None = None,
    ) -> ManifestRef:
        """Upload ``data`` in segments, compose them with a manifest and optionally finalize.

        ``data`` may be bytes, str, a binary file object or an iterable of
        byte chunks. Segments are uploaded on a thread pool.
        """
        self._ensure_open()
        return iter_coroutine(
            self._uploader.upload_large(
                container,
                object_name,
                data,
                segment_size=segment_size,
                segment_container=segment_container,
                content_type=content_type,
                metadata=metadata,
                filename=filename,
                finalize=finalize,
                on_segment_uploaded=on_segment_uploaded,
                cancel=cancel,
            )
        )

    def open(self, container: str, name: str, *, prefetch_size: int | None = None) -> RangeStream:
        """Return a lazy, seekable file object over ``container/name``."""
        self._ensure_open()
        fetch_range, get_length = self._range_fns(container, name)
        return RangeStream(fetch_range, get_length, prefetch_size=prefetch_size or self._prefetch_size)


class AsyncStorageClient(_BaseStorageClient):
    """Asynchronous Swift client. Same surface as ``StorageClient`` with awaitables."""

    def __init__(
        self,
        credentials: Credentials | None = None,
        *,
        config: StorageConfig | None = None,
        retry_policy: RetryPolicy | None = None,
        token_authority: TokenAuthority | None = None,
        token_cache: TokenCache | None = None,
        logger: RetryLogger | None = None,
        timeout: float | None = None,
        segment_size: int | None = None,
        prefetch_size: int | None = None,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        credentials, policy, timeout, segment_size, prefetch_size = _resolve_config(
            credentials, config, retry_policy, timeout, segment_size, prefetch_size
        )
        transport = AsyncTransport(
            create_base_async_client(timeout=timeout, transport=http_transport),
            HTTPConfig(timeout=timeout),
        )
        authority = token_authority or SwiftV1TokenAuthority(
            credentials, transport, cache=token_cache, timeout=timeout
        )
        dispatcher = Dispatcher(
            transport=transport,
            credentials=credentials,
            token_authority=authority,
            policy=policy,
            logger=logger,
        )
        ops = ObjectOpsClient(dispatcher)
        uploader = ChunkedUploadCoordinator(
            ops,
            create_async_segment_upload_runtime(),
            segment_size=segment_size,
        )
        super().__init__(
            transport=transport,
            ops=ops,
            uploader=uploader,
            prefetch_size=prefetch_size,
        )

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        await cast(AsyncTransport, self._transport).aclose()

    async def __aenter__(self) -> AsyncStorageClient:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def dispatch(self, operation: Operation, *, cancel: CancelToken | None = None) -> httpx.Response:
        """Send a raw operation through the retrying dispatcher."""
        self._ensure_open()
        return await self._dispatcher.dispatch(operation, cancel=cancel)

    async def create_container(self, container: str, *, cancel: CancelToken | None = None) -> PutObjectResult:
        self._ensure_open()
        return await self._ops.create_container(container, cancel=cancel)

    async def put_object(
        self,
        container: str,
        name: str,
        data: bytes | bytearray | memoryview | str,
        *,
        content_type: str | None = None,
        metadata: Mapping[str, str] | None = None,
        filename: str | None = None,
        headers: Mapping[str, str] | None = None,
        cancel: CancelToken | None = None,
    ) -> PutObjectResult:
        self._ensure_open()
        return await self._ops.put_object(
            container,
            name,
            data,
            content_type=content_type,
            metadata=metadata,
            filename=filename,
            headers=headers,
            cancel=cancel,
        )

    async def get_object(
        self,
        container: str,
        name: str,
        *,
        byte_range: tuple[int, int] | None = None,
        cancel: CancelToken | None = None,
    ) -> GetObjectResult:
        self._ensure_open()
        return await self._ops.get_object(container, name, byte_range=byte_range, cancel=cancel)

    async def get_range(
        self, container: str, name: str, start: int, end: int, *, cancel: CancelToken | None = None
    ) -> bytes:
        self._ensure_open()
        return await self._ops.get_range(container, name, start, end, cancel=cancel)

    async def head_object(
        self, container: str, name: str, *, cancel: CancelToken | None = None
    ) -> HeadObjectResult:
        self._ensure_open()
        return await self._ops.head_object(container, name, cancel=cancel)

    async def delete_object(
        self, container: str, name: str, *, cancel: CancelToken | None = None
    ) -> DeleteObjectResult:
        self._ensure_open()
        return await self._ops.delete_object(container, name, cancel=cancel)

    async def copy_object(
        self,
        src_container: str,
        src_name: str,
        dst_container: str,
        dst_name: str,
        *,
        content_type: str | None = None,
        metadata: Mapping[str, str] | None = None,
        filename: str | None = None,
        cancel: CancelToken | None = None,
    ) -> PutObjectResult:
        self._ensure_open()
        return await self._ops.copy_object(
            src_container,
            src_name,
            dst_container,
            dst_name,
            content_type=content_type,
            metadata=metadata,
            filename=filename,
            cancel=cancel,
        )

    async def put_manifest(
        self,
        container: str,
        name: str,
        segment_container: str,
        segment_prefix: str,
        *,
        content_type: str | None = None,
        cancel: CancelToken | None = None,
    ) -> PutObjectResult:
        self._ensure_open()
        return await self._ops.put_manifest(
            container, name, segment_container, segment_prefix, content_type=content_type, cancel=cancel
        )

    async def list_objects(
        self,
        container: str,
        *,
        prefix: str | None = None,
        marker: str | None = None,
        limit: int | None = None,
        cancel: CancelToken | None = None,
    ) -> ListObjectsResult:
        self._ensure_open()
        return await self._ops.list_objects(container, prefix=prefix, marker=marker, limit=limit, cancel=cancel)

    async def iter_objects(
        self,
        container: str,
        *,
        prefix: str | None = None,
        marker: str | None = None,
        batch_size: int = DEFAULT_LIST_LIMIT,
        cancel: CancelToken | None = None,
    ) -> AsyncIterator[ObjectInfo]:
        next_marker = marker
        while True:
            page = await self.list_objects(
                container, prefix=prefix, marker=next_marker, limit=batch_size, cancel=cancel
            )
            page.raise_for_status()
            for item in page.objects:
                yield item
            if len(page.objects) < batch_size or not page.next_marker:
                break
            next_marker = page.next_marker

    async def bulk_delete(
        self, paths: Iterable[str], *, cancel: CancelToken | None = None
    ) -> BulkDeleteResult:
        self._ensure_open()
        return await self._ops.bulk_delete(paths, cancel=cancel)

    async def delete_container_contents(
        self, container: str, *, prefix: str | None = None, cancel: CancelToken | None = None
    ) -> BulkDeleteResult:
        self._ensure_open()
        return await self._ops.delete_container_contents(container, prefix=prefix, cancel=cancel)

    async def upload_large(
        self,
        container: str,
        object_name: str,
        data: Any,
        *,
        segment_size: int | None = None,
        segment_container: str | None = None,
        content_type: str | None = None,
        metadata: Mapping[str, str] | None = None,
        filename: str | None = None,
        finalize: bool = True,
        on_segment_uploaded: SegmentCallback | None = None,
        cancel: CancelToken | None = None,
    ) -> ManifestRef:
        """Upload ``data`` in segments, compose them with a manifest and optionally finalize.

        Also accepts async iterables of byte chunks. Segments are uploaded
        concurrently in an anyio task group.
        """
        self._ensure_open()
        return await self._uploader.upload_large(
            container,
            object_name,
            data,
            segment_size=segment_size,
            segment_container=segment_container,
            content_type=content_type,
            metadata=metadata,
            filename=filename,
            finalize=finalize,
            on_segment_uploaded=on_segment_uploaded,
            cancel=cancel,
        )

    def open(self, container: str, name: str, *, prefetch_size: int | None = None) -> AsyncRangeStream:
        """Return a lazy, seekable async reader over ``container/name``."""
        self._ensure_open()
        fetch_range, get_length = self._range_fns(container, name)
        return AsyncRangeStream(fetch_range, get_length, prefetch_size=prefetch_size or self._prefetch_size)


__all__ = ["StorageClient", "AsyncStorageClient"]
