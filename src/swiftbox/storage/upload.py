from __future__ import annotations

import inspect
import threading
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable, Iterator, Mapping
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Any, cast

import anyio

from .._http import iter_coroutine
from .cancel import CancelToken, check_cancelled
from .errors import CleanupError, OperationCancelledError, PartialUploadFailure, StorageConfigError
from .ops import ObjectOpsClient
from .types import ManifestRef, PutObjectResult, Segment
from .utils import debug, validate_container, validate_object_name

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEFAULT_SEGMENT_SIZE = 8 * 1024 * 1024  # 8MB
MAX_SEGMENT_SIZE = 5 * 1024 * 1024 * 1024  # Swift's single object limit
MAX_CONCURRENCY = 6
SEGMENT_INDEX_WIDTH = 8
SEGMENT_CONTAINER_SUFFIX = "_segments"

SegmentCallback = Callable[[Segment, PutObjectResult], None] | Callable[[Segment, PutObjectResult], Awaitable[None]]
SyncSegmentCallback = Callable[[Segment, PutObjectResult], None]
SyncSegmentUploadFn = Callable[[Segment], PutObjectResult]
AsyncSegmentUploadFn = Callable[[Segment], Awaitable[PutObjectResult]]


@dataclass(frozen=True)
class UploadSession:
    container: str
    object_name: str
    segment_container: str

    @property
    def segment_prefix(self) -> str:
        return f"{self.object_name}/"

    def segment_name(self, index: int) -> str:
        return f"{self.segment_prefix}{index:0{SEGMENT_INDEX_WIDTH}d}"

    def make_segment(self, index: int, data: bytes) -> Segment:
        if index >= 10**SEGMENT_INDEX_WIDTH:
            raise StorageConfigError("too many segments; increase segment_size")
        return Segment(container=self.segment_container, name=self.segment_name(index), index=index, data=data)


def validate_segment_size(segment_size: int) -> int:
    size = int(segment_size)
    if size < 1:
        raise StorageConfigError("segment_size must be at least 1 byte")
    if size > MAX_SEGMENT_SIZE:
        raise StorageConfigError(f"segment_size must be at most {MAX_SEGMENT_SIZE} bytes (5 GiB)")
    return size


def default_segment_container(container: str) -> str:
    return f"{container}{SEGMENT_CONTAINER_SUFFIX}"


# ---------------------------------------------------------------------------
# Segment-byte iterators
# ---------------------------------------------------------------------------


def _slice_bytes(data: bytes | bytearray | memoryview, size: int) -> Iterator[bytes]:
    view = memoryview(data)
    offset = 0
    while offset < len(view):
        end = min(offset + size, len(view))
        yield bytes(view[offset:end])
        offset = end


def iter_segment_bytes(body: Any, segment_size: int) -> Iterator[bytes]:
    if isinstance(body, (bytes, bytearray, memoryview)):
        yield from _slice_bytes(body, segment_size)
        return
    if isinstance(body, str):
        yield from _slice_bytes(body.encode("utf-8"), segment_size)
        return
    # file-like object; short reads are accumulated so segments stay full-sized
    if hasattr(body, "read"):
        buffer = bytearray()
        while True:
            chunk = body.read(segment_size - len(buffer))
            if not chunk:
                break
            buffer.extend(chunk)
            if len(buffer) >= segment_size:
                yield bytes(buffer)
                buffer.clear()
        if buffer:
            yield bytes(buffer)
        return
    if isinstance(body, Iterable):
        buffer = bytearray()
        for ch in body:
            buffer.extend(ch.encode("utf-8") if isinstance(ch, str) else ch)
            while len(buffer) >= segment_size:
                yield bytes(buffer[:segment_size])
                del buffer[:segment_size]
        if buffer:
            yield bytes(buffer)
        return
    raise StorageConfigError(f"cannot upload a body of type {type(body).__name__}")


async def aiter_segment_bytes(body: Any, segment_size: int) -> AsyncIterator[bytes]:
    if hasattr(body, "__aiter__"):
        buffer = bytearray()
        async for ch in body:
            buffer.extend(ch.encode("utf-8") if isinstance(ch, str) else ch)
            while len(buffer) >= segment_size:
                yield bytes(buffer[:segment_size])
                del buffer[:segment_size]
        if buffer:
            yield bytes(buffer)
        return
    # Delegate to sync iterator for other cases
    for chunk in iter_segment_bytes(body, segment_size):
        yield chunk


def _segment_failure(session: UploadSession, errors: dict[int, BaseException]) -> BaseException:
    for error in errors.values():
        if isinstance(error, OperationCancelledError):
            return error
    failure = PartialUploadFailure(session.object_name, errors)
    failure.__cause__ = errors[min(errors)]
    return failure


# ---------------------------------------------------------------------------
# Upload runtime classes
# ---------------------------------------------------------------------------


class _SyncSegmentUploadRuntime:
    """Uploads segments on a thread pool; each thread drives one dispatch."""

    def upload(
        self,
        *,
        session: UploadSession,
        body: Any,
        segment_size: int,
        upload_segment_fn: SyncSegmentUploadFn,
        on_segment_uploaded: SyncSegmentCallback | None = None,
        cancel: CancelToken | None = None,
    ) -> tuple[int, int]:
        errors: dict[int, BaseException] = {}
        errors_lock = threading.Lock()
        stop = threading.Event()
        count = 0
        size = 0

        def upload_one(segment: Segment) -> None:
            if stop.is_set():
                return
            try:
                check_cancelled(cancel)
                result = upload_segment_fn(segment)
                result.raise_for_status()
                debug(f"uploaded segment {segment.name}", f"bytes={segment.size}")
                if on_segment_uploaded:
                    on_segment_uploaded(segment, result)
            except Exception as exc:
                with errors_lock:
                    errors[segment.index] = exc
                stop.set()

        with ThreadPoolExecutor(max_workers=MAX_CONCURRENCY) as executor:
            inflight: set[Future[None]] = set()
            for index, chunk in enumerate(iter_segment_bytes(body, segment_size)):
                if stop.is_set() or (cancel is not None and cancel.cancelled):
                    break
                segment = session.make_segment(index, chunk)
                inflight.add(executor.submit(upload_one, segment))
                count += 1
                size += segment.size
                if len(inflight) >= MAX_CONCURRENCY:
                    done, inflight = wait(inflight, return_when=FIRST_COMPLETED)
                    for completed in done:
                        completed.result()

            # Barrier: every started segment finishes before the manifest step.
            if inflight:
                done, _ = wait(inflight)
                for completed in done:
                    completed.result()

        check_cancelled(cancel)
        if errors:
            raise _segment_failure(session, errors)
        return count, size


class _AsyncSegmentUploadRuntime:
    async def upload(
        self,
        *,
        session: UploadSession,
        body: Any,
        segment_size: int,
        upload_segment_fn: AsyncSegmentUploadFn,
        on_segment_uploaded: SegmentCallback | None = None,
        cancel: CancelToken | None = None,
    ) -> tuple[int, int]:
        errors: dict[int, BaseException] = {}
        producer_error: Exception | None = None
        semaphore = anyio.Semaphore(MAX_CONCURRENCY)
        count = 0
        size = 0

        # Errors are collected rather than raised so the task group never
        # wraps them; the group is the barrier before the manifest step.
        async with anyio.create_task_group() as task_group:

            async def run_limited_upload(segment: Segment) -> None:
                try:
                    result = await upload_segment_fn(segment)
                    result.raise_for_status()
                    debug(f"uploaded segment {segment.name}", f"bytes={segment.size}")
                    if on_segment_uploaded:
                        callback_result = on_segment_uploaded(segment, result)
                        if inspect.isawaitable(callback_result):
                            await cast(Awaitable[None], callback_result)
                except Exception as exc:
                    errors[segment.index] = exc
                    task_group.cancel_scope.cancel()
                finally:
                    semaphore.release()

            try:
                index = 0
                async for chunk in aiter_segment_bytes(body, segment_size):
                    if errors or (cancel is not None and cancel.cancelled):
                        break
                    segment = session.make_segment(index, chunk)
                    await semaphore.acquire()
                    task_group.start_soon(run_limited_upload, segment)
                    index += 1
                    count += 1
                    size += segment.size
            except Exception as exc:
                producer_error = exc
                task_group.cancel_scope.cancel()

        if producer_error is not None:
            raise producer_error
        check_cancelled(cancel)
        if errors:
            raise _segment_failure(session, errors)
        return count, size


def create_sync_segment_upload_runtime() -> _SyncSegmentUploadRuntime:
    return _SyncSegmentUploadRuntime()


def create_async_segment_upload_runtime() -> _AsyncSegmentUploadRuntime:
    return _AsyncSegmentUploadRuntime()


# ---------------------------------------------------------------------------
# Coordinator
# ---------------------------------------------------------------------------


class ChunkedUploadCoordinator:
    """Segmented upload of one large object followed by manifest composition.

    1. Segments are uploaded (concurrently) to
       ``{segment_container}/{object_name}/{index:08d}``.
    2. Only after every segment is confirmed, a manifest carrying
       ``X-Object-Manifest: {segment_container}/{object_name}/`` is written at
       ``{segment_container}/{object_name}``; Swift concatenates the segments
       on read.
    3. With ``finalize`` the composed object is copied to
       ``{container}/{object_name}`` together with the caller's metadata and
       the temporary segments and manifest are bulk-deleted.

    A failed segment aborts before step 2. Failures in step 3 are recorded on
    the returned ``ManifestRef`` and never raised.
    """

    def __init__(
        self,
        ops: ObjectOpsClient,
        runtime: Any,
        *,
        segment_size: int = DEFAULT_SEGMENT_SIZE,
        make_upload_segment_fn: Callable[[ObjectOpsClient, CancelToken | None], Any] | None = None,
    ) -> None:
        self._ops = ops
        self._runtime = runtime
        self._segment_size = validate_segment_size(segment_size)
        self._make_upload_segment_fn = make_upload_segment_fn or _async_upload_segment_fn

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
        validate_container(container)
        validate_object_name(object_name)
        if data is None:
            raise StorageConfigError("data is required")
        size_per_segment = validate_segment_size(segment_size) if segment_size else self._segment_size
        session = UploadSession(
            container=container,
            object_name=object_name,
            segment_container=segment_container or default_segment_container(container),
        )
        validate_container(session.segment_container)

        created = await self._ops.create_container(session.segment_container, cancel=cancel)
        created.raise_for_status()

        result = self._runtime.upload(
            session=session,
            body=data,
            segment_size=size_per_segment,
            upload_segment_fn=self._make_upload_segment_fn(self._ops, cancel),
            on_segment_uploaded=on_segment_uploaded,
            cancel=cancel,
        )
        count, total = cast(tuple[int, int], await result if inspect.isawaitable(result) else result)

        check_cancelled(cancel)
        manifest = await self._ops.put_manifest(
            session.segment_container,
            object_name,
            session.segment_container,
            session.segment_prefix,
            content_type=content_type,
            cancel=cancel,
        )
        manifest.raise_for_status()
        ref = ManifestRef(
            container=session.segment_container,
            name=object_name,
            segment_container=session.segment_container,
            segment_prefix=session.segment_prefix,
            segment_count=count,
            size=total,
            manifest_container=session.segment_container,
            manifest_name=object_name,
        )
        debug(f"manifest written for {object_name}", f"segments={count}", f"bytes={total}")

        if finalize:
            await self._finalize(
                ref,
                session,
                content_type=content_type,
                metadata=metadata,
                filename=filename,
                cancel=cancel,
            )
        return ref

    async def _finalize(
        self,
        ref: ManifestRef,
        session: UploadSession,
        *,
        content_type: str | None,
        metadata: Mapping[str, str] | None,
        filename: str | None,
        cancel: CancelToken | None,
    ) -> None:
        try:
            final = await self._ops.copy_object(
                session.segment_container,
                session.object_name,
                session.container,
                session.object_name,
                content_type=content_type,
                metadata=metadata,
                filename=filename,
                cancel=cancel,
            )
            ref.final = final
            final.raise_for_status()
        except Exception as exc:
            debug(f"copy of {session.object_name} to {session.container} failed", repr(exc))
            ref.copy_error = exc
            return

        ref.container = session.container
        ref.name = session.object_name
        paths = [f"{session.segment_container}/{session.segment_name(i)}" for i in range(ref.segment_count)]
        paths.append(f"{session.segment_container}/{session.object_name}")
        try:
            ref.cleanup = await self._ops.bulk_delete(paths, cancel=cancel)
            if not ref.cleanup.ok:
                raise CleanupError(ref.cleanup.errors)
        except Exception as exc:
            debug(f"cleanup of segments for {session.object_name} failed", repr(exc))
            ref.cleanup_error = exc


def _async_upload_segment_fn(ops: ObjectOpsClient, cancel: CancelToken | None) -> AsyncSegmentUploadFn:
    async def upload(segment: Segment) -> PutObjectResult:
        return await ops.put_object(segment.container, segment.name, segment.data, cancel=cancel)

    return upload


def blocking_upload_segment_fn(ops: ObjectOpsClient, cancel: CancelToken | None) -> SyncSegmentUploadFn:
    """Segment uploader for the thread pool runtime; each call drives one dispatch to completion."""

    def upload(segment: Segment) -> PutObjectResult:
        return iter_coroutine(ops.put_object(segment.container, segment.name, segment.data, cancel=cancel))

    return upload


__all__ = [
    "DEFAULT_SEGMENT_SIZE",
    "MAX_CONCURRENCY",
    "ChunkedUploadCoordinator",
    "UploadSession",
    "aiter_segment_bytes",
    "blocking_upload_segment_fn",
    "create_async_segment_upload_runtime",
    "create_sync_segment_upload_runtime",
    "default_segment_container",
    "iter_segment_bytes",
    "validate_segment_size",
]
