"""Lazy, seekable read views over a remote object.

A stream keeps a single ``RangeWindow`` of buffered bytes. Reads inside the
window never touch the network; a read outside it fetches a new window of
``ceil(n / prefetch_size) * prefetch_size`` bytes starting at the cursor,
clamped to the object length. ``seek`` only moves the cursor and drops the
window.
"""

from __future__ import annotations

import io
import os
from collections.abc import Awaitable, Callable
from types import TracebackType

from .._http import iter_coroutine
from .cancel import CancelToken, check_cancelled
from .errors import RangeReadError, StorageConfigError
from .types import RangeWindow
from .utils import debug

DEFAULT_PREFETCH_SIZE = 1024 * 1024  # 1MB

FetchRangeFn = Callable[[int, int, "CancelToken | None"], Awaitable[bytes]]
GetLengthFn = Callable[["CancelToken | None"], Awaitable[int]]


class _RangeReader:
    """Cursor, window and memoised length shared by both stream flavours."""

    def __init__(self, fetch_range: FetchRangeFn, get_length: GetLengthFn, prefetch_size: int) -> None:
        if prefetch_size < 1:
            raise StorageConfigError("prefetch_size must be at least 1 byte")
        self._fetch_range = fetch_range
        self._get_length = get_length
        self.prefetch_size = prefetch_size
        self.position = 0
        self.window: RangeWindow | None = None
        self.fetches = 0
        self._length: int | None = None

    @property
    def known_length(self) -> int | None:
        return self._length

    async def length(self, cancel: CancelToken | None) -> int:
        if self._length is None:
            length = await self._get_length(cancel)
            if length < 0:
                raise RangeReadError(f"object reported a negative length ({length})")
            self._length = length
        return self._length

    def seek(self, offset: int, whence: int) -> int:
        if whence == os.SEEK_SET:
            target = offset
        elif whence == os.SEEK_CUR:
            target = self.position + offset
        elif whence == os.SEEK_END:
            if self._length is None:
                raise io.UnsupportedOperation("object length is not known yet; call length() first")
            target = self._length + offset
        else:
            raise ValueError(f"invalid whence ({whence}, should be 0, 1 or 2)")
        if target < 0:
            raise ValueError(f"negative seek position {target}")
        self.position = target
        self.window = None
        return target

    async def read(self, size: int, cancel: CancelToken | None) -> bytes:
        check_cancelled(cancel)
        if size == 0:
            return b""
        length = await self.length(cancel)
        if self.position >= length:
            return b""
        available = length - self.position
        remaining = available if size < 0 else min(size, available)

        chunks: list[bytes] = []
        while remaining > 0:
            window = self.window
            if window is None or not window.contains(self.position):
                window = await self._fill(remaining, length, cancel)
            offset = self.position - window.start
            piece = window.data[offset : offset + remaining]
            chunks.append(piece)
            self.position += len(piece)
            remaining -= len(piece)
        return b"".join(chunks)

    async def _fill(self, wanted: int, length: int, cancel: CancelToken | None) -> RangeWindow:
        start = self.position
        rounded = -(-wanted // self.prefetch_size) * self.prefetch_size
        end = min(start + rounded, length)
        self.window = None
        data = await self._fetch_range(start, end, cancel)
        self.fetches += 1
        if not data:
            raise RangeReadError(f"empty response for bytes [{start}, {end}) of a {length} byte object")
        # A server may serve less than asked; the window covers what arrived.
        data = data[: end - start]
        self.window = RangeWindow(start=start, end=start + len(data), data=data)
        debug(f"buffered range [{start}, {self.window.end})", f"length={length}")
        return self.window

    def release(self) -> None:
        self.window = None


class AsyncRangeStream:
    """Async buffered reader over ``fetch_range(start, end, cancel)``.

    ``get_length(cancel)`` is awaited at most once, on the first ``read`` or
    ``length`` call. Nothing is fetched on construction.
    """

    def __init__(
        self,
        fetch_range: FetchRangeFn,
        get_length: GetLengthFn,
        *,
        prefetch_size: int = DEFAULT_PREFETCH_SIZE,
    ) -> None:
        self._reader = _RangeReader(fetch_range, get_length, prefetch_size)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def window(self) -> RangeWindow | None:
        return self._reader.window

    @property
    def fetch_count(self) -> int:
        return self._reader.fetches

    def _check_open(self) -> None:
        if self._closed:
            raise ValueError("I/O operation on closed stream")

    async def read(self, size: int = -1, *, cancel: CancelToken | None = None) -> bytes:
        self._check_open()
        return await self._reader.read(size, cancel)

    def seek(self, offset: int, whence: int = os.SEEK_SET) -> int:
        self._check_open()
        return self._reader.seek(offset, whence)

    def tell(self) -> int:
        self._check_open()
        return self._reader.position

    async def length(self, *, cancel: CancelToken | None = None) -> int:
        self._check_open()
        return await self._reader.length(cancel)

    async def aclose(self) -> None:
        self._reader.release()
        self._closed = True

    async def __aenter__(self) -> AsyncRangeStream:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()


class RangeStream(io.RawIOBase):
    """File-like counterpart of ``AsyncRangeStream`` for the sync client.

    The fetch and length callables must be coroutines that never suspend
    (they are driven with ``iter_coroutine``). Works with ``io.BufferedReader``,
    ``shutil.copyfileobj`` and anything else that accepts a raw binary file.
    """

    def __init__(
        self,
        fetch_range: FetchRangeFn,
        get_length: GetLengthFn,
        *,
        prefetch_size: int = DEFAULT_PREFETCH_SIZE,
    ) -> None:
        super().__init__()
        self._reader = _RangeReader(fetch_range, get_length, prefetch_size)

    @property
    def window(self) -> RangeWindow | None:
        return self._reader.window

    @property
    def fetch_count(self) -> int:
        return self._reader.fetches

    def _check_open(self) -> None:
        if self.closed:
            raise ValueError("I/O operation on closed stream")

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return True

    def read(self, size: int | None = -1, *, cancel: CancelToken | None = None) -> bytes:
        self._check_open()
        return iter_coroutine(self._reader.read(-1 if size is None else size, cancel))

    def readall(self) -> bytes:
        return self.read(-1)

    def readinto(self, buffer) -> int:  # type: ignore[no-untyped-def, override]
        view = memoryview(buffer).cast("B")
        data = self.read(len(view))
        view[: len(data)] = data
        return len(data)

    def seek(self, offset: int, whence: int = os.SEEK_SET) -> int:
        self._check_open()
        if whence == os.SEEK_END:
            iter_coroutine(self._reader.length(None))
        return self._reader.seek(offset, whence)

    def tell(self) -> int:
        self._check_open()
        return self._reader.position

    def length(self, *, cancel: CancelToken | None = None) -> int:
        self._check_open()
        return iter_coroutine(self._reader.length(cancel))

    def close(self) -> None:
        reader = getattr(self, "_reader", None)
        if reader is not None:
            reader.release()
        super().close()


__all__ = [
    "DEFAULT_PREFETCH_SIZE",
    "AsyncRangeStream",
    "RangeStream",
    "FetchRangeFn",
    "GetLengthFn",
]
