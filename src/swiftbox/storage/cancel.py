from __future__ import annotations

import threading

import anyio

from .errors import OperationCancelledError


class CancelToken:
    """Per-operation cancellation signal.

    The sync client may cancel from another thread; the flag is checked around
    every blocking send. Async waiters are woken on the event loop they were
    created on, so ``cancel()`` for async operations should be called from that
    loop (or through ``anyio.from_thread.run_sync``).
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._lock = threading.Lock()
        self._waiters: list[anyio.Event] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
            waiters, self._waiters = self._waiters, []
        for event in waiters:
            event.set()

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise OperationCancelledError()

    async def wait(self) -> None:
        with self._lock:
            if self._cancelled:
                return
            event = anyio.Event()
            self._waiters.append(event)
        try:
            await event.wait()
        finally:
            with self._lock:
                if event in self._waiters:
                    self._waiters.remove(event)


def check_cancelled(cancel: CancelToken | None) -> None:
    if cancel is not None:
        cancel.raise_if_cancelled()


__all__ = ["CancelToken", "check_cancelled"]
