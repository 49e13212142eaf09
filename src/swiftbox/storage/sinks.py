"""Retry event sinks.

The dispatcher reports every transient failure to a sink. Sinks are a side
channel only: whatever they do (or raise) never changes what the dispatcher
does next.
"""

from __future__ import annotations

import logging
from typing import Protocol

from .utils import debug


class RetryLogger(Protocol):
    def on_retry(self, endpoint: str, attempt: int, cause: BaseException) -> None:
        ...


class NullRetryLogger:
    def on_retry(self, endpoint: str, attempt: int, cause: BaseException) -> None:
        return None


class DebugRetryLogger:
    """Prints retry events when ``DEBUG`` contains ``swift``."""

    def on_retry(self, endpoint: str, attempt: int, cause: BaseException) -> None:
        debug(f"retrying request after attempt {attempt} against {endpoint}", str(cause))


class StdlibRetryLogger:
    def __init__(self, logger: logging.Logger | None = None, level: int = logging.WARNING) -> None:
        self._logger = logger or logging.getLogger("swiftbox.retry")
        self._level = level

    def on_retry(self, endpoint: str, attempt: int, cause: BaseException) -> None:
        self._logger.log(
            self._level,
            "attempt %d against %s failed: %s",
            attempt,
            endpoint,
            cause,
            extra={"endpoint": endpoint, "attempt": attempt},
        )


__all__ = ["RetryLogger", "NullRetryLogger", "DebugRetryLogger", "StdlibRetryLogger"]
