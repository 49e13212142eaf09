from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import httpx


class StorageError(Exception):
    """Base class for every error raised by swiftbox."""


class StorageConfigError(StorageError):
    """Invalid client configuration or arguments."""


class AuthenticationError(StorageError):
    def __init__(self, message: str = "Authentication failed", *, endpoint: str | None = None):
        super().__init__(message)
        self.endpoint = endpoint


class TransientNetworkError(StorageError):
    """A single failed attempt: network error, timeout or retryable status.

    Never raised to callers on its own; it only appears inside
    ``RetryExhaustedError.failures``.
    """

    def __init__(
        self,
        endpoint: str,
        attempt: int,
        *,
        status_code: int | None = None,
        cause: BaseException | None = None,
    ):
        if status_code is not None:
            detail = f"HTTP {status_code}"
        elif cause is not None:
            detail = f"{type(cause).__name__}: {cause}"
        else:
            detail = "unknown failure"
        super().__init__(f"attempt {attempt} against {endpoint} failed ({detail})")
        self.endpoint = endpoint
        self.attempt = attempt
        self.status_code = status_code
        self.cause = cause


class RetryExhaustedError(StorageError):
    def __init__(self, attempts: int, failures: Mapping[str, TransientNetworkError]):
        summary = "; ".join(str(f) for f in failures.values()) or "no attempt was made"
        super().__init__(f"Gave up after {attempts} attempt(s): {summary}")
        self.attempts = attempts
        self.failures = dict(failures)


class OperationCancelledError(StorageError):
    def __init__(self, message: str = "Operation was cancelled"):
        super().__init__(message)


class ObjectStorageHTTPError(StorageError):
    """A well-formed non-2xx response a higher level operation cannot continue from."""

    def __init__(self, status_code: int, message: str | None = None, *, response: Any = None):
        super().__init__(message or f"HTTP {status_code}")
        self.status_code = status_code
        self.response = response


class ObjectNotFoundError(ObjectStorageHTTPError):
    def __init__(self, message: str = "The requested object does not exist", *, response: Any = None):
        super().__init__(404, message, response=response)


class PartialUploadFailure(StorageError):
    """One or more segments of a chunked upload failed; no manifest was written."""

    def __init__(self, object_name: str, errors: Mapping[int, BaseException]):
        indexes = ", ".join(str(i) for i in sorted(errors))
        super().__init__(f"Upload of {object_name!r} failed for segment(s) {indexes}")
        self.object_name = object_name
        self.errors = dict(errors)


class CleanupError(StorageError):
    """Temporary segments or the manifest could not be bulk-deleted."""

    def __init__(self, errors: list[tuple[str, str]]):
        super().__init__(f"{len(errors)} temporary object(s) could not be deleted")
        self.errors = list(errors)


class RangeReadError(StorageError):
    """The server answered a range request with an inconsistent window."""


def http_error_from_response(response: httpx.Response) -> ObjectStorageHTTPError:
    text = ""
    try:
        text = response.text
    except httpx.ResponseNotRead:
        pass
    snippet = text if len(text) <= 200 else text[:200] + "..."
    message = f"HTTP {response.status_code}: {snippet}" if snippet else None
    if response.status_code == 404:
        return ObjectNotFoundError(message or "The requested object does not exist", response=response)
    return ObjectStorageHTTPError(response.status_code, message, response=response)


__all__ = [
    "StorageError",
    "StorageConfigError",
    "AuthenticationError",
    "TransientNetworkError",
    "RetryExhaustedError",
    "OperationCancelledError",
    "ObjectStorageHTTPError",
    "ObjectNotFoundError",
    "PartialUploadFailure",
    "CleanupError",
    "RangeReadError",
    "http_error_from_response",
]
