from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal, cast

import httpx

from .errors import ObjectNotFoundError, ObjectStorageHTTPError, StorageConfigError

DEFAULT_RETRY_STATUSES = frozenset({408, 429, 500, 502, 503, 504, 507})
DEFAULT_AUTH_STATUSES = frozenset({401})

Outcome = Literal["success", "auth", "retry", "semantic"]


@dataclass(frozen=True, slots=True)
class Credentials:
    username: str
    password: str = field(repr=False)
    endpoints: tuple[str, ...]

    def __post_init__(self) -> None:
        if isinstance(self.endpoints, str):
            raise StorageConfigError("endpoints must be a sequence of URLs, not a string")
        normalized = tuple(str(e).strip().rstrip("/") for e in cast(Iterable[str], self.endpoints))
        if not self.username:
            raise StorageConfigError("username is required")
        if not normalized:
            raise StorageConfigError("at least one endpoint is required")
        if any(not e for e in normalized):
            raise StorageConfigError("endpoints must not be blank")
        object.__setattr__(self, "endpoints", normalized)


@dataclass(frozen=True, slots=True)
class RetryBudget:
    total_attempts: int = 10
    per_endpoint_attempts: int = 3

    def __post_init__(self) -> None:
        if self.total_attempts < 1:
            raise StorageConfigError("total_attempts must be at least 1")
        if self.per_endpoint_attempts < 1:
            raise StorageConfigError("per_endpoint_attempts must be at least 1")


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Budget plus the status classification the dispatcher applies.

    Statuses in ``retry_statuses`` (and every 5xx when ``retry_server_errors``
    is set) are transient; ``auth_statuses`` trigger a token refresh; any other
    non-2xx status is a semantic result handed back to the caller untouched.
    """

    budget: RetryBudget = field(default_factory=RetryBudget)
    retry_statuses: frozenset[int] = DEFAULT_RETRY_STATUSES
    auth_statuses: frozenset[int] = DEFAULT_AUTH_STATUSES
    retry_server_errors: bool = True
    backoff_base: float = 0.1
    backoff_max: float = 2.0

    def classify(self, status_code: int) -> Outcome:
        if 200 <= status_code < 300:
            return "success"
        if status_code in self.auth_statuses:
            return "auth"
        if status_code in self.retry_statuses:
            return "retry"
        if self.retry_server_errors and status_code >= 500:
            return "retry"
        return "semantic"

    def backoff(self, failures: int) -> float:
        if self.backoff_base <= 0:
            return 0.0
        return min(self.backoff_base * 2 ** max(failures - 1, 0), self.backoff_max)


@dataclass(frozen=True, slots=True)
class Operation:
    """An endpoint-agnostic request: the dispatcher picks where it goes."""

    method: str
    path: str
    headers: dict[str, str] = field(default_factory=dict)
    params: dict[str, Any] | None = None
    body: bytes | None = None
    timeout: float | None = None


@dataclass(slots=True)
class DispatchState:
    endpoint_index: int = 0
    endpoint_attempts: int = 0
    attempts: int = 0
    rotations: int = 0
    token: str | None = None
    last_outcome: Outcome | None = None
    failures: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class Segment:
    container: str
    name: str
    index: int
    data: bytes = field(repr=False)

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(slots=True)
class RangeWindow:
    start: int
    end: int
    data: bytes = field(repr=False)

    def contains(self, position: int) -> bool:
        return self.start <= position < self.end


# ---------------------------------------------------------------------------
# Operation results
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class StorageResult:
    status_code: int
    headers: httpx.Headers = field(repr=False)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def raise_for_status(self) -> None:
        if self.ok:
            return
        if self.status_code == 404:
            raise ObjectNotFoundError()
        raise ObjectStorageHTTPError(self.status_code)


@dataclass(slots=True)
class PutObjectResult(StorageResult):
    container: str
    name: str
    etag: str | None


@dataclass(slots=True)
class GetObjectResult(StorageResult):
    container: str
    name: str
    content: bytes = field(repr=False)
    content_type: str | None
    etag: str | None


@dataclass(slots=True)
class HeadObjectResult(StorageResult):
    container: str
    name: str
    content_length: int | None
    content_type: str | None
    etag: str | None
    last_modified: datetime | None
    metadata: dict[str, str]
    manifest: str | None


@dataclass(slots=True)
class DeleteObjectResult(StorageResult):
    container: str
    name: str


@dataclass(slots=True)
class ObjectInfo:
    name: str
    size: int
    etag: str | None
    content_type: str | None
    last_modified: datetime | None


@dataclass(slots=True)
class ListObjectsResult(StorageResult):
    container: str
    objects: list[ObjectInfo]

    @property
    def next_marker(self) -> str | None:
        return self.objects[-1].name if self.objects else None


@dataclass(slots=True)
class BulkDeleteResult:
    deleted: int = 0
    not_found: int = 0
    errors: list[tuple[str, str]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def merge(self, other: BulkDeleteResult) -> None:
        self.deleted += other.deleted
        self.not_found += other.not_found
        self.errors.extend(other.errors)


@dataclass(slots=True)
class ManifestRef:
    """Where a chunked upload ended up.

    ``copy_error`` / ``cleanup_error`` report failures of the optional
    finalize step; the manifest itself is valid whenever this is returned.
    """

    container: str
    name: str
    segment_container: str
    segment_prefix: str
    segment_count: int
    size: int
    manifest_container: str
    manifest_name: str
    final: PutObjectResult | None = None
    copy_error: BaseException | None = None
    cleanup_error: BaseException | None = None
    cleanup: BulkDeleteResult | None = None

    @property
    def manifest_value(self) -> str:
        return f"{self.segment_container}/{self.segment_prefix}"

    @property
    def finalized(self) -> bool:
        return self.final is not None and self.final.ok


__all__ = [
    "DEFAULT_RETRY_STATUSES",
    "DEFAULT_AUTH_STATUSES",
    "Credentials",
    "RetryBudget",
    "RetryPolicy",
    "Operation",
    "DispatchState",
    "Segment",
    "RangeWindow",
    "StorageResult",
    "PutObjectResult",
    "GetObjectResult",
    "HeadObjectResult",
    "DeleteObjectResult",
    "ObjectInfo",
    "ListObjectsResult",
    "BulkDeleteResult",
    "ManifestRef",
]
