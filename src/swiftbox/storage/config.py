from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field

from .._http import DEFAULT_TIMEOUT
from .errors import StorageConfigError
from .stream import DEFAULT_PREFETCH_SIZE
from .types import DEFAULT_RETRY_STATUSES, Credentials, RetryBudget, RetryPolicy
from .upload import DEFAULT_SEGMENT_SIZE


def _get(env: Mapping[str, str], key: str) -> str | None:
    value = env.get(key)
    if value is None or value.strip() == "":
        return None
    return value.strip()


def _get_int(env: Mapping[str, str], key: str, default: int) -> int:
    value = _get(env, key)
    try:
        return int(value) if value is not None else default
    except ValueError:
        return default


def _get_float(env: Mapping[str, str], key: str, default: float) -> float:
    value = _get(env, key)
    try:
        return float(value) if value is not None else default
    except ValueError:
        return default


def _get_statuses(env: Mapping[str, str], key: str, default: frozenset[int]) -> frozenset[int]:
    value = _get(env, key)
    if value is None:
        return default
    try:
        return frozenset(int(part) for part in value.split(",") if part.strip())
    except ValueError:
        return default


@dataclass(frozen=True)
class StorageConfig:
    """Everything needed to build a client, typically read from ``SWIFT_*`` variables."""

    username: str
    password: str = field(repr=False)
    endpoints: tuple[str, ...]
    total_attempts: int = 10
    per_endpoint_attempts: int = 3
    timeout: float = DEFAULT_TIMEOUT
    segment_size: int = DEFAULT_SEGMENT_SIZE
    prefetch_size: int = DEFAULT_PREFETCH_SIZE
    retry_statuses: frozenset[int] = DEFAULT_RETRY_STATUSES

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> StorageConfig:
        """Build a config from the process environment (or ``env``).

        ``SWIFT_USERNAME``, ``SWIFT_PASSWORD`` and ``SWIFT_ENDPOINTS`` (comma
        separated) are required. Numeric settings that are missing or do not
        parse keep their defaults.
        """
        if env is None:
            env = os.environ

        missing = [k for k in ("SWIFT_USERNAME", "SWIFT_PASSWORD", "SWIFT_ENDPOINTS") if _get(env, k) is None]
        if missing:
            raise StorageConfigError(
                f"Missing {', '.join(missing)}. Configure the environment variables or pass credentials explicitly."
            )
        endpoints = tuple(e.strip() for e in (_get(env, "SWIFT_ENDPOINTS") or "").split(",") if e.strip())

        return cls(
            username=_get(env, "SWIFT_USERNAME") or "",
            password=_get(env, "SWIFT_PASSWORD") or "",
            endpoints=endpoints,
            total_attempts=_get_int(env, "SWIFT_RETRIES", 10),
            per_endpoint_attempts=_get_int(env, "SWIFT_ENDPOINT_RETRIES", 3),
            timeout=_get_float(env, "SWIFT_TIMEOUT", DEFAULT_TIMEOUT),
            segment_size=_get_int(env, "SWIFT_SEGMENT_SIZE", DEFAULT_SEGMENT_SIZE),
            prefetch_size=_get_int(env, "SWIFT_PREFETCH_SIZE", DEFAULT_PREFETCH_SIZE),
            retry_statuses=_get_statuses(env, "SWIFT_RETRY_STATUSES", DEFAULT_RETRY_STATUSES),
        )

    def credentials(self) -> Credentials:
        return Credentials(username=self.username, password=self.password, endpoints=self.endpoints)

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            budget=RetryBudget(
                total_attempts=self.total_attempts,
                per_endpoint_attempts=self.per_endpoint_attempts,
            ),
            retry_statuses=self.retry_statuses,
        )


__all__ = ["StorageConfig"]
