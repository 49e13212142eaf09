"""Resilient client for OpenStack Swift compatible object storage."""

from ._http.config import VERSION as __version__
from .storage import (
    AsyncStorageClient,
    CancelToken,
    Credentials,
    RetryBudget,
    RetryPolicy,
    StorageClient,
    StorageConfig,
    StorageError,
)

__all__ = [
    "__version__",
    "StorageClient",
    "AsyncStorageClient",
    "StorageConfig",
    "Credentials",
    "RetryBudget",
    "RetryPolicy",
    "CancelToken",
    "StorageError",
]
