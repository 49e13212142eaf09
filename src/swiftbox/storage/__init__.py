from .auth import (
    InMemoryTokenCache,
    StaticTokenAuthority,
    SwiftV1TokenAuthority,
    TokenAuthority,
    TokenCache,
)
from .cancel import CancelToken
from .client import AsyncStorageClient, StorageClient
from .config import StorageConfig
from .dispatcher import Dispatcher, create_sync_dispatcher
from .errors import (
    AuthenticationError,
    CleanupError,
    ObjectNotFoundError,
    ObjectStorageHTTPError,
    OperationCancelledError,
    PartialUploadFailure,
    RangeReadError,
    RetryExhaustedError,
    StorageConfigError,
    StorageError,
    TransientNetworkError,
)
from .ops import ObjectOpsClient
from .sinks import DebugRetryLogger, NullRetryLogger, RetryLogger, StdlibRetryLogger
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
    RangeWindow,
    RetryBudget,
    RetryPolicy,
    Segment,
)
from .upload import DEFAULT_SEGMENT_SIZE, MAX_CONCURRENCY, ChunkedUploadCoordinator
from .utils import extract_metadata, metadata_headers

__all__ = [
    # clients
    "StorageClient",
    "AsyncStorageClient",
    "StorageConfig",
    # core
    "Dispatcher",
    "create_sync_dispatcher",
    "ObjectOpsClient",
    "ChunkedUploadCoordinator",
    "RangeStream",
    "AsyncRangeStream",
    "CancelToken",
    "DEFAULT_PREFETCH_SIZE",
    "DEFAULT_SEGMENT_SIZE",
    "MAX_CONCURRENCY",
    # auth
    "TokenAuthority",
    "TokenCache",
    "InMemoryTokenCache",
    "StaticTokenAuthority",
    "SwiftV1TokenAuthority",
    # retry sinks
    "RetryLogger",
    "NullRetryLogger",
    "DebugRetryLogger",
    "StdlibRetryLogger",
    # errors
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
    # types
    "Credentials",
    "RetryBudget",
    "RetryPolicy",
    "Operation",
    "Segment",
    "RangeWindow",
    "PutObjectResult",
    "GetObjectResult",
    "HeadObjectResult",
    "DeleteObjectResult",
    "ObjectInfo",
    "ListObjectsResult",
    "BulkDeleteResult",
    "ManifestRef",
    # helpers
    "metadata_headers",
    "extract_metadata",
]
