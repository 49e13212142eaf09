from .client import AsyncStorageClient
from .dispatcher import Dispatcher
from .stream import AsyncRangeStream
from .upload import aiter_segment_bytes, create_async_segment_upload_runtime

__all__ = [
    "AsyncStorageClient",
    "AsyncRangeStream",
    "Dispatcher",
    "aiter_segment_bytes",
    "create_async_segment_upload_runtime",
]
