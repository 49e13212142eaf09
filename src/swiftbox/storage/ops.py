"""Object operations expressed as dispatcher operations.

Every method returns the semantic outcome of the request (``result.ok`` /
``result.status_code``) instead of raising for a well-formed non-2xx answer.
Only the dispatcher's terminal errors cross this boundary as exceptions.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any
from urllib.parse import quote

import httpx

from .cancel import CancelToken
from .dispatcher import Dispatcher
from .errors import RangeReadError, StorageConfigError, http_error_from_response
from .types import (
    BulkDeleteResult,
    DeleteObjectResult,
    GetObjectResult,
    HeadObjectResult,
    ListObjectsResult,
    ObjectInfo,
    Operation,
    PutObjectResult,
)
from .utils import (
    content_disposition,
    extract_metadata,
    format_range_header,
    metadata_headers,
    object_path,
    parse_content_range,
    parse_http_date,
    parse_int,
    validate_container,
    validate_object_name,
)

BULK_DELETE_MAX_PATHS = 10_000
DEFAULT_LIST_LIMIT = 10_000


def build_put_result(resp: httpx.Response, container: str, name: str) -> PutObjectResult:
    return PutObjectResult(
        status_code=resp.status_code,
        headers=resp.headers,
        container=container,
        name=name,
        etag=resp.headers.get("etag"),
    )


def build_get_result(resp: httpx.Response, container: str, name: str) -> GetObjectResult:
    ok = 200 <= resp.status_code < 300
    return GetObjectResult(
        status_code=resp.status_code,
        headers=resp.headers,
        container=container,
        name=name,
        content=resp.content if ok else b"",
        content_type=resp.headers.get("content-type"),
        etag=resp.headers.get("etag"),
    )


def build_head_result(resp: httpx.Response, container: str, name: str) -> HeadObjectResult:
    return HeadObjectResult(
        status_code=resp.status_code,
        headers=resp.headers,
        container=container,
        name=name,
        content_length=parse_int(resp.headers.get("content-length")),
        content_type=resp.headers.get("content-type"),
        etag=resp.headers.get("etag"),
        last_modified=parse_http_date(resp.headers.get("last-modified")),
        metadata=extract_metadata(resp.headers),
        manifest=resp.headers.get("x-object-manifest"),
    )


def build_list_result(resp: httpx.Response, container: str) -> ListObjectsResult:
    objects: list[ObjectInfo] = []
    if resp.status_code == 200 and resp.content:
        for item in resp.json():
            if "subdir" in item:
                continue
            objects.append(
                ObjectInfo(
                    name=item["name"],
                    size=int(item.get("bytes", 0)),
                    etag=item.get("hash"),
                    content_type=item.get("content_type"),
                    last_modified=parse_http_date(item.get("last_modified")),
                )
            )
    return ListObjectsResult(
        status_code=resp.status_code,
        headers=resp.headers,
        container=container,
        objects=objects,
    )


def build_bulk_delete_result(resp: httpx.Response) -> BulkDeleteResult:
    if not 200 <= resp.status_code < 300:
        raise http_error_from_response(resp)
    try:
        data = resp.json()
    except ValueError:
        data = {}
    errors = [(str(path), str(status)) for path, status in data.get("Errors", [])]
    return BulkDeleteResult(
        deleted=int(data.get("Number Deleted", 0)),
        not_found=int(data.get("Number Not Found", 0)),
        errors=errors,
    )


def build_list_params(
    *,
    prefix: str | None = None,
    marker: str | None = None,
    limit: int | None = None,
) -> dict[str, Any]:
    params: dict[str, Any] = {"format": "json"}
    if prefix is not None:
        params["prefix"] = prefix
    if marker is not None:
        params["marker"] = marker
    if limit is not None:
        params["limit"] = int(limit)
    return params


def build_object_headers(
    *,
    content_type: str | None = None,
    metadata: Mapping[str, str] | None = None,
    filename: str | None = None,
    headers: Mapping[str, str] | None = None,
) -> dict[str, str]:
    result: dict[str, str] = {}
    if content_type:
        result["content-type"] = content_type
    if filename:
        result["content-disposition"] = content_disposition(filename)
    result.update(metadata_headers(metadata))
    if headers:
        result.update({k.lower(): v for k, v in headers.items()})
    return result


def slice_range_response(resp: httpx.Response, start: int, end: int) -> bytes:
    """Extract ``[start, end)`` from a GET answered with or without range support."""
    if resp.status_code == 416:
        return b""
    if resp.status_code == 200:
        # The server ignored the Range header and sent the whole object.
        return resp.content[start:end]
    if resp.status_code != 206:
        raise http_error_from_response(resp)

    served = parse_content_range(resp.headers.get("content-range"))
    if served is None:
        raise RangeReadError("partial response without a valid Content-Range header")
    served_start, served_end, _ = served
    if served_start != start:
        raise RangeReadError(f"asked for bytes from {start}, server sent from {served_start}")
    data = resp.content
    if len(data) != served_end - served_start:
        raise RangeReadError(
            f"Content-Range announced {served_end - served_start} bytes, body has {len(data)}"
        )
    return data[: end - start]


class ObjectOpsClient:
    def __init__(self, dispatcher: Dispatcher) -> None:
        self._dispatcher = dispatcher

    @property
    def dispatcher(self) -> Dispatcher:
        return self._dispatcher

    async def _dispatch(self, operation: Operation, cancel: CancelToken | None) -> httpx.Response:
        return await self._dispatcher.dispatch(operation, cancel=cancel)

    async def create_container(
        self,
        container: str,
        *,
        headers: Mapping[str, str] | None = None,
        cancel: CancelToken | None = None,
    ) -> PutObjectResult:
        resp = await self._dispatch(
            Operation("PUT", object_path(container), headers=dict(headers or {}), body=b""),
            cancel,
        )
        return build_put_result(resp, container, "")

    async def put_object(
        self,
        container: str,
        name: str,
        data: bytes | bytearray | memoryview | str,
        *,
        content_type: str | None = None,
        metadata: Mapping[str, str] | None = None,
        filename: str | None = None,
        headers: Mapping[str, str] | None = None,
        cancel: CancelToken | None = None,
    ) -> PutObjectResult:
        body = data.encode("utf-8") if isinstance(data, str) else bytes(data)
        request_headers = build_object_headers(
            content_type=content_type, metadata=metadata, filename=filename, headers=headers
        )
        resp = await self._dispatch(
            Operation("PUT", object_path(container, name), headers=request_headers, body=body),
            cancel,
        )
        return build_put_result(resp, container, name)

    async def get_object(
        self,
        container: str,
        name: str,
        *,
        byte_range: tuple[int, int] | None = None,
        headers: Mapping[str, str] | None = None,
        cancel: CancelToken | None = None,
    ) -> GetObjectResult:
        request_headers = dict(headers or {})
        if byte_range is not None:
            start, end = byte_range
            if start < 0 or end <= start:
                raise StorageConfigError(f"invalid byte range [{start}, {end})")
            request_headers["range"] = format_range_header(start, end)
        resp = await self._dispatch(
            Operation("GET", object_path(container, name), headers=request_headers), cancel
        )
        return build_get_result(resp, container, name)

    async def get_range(
        self,
        container: str,
        name: str,
        start: int,
        end: int,
        *,
        cancel: CancelToken | None = None,
    ) -> bytes:
        """Fetch bytes ``[start, end)``. Raises for any non-2xx answer but 416."""
        if end <= start:
            return b""
        resp = await self._dispatch(
            Operation(
                "GET",
                object_path(container, name),
                headers={"range": format_range_header(start, end)},
            ),
            cancel,
        )
        return slice_range_response(resp, start, end)

    async def head_object(
        self,
        container: str,
        name: str,
        *,
        cancel: CancelToken | None = None,
    ) -> HeadObjectResult:
        resp = await self._dispatch(Operation("HEAD", object_path(container, name)), cancel)
        return build_head_result(resp, container, name)

    async def delete_object(
        self,
        container: str,
        name: str,
        *,
        cancel: CancelToken | None = None,
    ) -> DeleteObjectResult:
        resp = await self._dispatch(Operation("DELETE", object_path(container, name)), cancel)
        return DeleteObjectResult(
            status_code=resp.status_code, headers=resp.headers, container=container, name=name
        )

    async def copy_object(
        self,
        src_container: str,
        src_name: str,
        dst_container: str,
        dst_name: str,
        *,
        content_type: str | None = None,
        metadata: Mapping[str, str] | None = None,
        filename: str | None = None,
        headers: Mapping[str, str] | None = None,
        cancel: CancelToken | None = None,
    ) -> PutObjectResult:
        """Server-side copy that sets the destination's metadata in the same request."""
        request_headers = build_object_headers(
            content_type=content_type, metadata=metadata, filename=filename, headers=headers
        )
        request_headers["x-copy-from"] = object_path(src_container, src_name)
        resp = await self._dispatch(
            Operation("PUT", object_path(dst_container, dst_name), headers=request_headers, body=b""),
            cancel,
        )
        return build_put_result(resp, dst_container, dst_name)

    async def put_manifest(
        self,
        container: str,
        name: str,
        segment_container: str,
        segment_prefix: str,
        *,
        content_type: str | None = None,
        metadata: Mapping[str, str] | None = None,
        cancel: CancelToken | None = None,
    ) -> PutObjectResult:
        validate_container(segment_container)
        request_headers = build_object_headers(content_type=content_type, metadata=metadata)
        request_headers["x-object-manifest"] = (
            f"{quote(segment_container, safe='')}/{quote(segment_prefix, safe='/')}"
        )
        resp = await self._dispatch(
            Operation("PUT", object_path(container, name), headers=request_headers, body=b""),
            cancel,
        )
        return build_put_result(resp, container, name)

    async def list_objects(
        self,
        container: str,
        *,
        prefix: str | None = None,
        marker: str | None = None,
        limit: int | None = None,
        cancel: CancelToken | None = None,
    ) -> ListObjectsResult:
        resp = await self._dispatch(
            Operation(
                "GET",
                object_path(container),
                headers={"accept": "application/json"},
                params=build_list_params(prefix=prefix, marker=marker, limit=limit),
            ),
            cancel,
        )
        return build_list_result(resp, container)

    async def bulk_delete(
        self,
        paths: Iterable[str],
        *,
        cancel: CancelToken | None = None,
    ) -> BulkDeleteResult:
        """Delete ``container/object`` paths with the bulk middleware, in batches."""
        total = BulkDeleteResult()
        batch: list[str] = []
        for path in paths:
            container, _, name = path.lstrip("/").partition("/")
            validate_object_name(name)
            batch.append(object_path(container, name))
            if len(batch) >= BULK_DELETE_MAX_PATHS:
                total.merge(await self._bulk_delete_batch(batch, cancel))
                batch = []
        if batch:
            total.merge(await self._bulk_delete_batch(batch, cancel))
        return total

    async def _bulk_delete_batch(self, paths: list[str], cancel: CancelToken | None) -> BulkDeleteResult:
        resp = await self._dispatch(
            Operation(
                "POST",
                "/",
                headers={"content-type": "text/plain", "accept": "application/json"},
                params={"bulk-delete": ""},
                body="\n".join(paths).encode("utf-8"),
            ),
            cancel,
        )
        return build_bulk_delete_result(resp)

    async def delete_container_contents(
        self,
        container: str,
        *,
        prefix: str | None = None,
        cancel: CancelToken | None = None,
    ) -> BulkDeleteResult:
        """List ``container`` (optionally under ``prefix``) and bulk-delete everything found."""
        total = BulkDeleteResult()
        marker: str | None = None
        while True:
            page = await self.list_objects(
                container, prefix=prefix, marker=marker, limit=DEFAULT_LIST_LIMIT, cancel=cancel
            )
            if page.status_code == 404 or not page.objects:
                return total
            if not page.ok:
                page.raise_for_status()
            total.merge(
                await self.bulk_delete((f"{container}/{obj.name}" for obj in page.objects), cancel=cancel)
            )
            marker = page.next_marker


__all__ = [
    "BULK_DELETE_MAX_PATHS",
    "ObjectOpsClient",
    "build_bulk_delete_result",
    "build_get_result",
    "build_head_result",
    "build_list_params",
    "build_list_result",
    "build_object_headers",
    "build_put_result",
    "slice_range_response",
]
