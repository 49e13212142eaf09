from __future__ import annotations

import os
import re
import unicodedata
import uuid
from collections.abc import Mapping
from datetime import datetime
from email.utils import parsedate_to_datetime
from typing import Any
from urllib.parse import quote

from .errors import StorageConfigError

METADATA_PREFIX = "x-object-meta-"
MAXIMUM_NAME_LENGTH = 1024
CONTENT_RANGE_PATTERN = re.compile(r"^\s*bytes\s+(\d+)-(\d+)/(\d+|\*)\s*$", re.IGNORECASE)


def debug(message: str, *args: Any) -> None:
    try:
        debug_env = os.getenv("DEBUG", "")
        if "swift" in debug_env:
            print(f"swiftbox: {message}", *args)
    except Exception:
        pass


def make_request_id() -> str:
    return uuid.uuid4().hex


def validate_container(container: str) -> None:
    if not container:
        raise StorageConfigError("container is required")
    if "/" in container:
        raise StorageConfigError("container names cannot contain '/'")
    if len(container) > 256:
        raise StorageConfigError("container name is too long, maximum length is 256")


def validate_object_name(name: str) -> None:
    if not name:
        raise StorageConfigError("object name is required")
    if len(name) > MAXIMUM_NAME_LENGTH:
        raise StorageConfigError(f"object name is too long, maximum length is {MAXIMUM_NAME_LENGTH}")


def object_path(container: str, name: str | None = None) -> str:
    validate_container(container)
    if name is None:
        return f"/{quote(container, safe='')}"
    validate_object_name(name)
    return f"/{quote(container, safe='')}/{quote(name, safe='/')}"


def join_url(endpoint: str, path: str) -> str:
    return endpoint.rstrip("/") + "/" + path.lstrip("/")


def encode_header_value(value: str) -> str | bytes:
    """Return ``value`` as UTF-8 bytes when it cannot travel as an ASCII header."""
    if value.isascii():
        return value
    return value.encode("utf-8")


def metadata_headers(metadata: Mapping[str, str] | None) -> dict[str, str]:
    headers: dict[str, str] = {}
    for key, value in (metadata or {}).items():
        name = key.strip().lower().replace("_", "-")
        if not name:
            raise StorageConfigError("metadata keys must not be empty")
        headers[f"{METADATA_PREFIX}{name}"] = str(value)
    return headers


def extract_metadata(headers: Mapping[str, str]) -> dict[str, str]:
    return {
        key.lower()[len(METADATA_PREFIX) :]: value
        for key, value in headers.items()
        if key.lower().startswith(METADATA_PREFIX)
    }


def content_disposition(filename: str) -> str:
    """Build an RFC 6266 attachment header.

    Names outside ASCII get a transliterated ``filename`` fallback plus an
    RFC 5987 ``filename*`` parameter carrying the exact UTF-8 name.
    """
    fallback = unicodedata.normalize("NFKD", filename).encode("ascii", "ignore").decode("ascii")
    escaped = fallback.replace("\\", "\\\\").replace('"', '\\"')
    if filename.isascii():
        return f'attachment; filename="{escaped}"'
    return f"attachment; filename=\"{escaped or 'download'}\"; filename*=UTF-8''{quote(filename, safe='')}"


def parse_http_date(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return parsedate_to_datetime(value)
    except (ValueError, TypeError):
        pass
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (ValueError, TypeError):
        return None


def parse_content_range(value: str | None) -> tuple[int, int, int | None] | None:
    """Parse ``bytes start-end/total`` into ``(start, end_exclusive, total)``."""
    if not value:
        return None
    match = CONTENT_RANGE_PATTERN.match(value)
    if not match:
        return None
    start, last, total = match.groups()
    return int(start), int(last) + 1, None if total == "*" else int(total)


def format_range_header(start: int, end: int) -> str:
    """Header for the half-open window ``[start, end)``."""
    return f"bytes={start}-{end - 1}"


def parse_int(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


__all__ = [
    "METADATA_PREFIX",
    "debug",
    "make_request_id",
    "validate_container",
    "validate_object_name",
    "object_path",
    "join_url",
    "encode_header_value",
    "metadata_headers",
    "extract_metadata",
    "content_disposition",
    "parse_http_date",
    "parse_content_range",
    "format_range_header",
    "parse_int",
]
