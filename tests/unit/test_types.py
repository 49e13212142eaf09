from __future__ import annotations

import httpx
import pytest

from swiftbox.storage import (
    BulkDeleteResult,
    Credentials,
    ManifestRef,
    ObjectNotFoundError,
    ObjectStorageHTTPError,
    RetryBudget,
    RetryPolicy,
    StorageConfigError,
)
from swiftbox.storage.types import PutObjectResult, RangeWindow
from swiftbox.storage.utils import (
    content_disposition,
    encode_header_value,
    extract_metadata,
    format_range_header,
    metadata_headers,
    object_path,
    parse_content_range,
)


class TestCredentials:
    def test_endpoints_are_normalized_to_tuple(self):
        creds = Credentials("u", "p", ["https://a.example/v1/AUTH_x/", " https://b.example "])
        assert creds.endpoints == ("https://a.example/v1/AUTH_x", "https://b.example")

    def test_password_hidden_from_repr(self):
        assert "s3cret" not in repr(Credentials("u", "s3cret", ["https://a.example"]))

    @pytest.mark.parametrize(
        "username,endpoints",
        [
            ("", ["https://a.example"]),
            ("u", []),
            ("u", ["https://a.example", "  "]),
            ("u", "https://a.example"),
        ],
    )
    def test_invalid_credentials_rejected(self, username, endpoints):
        with pytest.raises(StorageConfigError):
            Credentials(username, "p", endpoints)


class TestRetryBudget:
    def test_defaults(self):
        budget = RetryBudget()
        assert budget.total_attempts == 10
        assert budget.per_endpoint_attempts == 3

    @pytest.mark.parametrize("total,per", [(0, 1), (1, 0), (-1, 3)])
    def test_must_be_positive(self, total, per):
        with pytest.raises(StorageConfigError):
            RetryBudget(total_attempts=total, per_endpoint_attempts=per)

    def test_per_endpoint_may_exceed_total(self):
        assert RetryBudget(total_attempts=2, per_endpoint_attempts=5).per_endpoint_attempts == 5


class TestRetryPolicy:
    @pytest.mark.parametrize(
        "status,outcome",
        [
            (200, "success"),
            (201, "success"),
            (204, "success"),
            (206, "success"),
            (401, "auth"),
            (408, "retry"),
            (429, "retry"),
            (500, "retry"),
            (503, "retry"),
            (507, "retry"),
            (599, "retry"),
            (403, "semantic"),
            (404, "semantic"),
            (409, "semantic"),
            (416, "semantic"),
        ],
    )
    def test_default_classification(self, status, outcome):
        assert RetryPolicy().classify(status) == outcome

    def test_server_errors_can_be_made_semantic(self):
        policy = RetryPolicy(retry_statuses=frozenset({503}), retry_server_errors=False)
        assert policy.classify(503) == "retry"
        assert policy.classify(501) == "semantic"

    def test_backoff_is_exponential_and_capped(self):
        policy = RetryPolicy(backoff_base=0.5, backoff_max=3.0)
        assert [policy.backoff(n) for n in range(1, 6)] == [0.5, 1.0, 2.0, 3.0, 3.0]

    def test_zero_base_disables_backoff(self):
        assert RetryPolicy(backoff_base=0.0).backoff(4) == 0.0


class TestResults:
    def test_raise_for_status(self):
        PutObjectResult(201, httpx.Headers(), container="c", name="o", etag=None).raise_for_status()
        with pytest.raises(ObjectNotFoundError):
            PutObjectResult(404, httpx.Headers(), container="c", name="o", etag=None).raise_for_status()
        with pytest.raises(ObjectStorageHTTPError) as exc_info:
            PutObjectResult(412, httpx.Headers(), container="c", name="o", etag=None).raise_for_status()
        assert exc_info.value.status_code == 412

    def test_bulk_delete_merge(self):
        total = BulkDeleteResult(deleted=2)
        total.merge(BulkDeleteResult(deleted=1, not_found=1, errors=[("/c/o", "409 Conflict")]))
        assert (total.deleted, total.not_found) == (3, 1)
        assert not total.ok

    def test_manifest_value(self):
        ref = ManifestRef(
            container="c_segments",
            name="big.bin",
            segment_container="c_segments",
            segment_prefix="big.bin/",
            segment_count=3,
            size=30,
            manifest_container="c_segments",
            manifest_name="big.bin",
        )
        assert ref.manifest_value == "c_segments/big.bin/"
        assert not ref.finalized

    def test_range_window_is_half_open(self):
        window = RangeWindow(start=10, end=20, data=b"x" * 10)
        assert window.contains(10)
        assert window.contains(19)
        assert not window.contains(20)
        assert not window.contains(9)


class TestHelpers:
    def test_object_path_quotes_names(self):
        assert object_path("my photos", "2024/cat #1.jpg") == "/my%20photos/2024/cat%20%231.jpg"
        assert object_path("c") == "/c"

    @pytest.mark.parametrize("container", ["", "a/b", "x" * 257])
    def test_invalid_containers(self, container):
        with pytest.raises(StorageConfigError):
            object_path(container, "o")

    def test_range_header_is_inclusive(self):
        assert format_range_header(0, 1024) == "bytes=0-1023"

    def test_parse_content_range(self):
        assert parse_content_range("bytes 0-1023/4096") == (0, 1024, 4096)
        assert parse_content_range("bytes 5-9/*") == (5, 10, None)
        assert parse_content_range("items 0-1/2") is None
        assert parse_content_range(None) is None

    def test_metadata_round_trip(self):
        headers = metadata_headers({"Color": "blue", "owner_id": "42"})
        assert headers == {"x-object-meta-color": "blue", "x-object-meta-owner-id": "42"}
        assert extract_metadata(httpx.Headers(headers)) == {"color": "blue", "owner-id": "42"}

    def test_content_disposition_escapes_quotes(self):
        assert content_disposition('a"b.txt') == 'attachment; filename="a\\"b.txt"'

    def test_content_disposition_non_ascii_name(self):
        value = content_disposition("résumé.pdf")
        assert value == "attachment; filename=\"resume.pdf\"; filename*=UTF-8''r%C3%A9sum%C3%A9.pdf"
        assert value.isascii()

    def test_content_disposition_without_ascii_fallback(self):
        value = content_disposition("履歴書")
        assert value.startswith("attachment; filename=\"download\"; filename*=UTF-8''%E5%B1%A5")

    def test_non_ascii_header_values_become_utf8(self):
        assert encode_header_value("plain") == "plain"
        assert encode_header_value("Zoë") == "Zoë".encode()
