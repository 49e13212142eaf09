"""Integration tests for the Swift clients using respx mocking.

Tests both sync and async variants to ensure API parity.
"""

import io

import httpx
import pytest

from swiftbox.storage import (
    AsyncStorageClient,
    AuthenticationError,
    ObjectNotFoundError,
    Operation,
    RetryExhaustedError,
    StdlibRetryLogger,
    StorageClient,
)

PAYLOAD = bytes(i % 256 for i in range(3000))


@pytest.fixture
def client(swift_cluster, credentials, fast_policy):
    with StorageClient(credentials, retry_policy=fast_policy, segment_size=1024, prefetch_size=512) as c:
        yield c


@pytest.fixture
def make_async_client(swift_cluster, credentials, fast_policy):
    def factory() -> AsyncStorageClient:
        return AsyncStorageClient(credentials, retry_policy=fast_policy, segment_size=1024, prefetch_size=512)

    return factory


def auth_calls(fake_swift) -> int:
    return sum(1 for _, path in fake_swift.log if path == "/auth/v1.0")


class TestObjectLifecycle:
    """Put, read and delete through the full stack."""

    def test_lifecycle_sync(self, client, fake_swift, swift_cluster):
        client.create_container("docs")
        put = client.put_object("docs", "notes/a.txt", "hello", metadata={"Author": "ann"})
        assert put.ok

        head = client.head_object("docs", "notes/a.txt")
        assert head.content_length == 5
        assert head.metadata == {"author": "ann"}
        assert client.get_object("docs", "notes/a.txt").content == b"hello"
        assert client.get_range("docs", "notes/a.txt", 1, 3) == b"el"

        assert client.delete_object("docs", "notes/a.txt").ok
        with pytest.raises(ObjectNotFoundError):
            client.head_object("docs", "notes/a.txt").raise_for_status()

        # one token exchange serves every request
        assert auth_calls(fake_swift) == 1
        request = swift_cluster.routes["swift-a"].calls.last.request
        assert request.headers["x-auth-token"] == fake_swift.TOKEN

    @pytest.mark.asyncio
    async def test_lifecycle_async(self, make_async_client, fake_swift):
        async with make_async_client() as client:
            await client.create_container("docs")
            put = await client.put_object("docs", "notes/a.txt", b"hello", content_type="text/plain")
            assert put.ok

            got = await client.get_object("docs", "notes/a.txt")
            assert got.content == b"hello"
            assert got.content_type == "text/plain"

            assert (await client.delete_object("docs", "notes/a.txt")).ok
            assert (await client.head_object("docs", "notes/a.txt")).status_code == 404
        assert auth_calls(fake_swift) == 1

    def test_non_ascii_metadata_round_trip(self, client, fake_swift):
        client.create_container("docs")

        put = client.put_object("docs", "cv.pdf", b"x", metadata={"author": "Zoë"}, filename="résumé.pdf")
        assert put.ok

        assert client.head_object("docs", "cv.pdf").metadata == {"author": "Zoë"}

    def test_raw_dispatch_with_mixed_case_headers(self, client, fake_swift, swift_cluster):
        client.create_container("docs")

        operation = Operation("PUT", "/docs/raw", headers={"Content-Type": "text/plain"}, body=b"x")
        resp = client.dispatch(operation)

        assert resp.status_code == 201
        assert fake_swift.containers["docs"]["raw"].content_type == "text/plain"
        request = swift_cluster.routes["swift-a"].calls.last.request
        assert request.headers.get_list("content-type") == ["text/plain"]


class TestListing:
    def test_iter_objects_follows_markers_sync(self, client, fake_swift):
        for i in range(7):
            fake_swift.put("docs", f"item-{i}", b"x")

        names = [o.name for o in client.iter_objects("docs", batch_size=3)]

        assert names == [f"item-{i}" for i in range(7)]
        listings = [entry for entry in fake_swift.log if entry == ("GET", "/v1/AUTH_test/docs")]
        assert len(listings) == 3

    @pytest.mark.asyncio
    async def test_iter_objects_prefix_async(self, make_async_client, fake_swift):
        for name in ["logs/1", "logs/2", "other"]:
            fake_swift.put("docs", name, b"x")

        async with make_async_client() as client:
            names = [o.name async for o in client.iter_objects("docs", prefix="logs/", batch_size=1)]

        assert names == ["logs/1", "logs/2"]

    def test_delete_container_contents_sync(self, client, fake_swift):
        for name in ["a", "b", "c"]:
            fake_swift.put("docs", name, b"x")

        result = client.delete_container_contents("docs")

        assert result.deleted == 3
        assert fake_swift.object_names("docs") == []


class TestLargeObjects:
    """Segmented upload followed by buffered reads of the finished object."""

    def test_upload_then_stream_sync(self, client, fake_swift):
        client.create_container("media")
        seen: list[int] = []

        ref = client.upload_large(
            "media",
            "video.bin",
            io.BytesIO(PAYLOAD),
            metadata={"codec": "raw"},
            on_segment_uploaded=lambda segment, result: seen.append(segment.index),
        )

        assert ref.finalized
        assert ref.segment_count == 3
        assert sorted(seen) == [0, 1, 2]
        assert fake_swift.object_names("media_segments") == []
        assert client.head_object("media", "video.bin").metadata == {"codec": "raw"}

        with client.open("media", "video.bin") as stream:
            # reads straddling segment boundaries
            stream.seek(1000)
            assert stream.read(50) == PAYLOAD[1000:1050]
            stream.seek(2040)
            assert stream.read(20) == PAYLOAD[2040:2060]
            stream.seek(0)
            assert stream.read() == PAYLOAD
            assert stream.length() == len(PAYLOAD)

    def test_non_ascii_filename_is_finalized(self, client, fake_swift, swift_cluster):
        client.create_container("docs")

        ref = client.upload_large("docs", "cv.pdf", b"0123456789", filename="résumé.pdf")

        assert ref.finalized
        assert ref.copy_error is None
        assert fake_swift.containers["docs"]["cv.pdf"].data == b"0123456789"
        copies = [
            call.request
            for call in swift_cluster.routes["swift-a"].calls
            if "x-copy-from" in call.request.headers
        ]
        assert copies[0].headers["content-disposition"].endswith("filename*=UTF-8''r%C3%A9sum%C3%A9.pdf")

    def test_unfinalized_upload_is_readable_through_manifest(self, client, fake_swift):
        client.create_container("media")

        ref = client.upload_large("media", "video.bin", PAYLOAD, finalize=False)

        assert ref.container == "media_segments"
        assert client.get_object(ref.container, ref.name).content == PAYLOAD

    @pytest.mark.asyncio
    async def test_upload_then_stream_async(self, make_async_client, fake_swift):
        async def chunks():
            for i in range(0, len(PAYLOAD), 700):
                yield PAYLOAD[i : i + 700]

        async with make_async_client() as client:
            await client.create_container("media")
            ref = await client.upload_large("media", "video.bin", chunks())
            assert ref.finalized
            assert ref.size == len(PAYLOAD)

            async with client.open("media", "video.bin") as stream:
                first = await stream.read(100)
                second = await stream.read(100)
                assert first + second == PAYLOAD[:200]
                assert stream.fetch_count == 1

                stream.seek(2900)
                assert await stream.read(500) == PAYLOAD[2900:]
                assert stream.fetch_count == 2

    def test_stream_of_missing_object_raises(self, client):
        client.create_container("media")
        stream = client.open("media", "missing.bin")
        with pytest.raises(ObjectNotFoundError):
            stream.read(1)


class TestResilience:
    def test_rotates_away_from_unreachable_endpoint_sync(self, client, fake_swift, swift_cluster):
        swift_cluster.routes["swift-a"].side_effect = httpx.ConnectError

        assert client.create_container("docs").ok
        assert swift_cluster.routes["swift-a"].call_count == 2
        assert swift_cluster.routes["swift-b"].called

        # every operation starts over from the first endpoint
        assert client.put_object("docs", "a", b"1").ok
        assert swift_cluster.routes["swift-a"].call_count == 4
        assert fake_swift.containers["docs"]["a"].data == b"1"

    @pytest.mark.asyncio
    async def test_rotates_away_from_failing_endpoint_async(self, make_async_client, swift_cluster):
        swift_cluster.routes["swift-a"].side_effect = lambda request: httpx.Response(503)

        async with make_async_client() as client:
            assert (await client.create_container("docs")).ok
        assert swift_cluster.routes["swift-a"].call_count == 2
        assert swift_cluster.routes["swift-b"].called

    def test_exhaustion_when_every_endpoint_fails(self, client, swift_cluster):
        for name in ("swift-a", "swift-b", "swift-c"):
            swift_cluster.routes[name].side_effect = httpx.ConnectError

        with pytest.raises(RetryExhaustedError) as exc_info:
            client.create_container("docs")

        assert exc_info.value.attempts == 6
        assert sum(swift_cluster.routes[n].call_count for n in ("swift-a", "swift-b", "swift-c")) == 6

    def test_expired_token_is_refreshed(self, client, fake_swift):
        client.create_container("docs")
        fake_swift.TOKEN = "AUTH_tk_rotated"

        assert client.put_object("docs", "a", b"1").ok
        assert auth_calls(fake_swift) == 2

    def test_rejected_credentials(self, swift_cluster, credentials, fast_policy):
        swift_cluster.routes["swift-a"].side_effect = lambda request: httpx.Response(401)

        with StorageClient(credentials, retry_policy=fast_policy) as client:
            with pytest.raises(AuthenticationError):
                client.create_container("docs")

    def test_retries_reach_stdlib_logger(self, swift_cluster, credentials, fast_policy, caplog):
        swift_cluster.routes["swift-a"].side_effect = httpx.ConnectError

        with StorageClient(credentials, retry_policy=fast_policy, logger=StdlibRetryLogger()) as client:
            with caplog.at_level("WARNING", logger="swiftbox.retry"):
                client.create_container("docs")

        messages = [r.getMessage() for r in caplog.records if r.name == "swiftbox.retry"]
        assert len(messages) == 2
        assert "swift-a.example.com" in messages[0]
