"""
Example: segmented upload of a large object, then random access reads.

The uploader:
- Splits the payload into fixed-size segments under ``{container}_segments``
- Writes an ``X-Object-Manifest`` object that stitches them together
- Copies the manifest into place with metadata and bulk-deletes the temporaries

Reading back with ``open()`` only fetches the byte ranges that are touched.
"""

import os
import shutil
import tempfile

from dotenv import load_dotenv

from swiftbox.storage import StdlibRetryLogger, StorageClient

load_dotenv()

assert os.getenv("SWIFT_ENDPOINTS"), "Set SWIFT_USERNAME, SWIFT_PASSWORD and SWIFT_ENDPOINTS"

container = os.getenv("SWIFT_TEST_CONTAINER", "swiftbox-examples")


def main() -> None:
    payload = os.urandom(5 * 1024 * 1024 + 123)

    with StorageClient(logger=StdlibRetryLogger(), segment_size=2 * 1024 * 1024) as client:
        client.create_container(container).raise_for_status()

        def progress(segment, result) -> None:
            print(f"  segment {segment.index} ({segment.size} bytes) -> HTTP {result.status_code}")

        print("Uploading in segments...")
        ref = client.upload_large(
            container,
            "examples/large.bin",
            payload,
            content_type="application/octet-stream",
            metadata={"source": "example"},
            on_segment_uploaded=progress,
        )
        print(f"Uploaded {ref.size} bytes in {ref.segment_count} segments to {ref.container}/{ref.name}")
        if ref.cleanup_error is not None:
            print(f"  cleanup left temporaries behind: {ref.cleanup_error}")

        with client.open(container, "examples/large.bin", prefetch_size=256 * 1024) as stream:
            stream.seek(3 * 1024 * 1024)
            chunk = stream.read(64)
            assert chunk == payload[3 * 1024 * 1024 : 3 * 1024 * 1024 + 64]
            print(f"Random read OK after {stream.fetch_count} range request(s)")

            stream.seek(0)
            with tempfile.TemporaryFile() as fh:
                shutil.copyfileobj(stream, fh, length=1024 * 1024)
                print(f"Streamed {fh.tell()} bytes to a local file")

        client.delete_object(container, "examples/large.bin")


if __name__ == "__main__":
    main()
