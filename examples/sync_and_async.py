import asyncio
import os

from dotenv import load_dotenv

from swiftbox.storage import AsyncStorageClient, CancelToken, OperationCancelledError, StorageClient

load_dotenv()

container = os.getenv("SWIFT_TEST_CONTAINER", "swiftbox-examples")


def sync_example() -> None:
    with StorageClient() as client:
        client.create_container(container).raise_for_status()
        client.put_object(container, "examples/hello.txt", "Hello from the sync client!", content_type="text/plain")

        head = client.head_object(container, "examples/hello.txt")
        print(f"[sync] {head.name}: {head.content_length} bytes, etag={head.etag}")
        print(f"[sync] listing: {[o.name for o in client.iter_objects(container, prefix='examples/')]}")


async def async_example() -> None:
    async with AsyncStorageClient() as client:
        got = await client.get_object(container, "examples/hello.txt")
        print(f"[async] read back: {got.content.decode()}")

        # A cancelled token stops the operation before anything is sent.
        cancel = CancelToken()
        cancel.cancel()
        try:
            await client.delete_object(container, "examples/hello.txt", cancel=cancel)
        except OperationCancelledError:
            print("[async] delete was cancelled")

        result = await client.bulk_delete([f"{container}/examples/hello.txt"])
        print(f"[async] bulk delete removed {result.deleted} object(s)")


if __name__ == "__main__":
    sync_example()
    asyncio.run(async_example())
