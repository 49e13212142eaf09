"""iter_coroutine - drive the shared async code paths from the sync client."""

from __future__ import annotations

import typing

_T = typing.TypeVar("_T")


def iter_coroutine(coro: typing.Coroutine[None, None, _T]) -> _T:
    """
    Run a coroutine that never suspends and return its result.

    The sync client runs the same dispatcher, upload and stream coroutines as
    the async client, but over a ``BlockingTransport`` whose ``send`` does not
    await anything. Such coroutines finish on the first ``send(None)``.

    Raises:
        RuntimeError: If the coroutine suspends (e.g. it awaited real async I/O).
    """
    try:
        coro.send(None)
    except StopIteration as ex:
        return ex.value  # type: ignore [no-any-return]
    else:
        raise RuntimeError(f"coroutine {coro!r} did not stop after one iteration!")
    finally:
        coro.close()


__all__ = ["iter_coroutine"]
