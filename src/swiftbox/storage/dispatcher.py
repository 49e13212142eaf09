"""Resilient request dispatch across redundant storage endpoints.

One ``dispatch`` call runs one logical operation through a small state
machine::

    Attempting -> Success | AuthRetry | EndpointRetry | RotateEndpoint | Exhausted

* 2xx responses are returned (Success).
* Auth rejections invalidate the token and retry on the same endpoint. They
  consume the global budget but not the endpoint's (AuthRetry).
* Network errors and retryable statuses are reported to the retry sink and
  count against the endpoint. Once an endpoint has used its share the
  dispatcher moves to the next one (EndpointRetry / RotateEndpoint).
* Every other status is a semantic answer and is returned as-is.
* When ``total_attempts`` sends have been made the call fails (Exhausted).

Attempts within one call are strictly sequential. Calls share nothing but the
immutable credentials and policy, so any number may run concurrently.
"""

from __future__ import annotations

import inspect
import time
from collections.abc import Awaitable, Callable
from typing import Any, NoReturn, cast

import anyio
import httpx

from .._http import BaseTransport, BytesBody
from .auth import TokenAuthority
from .cancel import CancelToken, check_cancelled
from .errors import (
    AuthenticationError,
    OperationCancelledError,
    RetryExhaustedError,
    TransientNetworkError,
)
from .sinks import NullRetryLogger, RetryLogger
from .types import Credentials, DispatchState, Operation, RetryPolicy
from .utils import debug, encode_header_value, join_url, make_request_id

SleepFn = Callable[[float], Awaitable[None] | None]

AUTH_HEADER = "x-auth-token"


def _sync_sleep(seconds: float) -> None:
    time.sleep(seconds)


async def _sleep(sleep_fn: SleepFn, seconds: float) -> None:
    if seconds <= 0:
        return
    result = sleep_fn(seconds)
    if inspect.isawaitable(result):
        await cast(Awaitable[None], result)


class Dispatcher:
    def __init__(
        self,
        *,
        transport: BaseTransport,
        credentials: Credentials,
        token_authority: TokenAuthority,
        policy: RetryPolicy | None = None,
        logger: RetryLogger | None = None,
        sleep_fn: SleepFn = anyio.sleep,
    ) -> None:
        self._transport = transport
        self._credentials = credentials
        self._token_authority = token_authority
        self._policy = policy or RetryPolicy()
        self._logger: RetryLogger = logger or NullRetryLogger()
        self._sleep_fn = sleep_fn

    @property
    def transport(self) -> BaseTransport:
        return self._transport

    @property
    def credentials(self) -> Credentials:
        return self._credentials

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    @property
    def endpoints(self) -> tuple[str, ...]:
        return self._credentials.endpoints

    def _report(self, endpoint: str, attempt: int, cause: BaseException) -> None:
        try:
            self._logger.on_retry(endpoint, attempt, cause)
        except Exception as exc:  # a broken sink must not alter dispatch
            debug("retry logger raised", repr(exc))

    def _build_headers(
        self, operation: Operation, token: str, request_id: str, attempt: int
    ) -> dict[str, str | bytes]:
        # Header names are case-insensitive on the wire; values outside ASCII go out as UTF-8.
        headers = {
            key.lower(): encode_header_value(value) if isinstance(value, str) else value
            for key, value in operation.headers.items()
        }
        headers[AUTH_HEADER] = token
        headers["x-trans-id-extra"] = f"{request_id}-{attempt}"
        return headers

    async def dispatch(self, operation: Operation, *, cancel: CancelToken | None = None) -> httpx.Response:
        """Run ``operation`` against the endpoint set until it succeeds or the budget is spent.

        Returns the response for 2xx and for semantic (non-retryable) statuses.

        Raises:
            OperationCancelledError: ``cancel`` fired before or during an attempt.
            AuthenticationError: the last attempt was still rejected as unauthorized,
                or the token authority rejected the credentials.
            RetryExhaustedError: every attempt failed transiently.
        """
        budget = self._policy.budget
        endpoints = self.endpoints
        state = DispatchState()
        request_id = make_request_id()
        body: BytesBody | None = None
        if operation.body is not None:
            content_type = next(
                (value for key, value in operation.headers.items() if key.lower() == "content-type"),
                "application/octet-stream",
            )
            body = BytesBody(operation.body, content_type)

        while True:
            check_cancelled(cancel)
            state.attempts += 1
            if state.attempts > budget.total_attempts:
                self._exhausted(state)

            endpoint = endpoints[state.endpoint_index]
            state.token = None
            try:
                state.token = await self._token_authority.get_token(endpoint)
                resp = await self._transport.send(
                    operation.method,
                    join_url(endpoint, operation.path),
                    params=operation.params,
                    body=body,
                    headers=self._build_headers(operation, state.token, request_id, state.attempts),
                    timeout=operation.timeout,
                    cancel=cancel,
                )
            except (OperationCancelledError, AuthenticationError):
                raise
            except httpx.HTTPError as exc:
                failure = TransientNetworkError(endpoint, state.attempts, cause=exc)
                await self._transient_failure(state, endpoint, failure, cancel)
                continue

            outcome = self._policy.classify(resp.status_code)
            state.last_outcome = outcome
            if outcome == "success" or outcome == "semantic":
                return resp

            if outcome == "auth":
                debug(f"token rejected by {endpoint}, refreshing", f"attempt={state.attempts}")
                await self._token_authority.invalidate(state.token)
                continue

            failure = TransientNetworkError(endpoint, state.attempts, status_code=resp.status_code)
            await self._transient_failure(state, endpoint, failure, cancel)

    async def _transient_failure(
        self,
        state: DispatchState,
        endpoint: str,
        failure: TransientNetworkError,
        cancel: CancelToken | None,
    ) -> None:
        state.last_outcome = "retry"
        state.failures[endpoint] = failure
        self._report(endpoint, state.attempts, failure)

        state.endpoint_attempts += 1
        if state.endpoint_attempts >= self._policy.budget.per_endpoint_attempts:
            state.endpoint_index = (state.endpoint_index + 1) % len(self.endpoints)
            state.endpoint_attempts = 0
            state.rotations += 1
            debug(f"rotating away from {endpoint}", f"next={self.endpoints[state.endpoint_index]}")
            # A single endpoint "rotates" onto itself; back off as for a plain retry.
            if len(self.endpoints) > 1:
                return

        if state.attempts < self._policy.budget.total_attempts:
            await _sleep(self._sleep_fn, self._policy.backoff(state.attempts))
            check_cancelled(cancel)

    def _exhausted(self, state: DispatchState) -> NoReturn:
        attempts = state.attempts - 1
        if state.last_outcome == "auth":
            raise AuthenticationError(
                f"token still rejected after {attempts} attempt(s)",
                endpoint=self.endpoints[state.endpoint_index],
            )
        raise RetryExhaustedError(attempts, state.failures)


def create_sync_dispatcher(**kwargs: Any) -> Dispatcher:
    """Dispatcher whose coroutines never suspend (blocking transport, blocking sleep)."""
    kwargs.setdefault("sleep_fn", _sync_sleep)
    return Dispatcher(**kwargs)


__all__ = [
    "AUTH_HEADER",
    "Dispatcher",
    "SleepFn",
    "create_sync_dispatcher",
]
