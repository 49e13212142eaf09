"""Token authorities consumed by the dispatcher.

The dispatcher only needs ``get_token(endpoint)`` and ``invalidate(token)``.
Token acquisition and caching live here so they can be swapped for a shared
cache (several processes reusing one token) without touching dispatch logic.
"""

from __future__ import annotations

import threading
import time
from typing import Protocol
from urllib.parse import urlsplit

import httpx

from .._http import BaseTransport
from .errors import AuthenticationError
from .types import Credentials
from .utils import debug, parse_int

DEFAULT_AUTH_PATH = "/auth/v1.0"
DEFAULT_TOKEN_TTL = 3600.0


class TokenAuthority(Protocol):
    async def get_token(self, endpoint: str) -> str:
        ...

    async def invalidate(self, token: str) -> None:
        ...


class TokenCache(Protocol):
    async def get(self, key: str) -> str | None:
        ...

    async def set(self, key: str, value: str, ttl: float | None = None) -> None:
        ...

    async def delete(self, key: str) -> None:
        ...


class InMemoryTokenCache(TokenCache):
    """Process-local token cache.

    Methods never suspend so the sync client can drive them with
    ``iter_coroutine``; a thread lock guards the dict for the threaded
    segment uploader.
    """

    def __init__(self) -> None:
        self._entries: dict[str, tuple[str, float | None]] = {}
        self._lock = threading.Lock()

    async def get(self, key: str) -> str | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at is not None and expires_at <= time.monotonic():
                del self._entries[key]
                return None
            return value

    async def set(self, key: str, value: str, ttl: float | None = None) -> None:
        expires_at = time.monotonic() + ttl if ttl is not None else None
        with self._lock:
            self._entries[key] = (value, expires_at)

    async def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries


class StaticTokenAuthority(TokenAuthority):
    """Hands out one pre-issued token for every endpoint."""

    def __init__(self, token: str) -> None:
        if not token:
            raise AuthenticationError("token is required")
        self._token = token

    async def get_token(self, endpoint: str) -> str:
        return self._token

    async def invalidate(self, token: str) -> None:
        debug("static token rejected; it cannot be refreshed")


class SwiftV1TokenAuthority(TokenAuthority):
    """Swift v1 (tempauth / swauth) token exchange with a pluggable cache.

    ``GET {scheme}://{host}/auth/v1.0`` with ``X-Auth-User``/``X-Auth-Key``
    returns the token in ``X-Auth-Token``. Tokens are cached per
    user and auth URL for ``X-Auth-Token-Expires`` seconds when the cluster
    reports it.
    """

    def __init__(
        self,
        credentials: Credentials,
        transport: BaseTransport,
        *,
        cache: TokenCache | None = None,
        auth_path: str = DEFAULT_AUTH_PATH,
        default_ttl: float | None = DEFAULT_TOKEN_TTL,
        timeout: float | None = None,
    ) -> None:
        self._credentials = credentials
        self._transport = transport
        self._cache = cache if cache is not None else InMemoryTokenCache()
        self._auth_path = "/" + auth_path.lstrip("/")
        self._default_ttl = default_ttl
        self._timeout = timeout
        self._keys_by_token: dict[str, set[str]] = {}
        self._token_by_key: dict[str, str] = {}
        self._lock = threading.Lock()

    def auth_url(self, endpoint: str) -> str:
        parts = urlsplit(endpoint)
        return f"{parts.scheme}://{parts.netloc}{self._auth_path}"

    def _cache_key(self, endpoint: str) -> str:
        return f"swift-token:{self._credentials.username}@{self.auth_url(endpoint)}"

    def _remember(self, token: str, key: str) -> None:
        with self._lock:
            previous = self._token_by_key.get(key)
            if previous is not None and previous != token:
                # The key's old token expired or was replaced.
                stale = self._keys_by_token.get(previous)
                if stale is not None:
                    stale.discard(key)
                    if not stale:
                        del self._keys_by_token[previous]
            self._token_by_key[key] = token
            self._keys_by_token.setdefault(token, set()).add(key)

    async def get_token(self, endpoint: str) -> str:
        key = self._cache_key(endpoint)
        cached = await self._cache.get(key)
        if cached:
            self._remember(cached, key)
            return cached

        token, ttl = await self._authenticate(endpoint)
        await self._cache.set(key, token, ttl=ttl)
        self._remember(token, key)
        return token

    async def invalidate(self, token: str) -> None:
        with self._lock:
            keys = self._keys_by_token.pop(token, set())
            for key in keys:
                if self._token_by_key.get(key) == token:
                    del self._token_by_key[key]
        for key in keys:
            # Another caller may already have replaced the entry with a fresh token.
            if await self._cache.get(key) == token:
                await self._cache.delete(key)

    async def _authenticate(self, endpoint: str) -> tuple[str, float | None]:
        url = self.auth_url(endpoint)
        resp = await self._transport.send(
            "GET",
            url,
            headers={
                "x-auth-user": self._credentials.username,
                "x-auth-key": self._credentials.password,
            },
            timeout=self._timeout,
        )
        if resp.status_code in (401, 403):
            raise AuthenticationError(
                f"credentials for {self._credentials.username!r} were rejected by {url}",
                endpoint=endpoint,
            )
        if not 200 <= resp.status_code < 300:
            raise httpx.HTTPStatusError(
                f"auth endpoint {url} answered HTTP {resp.status_code}",
                request=resp.request,
                response=resp,
            )

        token = resp.headers.get("x-auth-token") or resp.headers.get("x-storage-token")
        if not token:
            raise AuthenticationError(f"auth endpoint {url} did not return a token", endpoint=endpoint)

        expires = parse_int(resp.headers.get("x-auth-token-expires"))
        ttl = float(expires) if expires is not None and expires > 0 else self._default_ttl
        debug(f"obtained token from {url}", f"ttl={ttl}")
        return token, ttl


__all__ = [
    "TokenAuthority",
    "TokenCache",
    "InMemoryTokenCache",
    "StaticTokenAuthority",
    "SwiftV1TokenAuthority",
    "DEFAULT_AUTH_PATH",
]

