"""Credentials for metered distance providers.

An API key is sent as a query parameter. An OAuth client-credentials token is
fetched on demand and kept in a :class:`TokenCache` until it is within the
safety margin of its expiry. Concurrent requests may both see an expired
entry and both fetch; the last store wins, which is harmless for bearer
tokens. A provider that sees its credential rejected calls ``reset`` so the
next request fetches a fresh token.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional, Protocol

from services.common.clock import Clock
from services.common.errors import MalformedResponse, MissingCredential
from services.common.http import HttpTransport


class Credential(Protocol):
    @property
    def configured(self) -> bool: ...

    def query_params(self) -> Dict[str, str]: ...

    def headers(self) -> Dict[str, str]: ...

    def reset(self) -> None: ...


class ApiKeyCredential:
    def __init__(self, api_key: Optional[str], *, param_name: str = "key") -> None:
        self._api_key = (api_key or "").strip() or None
        self._param_name = param_name

    @property
    def configured(self) -> bool:
        return self._api_key is not None

    def query_params(self) -> Dict[str, str]:
        if self._api_key is None:
            raise MissingCredential("API key not set")
        return {self._param_name: self._api_key}

    def headers(self) -> Dict[str, str]:
        return {}

    def reset(self) -> None:
        pass


@dataclass(frozen=True)
class IssuedToken:
    value: str
    expires_in_s: float


@dataclass(frozen=True)
class CachedToken:
    value: str
    expires_at: datetime


class TokenCache:
    def __init__(self, *, clock: Optional[Clock] = None, safety_margin_s: float = 60.0) -> None:
        self._clock = clock or Clock()
        self._safety_margin = timedelta(seconds=safety_margin_s)
        self._entries: Dict[str, CachedToken] = {}

    def get(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock.now() + self._safety_margin >= entry.expires_at:
            return None
        return entry.value

    def store(self, key: str, token: IssuedToken) -> CachedToken:
        entry = CachedToken(
            value=token.value,
            expires_at=self._clock.now() + timedelta(seconds=token.expires_in_s),
        )
        self._entries[key] = entry
        return entry

    def get_or_fetch(self, key: str, fetcher: Callable[[], IssuedToken]) -> str:
        cached = self.get(key)
        if cached is not None:
            return cached
        return self.store(key, fetcher()).value

    def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)


DEFAULT_TOKEN_CACHE = TokenCache()


class ClientCredentialsTokenFetcher:
    def __init__(
        self,
        *,
        token_url: str,
        client_id: str,
        client_secret: str,
        transport: HttpTransport,
        scope: Optional[str] = None,
    ) -> None:
        self._token_url = token_url
        self._client_id = client_id
        self._client_secret = client_secret
        self._transport = transport
        self._scope = scope

    def __call__(self) -> IssuedToken:
        form = {
            "grant_type": "client_credentials",
            "client_id": self._client_id,
            "client_secret": self._client_secret,
        }
        if self._scope:
            form["scope"] = self._scope
        response = self._transport.request(method="POST", url=self._token_url, form_body=form)
        if not isinstance(response, dict) or not response.get("access_token"):
            raise MalformedResponse("Token response missing access_token")
        try:
            expires_in = float(response.get("expires_in", 3600))
        except (TypeError, ValueError) as exc:
            raise MalformedResponse("Token response has invalid expires_in") from exc
        return IssuedToken(value=str(response["access_token"]), expires_in_s=expires_in)


class OAuthTokenCredential:
    def __init__(
        self,
        *,
        fetcher: Optional[Callable[[], IssuedToken]],
        cache: Optional[TokenCache] = None,
        cache_key: str = "distance-provider",
    ) -> None:
        self._fetcher = fetcher
        self._cache = cache or DEFAULT_TOKEN_CACHE
        self._cache_key = cache_key

    @property
    def configured(self) -> bool:
        return self._fetcher is not None

    def query_params(self) -> Dict[str, str]:
        return {}

    def headers(self) -> Dict[str, str]:
        if self._fetcher is None:
            raise MissingCredential("OAuth client credentials not set")
        token = self._cache.get_or_fetch(self._cache_key, self._fetcher)
        return {"Authorization": f"Bearer {token}"}

    def reset(self) -> None:
        self._cache.invalidate(self._cache_key)
