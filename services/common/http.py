from __future__ import annotations

import json
import socket
from http.client import HTTPException
from typing import Any, Dict, Iterable, Optional
from urllib.error import HTTPError, URLError
from urllib.parse import urlencode
from urllib.request import Request, urlopen

from services.common.errors import MalformedResponse, ProviderTimeout, SourceUnavailable
from services.common.local_bind import ensure_allowed_url


def _is_timeout(exc: BaseException) -> bool:
    if isinstance(exc, (socket.timeout, TimeoutError)):
        return True
    reason = getattr(exc, "reason", None)
    return isinstance(reason, (socket.timeout, TimeoutError))


class HttpTransport:
    def __init__(
        self,
        *,
        allowed_hosts: Optional[Iterable[str]] = None,
        timeout_s: float = 12.0,
        user_agent: Optional[str] = None,
    ) -> None:
        self._allowed_hosts = set(allowed_hosts or [])
        self._timeout_s = timeout_s
        self._user_agent = user_agent

    @property
    def timeout_s(self) -> float:
        return self._timeout_s

    def request(
        self,
        *,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
        text_body: Optional[str] = None,
        form_body: Optional[Dict[str, str]] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout_s: Optional[float] = None,
    ) -> Any:
        if params:
            url = f"{url}?{urlencode(params)}"
        ensure_allowed_url(url, allowed_hosts=self._allowed_hosts)
        data = None
        request_headers = {"Accept": "application/json"}
        if self._user_agent:
            request_headers["User-Agent"] = self._user_agent
        request_headers.update(headers or {})
        if json_body is not None:
            data = json.dumps(json_body).encode("utf-8")
            request_headers["Content-Type"] = "application/json"
        elif form_body is not None:
            data = urlencode(form_body).encode("utf-8")
            request_headers["Content-Type"] = "application/x-www-form-urlencoded"
        elif text_body is not None:
            data = text_body.encode("utf-8")
            request_headers.setdefault("Content-Type", "text/plain")
        request = Request(url, data=data, headers=request_headers, method=method)
        timeout = timeout_s if timeout_s is not None else self._timeout_s
        try:
            with urlopen(request, timeout=timeout) as response:  # nosec B310 - host allowlist enforced
                payload = response.read()
        except HTTPError as exc:
            raise SourceUnavailable(
                f"HTTP {exc.code}",
                code="HTTP_ERROR",
                details={"status": exc.code},
            ) from exc
        except (URLError, OSError) as exc:
            if _is_timeout(exc):
                raise ProviderTimeout(
                    "Request timed out",
                    details={"timeout_s": timeout},
                ) from exc
            raise SourceUnavailable("Request failed", details={"reason": str(exc)}) from exc
        except HTTPException as exc:
            raise SourceUnavailable(
                "Malformed HTTP response",
                details={"reason": type(exc).__name__},
            ) from exc
        if not payload:
            return {}
        try:
            return json.loads(payload)
        except ValueError as exc:
            raise MalformedResponse("Response is not valid JSON") from exc
