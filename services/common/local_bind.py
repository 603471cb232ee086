from typing import Iterable, Optional, Set
from urllib.parse import urlparse

from services.common.errors import OutboundUrlError


LOCAL_HOSTS = {"127.0.0.1", "localhost", "::1"}


class LocalBindError(ValueError):
    pass


def ensure_local_bind(host: str) -> None:
    if host not in LOCAL_HOSTS:
        raise LocalBindError(
            f"Local-only binding required; received host={host!r}"
        )


def hosts_from_urls(urls: Iterable[Optional[str]]) -> Set[str]:
    hosts: Set[str] = set()
    for url in urls:
        if not url:
            continue
        parsed = urlparse(url)
        if parsed.hostname:
            hosts.add(parsed.hostname)
    return hosts


def ensure_allowed_url(url: str, *, allowed_hosts: Optional[Iterable[str]] = None) -> None:
    parsed = urlparse(url)
    host = parsed.hostname
    if not host or parsed.scheme not in {"http", "https"}:
        raise OutboundUrlError(f"Outbound URL is not http(s); received url={url!r}")
    if host in LOCAL_HOSTS:
        return
    if host in set(allowed_hosts or []):
        return
    raise OutboundUrlError(
        f"Outbound host is not configured; received host={host!r}",
        details={"host": host},
    )
