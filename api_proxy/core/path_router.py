import re
import httpx
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import quote, unquote
from starlette.types import Scope


@dataclass(frozen=True)
class InboundRequest:
    method: str
    namespace: str
    remaining_path: str
    query_string: str
    body: bytes = b""
    headers: list[tuple[bytes, bytes]] = field(default_factory=list)


class PathRouter:
    """Splits `/api/{namespace}{remaining}` paths.

    The namespace is percent-decoded for lookup. The remaining path is kept
    exactly as it arrived on the wire so it can be appended to the upstream
    base URL without re-encoding.
    """

    def __init__(self, prefix: str = "/api/"):
        if not prefix.endswith("/"):
            prefix += "/"
        self.prefix = prefix

    def matches(self, path: str) -> bool:
        return path.startswith(self.prefix)

    def split(self, raw_path: str) -> Optional[tuple[str, str]]:
        if not self.matches(raw_path):
            return None
        rest = raw_path[len(self.prefix):]
        namespace, sep, tail = rest.partition("/")
        return unquote(namespace), sep + tail

    def parse(self, scope: Scope, body: bytes = b"") -> Optional[InboundRequest]:
        split = self.split(raw_path_of(scope))
        if split is None:
            return None
        namespace, remaining = split
        query = scope.get("query_string", b"").decode("latin-1")
        return InboundRequest(
            method=scope["method"],
            namespace=namespace,
            remaining_path=remaining,
            query_string=f"?{query}" if query else "",
            body=body,
            headers=list(scope.get("headers", [])),
        )


def raw_path_of(scope: Scope) -> str:
    raw = scope.get("raw_path")
    if raw:
        # some servers include the query in raw_path
        return raw.decode("latin-1").split("?", 1)[0]
    return quote(scope["path"], safe="/%:@!$&'()*+,;=~")


def build_target_url(base_url: str, remaining_path: str, query_string: str) -> str:
    # literal concatenation: a base with a trailing slash plus "/x" yields "//x"
    return f"{base_url}{remaining_path}{query_string}"


_HOSTNAME = re.compile(rb"[A-Za-z0-9\-._~]+")
_IPV6 = re.compile(rb"[0-9A-Fa-f:.]+")


def invalid_target(url: httpx.URL) -> Optional[str]:
    """Describe why a parsed target URL cannot be requested, or None.

    httpx percent-encodes stray characters in the host and does not range
    check the port, so both would otherwise only fail at connect time.
    """
    if url.scheme in ("http", "https"):
        host = url.raw_host
        pattern = _IPV6 if b":" in host else _HOSTNAME
        if not host or not pattern.fullmatch(host):
            return f"invalid host {host.decode('ascii', 'replace')!r}"
    if url.port is not None and not 0 <= url.port <= 65535:
        return f"port out of range: {url.port}"
    return None
