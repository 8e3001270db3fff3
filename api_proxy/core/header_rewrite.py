from typing import Iterable, Mapping, Optional

# RFC 9110 hop-by-hop headers, never relayed in either direction
HOP_BY_HOP = {
    "connection", "keep-alive", "proxy-authenticate", "proxy-authorization",
    "te", "trailer", "trailers", "transfer-encoding", "upgrade",
}

# recomputed by the transport for the outbound request
_NEVER_FORWARD = HOP_BY_HOP | {"host", "content-length"}

# set by the serving process on every response
_NEVER_RELAY = HOP_BY_HOP | {"content-length", "date", "server"}


class HeaderRewriter:
    """Decides which client headers reach the upstream.

    `forward` lists the client headers to pass through (None means all of
    them). `remove`, `set_` and `append` are applied afterwards, so `set_`
    can inject fixed upstream headers such as an API key.
    """

    def __init__(
        self,
        forward: Optional[Iterable[str]] = ("content-type",),
        remove: Optional[list[str]] = None,
        set_: Optional[Mapping[str, str]] = None,
        append: Optional[Mapping[str, str]] = None
    ) -> None:
        self.forward = None if forward is None else {h.lower() for h in forward}
        self.remove = set(h.lower() for h in (remove or []))
        self.set = {k.lower(): v for k, v in (set_ or {}).items()}
        self.append = {k.lower(): v for k, v in (append or {}).items()}

    def rewrite(self, headers: list[tuple[bytes, bytes]], trace_id: Optional[str] = None) -> dict[str, str]:
        hdict: dict[str, str] = {}
        for k, v in headers:
            name = k.decode("latin-1").lower()
            if name in _NEVER_FORWARD:
                continue
            if self.forward is not None and name not in self.forward:
                continue
            hdict[name] = v.decode("latin-1")

        for h in self.remove:
            hdict.pop(h, None)
        for k, v in self.set.items():
            hdict[k] = v
        for k, v in self.append.items():
            hdict.setdefault(k, v)

        if trace_id:
            hdict["x-trace-id"] = trace_id

        return hdict


def relayable_response_headers(headers: Iterable[tuple[str, str]]) -> dict[str, str]:
    """Upstream response headers safe to copy onto the relayed response."""
    return {
        k.lower(): v for k, v in headers
        if k.lower() not in _NEVER_RELAY
    }
