from dataclasses import dataclass, field
from typing import Union
from starlette.responses import JSONResponse, Response

NOT_FOUND_MESSAGE = "API route '{namespace}' not found in configuration."
BAD_GATEWAY_MESSAGE = "Bad Gateway: No response from upstream server."
PROXY_ERROR_MESSAGE = "Internal Server Error while proxying."

DEFAULT_MEDIA_TYPE = "application/json"


@dataclass(frozen=True)
class RouteNotFound:
    namespace: str
    name = "not_found"

    def to_response(self) -> Response:
        return JSONResponse(
            {"error": NOT_FOUND_MESSAGE.format(namespace=self.namespace)},
            status_code=404,
        )


@dataclass(frozen=True)
class _Relayed:
    status: int
    body: bytes
    headers: dict[str, str] = field(default_factory=dict)

    def to_response(self) -> Response:
        headers = dict(self.headers)
        # upstream content-type is relayed verbatim, starlette would add a charset
        media_type = None if "content-type" in headers else DEFAULT_MEDIA_TYPE
        return Response(
            content=self.body,
            status_code=self.status,
            headers=headers,
            media_type=media_type,
        )


class Success(_Relayed):
    name = "success"


class UpstreamError(_Relayed):
    name = "upstream_error"


@dataclass(frozen=True)
class NetworkFailure:
    reason: str
    name = "network_failure"

    def to_response(self) -> Response:
        return JSONResponse({"error": BAD_GATEWAY_MESSAGE}, status_code=502)


@dataclass(frozen=True)
class SetupFailure:
    reason: str
    name = "setup_failure"

    def to_response(self) -> Response:
        return JSONResponse({"error": PROXY_ERROR_MESSAGE}, status_code=500)


ProxyOutcome = Union[RouteNotFound, Success, UpstreamError, NetworkFailure, SetupFailure]


def relayed(status: int, body: bytes, headers: dict[str, str]) -> Union[Success, UpstreamError]:
    cls = Success if status < 400 else UpstreamError
    return cls(status=status, body=body, headers=headers)


def status_of(outcome: ProxyOutcome) -> int:
    if isinstance(outcome, _Relayed):
        return outcome.status
    if isinstance(outcome, RouteNotFound):
        return 404
    if isinstance(outcome, NetworkFailure):
        return 502
    return 500
