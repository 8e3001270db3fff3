import asyncio
import httpx
import time
import logging
from typing import Callable, Optional
from starlette.types import Scope, Receive, Send
from starlette.responses import JSONResponse
from api_proxy.core.metrics import REQUEST_COUNT, OUTCOME_COUNT, REQUEST_DURATION, ACTIVE_REQUESTS
from .route_table import RouteTable
from .path_router import PathRouter, InboundRequest, build_target_url, invalid_target
from .header_rewrite import HeaderRewriter, relayable_response_headers
from .outcome import (
    ProxyOutcome,
    RouteNotFound,
    NetworkFailure,
    SetupFailure,
    relayed,
    status_of,
)
from .trace import trace_id_var

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0

# raised before any byte leaves the process
SETUP_ERRORS = (httpx.UnsupportedProtocol, httpx.LocalProtocolError)


class ForwardingProxy:
    def __init__(
        self,
        route_table: RouteTable,
        timeout: float = DEFAULT_TIMEOUT,
        client: Optional[httpx.AsyncClient] = None,
        header_rewriter: Optional[HeaderRewriter] = None,
        path_router: Optional[PathRouter] = None,
    ):
        self.route_table = route_table
        self.timeout = timeout
        self.path_router = path_router or PathRouter()
        self.header_rewriter = header_rewriter or HeaderRewriter()
        self.client = client or httpx.AsyncClient(timeout=timeout)

        self.cleanup_callbacks: list[Callable] = []
        self.add_cleanup_callback(self.client.aclose)

    async def __call__(self, scope: Scope, receive: Receive, send: Send):
        if scope["type"] == "lifespan":
            await self._handle_lifespan(scope, receive, send)
            return

        if scope["type"] != "http":
            await JSONResponse({"error": "Unsupported"}, status_code=400)(scope, receive, send)
            return

        await self._handle_http(scope, receive, send)

    async def _handle_http(self, scope: Scope, receive: Receive, send: Send):
        body = await self._read_body(receive)
        if body is None:
            logger.warning(f"Client disconnected before sending the full body: {scope['path']}")
            return

        inbound = self.path_router.parse(scope, body)
        if inbound is None:
            logger.warning(f"Path outside the API prefix reached the proxy: {scope['path']}")
            await JSONResponse({"error": "Not Found"}, status_code=404)(scope, receive, send)
            return

        logger.info(f"Incoming request: {inbound.method} {scope['path']}{inbound.query_string}")
        outcome = await self.handle(inbound)
        await outcome.to_response()(scope, receive, send)

    async def handle(self, inbound: InboundRequest) -> ProxyOutcome:
        """Resolve, forward and classify a single inbound request."""
        base_url = self.route_table.resolve(inbound.namespace)
        if base_url is None:
            logger.warning(f"API route '{inbound.namespace}' not found in configuration")
            outcome = RouteNotFound(inbound.namespace)
            self._record(inbound, "unmatched", outcome)
            return outcome

        target_url = build_target_url(base_url, inbound.remaining_path, inbound.query_string)
        logger.info(f"Proxying request for '{inbound.namespace}' to: {target_url}")

        headers = self.header_rewriter.rewrite(inbound.headers, trace_id_var.get())

        ACTIVE_REQUESTS.inc()
        start = time.time()
        try:
            outcome = await self.forward(inbound.method, target_url, headers, inbound.body)
        finally:
            ACTIVE_REQUESTS.dec()
            REQUEST_DURATION.labels(namespace=inbound.namespace).observe(time.time() - start)

        if isinstance(outcome, NetworkFailure):
            logger.error(f"No response from upstream '{inbound.namespace}' ({target_url}): {outcome.reason}")
        elif isinstance(outcome, SetupFailure):
            logger.error(f"Could not send request for '{inbound.namespace}' ({target_url}): {outcome.reason}")
        else:
            logger.info(f"Response from upstream '{inbound.namespace}': {target_url} ({outcome.status})")

        self._record(inbound, inbound.namespace, outcome)
        return outcome

    async def forward(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        body: bytes
    ) -> ProxyOutcome:
        """Issue one outbound call. Never raises for transport problems."""
        try:
            request = self.client.build_request(
                method=method,
                url=url,
                headers=headers,
                content=body or None,
                timeout=self.timeout,
            )
        except (httpx.InvalidURL, ValueError, TypeError) as e:
            return SetupFailure(f"{type(e).__name__}: {e}")

        problem = invalid_target(request.url)
        if problem:
            return SetupFailure(f"InvalidURL: {problem}")

        try:
            response = await self.client.send(request, stream=True)
        except SETUP_ERRORS as e:
            return SetupFailure(f"{type(e).__name__}: {e}")
        except httpx.TransportError as e:
            return NetworkFailure(f"{type(e).__name__}: {e}")

        response_headers = relayable_response_headers(response.headers.multi_items())
        try:
            if response.is_stream_consumed:
                # already read by the transport, so the content is decoded
                content = response.content
                response_headers.pop("content-encoding", None)
            else:
                # raw bytes: relay exactly what upstream sent, still encoded
                content = b"".join([chunk async for chunk in response.aiter_raw()])
        except httpx.StreamError as e:
            return SetupFailure(f"{type(e).__name__}: {e}")
        except httpx.TransportError as e:
            return NetworkFailure(f"{type(e).__name__} while reading body: {e}")
        finally:
            await response.aclose()

        return relayed(response.status_code, content, response_headers)

    def _record(self, inbound: InboundRequest, namespace_label: str, outcome: ProxyOutcome) -> None:
        REQUEST_COUNT.labels(method=inbound.method, namespace=namespace_label,
                             status=str(status_of(outcome))).inc()
        OUTCOME_COUNT.labels(outcome=outcome.name).inc()

    async def _read_body(self, receive: Receive) -> Optional[bytes]:
        """Buffer the request body. None if the client went away mid-body."""
        body = b""
        more_body = True
        while more_body:
            message = await receive()
            if message["type"] == "http.disconnect":
                return None
            body += message.get("body", b"")
            more_body = message.get("more_body", False)
        return body

    def add_cleanup_callback(self, cb: Callable) -> None:
        self.cleanup_callbacks.append(cb)

    async def _handle_lifespan(self, scope: Scope, receive: Receive, send: Send):
        while True:
            message = await receive()
            if message["type"] == "lifespan.startup":
                logger.info(f"[proxy] Serving {len(self.route_table)} API routes")
                await send({"type": "lifespan.startup.complete"})
            elif message["type"] == "lifespan.shutdown":
                for cb in self.cleanup_callbacks:
                    result = cb()
                    if asyncio.iscoroutine(result):
                        await result
                logger.info("[proxy] Shutdown complete. All resources closed.")
                await send({"type": "lifespan.shutdown.complete"})
                return
