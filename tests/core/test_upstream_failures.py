import asyncio
import socket
import pytest
import httpx
from httpx import ASGITransport
from api_proxy.core.forwarding_proxy import ForwardingProxy
from api_proxy.core.route_table import RouteTable
from tests.fixtures.mock_backends import streamed_response

BAD_GATEWAY = {"error": "Bad Gateway: No response from upstream server."}


def unused_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.mark.anyio
async def test_silent_upstream_times_out_as_bad_gateway():
    # accepts the connection, reads the request, never answers
    async def silent(reader, writer):
        await reader.read(65536)
        await reader.read(65536)  # returns once the proxy hangs up
        writer.close()

    server = await asyncio.start_server(silent, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]

    proxy = ForwardingProxy(RouteTable.from_mapping({"slow": f"http://127.0.0.1:{port}"}), timeout=0.3)
    try:
        async with httpx.AsyncClient(transport=ASGITransport(app=proxy), base_url="http://test") as client:
            res = await client.get("/api/slow/report")
    finally:
        await proxy.client.aclose()
        server.close()

    assert res.status_code == 502
    assert res.json() == BAD_GATEWAY


@pytest.mark.anyio
async def test_refused_connection_is_bad_gateway():
    port = unused_port()
    proxy = ForwardingProxy(RouteTable.from_mapping({"down": f"http://127.0.0.1:{port}"}), timeout=2.0)

    try:
        async with httpx.AsyncClient(transport=ASGITransport(app=proxy), base_url="http://test") as client:
            res = await client.post("/api/down/jobs", json={"run": True})
    finally:
        await proxy.client.aclose()

    assert res.status_code == 502
    assert res.json() == BAD_GATEWAY


@pytest.mark.anyio
async def test_failed_request_does_not_affect_concurrent_requests():
    def handler(request):
        if request.url.host == "down.test":
            raise httpx.ConnectError("refused", request=request)
        return streamed_response(200, json_body={"ok": True})

    routes = RouteTable.from_mapping({"down": "http://down.test", "up": "http://up.test"})
    proxy = ForwardingProxy(routes, client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))

    async with httpx.AsyncClient(transport=ASGITransport(app=proxy), base_url="http://test") as client:
        results = await asyncio.gather(
            client.get("/api/down"),
            *[client.get(f"/api/up/{i}") for i in range(5)],
        )

    assert results[0].status_code == 502
    assert all(r.status_code == 200 for r in results[1:])
