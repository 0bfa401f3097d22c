import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer, unused_port

from service_tracker.config import HTTPClientConfig
from service_tracker.errors import TransportError
from service_tracker.transport import HttpTransport, LocationClients


async def _handle_vms(request: web.Request) -> web.Response:
    return web.json_response([{"uuid": "i-1", "predicate": request.query.get("predicate")}])


async def _handle_created(request: web.Request) -> web.Response:
    return web.json_response({"uuid": "i-2"}, status=201)


async def _handle_broken(request: web.Request) -> web.Response:
    return web.Response(status=500, text="internal error")


async def _handle_garbage(request: web.Request) -> web.Response:
    return web.Response(status=200, text="{not json", content_type="application/json")


def _app() -> web.Application:
    app = web.Application()
    app.router.add_get("/vms", _handle_vms)
    app.router.add_get("/created", _handle_created)
    app.router.add_get("/broken", _handle_broken)
    app.router.add_get("/garbage", _handle_garbage)
    return app


@pytest.mark.asyncio
async def test_get_json_decodes_body_and_passes_params() -> None:
    server = TestServer(_app())
    await server.start_server()
    transport = HttpTransport()
    try:
        client = transport.client(str(server.make_url("/")))
        body = await client.get_json("/vms", {"predicate": '{"eq":["uuid","i-1"]}'})
    finally:
        await transport.close()
        await server.close()

    assert body == [{"uuid": "i-1", "predicate": '{"eq":["uuid","i-1"]}'}]


@pytest.mark.asyncio
async def test_non_200_status_raises_transport_error() -> None:
    server = TestServer(_app())
    await server.start_server()
    transport = HttpTransport()
    try:
        client = transport.client(str(server.make_url("/")))
        with pytest.raises(TransportError) as exc_info:
            await client.get_json("/broken")
    finally:
        await transport.close()
        await server.close()

    assert exc_info.value.status == 500
    assert "internal error" in str(exc_info.value)


@pytest.mark.asyncio
async def test_invalid_json_raises_transport_error() -> None:
    server = TestServer(_app())
    await server.start_server()
    transport = HttpTransport()
    try:
        client = transport.client(str(server.make_url("/")))
        with pytest.raises(TransportError, match="invalid JSON"):
            await client.get_json("/garbage")
    finally:
        await transport.close()
        await server.close()


@pytest.mark.asyncio
async def test_connection_refused_raises_transport_error() -> None:
    transport = HttpTransport(HTTPClientConfig(request_timeout=2.0, connect_timeout=1.0))
    client = transport.client(f"http://127.0.0.1:{unused_port()}")
    try:
        with pytest.raises(TransportError) as exc_info:
            await client.get_json("/vms")
    finally:
        await transport.close()

    assert exc_info.value.status is None
    assert exc_info.value.url.endswith("/vms")


@pytest.mark.asyncio
async def test_session_is_shared_and_recreated_after_close() -> None:
    transport = HttpTransport()

    first = await transport.get_session()
    assert await transport.get_session() is first

    await transport.close()
    second = await transport.get_session()
    assert second is not first
    await transport.close()


def test_location_clients_are_created_lazily_once() -> None:
    transport = HttpTransport()
    clients = LocationClients(transport, lambda location: f"http://vmapi.{location}.example.com/")

    assert len(clients) == 0
    east = clients.get("us-east-1")

    assert clients.get("us-east-1") is east
    assert east.base_url == "http://vmapi.us-east-1.example.com"
    assert "us-east-1" in clients
    assert "us-west-1" not in clients
    assert len(clients) == 1


@pytest.mark.asyncio
async def test_any_2xx_status_is_accepted() -> None:
    server = TestServer(_app())
    await server.start_server()
    transport = HttpTransport()
    try:
        client = transport.client(str(server.make_url("/")))
        body = await client.get_json("/created")
    finally:
        await transport.close()
        await server.close()

    assert body == {"uuid": "i-2"}
