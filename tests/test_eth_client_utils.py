import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from safe_userop_relay.exceptions import EthClientException
from safe_userop_relay.utils.eth_client_utils import (
    eth_call, get_chain_id, get_code, send_rpc_request_to_eth_client)


@pytest_asyncio.fixture
async def node():
    requests = []
    responses = {}

    async def handle_rpc(request: web.Request) -> web.StreamResponse:
        body = await request.json()
        requests.append(body)
        response = responses[body["method"]]
        if isinstance(response, web.StreamResponse):
            return response
        return web.json_response(response)

    app = web.Application()
    app.router.add_post("/", handle_rpc)
    server = TestServer(app)
    await server.start_server()
    yield f"http://{server.host}:{server.port}/", requests, responses
    await server.close()


@pytest.mark.asyncio
async def test_get_chain_id(node):
    url, requests, responses = node
    responses["eth_chainId"] = {"jsonrpc": "2.0", "id": 1, "result": "0x89"}

    assert await get_chain_id(url) == 137
    assert requests[0]["method"] == "eth_chainId"


@pytest.mark.asyncio
async def test_get_code(node):
    url, requests, responses = node
    responses["eth_getCode"] = {"jsonrpc": "2.0", "id": 1, "result": "0x"}

    assert await get_code(url, "0x" + "44" * 20) == "0x"
    assert requests[0]["params"] == ["0x" + "44" * 20, "latest"]


@pytest.mark.asyncio
async def test_eth_call_returns_bytes(node):
    url, requests, responses = node
    responses["eth_call"] = {"jsonrpc": "2.0", "id": 1, "result": "0x0102"}

    assert await eth_call(url, "0x" + "44" * 20, "0xabcd") == b"\x01\x02"
    assert requests[0]["params"] == [
        {"to": "0x" + "44" * 20, "data": "0xabcd"}, "latest",
    ]


@pytest.mark.asyncio
async def test_node_error_raises(node):
    url, _, responses = node
    responses["eth_call"] = {
        "jsonrpc": "2.0",
        "id": 1,
        "error": {"code": 3, "message": "execution reverted"},
    }

    with pytest.raises(EthClientException) as excinfo:
        await eth_call(url, "0x" + "44" * 20, "0xabcd")

    assert excinfo.value.error_code == 3


@pytest.mark.asyncio
async def test_invalid_json_raises(node):
    url, _, responses = node
    responses["eth_chainId"] = web.Response(text="oops")

    with pytest.raises(EthClientException):
        await send_rpc_request_to_eth_client(url, "eth_chainId", [])


@pytest.mark.asyncio
async def test_undecodable_body_raises(node):
    url, _, responses = node
    responses["eth_getCode"] = web.Response(
        body=b"\xff\xfe\xfa garbage", content_type="application/json")

    with pytest.raises(EthClientException):
        await get_code(url, "0x" + "44" * 20)


@pytest.mark.asyncio
async def test_unreachable_node_raises():
    with pytest.raises(EthClientException):
        await get_chain_id("http://127.0.0.1:1")
