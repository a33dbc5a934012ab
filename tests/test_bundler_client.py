import pytest
from aiohttp import web

from safe_userop_relay.bundler.bundler_client import (BundlerClient,
                                                      get_bundler_url,
                                                      get_task_status_url,
                                                      mask_api_key)
from safe_userop_relay.rpc.jsonrpc import TRANSPORT_ERROR
from safe_userop_relay.user_operation.user_operation import ENTRYPOINT_V07

from .conftest import GAS_ESTIMATE


def test_bundler_url():
    assert get_bundler_url("https://api.gelato.digital", 137, "key") == (
        "https://api.gelato.digital/bundlers/137/rpc?sponsorApiKey=key"
    )
    assert get_bundler_url("https://api.gelato.digital/", 1, "key") == (
        "https://api.gelato.digital/bundlers/1/rpc?sponsorApiKey=key"
    )


def test_task_status_url():
    assert get_task_status_url("0xabc") == (
        "https://api.gelato.digital/tasks/status/0xabc"
    )


def test_api_key_is_masked():
    client = BundlerClient(137, "secret-key")

    assert "secret-key" in client.bundler_url
    assert "secret-key" not in client.masked_url
    assert mask_api_key("no key here", "") == "no key here"


@pytest.mark.asyncio
async def test_gas_estimate_returned_unmodified(
    bundler_server, user_operation
):
    base_url, requests, responses = bundler_server
    responses["eth_estimateUserOperationGas"] = {
        "jsonrpc": "2.0", "id": 1, "result": GAS_ESTIMATE,
    }
    client = BundlerClient(137, "test-api-key", base_url)

    result = await client.estimate_user_operation_gas(
        user_operation, ENTRYPOINT_V07)

    assert result
    assert result.payload == GAS_ESTIMATE
    assert len(requests) == 1
    request = requests[0]
    assert request["chain_id"] == "137"
    assert request["query"] == {"sponsorApiKey": "test-api-key"}
    assert request["body"]["jsonrpc"] == "2.0"
    assert request["body"]["method"] == "eth_estimateUserOperationGas"
    assert request["body"]["params"] == [
        user_operation.get_user_operation_json(), ENTRYPOINT_V07,
    ]


@pytest.mark.asyncio
async def test_send_returns_task_id(bundler_server, user_operation):
    base_url, requests, responses = bundler_server
    responses["eth_sendUserOperation"] = {
        "jsonrpc": "2.0", "id": 1, "result": "0x" + "ab" * 32,
    }
    client = BundlerClient(137, "test-api-key", base_url)

    result = await client.send_user_operation(user_operation, ENTRYPOINT_V07)

    assert result
    assert result.payload == "0x" + "ab" * 32
    assert requests[0]["body"]["method"] == "eth_sendUserOperation"


@pytest.mark.asyncio
async def test_error_response_is_falsy(bundler_server, user_operation):
    base_url, _, responses = bundler_server
    responses["eth_sendUserOperation"] = {
        "jsonrpc": "2.0",
        "id": 1,
        "error": {"code": -32500, "message": "AA21 didn't pay prefund"},
    }
    client = BundlerClient(137, "test-api-key", base_url)

    result = await client.send_user_operation(user_operation, ENTRYPOINT_V07)

    assert not result
    assert result.error_code == -32500
    assert result.error_message == "AA21 didn't pay prefund"
    assert not result.is_transport_error


@pytest.mark.asyncio
async def test_invalid_json_is_transport_error(bundler_server, user_operation):
    base_url, _, responses = bundler_server
    responses["eth_estimateUserOperationGas"] = web.Response(
        text="<html>bad gateway</html>", content_type="text/html")
    client = BundlerClient(137, "test-api-key", base_url)

    result = await client.estimate_user_operation_gas(
        user_operation, ENTRYPOINT_V07)

    assert not result
    assert result.is_transport_error
    assert result.error_code == TRANSPORT_ERROR


@pytest.mark.asyncio
async def test_undecodable_body_is_transport_error(
    bundler_server, user_operation
):
    base_url, _, responses = bundler_server
    responses["eth_sendUserOperation"] = web.Response(
        body=b"\xff\xfe\xfa garbage", content_type="application/json")
    client = BundlerClient(137, "test-api-key", base_url)

    result = await client.send_user_operation(user_operation, ENTRYPOINT_V07)

    assert not result
    assert result.is_transport_error


@pytest.mark.asyncio
async def test_unreachable_bundler_is_falsy(user_operation):
    client = BundlerClient(137, "test-api-key", "http://127.0.0.1:1")

    result = await client.estimate_user_operation_gas(
        user_operation, ENTRYPOINT_V07)

    assert not result
    assert result.is_transport_error


@pytest.mark.asyncio
async def test_get_chain_id(bundler_server):
    base_url, requests, responses = bundler_server
    responses["eth_chainId"] = {"jsonrpc": "2.0", "id": 1, "result": "0x89"}
    client = BundlerClient(137, "test-api-key", base_url)

    result = await client.get_chain_id()

    assert result.payload == "0x89"
    assert requests[0]["body"]["params"] == []
