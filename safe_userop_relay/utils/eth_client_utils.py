import asyncio
import json
import logging
from typing import Any

from aiohttp import ClientError, ClientSession

from safe_userop_relay.exceptions import EthClientException
from safe_userop_relay.rpc.jsonrpc import build_json_rpc_request
from safe_userop_relay.typing import Address


async def send_rpc_request_to_eth_client(
    ethereum_node_url: str,
    method: str,
    params=None,
) -> Any:
    json_request = build_json_rpc_request(method, params)
    headers = {
        "content-type": "application/json",
        "accept": "application/json",
    }
    try:
        async with ClientSession() as session:
            async with session.post(
                ethereum_node_url,
                json=json_request,
                headers=headers
            ) as response:
                resp = await response.read()
                json_result = json.loads(resp)
    except (ClientError, asyncio.TimeoutError) as excp:
        logging.critical(f"Call to node rpc failed. error: {str(excp)}")
        raise EthClientException(
            f"Call to node rpc failed for {method}: {str(excp)}")
    except ValueError:
        # JSONDecodeError and UnicodeDecodeError
        logging.critical("Invalid json response from eth client")
        raise EthClientException(
            f"Invalid json response from eth client for {method}")

    if not isinstance(json_result, dict):
        raise EthClientException(
            f"Invalid response from eth client for {method}: {json_result}")
    if "error" in json_result:
        error = json_result["error"]
        err_message = error.get("message", "") if isinstance(error, dict) else str(error)
        err_code = error.get("code") if isinstance(error, dict) else None
        logging.error(
            f"Call to node rpc {method} failed with error code: {err_code}"
            f" and error message: {err_message}."
        )
        raise EthClientException(f"{method} failed: {err_message}", err_code)
    if "result" not in json_result:
        raise EthClientException(
            f"Invalid response from eth client for {method}: {json_result}")
    return json_result["result"]


async def get_chain_id(ethereum_node_url: str) -> int:
    chain_id_hex = await send_rpc_request_to_eth_client(
        ethereum_node_url, "eth_chainId", [])
    return int(chain_id_hex, 16)


async def get_code(
    ethereum_node_url: str, address: Address, block: str = "latest"
) -> str:
    return await send_rpc_request_to_eth_client(
        ethereum_node_url, "eth_getCode", [address, block])


async def eth_call(
    ethereum_node_url: str, to: Address, data: str, block: str = "latest"
) -> bytes:
    result = await send_rpc_request_to_eth_client(
        ethereum_node_url,
        "eth_call",
        [{"to": to, "data": data}, block],
    )
    return bytes.fromhex(result[2:])
