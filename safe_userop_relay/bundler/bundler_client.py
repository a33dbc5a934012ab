"""
Gelato hosted bundler client.

Sponsorship is paid through the API key (1Balance), so UserOperations are
sent with zero fees and without an on-chain paymaster.
"""
import asyncio
import json
import logging
from typing import Any

from aiohttp import ClientError, ClientSession

from safe_userop_relay.rpc.jsonrpc import (Error, Success,
                                           build_json_rpc_request,
                                           parse_json_rpc_response,
                                           transport_error)
from safe_userop_relay.typing import Address, TaskId
from safe_userop_relay.user_operation.formatter import format_user_operation
from safe_userop_relay.user_operation.user_operation import UserOperation

GELATO_BUNDLER_BASE_URL = "https://api.gelato.digital"
GELATO_TASK_STATUS_URL = "https://api.gelato.digital/tasks/status/"


def get_bundler_url(base_url: str, chain_id: int, api_key: str) -> str:
    return (
        f"{base_url.rstrip('/')}/bundlers/{chain_id}/rpc"
        f"?sponsorApiKey={api_key}"
    )


def get_task_status_url(task_id: TaskId) -> str:
    return GELATO_TASK_STATUS_URL + task_id


def mask_api_key(text: str, api_key: str) -> str:
    if not api_key:
        return text
    return text.replace(api_key, "***")


class BundlerClient:
    chain_id: int
    bundler_url: str

    def __init__(
        self,
        chain_id: int,
        api_key: str,
        base_url: str = GELATO_BUNDLER_BASE_URL,
    ):
        self.chain_id = chain_id
        self._api_key = api_key
        self.bundler_url = get_bundler_url(base_url, chain_id, api_key)

    @property
    def masked_url(self) -> str:
        return mask_api_key(self.bundler_url, self._api_key)

    async def send_rpc_request(
        self, method: str, params: list[Any]
    ) -> Success | Error:
        json_request = build_json_rpc_request(method, params)
        headers = {
            "accept": "application/json",
            "content-type": "application/json",
        }
        try:
            async with ClientSession() as session:
                async with session.post(
                    self.bundler_url,
                    json=json_request,
                    headers=headers
                ) as response:
                    logging.debug(
                        f"{method} response status: {response.status}")
                    resp = await response.read()
                    json_result = json.loads(resp)
        except (ClientError, asyncio.TimeoutError) as excp:
            logging.error(
                f"Call to bundler {self.masked_url} failed for {method}. "
                f"error: {str(excp)}"
            )
            return transport_error(str(excp))
        except ValueError as excp:
            # JSONDecodeError and UnicodeDecodeError
            logging.error(
                f"Invalid json response from bundler for {method}: {str(excp)}")
            return transport_error(f"Invalid json response: {str(excp)}")

        return parse_json_rpc_response(json_result)

    async def estimate_user_operation_gas(
        self,
        user_operation: UserOperation,
        entrypoint: Address,
    ) -> Success | Error:
        user_operation_json = format_user_operation(user_operation, entrypoint)
        logging.info(
            "Sending gas estimation request: " +
            json.dumps(user_operation_json, indent=2)
        )
        result = await self.send_rpc_request(
            "eth_estimateUserOperationGas",
            [user_operation_json, entrypoint],
        )
        logging.info("Received gas data from Gelato.")
        if result:
            logging.debug(f"Gas estimation successful: {result.payload}")
        else:
            _log_failure(result)
        return result

    async def send_user_operation(
        self,
        user_operation: UserOperation,
        entrypoint: Address,
    ) -> Success | Error:
        user_operation_json = format_user_operation(user_operation, entrypoint)
        logging.info(
            "Sending UserOperation submission request: " +
            json.dumps(user_operation_json, indent=2)
        )
        result = await self.send_rpc_request(
            "eth_sendUserOperation",
            [user_operation_json, entrypoint],
        )
        logging.info("Received response from Gelato.")
        if result:
            logging.info(
                f"UserOperation submission successful: {result.payload}")
        else:
            _log_failure(result)
        return result

    async def get_chain_id(self) -> Success | Error:
        result = await self.send_rpc_request("eth_chainId", [])
        if not result:
            _log_failure(result)
        return result


def _log_failure(error: Error) -> None:
    if error.is_transport_error:
        logging.error(f"No response from Gelato: {error.error_message}")
    else:
        logging.error(
            f"Error from Gelato: code {error.error_code} - "
            f"{error.error_message}"
        )
