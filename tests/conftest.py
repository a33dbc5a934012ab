import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer
from eth_account import Account
from eth_utils import to_checksum_address

from safe_userop_relay.cli_manager import Command, InitData
from safe_userop_relay.smart_account.safe_account import \
    DEFAULT_SAFE_SINGLETON
from safe_userop_relay.user_operation.user_operation import ENTRYPOINT_V07
from safe_userop_relay.user_operation.v7.user_operation_v7 import \
    UserOperationV7

OWNER_PRIVATE_KEY = (
    "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
)
SENDER = to_checksum_address("0xeed01c4ffa9f88096b77d2f16c2e143a94d71298")
FACTORY = to_checksum_address("0x4e1dcf7ad4e460cfd30791ccc4f9c8a4f820ec67")
GAS_ESTIMATE = {
    "preVerificationGas": "0xb2f4",
    "callGasLimit": "0x4e20",
    "verificationGasLimit": "0x7a120",
}


@pytest.fixture
def owner():
    return Account.from_key(OWNER_PRIVATE_KEY)


@pytest.fixture
def user_operation():
    return UserOperationV7(
        sender=SENDER,
        nonce=5,
        call_data=b"",
        call_gas_limit=0x4e20,
        verification_gas_limit=0x7a120,
        pre_verification_gas=0xb2f4,
        max_fee_per_gas=0,
        max_priority_fee_per_gas=0,
        signature=bytes.fromhex("ff" * 77),
    )


@pytest.fixture
def undeployed_user_operation(user_operation):
    user_operation.factory = FACTORY
    user_operation.factory_data = bytes.fromhex("1688f0b9")
    return user_operation


def _make_init_data(command: Command, **kwargs) -> InitData:
    init_data = dict(
        command=command,
        gelato_api_key="test-api-key",
        private_key=OWNER_PRIVATE_KEY,
        rpc_url="http://127.0.0.1:8545",
        safe_address=None,
        chain_id=137,
        entrypoint=ENTRYPOINT_V07,
        bundler_base_url="http://127.0.0.1:3000",
        salt_nonce=0,
        safe_singleton=DEFAULT_SAFE_SINGLETON,
        target=None,
        call_data=b"",
        value=0,
        verbose=False,
    )
    init_data.update(kwargs)
    return InitData(**init_data)


@pytest.fixture
def make_init_data():
    return _make_init_data


@pytest_asyncio.fixture
async def bundler_server():
    """
    Local JSON-RPC server standing in for the Gelato bundler. Tests fill
    `responses` (method -> JSON body or aiohttp response) and read `requests`.
    """
    requests = []
    responses = {}

    async def handle_rpc(request: web.Request) -> web.StreamResponse:
        body = await request.json()
        requests.append({
            "chain_id": request.match_info["chain_id"],
            "query": dict(request.query),
            "body": body,
        })
        response = responses[body["method"]]
        if isinstance(response, web.StreamResponse):
            return response
        return web.json_response(response)

    app = web.Application()
    app.router.add_post("/bundlers/{chain_id}/rpc", handle_rpc)
    server = TestServer(app)
    await server.start_server()
    yield f"http://{server.host}:{server.port}", requests, responses
    await server.close()
