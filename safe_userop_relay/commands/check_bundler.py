import logging

from safe_userop_relay.bundler.bundler_client import BundlerClient
from safe_userop_relay.cli_manager import InitData
from safe_userop_relay.user_operation.user_operation import \
    verify_and_get_uint


async def run(init_data: InitData) -> int:
    bundler = BundlerClient(
        init_data.chain_id,
        init_data.gelato_api_key,
        init_data.bundler_base_url,
    )
    logging.info(f"URL: {bundler.masked_url}")
    logging.info("Calling eth_chainId...")

    result = await bundler.get_chain_id()
    if not result:
        return 1

    chain_id = verify_and_get_uint("chainId", result.payload)
    logging.info(f"Chain ID (hex): {result.payload}")
    logging.info(f"Chain ID (decimal): {chain_id}")
    if chain_id != init_data.chain_id:
        logging.warning(
            f"Bundler serves chain {chain_id}, expected {init_data.chain_id}")
        return 1
    return 0
