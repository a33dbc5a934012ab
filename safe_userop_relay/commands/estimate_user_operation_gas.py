import logging

from safe_userop_relay.bundler.bundler_client import BundlerClient
from safe_userop_relay.cli_manager import InitData
from safe_userop_relay.smart_account.safe_account import SafeSmartAccount
from safe_userop_relay.user_operation.builder import (
    Call, FactoryDataPolicy, build_sponsored_user_operation)
from safe_userop_relay.user_operation.user_operation import \
    detect_entrypoint_version


async def run(init_data: InitData) -> int:
    account = SafeSmartAccount.from_private_key(
        init_data.rpc_url,
        init_data.private_key,
        init_data.entrypoint,
        init_data.chain_id,
        init_data.salt_nonce,
        init_data.safe_singleton,
    )
    bundler = BundlerClient(
        init_data.chain_id,
        init_data.gelato_api_key,
        init_data.bundler_base_url,
    )
    logging.info(
        "Detected EntryPoint version: "
        f"{detect_entrypoint_version(init_data.entrypoint)}"
    )

    await account.check_chain_id()
    sender = await account.get_address()
    target = init_data.target or sender
    draft = await account.prepare_user_operation(
        [Call(target, init_data.value, init_data.call_data)],
        bundler,
    )
    # no deployment check: factory data goes out whenever the draft has it
    user_operation = build_sponsored_user_operation(
        draft,
        None,
        FactoryDataPolicy.always_if_present,
    )

    gas_estimate = await bundler.estimate_user_operation_gas(
        user_operation, init_data.entrypoint)
    if not gas_estimate:
        logging.error("Failed to get gas estimation from Gelato")
        return 1

    logging.info(f"Gas estimation received: {gas_estimate.payload}")
    return 0
