import logging

from safe_userop_relay.bundler.bundler_client import BundlerClient
from safe_userop_relay.cli_manager import InitData
from safe_userop_relay.smart_account.safe_account import SafeSmartAccount
from safe_userop_relay.user_operation.v7.user_operation_v7 import \
    UserOperationV7


async def run(init_data: InitData) -> int:
    account = SafeSmartAccount.from_address(
        init_data.rpc_url,
        init_data.safe_address,
        init_data.entrypoint,
        init_data.chain_id,
    )
    bundler = BundlerClient(
        init_data.chain_id,
        init_data.gelato_api_key,
        init_data.bundler_base_url,
    )
    await account.check_chain_id()
    sender = await account.get_address()
    logging.info(f"Safe Address: {sender}")
    logging.info(f"URL: {bundler.masked_url}")

    if not await account.is_deployed():
        logging.warning(
            f"No contract at {sender}, the bundler will reject the estimation")

    nonce = await account.get_nonce()
    logging.info(f"Nonce: {nonce}")

    # empty call, no gas fields
    user_operation = UserOperationV7(
        sender=sender,
        nonce=nonce,
        call_data=b"",
        signature=account.get_stub_signature(),
    )

    gas_estimate = await bundler.estimate_user_operation_gas(
        user_operation, init_data.entrypoint)
    if not gas_estimate:
        logging.error(
            f"Gas Estimation Error: {gas_estimate.error_code} "
            f"{gas_estimate.error_message}"
        )
        return 1

    logging.info("Gas Estimation Success!")
    logging.info(
        f"Call Gas Limit: {gas_estimate.payload.get('callGasLimit')}")
    logging.info(
        "Verification Gas Limit: "
        f"{gas_estimate.payload.get('verificationGasLimit')}"
    )
    logging.info(
        "Pre-verification Gas: "
        f"{gas_estimate.payload.get('preVerificationGas')}"
    )
    return 0
