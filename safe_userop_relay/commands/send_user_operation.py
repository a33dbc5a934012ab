"""
Sponsored UserOperation submission.

The Safe sends an empty call to itself. Factory data is attached only while
the Safe is not deployed, and fees as well as preVerificationGas are zero
since Gelato 1Balance pays for the gas.
"""
import logging
from dataclasses import replace

from safe_userop_relay.bundler.bundler_client import (BundlerClient,
                                                      get_task_status_url)
from safe_userop_relay.cli_manager import InitData
from safe_userop_relay.smart_account.safe_account import SafeSmartAccount
from safe_userop_relay.typing import TaskId
from safe_userop_relay.user_operation.builder import (
    Call, FactoryDataPolicy, build_sponsored_user_operation)


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

    await account.check_chain_id()
    sender = await account.get_address()
    is_deployed = await account.is_deployed()
    logging.info(
        f"Safe address: {sender} - "
        f"{'deployed' if is_deployed else 'not deployed yet'}"
    )

    target = init_data.target or sender
    draft = await account.prepare_user_operation(
        [Call(target, init_data.value, init_data.call_data)],
        bundler,
        is_deployed,
    )
    user_operation = build_sponsored_user_operation(
        draft,
        is_deployed,
        FactoryDataPolicy.deployment_aware,
        zero_pre_verification_gas=True,
    )
    logging.info(
        "Initial UserOperation signature: "
        f"0x{user_operation.signature.hex()[:18]}..."
    )

    logging.info("Signing UserOperation...")
    signed_user_operation = replace(
        user_operation,
        signature=account.sign_user_operation(user_operation),
    )
    logging.info(
        "New signature: "
        f"0x{signed_user_operation.signature.hex()[:18]}... "
        f"({len(signed_user_operation.signature)} bytes)"
    )
    user_operation_hash = signed_user_operation.get_user_operation_hash(
        init_data.entrypoint, init_data.chain_id)
    logging.info(f"UserOperation hash: {user_operation_hash}")

    logging.info("Submitting UserOperation to Gelato...")
    result = await bundler.send_user_operation(
        signed_user_operation, init_data.entrypoint)
    if not result:
        logging.error("Failed to submit UserOperation")
        return 1

    if not isinstance(result.payload, str):
        logging.error(
            f"UserOperation submitted, unexpected Gelato result: {result.payload}")
        return 1

    task_id = TaskId(result.payload)
    logging.info("UserOperation submitted successfully!")
    logging.info(f"Gelato Task ID: {task_id}")
    logging.info(f"Track at: {get_task_status_url(task_id)}")
    return 0
