import logging
from dataclasses import dataclass, replace
from enum import Enum

from safe_userop_relay.exceptions import \
    UserOperationException, UserOperationExceptionCode
from safe_userop_relay.typing import Address

from .user_operation import verify_and_get_uint
from .v7.user_operation_v7 import UserOperationV7


@dataclass(frozen=True)
class Call:
    to: Address
    value: int = 0
    data: bytes = b""


class FactoryDataPolicy(Enum):
    # factory fields follow the on-chain deployment status of the sender
    deployment_aware = "deployment-aware"
    # factory fields are sent whenever the draft carries them
    always_if_present = "always-if-present"

    def __str__(self):
        return self.value


def build_sponsored_user_operation(
    draft: UserOperationV7,
    is_deployed: bool | None,
    policy: FactoryDataPolicy = FactoryDataPolicy.deployment_aware,
    zero_pre_verification_gas: bool = False,
) -> UserOperationV7:
    """
    Copy of `draft` ready for a gas-sponsored relay: fees zeroed, no on-chain
    paymaster, and factory fields resolved according to `policy`.
    """
    factory, factory_data = _resolve_factory_fields(draft, is_deployed, policy)

    sponsored_user_operation = replace(
        draft,
        factory=factory,
        factory_data=factory_data,
        max_fee_per_gas=0,
        max_priority_fee_per_gas=0,
        paymaster=None,
        paymaster_verification_gas_limit=None,
        paymaster_post_op_gas_limit=None,
        paymaster_data=None,
    )
    if zero_pre_verification_gas:
        sponsored_user_operation.pre_verification_gas = 0
    return sponsored_user_operation


def apply_gas_estimate(
    user_operation: UserOperationV7, gas_estimate: dict
) -> UserOperationV7:
    if not isinstance(gas_estimate, dict):
        raise UserOperationException(
            UserOperationExceptionCode.InvalidFields,
            f"Invalid gas estimation result: {gas_estimate}",
        )
    return replace(
        user_operation,
        call_gas_limit=verify_and_get_uint(
            "callGasLimit", gas_estimate.get("callGasLimit")),
        verification_gas_limit=verify_and_get_uint(
            "verificationGasLimit", gas_estimate.get("verificationGasLimit")),
        pre_verification_gas=verify_and_get_uint(
            "preVerificationGas", gas_estimate.get("preVerificationGas")),
    )


def _resolve_factory_fields(
    draft: UserOperationV7,
    is_deployed: bool | None,
    policy: FactoryDataPolicy,
) -> tuple[Address | None, bytes | None]:
    if policy == FactoryDataPolicy.always_if_present:
        if draft.factory is not None and draft.factory != "0x":
            return draft.factory, draft.factory_data or b""
        return None, None

    if is_deployed is None:
        raise UserOperationException(
            UserOperationExceptionCode.InvalidFields,
            "deployment status is required by the deployment-aware policy",
        )
    if is_deployed:
        if draft.factory is not None:
            logging.debug(
                f"Account {draft.sender} is deployed, dropping factory data")
        return None, None
    if draft.factory is None or not draft.factory_data:
        raise UserOperationException(
            UserOperationExceptionCode.MissingFactoryData,
            f"Account {draft.sender} is not deployed: "
            "cannot deploy without factory data",
        )
    return draft.factory, draft.factory_data
