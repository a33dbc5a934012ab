from safe_userop_relay.exceptions import \
    UserOperationException, UserOperationExceptionCode
from safe_userop_relay.typing import Address

from .user_operation import (ENTRYPOINT_VERSION_V7, UserOperation,
                             detect_entrypoint_version)
from .v7.user_operation_v7 import UserOperationV7


def format_user_operation(
    user_operation: UserOperation, entrypoint: Address
) -> dict[str, Address | str]:
    """Wire JSON of a UserOperation for the version of `entrypoint`."""
    version = detect_entrypoint_version(entrypoint)
    if version == ENTRYPOINT_VERSION_V7:
        if not isinstance(user_operation, UserOperationV7):
            raise UserOperationException(
                UserOperationExceptionCode.InvalidFields,
                f"EntryPoint {entrypoint} expects a v0.7 UserOperation",
            )
        return user_operation.get_user_operation_json()

    raise UserOperationException(
        UserOperationExceptionCode.UnsupportedEntryPointVersion,
        f"Unsupported EntryPoint {entrypoint} (detected {version}), "
        "only v0.7 requests can be formatted",
    )
