from abc import ABC, abstractmethod
import re
from safe_userop_relay.exceptions import \
        UserOperationException, UserOperationExceptionCode
from safe_userop_relay.typing import Address

ENTRYPOINT_V07 = Address("0x0000000071727De22E5E9d8BAf0edAc6f37da032")

ENTRYPOINT_VERSION_V7 = "v0.7"
ENTRYPOINT_VERSION_V6 = "v0.6"


class UserOperation(ABC):
    sender: Address
    nonce: int
    call_data: bytes
    signature: bytes

    @abstractmethod
    def get_user_operation_json(self) -> dict[str, Address | str]:
        pass


def detect_entrypoint_version(entrypoint: str) -> str:
    # every address that is not the v0.7 EntryPoint is reported as v0.6
    if entrypoint.lower() == ENTRYPOINT_V07.lower():
        return ENTRYPOINT_VERSION_V7
    return ENTRYPOINT_VERSION_V6


def is_address(value) -> bool:
    address_pattern = "^0x[0-9a-fA-F]{40}$"
    return isinstance(value, str) and re.match(address_pattern, value) is not None


def verify_and_get_uint(field_name: str, value: str | None) -> int:
    if value is None:
        raise UserOperationException(
            UserOperationExceptionCode.InvalidFields,
            f"Invalid uint hex value in field {field_name}",
        )

    if value == "0x":
        return 0
    elif isinstance(value, str) and value[:2] == "0x":
        try:
            return int(value, 16)
        except ValueError:
            raise UserOperationException(
                UserOperationExceptionCode.InvalidFields,
                f"Invalid uint hex value : {value} in field {field_name}",
            )
    else:
        raise UserOperationException(
            UserOperationExceptionCode.InvalidFields,
            f"Invalid uint hex value : {value} in field {field_name}",
        )
