from dataclasses import dataclass

from eth_abi import encode
from eth_utils import keccak
from safe_userop_relay.exceptions import \
    UserOperationException, UserOperationExceptionCode
from safe_userop_relay.typing import Address, UserOperationHash
from ..user_operation import UserOperation


GAS_FIELDS = (
    "call_gas_limit",
    "verification_gas_limit",
    "pre_verification_gas",
    "max_fee_per_gas",
    "max_priority_fee_per_gas",
)


@dataclass()
class UserOperationV7(UserOperation):
    """
    EIP-4337 UserOperation for EntryPoint v0.7.

    Gas and fee fields are optional: None means the field is left out of the
    request, which a bundler accepts for gas estimation.
    """
    sender: Address
    nonce: int
    call_data: bytes = b""
    factory: Address | None = None
    factory_data: bytes | None = None
    call_gas_limit: int | None = None
    verification_gas_limit: int | None = None
    pre_verification_gas: int | None = None
    max_fee_per_gas: int | None = None
    max_priority_fee_per_gas: int | None = None
    paymaster: Address | None = None
    paymaster_verification_gas_limit: int | None = None
    paymaster_post_op_gas_limit: int | None = None
    paymaster_data: bytes | None = None
    signature: bytes = b""

    def __post_init__(self) -> None:
        if (self.factory is None) != (self.factory_data is None):
            raise UserOperationException(
                UserOperationExceptionCode.InvalidFields,
                'Invalid UserOperation, '
                '"factory" and "factoryData" have to be set together',
            )
        if self.paymaster is None and (
            self.paymaster_verification_gas_limit is not None or
            self.paymaster_post_op_gas_limit is not None or
            self.paymaster_data is not None
        ):
            raise UserOperationException(
                UserOperationExceptionCode.InvalidFields,
                "Invalid UserOperation, "
                '"paymasterVerificationGasLimit", "paymasterPostOpGasLimit" '
                'and "paymasterData" have to be null if "paymaster" is null',
            )

    @property
    def init_code(self) -> bytes:
        if self.factory is None:
            return b""
        return bytes.fromhex(self.factory[2:]) + self.factory_data

    @property
    def paymaster_and_data(self) -> bytes:
        if self.paymaster is None:
            return b""
        return (
            bytes.fromhex(self.paymaster[2:]) +
            (self.paymaster_verification_gas_limit or 0).to_bytes(16, "big") +
            (self.paymaster_post_op_gas_limit or 0).to_bytes(16, "big") +
            (self.paymaster_data or b"")
        )

    def get_user_operation_json(self) -> dict[str, Address | str]:
        user_operation_json: dict[str, Address | str] = {
            "sender": self.sender,
            "nonce": hex(self.nonce),
        }
        if self.factory is not None:
            user_operation_json["factory"] = self.factory
            user_operation_json["factoryData"] = "0x" + self.factory_data.hex()
        user_operation_json["callData"] = "0x" + self.call_data.hex()

        for field_name, json_key in (
            ("call_gas_limit", "callGasLimit"),
            ("verification_gas_limit", "verificationGasLimit"),
            ("pre_verification_gas", "preVerificationGas"),
            ("max_fee_per_gas", "maxFeePerGas"),
            ("max_priority_fee_per_gas", "maxPriorityFeePerGas"),
        ):
            value = getattr(self, field_name)
            if value is not None:
                user_operation_json[json_key] = hex(value)

        if self.paymaster is not None:
            user_operation_json["paymaster"] = self.paymaster
            user_operation_json["paymasterVerificationGasLimit"] = hex(
                self.paymaster_verification_gas_limit or 0)
            user_operation_json["paymasterPostOpGasLimit"] = hex(
                self.paymaster_post_op_gas_limit or 0)
            user_operation_json["paymasterData"] = (
                "0x" + (self.paymaster_data or b"").hex())

        user_operation_json["signature"] = "0x" + self.signature.hex()
        return user_operation_json

    def verify_gas_fields(self) -> None:
        missing = [
            field_name for field_name in GAS_FIELDS
            if getattr(self, field_name) is None
        ]
        if missing:
            raise UserOperationException(
                UserOperationExceptionCode.MissingGasFields,
                f"UserOperation missing {', '.join(missing)}",
            )

    def to_list(self) -> list[Address | int | bytes]:
        self.verify_gas_fields()
        account_gas_limits = (
            self.verification_gas_limit.to_bytes(16, "big") +
            self.call_gas_limit.to_bytes(16, "big")
        )

        gas_fees = (
            self.max_priority_fee_per_gas.to_bytes(16, "big") +
            self.max_fee_per_gas.to_bytes(16, "big")
        )

        return [
            self.sender,
            self.nonce,
            self.init_code,
            self.call_data,
            account_gas_limits,
            self.pre_verification_gas,
            gas_fees,
            self.paymaster_and_data,
            self.signature
        ]

    def get_user_operation_hash(
        self, entrypoint: Address, chain_id: int
    ) -> UserOperationHash:
        packed_user_operation = keccak(
            pack_user_operation(self.to_list())
        )

        encoded_user_operation_hash = encode(
            ["(bytes32,address,uint256)"],
            [[packed_user_operation, entrypoint, chain_id]],
        )
        return UserOperationHash(
            "0x" + keccak(encoded_user_operation_hash).hex())


def pack_user_operation(user_operation_list: list) -> bytes:
    # the signature is never part of the hashed payload
    (
        sender,
        nonce,
        init_code,
        call_data,
        account_gas_limits,
        pre_verification_gas,
        gas_fees,
        paymaster_and_data,
        _signature,
    ) = user_operation_list

    return encode(
        [
            "address",
            "uint256",
            "bytes32",
            "bytes32",
            "bytes32",
            "uint256",
            "bytes32",
            "bytes32",
        ],
        [
            sender,
            nonce,
            keccak(init_code),
            keccak(call_data),
            account_gas_limits,
            pre_verification_gas,
            gas_fees,
            keccak(paymaster_and_data),
        ],
    )
