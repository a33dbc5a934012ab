"""
Safe smart account (Safe v1.4.1 with the Safe4337Module v0.3.0) for
EntryPoint v0.7.

The account address is the CREATE2 address of a SafeProxy deployed through
SafeProxyFactory.createProxyWithNonce(singleton, initializer, saltNonce),
where the initializer sets up a single owner and enables the 4337 module
(through SafeModuleSetup, delegatecalled from MultiSend). The 4337 module is
also the fallback handler, which is what lets the EntryPoint call
validateUserOp on the Safe.

References:
- https://github.com/safe-global/safe-smart-account
- https://github.com/safe-global/safe-modules
"""
import logging
from dataclasses import dataclass

from eth_abi import decode, encode
from eth_abi.packed import encode_packed
from eth_account import Account
from eth_account.messages import encode_typed_data
from eth_account.signers.local import LocalAccount
from eth_utils import (function_signature_to_4byte_selector, keccak,
                       to_checksum_address)

from safe_userop_relay.bundler.bundler_client import BundlerClient
from safe_userop_relay.exceptions import \
    EthClientException, UserOperationException, UserOperationExceptionCode
from safe_userop_relay.typing import Address
from safe_userop_relay.user_operation.builder import Call, apply_gas_estimate
from safe_userop_relay.user_operation.v7.user_operation_v7 import \
    UserOperationV7
from safe_userop_relay.utils.eth_client_utils import \
    eth_call, get_chain_id, get_code

ZERO_ADDRESS = Address("0x0000000000000000000000000000000000000000")

# same address on every chain (deterministic deployment)
SAFE_4337_ADDRESSES = {
    "safe_module_setup": to_checksum_address(
        "0x2dd68b007B46fBe91B9A7c3EDa5A7a1063cB5b47"),
    "safe_4337_module": to_checksum_address(
        "0x75cf11467937ce3F2f357CE24ffc3DBF8fD5c226"),
    "safe_proxy_factory": to_checksum_address(
        "0x4e1DCf7AD4e460CfD30791CCC4F9c8a4f820ec67"),
    "safe_l2_singleton": to_checksum_address(
        "0x29fcB43b46531BcA003ddC8FCB67FFE91900C762"),
    "safe_singleton": to_checksum_address(
        "0x41675C099F32341bf84BFc5382aF534df5C7461a"),
    "multi_send": to_checksum_address(
        "0x38869bf66a61cF6bDB996A6aE40D5853Fd43B526"),
}

SAFE_VERSION = "1.4.1"

# counterfactual addresses of the permissionless and Safe{Core} SDKs use SafeL2
DEFAULT_SAFE_SINGLETON = SAFE_4337_ADDRESSES["safe_l2_singleton"]

# ECDSA placeholder accepted by the 4337 module during gas estimation
DUMMY_ECDSA_SIGNATURE = bytes.fromhex(
    "fffffffffffffffffffffffffffffff0"
    "00000000000000000000000000000000"
    "7aaaaaaaaaaaaaaaaaaaaaaaaaaaaaaa"
    "aaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaa1c"
)

CALL_OPERATION = 0
DELEGATECALL_OPERATION = 1

SAFE_OP_TYPES = [
    {"name": "safe", "type": "address"},
    {"name": "nonce", "type": "uint256"},
    {"name": "initCode", "type": "bytes"},
    {"name": "callData", "type": "bytes"},
    {"name": "verificationGasLimit", "type": "uint128"},
    {"name": "callGasLimit", "type": "uint128"},
    {"name": "preVerificationGas", "type": "uint256"},
    {"name": "maxPriorityFeePerGas", "type": "uint128"},
    {"name": "maxFeePerGas", "type": "uint128"},
    {"name": "paymasterAndData", "type": "bytes"},
    {"name": "validAfter", "type": "uint48"},
    {"name": "validUntil", "type": "uint48"},
    {"name": "entryPoint", "type": "address"},
]


def selector(function_signature: str) -> bytes:
    return function_signature_to_4byte_selector(function_signature)


@dataclass(frozen=True)
class MultiSendTransaction:
    to: Address
    value: int
    data: bytes
    operation: int = CALL_OPERATION


def encode_multi_send(transactions: list[MultiSendTransaction]) -> bytes:
    packed_transactions = b"".join(
        encode_packed(
            ["uint8", "address", "uint256", "uint256", "bytes"],
            [
                transaction.operation,
                to_checksum_address(transaction.to),
                transaction.value,
                len(transaction.data),
                transaction.data,
            ],
        )
        for transaction in transactions
    )
    return selector("multiSend(bytes)") + encode(
        ["bytes"], [packed_transactions])


def get_create2_address(
    deployer: Address, salt: bytes, init_code_hash: bytes
) -> Address:
    address_hash = keccak(
        b"\xff" + bytes.fromhex(deployer[2:]) + salt + init_code_hash
    )
    return Address(to_checksum_address(address_hash[12:]))


def extract_signature(signed) -> bytes:
    """Raw 65 bytes ECDSA signature from whatever the signer returned."""
    if isinstance(signed, (bytes, bytearray)):
        signature = bytes(signed)
    elif isinstance(signed, str) and signed[:2] == "0x":
        signature = bytes.fromhex(signed[2:])
    elif getattr(signed, "signature", None) is not None:
        signature = bytes(signed.signature)
    else:
        raise UserOperationException(
            UserOperationExceptionCode.SignatureExtraction,
            f"Failed to get signature from signing result {signed!r}",
        )
    if len(signature) != 65:
        raise UserOperationException(
            UserOperationExceptionCode.SignatureExtraction,
            f"Invalid signature length {len(signature)}, expected 65 bytes",
        )
    return signature


class SafeSmartAccount:
    ethereum_node_url: str
    entrypoint: Address
    chain_id: int
    salt_nonce: int
    singleton: Address
    owner: LocalAccount | None

    def __init__(
        self,
        ethereum_node_url: str,
        entrypoint: Address,
        chain_id: int,
        owner: LocalAccount | None = None,
        salt_nonce: int = 0,
        address: Address | None = None,
        singleton: Address = DEFAULT_SAFE_SINGLETON,
    ):
        if owner is None and address is None:
            raise ValueError("either an owner or a Safe address is required")
        self.ethereum_node_url = ethereum_node_url
        self.entrypoint = entrypoint
        self.chain_id = chain_id
        self.owner = owner
        self.salt_nonce = salt_nonce
        self.singleton = Address(to_checksum_address(singleton))
        self._address = (
            None if address is None else Address(to_checksum_address(address))
        )

    @classmethod
    def from_private_key(
        cls,
        ethereum_node_url: str,
        private_key: str,
        entrypoint: Address,
        chain_id: int,
        salt_nonce: int = 0,
        singleton: Address = DEFAULT_SAFE_SINGLETON,
    ) -> "SafeSmartAccount":
        return cls(
            ethereum_node_url,
            entrypoint,
            chain_id,
            owner=Account.from_key(private_key),
            salt_nonce=salt_nonce,
            singleton=singleton,
        )

    @classmethod
    def from_address(
        cls,
        ethereum_node_url: str,
        address: Address,
        entrypoint: Address,
        chain_id: int,
    ) -> "SafeSmartAccount":
        return cls(ethereum_node_url, entrypoint, chain_id, address=address)

    def _require_owner(self) -> LocalAccount:
        if self.owner is None:
            raise UserOperationException(
                UserOperationExceptionCode.InvalidFields,
                "an owner key is required for this operation",
            )
        return self.owner

    async def check_chain_id(self) -> None:
        node_chain_id = await get_chain_id(self.ethereum_node_url)
        if node_chain_id != self.chain_id:
            raise EthClientException(
                f"Node serves chain {node_chain_id}, expected {self.chain_id}")

    def get_initializer(self) -> bytes:
        owner = self._require_owner()
        module = SAFE_4337_ADDRESSES["safe_4337_module"]
        enable_modules_call_data = selector(
            "enableModules(address[])") + encode(["address[]"], [[module]])
        setup_transactions = encode_multi_send([
            MultiSendTransaction(
                to=SAFE_4337_ADDRESSES["safe_module_setup"],
                value=0,
                data=enable_modules_call_data,
                operation=DELEGATECALL_OPERATION,
            )
        ])

        return selector(
            "setup(address[],uint256,address,bytes,address,address,uint256,address)"
        ) + encode(
            [
                "address[]",  # owners
                "uint256",  # threshold
                "address",  # to
                "bytes",  # data
                "address",  # fallbackHandler
                "address",  # paymentToken
                "uint256",  # payment
                "address",  # paymentReceiver
            ],
            [
                [owner.address],
                1,
                SAFE_4337_ADDRESSES["multi_send"],
                setup_transactions,
                module,
                ZERO_ADDRESS,
                0,
                ZERO_ADDRESS,
            ],
        )

    def get_factory_args(self) -> tuple[Address, bytes]:
        factory_data = selector(
            "createProxyWithNonce(address,bytes,uint256)"
        ) + encode(
            ["address", "bytes", "uint256"],
            [
                self.singleton,
                self.get_initializer(),
                self.salt_nonce,
            ],
        )
        return SAFE_4337_ADDRESSES["safe_proxy_factory"], factory_data

    def get_salt(self) -> bytes:
        return keccak(
            keccak(self.get_initializer()) +
            encode(["uint256"], [self.salt_nonce])
        )

    async def get_proxy_creation_code(self) -> bytes:
        raw_result = await eth_call(
            self.ethereum_node_url,
            SAFE_4337_ADDRESSES["safe_proxy_factory"],
            "0x" + selector("proxyCreationCode()").hex(),
        )
        return decode(["bytes"], raw_result)[0]

    async def get_address(self) -> Address:
        if self._address is None:
            proxy_creation_code = await self.get_proxy_creation_code()
            deployment_code = proxy_creation_code + encode(
                ["uint256"], [int(self.singleton, 16)]
            )
            self._address = get_create2_address(
                SAFE_4337_ADDRESSES["safe_proxy_factory"],
                self.get_salt(),
                keccak(deployment_code),
            )
            logging.debug(f"Safe {SAFE_VERSION} address: {self._address}")
        return self._address

    async def is_deployed(self) -> bool:
        code = await get_code(self.ethereum_node_url, await self.get_address())
        return code not in (None, "", "0x")

    async def get_nonce(self, key: int = 0) -> int:
        raw_result = await eth_call(
            self.ethereum_node_url,
            self.entrypoint,
            "0x" + (
                selector("getNonce(address,uint192)") +
                encode(["address", "uint192"], [await self.get_address(), key])
            ).hex(),
        )
        return decode(["uint256"], raw_result)[0]

    def encode_calls(self, calls: list[Call]) -> bytes:
        if len(calls) == 0:
            raise UserOperationException(
                UserOperationExceptionCode.InvalidFields,
                "at least one call is required",
            )
        if len(calls) == 1:
            to, value, data, operation = (
                calls[0].to, calls[0].value, calls[0].data, CALL_OPERATION)
        else:
            to = SAFE_4337_ADDRESSES["multi_send"]
            value = 0
            data = encode_multi_send([
                MultiSendTransaction(call.to, call.value, call.data)
                for call in calls
            ])
            operation = DELEGATECALL_OPERATION

        return selector(
            "executeUserOpWithErrorString(address,uint256,bytes,uint8)"
        ) + encode(
            ["address", "uint256", "bytes", "uint8"],
            [to_checksum_address(to), value, data, operation],
        )

    def get_stub_signature(self) -> bytes:
        return encode_packed(
            ["uint48", "uint48", "bytes"], [0, 0, DUMMY_ECDSA_SIGNATURE])

    def get_safe_operation_typed_data(
        self,
        user_operation: UserOperationV7,
        valid_after: int = 0,
        valid_until: int = 0,
    ) -> dict:
        user_operation.verify_gas_fields()
        return {
            "types": {
                "EIP712Domain": [
                    {"name": "chainId", "type": "uint256"},
                    {"name": "verifyingContract", "type": "address"},
                ],
                "SafeOp": SAFE_OP_TYPES,
            },
            "primaryType": "SafeOp",
            "domain": {
                "chainId": self.chain_id,
                "verifyingContract": SAFE_4337_ADDRESSES["safe_4337_module"],
            },
            "message": {
                "safe": to_checksum_address(user_operation.sender),
                "nonce": user_operation.nonce,
                "initCode": user_operation.init_code,
                "callData": user_operation.call_data,
                "verificationGasLimit": user_operation.verification_gas_limit,
                "callGasLimit": user_operation.call_gas_limit,
                "preVerificationGas": user_operation.pre_verification_gas,
                "maxPriorityFeePerGas": user_operation.max_priority_fee_per_gas,
                "maxFeePerGas": user_operation.max_fee_per_gas,
                "paymasterAndData": user_operation.paymaster_and_data,
                "validAfter": valid_after,
                "validUntil": valid_until,
                "entryPoint": to_checksum_address(self.entrypoint),
            },
        }

    def sign_user_operation(
        self,
        user_operation: UserOperationV7,
        valid_after: int = 0,
        valid_until: int = 0,
    ) -> bytes:
        """
        Safe4337Module signature: validAfter (uint48) ++ validUntil (uint48)
        ++ owner ECDSA signature over the EIP-712 SafeOp.
        """
        owner = self._require_owner()
        signable_message = encode_typed_data(
            full_message=self.get_safe_operation_typed_data(
                user_operation, valid_after, valid_until)
        )
        signed = owner.sign_message(signable_message)
        return encode_packed(
            ["uint48", "uint48", "bytes"],
            [valid_after, valid_until, extract_signature(signed)],
        )

    async def prepare_user_operation(
        self,
        calls: list[Call],
        bundler: BundlerClient,
        is_deployed: bool | None = None,
        estimate_gas: bool = True,
    ) -> UserOperationV7:
        """
        Draft UserOperation: nonce, call data, placeholder signature, zero
        fees, factory fields when the account is not deployed yet and, unless
        `estimate_gas` is False, gas limits estimated by the bundler.

        The deployment status is read from the chain when not given.
        """
        sender = await self.get_address()
        if is_deployed is None:
            is_deployed = await self.is_deployed()
        nonce = await self.get_nonce()
        if is_deployed:
            factory, factory_data = None, None
        else:
            factory, factory_data = self.get_factory_args()

        draft = UserOperationV7(
            sender=sender,
            nonce=nonce,
            call_data=self.encode_calls(calls),
            factory=factory,
            factory_data=factory_data,
            max_fee_per_gas=0,
            max_priority_fee_per_gas=0,
            signature=self.get_stub_signature(),
        )
        if not estimate_gas:
            return draft

        gas_estimate = await bundler.estimate_user_operation_gas(
            draft, self.entrypoint)
        if not gas_estimate:
            raise UserOperationException(
                UserOperationExceptionCode.MissingGasFields,
                "Failed to estimate gas while preparing the UserOperation: "
                f"{gas_estimate.error_message}",
            )
        return apply_gas_estimate(draft, gas_estimate.payload)
