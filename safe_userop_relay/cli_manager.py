import os
from enum import Enum
import logging
import re
import sys
from argparse import ArgumentParser, Namespace, ArgumentTypeError
from dataclasses import dataclass
from importlib.metadata import PackageNotFoundError, version

from dotenv import load_dotenv

from .bundler.bundler_client import GELATO_BUNDLER_BASE_URL
from .smart_account.safe_account import DEFAULT_SAFE_SINGLETON
from .typing import Address
from .user_operation.user_operation import ENTRYPOINT_V07, is_address

try:
    __version__ = version("safe_userop_relay")
except PackageNotFoundError:
    __version__ = "0.0.0"

POLYGON_CHAIN_ID = 137
SEPOLIA_CHAIN_ID = 11155111

# increment() on the counter contract the estimate script targets
INCREMENT_SELECTOR = "0xd09de08a"


class Command(Enum):
    send = "send"
    estimate = "estimate"
    estimate_existing = "estimate-existing"
    check_bundler = "check-bundler"

    def __str__(self):
        return self.value


DEFAULT_CHAIN_IDS = {
    Command.send: POLYGON_CHAIN_ID,
    Command.estimate: POLYGON_CHAIN_ID,
    Command.estimate_existing: SEPOLIA_CHAIN_ID,
    Command.check_bundler: SEPOLIA_CHAIN_ID,
}

# settings each command refuses to start without, as (InitData field, env var)
REQUIRED_SETTINGS = {
    Command.send: [
        ("gelato_api_key", "GELATO_API_KEY"),
        ("private_key", "PRIVATE_KEY"),
        ("rpc_url", "RPC_URL"),
    ],
    Command.estimate: [
        ("gelato_api_key", "GELATO_API_KEY"),
        ("private_key", "PRIVATE_KEY"),
        ("rpc_url", "RPC_URL"),
    ],
    Command.estimate_existing: [
        ("gelato_api_key", "GELATO_API_KEY"),
        ("safe_address", "SAFE_ADDRESS"),
        ("rpc_url", "RPC_URL"),
    ],
    Command.check_bundler: [
        ("gelato_api_key", "GELATO_API_KEY"),
    ],
}


@dataclass()
class InitData:
    command: Command
    gelato_api_key: str
    private_key: str | None
    rpc_url: str | None
    safe_address: Address | None
    chain_id: int
    entrypoint: Address
    bundler_base_url: str
    salt_nonce: int
    safe_singleton: Address
    target: Address | None
    call_data: bytes
    value: int
    verbose: bool


def address(ep: str):
    if not is_address(ep):
        raise ArgumentTypeError(f"Wrong address format : {ep}")
    return ep


def unsigned_int(value):
    ivalue = int(value)
    if ivalue < 0:
        raise ArgumentTypeError(
                "%s is an invalid unsigned int value" % value)
    return ivalue


def private_key(value: str):
    private_key_pattern = "^(0x)?[0-9a-fA-F]{64}$"
    if not isinstance(value, str) or re.match(private_key_pattern, value) is None:
        raise ArgumentTypeError("Wrong private key format")
    if value[:2] != "0x":
        value = "0x" + value
    return value


def hex_bytes(value: str):
    hex_pattern = "^0x([0-9a-fA-F]{2})*$"
    if not isinstance(value, str) or re.match(hex_pattern, value) is None:
        raise ArgumentTypeError(f"Wrong hex bytes format : {value}")
    return bytes.fromhex(value[2:])


def _get_env_or_default(env_var, default, value_type):
    """
    Helper function to get the value from an environment variable or return the default value.
    An empty variable counts as unset.
    """
    value = os.getenv(env_var, None)
    if value is not None and value != "":
        return value_type(value)
    return default


def initialize_argument_parser() -> ArgumentParser:
    parser = ArgumentParser(
        prog="safe-userop-relay",
        description=(
            "Build, sign and relay ERC-4337 UserOperations for a Safe "
            "smart account through the Gelato bundler"
        ),
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}")

    parser.add_argument(
        "command",
        type=Command,
        choices=list(Command),
        help="script to run",
    )

    parser.add_argument(
        "--gelato_api_key",
        type=str,
        help="Gelato sponsor api key",
        nargs="?",
        default=_get_env_or_default("GELATO_API_KEY", None, str),
    )

    parser.add_argument(
        "--private_key",
        type=private_key,
        help="Safe owner private key",
        nargs="?",
        default=_get_env_or_default("PRIVATE_KEY", None, str),
    )

    parser.add_argument(
        "--rpc_url",
        type=str,
        help="Ethereum node http url used to read the chain",
        nargs="?",
        default=_get_env_or_default("RPC_URL", None, str),
    )

    parser.add_argument(
        "--safe_address",
        type=address,
        help="address of an already deployed Safe (estimate-existing)",
        nargs="?",
        default=_get_env_or_default("SAFE_ADDRESS", None, str),
    )

    parser.add_argument(
        "--chain_id",
        type=unsigned_int,
        help=(
            "chain id - defaults to 137 for send/estimate "
            "and 11155111 for estimate-existing/check-bundler"
        ),
        nargs="?",
        default=_get_env_or_default("CHAIN_ID", None, str),
    )

    parser.add_argument(
        "--entrypoint",
        type=address,
        help=f"EntryPoint address - defaults to {ENTRYPOINT_V07}",
        nargs="?",
        const=ENTRYPOINT_V07,
        default=_get_env_or_default("ENTRYPOINT", ENTRYPOINT_V07, str),
    )

    parser.add_argument(
        "--bundler_url",
        type=str,
        help=f"bundler base url - defaults to {GELATO_BUNDLER_BASE_URL}",
        nargs="?",
        const=GELATO_BUNDLER_BASE_URL,
        default=_get_env_or_default(
            "GELATO_BUNDLER_URL", GELATO_BUNDLER_BASE_URL, str),
    )

    parser.add_argument(
        "--salt_nonce",
        type=unsigned_int,
        help="Safe CREATE2 salt nonce - defaults to 0",
        nargs="?",
        const=0,
        default=_get_env_or_default("SALT_NONCE", 0, str),
    )

    parser.add_argument(
        "--safe_singleton",
        type=address,
        help=(
            "Safe 1.4.1 singleton - defaults to SafeL2 "
            f"{DEFAULT_SAFE_SINGLETON}"
        ),
        nargs="?",
        const=DEFAULT_SAFE_SINGLETON,
        default=_get_env_or_default(
            "SAFE_SINGLETON", DEFAULT_SAFE_SINGLETON, str),
    )

    parser.add_argument(
        "--target",
        type=address,
        help="call target - defaults to the Safe itself",
        nargs="?",
        default=None,
    )

    parser.add_argument(
        "--call_data",
        type=hex_bytes,
        help=(
            "call data - defaults to 0x for send and "
            f"{INCREMENT_SELECTOR} (increment()) for estimate"
        ),
        nargs="?",
        default=None,
    )

    parser.add_argument(
        "--value",
        type=unsigned_int,
        help="call value in wei - defaults to 0",
        nargs="?",
        const=0,
        default=0,
    )

    parser.add_argument(
        "--verbose",
        help="show debug log",
        nargs="?",
        const=True,
        default=_get_env_or_default(
            "VERBOSE", False, lambda v: v.lower() == "true"),
    )

    return parser


def parse_args(cmd_args: list[str]) -> InitData:
    load_dotenv()
    argument_parser: ArgumentParser = initialize_argument_parser()
    args = argument_parser.parse_args(cmd_args)
    init_logging(args.verbose)
    return get_init_data(args)


def init_logging(verbose: bool):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s.%(msecs)03d %(levelname)s %(message)s",
        datefmt="%b %d %H:%M:%S",
    )


def check_required_settings(args: Namespace) -> None:
    missing = [
        env_var for field_name, env_var in REQUIRED_SETTINGS[args.command]
        if not getattr(args, field_name)
    ]
    if missing:
        logging.critical(
            f"Missing {', '.join(missing)} in env for {args.command}")
        sys.exit(1)


def get_init_data(args: Namespace) -> InitData:
    check_required_settings(args)

    chain_id = args.chain_id
    if chain_id is None:
        chain_id = DEFAULT_CHAIN_IDS[args.command]

    call_data = args.call_data
    if call_data is None:
        if args.command == Command.estimate:
            call_data = bytes.fromhex(INCREMENT_SELECTOR[2:])
        else:
            call_data = b""

    return InitData(
        command=args.command,
        gelato_api_key=args.gelato_api_key,
        private_key=args.private_key,
        rpc_url=args.rpc_url,
        safe_address=args.safe_address,
        chain_id=chain_id,
        entrypoint=Address(args.entrypoint),
        bundler_base_url=args.bundler_url,
        salt_nonce=args.salt_nonce,
        safe_singleton=Address(args.safe_singleton),
        target=args.target,
        call_data=call_data,
        value=args.value,
        verbose=bool(args.verbose),
    )
