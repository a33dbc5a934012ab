import logging
import sys

import uvloop

from .cli_manager import Command, InitData, parse_args
from .commands import (check_bundler, estimate_existing_safe,
                       estimate_user_operation_gas, send_user_operation)
from .exceptions import EthClientException, UserOperationException

COMMANDS = {
    Command.send: send_user_operation.run,
    Command.estimate: estimate_user_operation_gas.run,
    Command.estimate_existing: estimate_existing_safe.run,
    Command.check_bundler: check_bundler.run,
}


async def run_command(init_data: InitData) -> int:
    return await COMMANDS[init_data.command](init_data)


def main(cmd_args=sys.argv[1:]) -> int:
    init_data = parse_args(cmd_args)
    try:
        return uvloop.run(run_command(init_data))
    except (UserOperationException, EthClientException) as excp:
        logging.critical(f"Script failed: {excp}")
        return 1
    except Exception:
        logging.exception("Script failed")
        return 1


def run() -> None:
    sys.exit(main(sys.argv[1:]))
