"""
Module implementing the command-line interface and invoking the main logic of hpcbridge.

hpcbridge runs on a workstation and drives a remote HPC host over SSH. Every action
opens its own short-lived SSH sessions, so jobs launched through it keep running after
the command has exited and can be inspected later from any machine that can reach the
same host.
"""

import logging
import os
import signal
import sys
from typing import List, NoReturn, Optional

import hpcbridge.constants as constants
from hpcbridge.config import Config
from hpcbridge.errors import HpcBridgeError
from hpcbridge.logger import log
import hpcbridge.operations as operations
from .args import Arguments


def main(arguments: Optional[List[str]] = None) -> NoReturn:
    """
    Run the selected action with the given arguments.

    Defaults to parsing command-line arguments from sys.argv if none are specified.
    """
    # Parse command-line arguments.
    args = Arguments.parse(arguments)

    # Configure debug logging.
    if args.debug:
        log.setLevel(logging.DEBUG)
    else:
        log.setLevel(logging.WARNING)

    config = Config.load(os.path.expanduser(args.config))

    try:
        exit_code = operations.Operations(args, config).run()
    except KeyboardInterrupt:
        exit_code = 128 + signal.SIGINT
    except HpcBridgeError as e:
        log.error(f"failed to {args.action}: {e}")
        exit_code = constants.ERROR_CODE
    except Exception as e:
        log.error(f"failed to run {args.action}: {e}")
        exit_code = constants.ERROR_CODE

    # Exit with either the result of the action or ERROR_CODE for hpcbridge failures.
    sys.exit(exit_code)
