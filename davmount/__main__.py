"""
Module implementing the command-line interface and invoking the main logic of davmount.

davmount runs as a provider service next to a host runtime that owns the virtual file
system mounts. The host forwards file system requests for every mount to the service,
which translates them into WebDAV calls to the mounted server. The other commands talk
to a running service to add, remove and list mounts.
"""

import logging
import signal
import sys
from typing import List, NoReturn, Optional

import davmount.constants as constants
from davmount.logger import log
import davmount.operations as operations
from .args import Arguments


def main(arguments: Optional[List[str]] = None) -> NoReturn:
    """
    Run the provider service or one of the control commands with the given arguments.

    Defaults to parsing command-line arguments from sys.argv if none are specified.
    """
    # Parse command-line arguments.
    args = Arguments.parse(arguments)

    # Configure debug logging.
    if args.debug:
        log.setLevel(logging.DEBUG)
    else:
        log.setLevel(logging.ERROR)

    ops: operations.Operations

    if args.command == "serve":
        ops = operations.ServeOperations(args)
    else:
        ops = operations.ControlOperations(args)

    try:
        exit_code = ops.run()
    except KeyboardInterrupt:
        exit_code = 128 + signal.SIGINT
    except Exception as e:
        log.error(f"failed to run command: {e}")
        exit_code = constants.DAVMOUNT_ERROR_CODE

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
