"""Module that implements the commands that control a running provider service."""

import contextlib
import getpass
import os

from davmount.constants import PROTOCOL_VERSION
from davmount.logger import log
from davmount.provider import ProviderService
import davmount.rpc as rpc
from .common import Operations

# Environment variable that supplies the password for non-interactive mounts.
PASSWORD_VARIABLE = "DAVMOUNT_PASSWORD"


class ControlOperations(Operations):
    """Class that performs a single mount, unmount or list call on the service."""

    def _run(self, stack: contextlib.ExitStack) -> int:
        """Connect to the provider service and run the command."""
        service = rpc.Client(
            ProviderService,
            self.endpoint,
            token=self._config.service.token,
            timeout_ms=self._args.timeout,
        )
        stack.callback(service.close)

        protocol = service.handshake(PROTOCOL_VERSION)
        log.debug(f"connected to provider service with protocol {protocol}")

        if self._args.command == "mount":
            mount_id = service.mount(
                self._args.name,
                self._args.url,
                self._args.username,
                self._read_password(),
            )
            print(mount_id)
        elif self._args.command == "unmount":
            service.unmount(self._args.file_system_id)
        elif self._args.command == "list":
            for mount_id in service.mounts():
                print(mount_id)
        else:
            raise ValueError(f"unknown command '{self._args.command}'")

        return 0

    def _read_password(self) -> str:
        """Read the password of the mount from the environment or the terminal."""
        password = os.environ.get(PASSWORD_VARIABLE)

        if password is None:
            password = getpass.getpass(f"Password for {self._args.username}: ")

        return password
