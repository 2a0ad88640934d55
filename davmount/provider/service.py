"""Module that implements the RPC service through which the host drives davmount."""

from __future__ import annotations

from typing import Any, Dict, List

import semver

from davmount.constants import PROTOCOL_VERSION
from davmount.filesystem import MountConfig, MountRegistry
from davmount.logger import log
from .common import RequestKind, Response
from .dispatcher import RequestDispatcher


class ProviderService:
    """
    RPC service exposed to the host runtime.

    The host first performs a handshake to make sure that both sides speak a compatible
    protocol, then manages mounts with mount() and unmount() and forwards every file
    system request for them through request().
    """

    def __init__(self, registry: MountRegistry, dispatcher: RequestDispatcher) -> None:
        """Instantiate the service on top of a mount registry."""
        self._registry = registry
        self._dispatcher = dispatcher

    def handshake(self, protocol: str) -> str:
        """
        Check that the host speaks a compatible protocol version.

        Returns the protocol version of the service. Versions are compatible if their
        major versions are identical.
        """
        try:
            host_version = semver.VersionInfo.parse(protocol)
        except (ValueError, TypeError):
            raise ValueError(f"invalid protocol version '{protocol}'")

        if host_version.major != semver.VersionInfo.parse(PROTOCOL_VERSION).major:
            raise ValueError(
                f"incompatible protocol ({protocol} != {PROTOCOL_VERSION})"
            )

        log.debug(f"handshake with host using protocol {protocol}")

        return PROTOCOL_VERSION

    def mount(self, name: str, url: str, username: str, password: str) -> str:
        """Mount a server and return the identity of the mount."""
        return self._registry.mount(MountConfig(name, url, username, password))

    def unmount(self, file_system_id: str) -> None:
        """Unmount a previously mounted server."""
        self._registry.unmount(file_system_id)

    def mounts(self) -> List[str]:
        """Return the identities of all active mounts."""
        return self._registry.mount_ids

    def request(self, kind: str, options: Dict[str, Any]) -> Response:
        """
        Handle a file system request of the given kind for one of the mounts.

        Failures of the request itself are reported in the response rather than raised,
        but an unknown kind of request is a protocol error.
        """
        return self._dispatcher.handle(RequestKind(kind), options)
