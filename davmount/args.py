"""Module defining the command-line arguments and providing a parser for them."""

from __future__ import annotations

import argparse
from typing import List, Optional

from davmount.constants import PROTOCOL_VERSION, VERSION


class Arguments(argparse.Namespace):
    """Parsed command-line arguments."""

    command: str

    config: str
    endpoint: Optional[str]
    timeout: int
    debug: bool

    # mount
    name: str
    url: str
    username: str

    # unmount
    file_system_id: str

    @classmethod
    def parse(cls, args: Optional[List[str]] = None) -> Arguments:
        """
        Parse command-line arguments from the given list of strings.

        Defaults to sys.argv if none are specified.
        """
        return cls._get_parser().parse_args(args, namespace=cls())

    @classmethod
    def _get_parser(cls) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(
            description="Mount WebDAV servers as virtual file systems.",
            usage="davmount [option...] {serve,mount,unmount,list} [arg...]",
        )

        parser.add_argument(
            "--version",
            action="version",
            version=f"%(prog)s {VERSION} (protocol {PROTOCOL_VERSION})",
            help="show the program version and protocol version",
        )

        # Path to (optional) config file
        parser.add_argument(
            "--config",
            type=str,
            help="path to config file (default is ~/.davmount/config)",
            default="~/.davmount/config",
        )

        # Endpoint of the provider service, overrides the config file
        parser.add_argument(
            "--endpoint", type=str, help="endpoint of the provider service"
        )

        # Configure timeout of control commands
        parser.add_argument(
            "--timeout",
            type=cls._parse_timeout,
            help="timeout for calls to the provider service in milliseconds",
            default=60000,
        )

        # Enable debug output for development
        parser.add_argument(
            "--debug", action="store_true", help="enable debug information"
        )

        commands = parser.add_subparsers(dest="command", metavar="command")
        commands.required = True

        commands.add_parser("serve", help="run the provider service")

        mount = commands.add_parser("mount", help="mount a WebDAV server")
        mount.add_argument("name", type=str, help="display name of the mount")
        mount.add_argument("url", type=str, help="URL of the WebDAV server")
        mount.add_argument("username", type=str, help="user to log in as")

        unmount = commands.add_parser("unmount", help="unmount a WebDAV server")
        unmount.add_argument(
            "file_system_id", type=str, help="identity of the mount (see list)"
        )

        commands.add_parser("list", help="list the identities of all mounts")

        return parser

    @staticmethod
    def _parse_timeout(arg: str) -> int:
        try:
            val = int(arg)
            assert val > 0
            return val
        except (ValueError, AssertionError):
            raise argparse.ArgumentTypeError("expected number > 0")
