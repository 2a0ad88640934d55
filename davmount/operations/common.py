"""Shared functionality between the serve and control operations."""

from abc import ABC
import contextlib
import os

from davmount.args import Arguments
from davmount.config import Config


class Operations(ABC):
    """Base class for the logic of a davmount command."""

    def __init__(self, args: Arguments):
        """Initialize operations based on command-line arguments."""
        self._args = args
        self._config = Config.load(os.path.expanduser(args.config))

    @property
    def endpoint(self) -> str:
        """Return the endpoint of the provider service."""
        return self._args.endpoint or self._config.service.endpoint

    def run(self) -> int:
        """Run the operations and clean up properly in case of errors."""
        with contextlib.ExitStack() as stack:
            return self._run(stack)

        # https://github.com/python/mypy/issues/7726
        assert False, "unreachable"

    def _run(self, stack: contextlib.ExitStack) -> int:
        """Run the actual operations."""
        raise NotImplementedError()
