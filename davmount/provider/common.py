"""Data structures shared by the request dispatcher and the provider service."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional

from davmount.errors import NotFoundError, UnsupportedOperationError


class RequestKind(Enum):
    """Every kind of request that the host runtime can make for a mount."""

    UNMOUNT = "unmount"
    READ_DIRECTORY = "read_directory"
    GET_METADATA = "get_metadata"
    OPEN_FILE = "open_file"
    CLOSE_FILE = "close_file"
    READ_FILE = "read_file"
    WRITE_FILE = "write_file"
    CREATE_DIRECTORY = "create_directory"
    DELETE_ENTRY = "delete_entry"
    CREATE_FILE = "create_file"
    COPY_ENTRY = "copy_entry"
    MOVE_ENTRY = "move_entry"
    TRUNCATE = "truncate"
    ABORT = "abort"


class ErrorCode(Enum):
    """Error codes that the host runtime understands."""

    NOT_FOUND = "NOT_FOUND"
    INVALID_OPERATION = "INVALID_OPERATION"
    FAILED = "FAILED"


def error_code(exc: BaseException) -> ErrorCode:
    """Map an exception raised by a request handler to the code reported to the host."""
    if isinstance(exc, NotFoundError):
        return ErrorCode.NOT_FOUND
    elif isinstance(exc, UnsupportedOperationError):
        return ErrorCode.INVALID_OPERATION
    else:
        return ErrorCode.FAILED


@dataclass
class Response:
    """
    Outcome of a request in the shape the host runtime expects.

    On success, values holds the positional arguments for the host's success callback
    (which may be none at all) and error is None. On failure, error holds the value of
    an ErrorCode and message a human readable description that the host may show.
    """

    values: List[Any] = field(default_factory=list)
    error: Optional[str] = None
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        """Return whether the request succeeded."""
        return self.error is None

    @staticmethod
    def success(*values: Any) -> Response:
        """Create a response for a successful request."""
        return Response(values=list(values))

    @staticmethod
    def failure(exc: BaseException) -> Response:
        """Create a response for a request that failed with the given exception."""
        return Response(error=error_code(exc).value, message=str(exc))
