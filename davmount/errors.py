"""Exception hierarchy shared by all davmount components."""

from __future__ import annotations

from enum import Enum
from typing import Optional


class DavMountError(Exception):
    """Base exception for all davmount errors."""


class ConnectivityError(DavMountError):
    """Raised when a mount cannot reach or log in to its server."""


class AuthenticationError(ConnectivityError):
    """Raised when a server rejects the credentials of a mount."""


class RemoteErrorKind(Enum):
    """Category of a failed remote call."""

    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    UNREACHABLE = "unreachable"
    OTHER = "other"


class RemoteError(DavMountError):
    """
    Raised when a call to the remote server fails.

    The kind tells the dispatcher how to report the failure to the host. Status is the
    HTTP status code of the failed response, if the server responded at all.
    """

    kind = RemoteErrorKind.OTHER

    def __init__(self, message: str, path: str = "", status: Optional[int] = None):
        """Instantiate with a readable message and the path that was accessed."""
        super().__init__(message, path, status)

        self.message = message
        self.path = path
        self.status = status

    def __str__(self) -> str:
        if self.path:
            return f"{self.message} ({self.path})"
        return self.message


class NotFoundError(RemoteError):
    """Raised when a remote resource does not exist."""

    kind = RemoteErrorKind.NOT_FOUND


class ForbiddenError(RemoteError):
    """Raised when the server refuses access to a remote resource."""

    kind = RemoteErrorKind.FORBIDDEN


class UnreachableError(RemoteError):
    """Raised when the server could not be contacted at all."""

    kind = RemoteErrorKind.UNREACHABLE


class UnsupportedOperationError(DavMountError):
    """Raised for requests that davmount deliberately does not implement."""


class MountNotFoundError(DavMountError):
    """Raised when a request refers to a mount that is not registered."""


class HandleNotFoundError(DavMountError):
    """Raised when a request refers to a file handle that is not open."""


class UploadStateError(DavMountError):
    """Raised when an upload session is used in a state that does not allow it."""
