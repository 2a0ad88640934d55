"""Interface of the remote storage client used by the virtual file system."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import posixpath
from typing import List, Optional


def normalize_path(path: str) -> str:
    """Return an absolute path without trailing slash (except for the root)."""
    return posixpath.normpath("/" + path.strip("/"))


@dataclass
class RemoteStat:
    """
    Properties of a remote resource as reported by the server.

    Type is either "directory" or "file". Directories generally have no MIME type and
    a size of zero.
    """

    path: str
    name: str
    type: str
    size: int = 0
    last_modified: Optional[datetime] = None
    mime: Optional[str] = None


class RemoteClient:
    """
    Base class for a client of a remote document-storage server.

    All resources are addressed by absolute paths relative to the root of the mounted
    server. Failures are reported by raising davmount.errors.RemoteError or one of its
    subclasses, like NotFoundError if the resource does not exist.

    Implementations must allow calls from multiple threads at the same time.
    """

    def list(self, path: str) -> List[RemoteStat]:
        """List the children of a directory, excluding the directory itself."""
        raise NotImplementedError()

    def stat(self, path: str) -> RemoteStat:
        """Retrieve the properties of a single resource."""
        raise NotImplementedError()

    def get(
        self,
        path: str,
        range_start: Optional[int] = None,
        range_end: Optional[int] = None,
    ) -> bytes:
        """
        Download (a half-open byte range of) the contents of a file.

        Ranges that extend beyond the end of the file result in fewer bytes.
        """
        raise NotImplementedError()

    def put(self, path: str, data: bytes) -> None:
        """Replace the contents of a file, creating it if necessary."""
        raise NotImplementedError()

    def mkcol(self, path: str) -> None:
        """Create a directory."""
        raise NotImplementedError()

    def delete(self, path: str) -> None:
        """Delete a file or (recursively) a directory."""
        raise NotImplementedError()

    def move(self, src: str, dst: str) -> None:
        """Move a resource, replacing anything that exists at the destination."""
        raise NotImplementedError()

    def copy(self, src: str, dst: str) -> None:
        """Copy a resource, replacing anything that exists at the destination."""
        raise NotImplementedError()

    def close(self) -> None:
        """Release any connections held by the client."""
