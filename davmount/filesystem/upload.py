"""
Module that emulates random-access writes with chunked uploads.

WebDAV can only replace a resource as a whole, which makes it impossible to implement
a write(offset, data) call directly. Servers like Nextcloud offer a chunked upload
extension instead: the client creates a staging collection, uploads byte ranges of the
file into it as separate objects, and finally moves the special ".file" object of the
staging collection to the real destination. The server then assembles the chunks in
the order of their names and atomically replaces the destination.

See https://docs.nextcloud.com/server/15/developer_manual/client_apis/WebDAV/chunking.html
"""

from __future__ import annotations

from enum import auto, Enum
import posixpath
import threading
from typing import List, Optional, Tuple
import uuid

from davmount.constants import CHUNK_COMPLETION_NAME, CHUNK_INDEX_WIDTH
from davmount.errors import UploadStateError
from davmount.logger import log
from davmount.remote import RemoteClient


class UploadState(Enum):
    """States of a chunked upload session."""

    OPEN = auto()
    ACCUMULATING = auto()
    FINALIZING = auto()
    CLOSED = auto()
    ABORTED = auto()


def chunk_name(offset: int, end: int) -> str:
    """
    Name the chunk object that holds the half-open byte range [offset, end).

    Both bounds are zero padded to a fixed width so that sorting the names as strings
    sorts the chunks by their position in the file.
    """
    return f"{offset:0{CHUNK_INDEX_WIDTH}d}-{end:0{CHUNK_INDEX_WIDTH}d}"


class ChunkedUploadSession:
    """
    State of a single open-for-write file handle.

    The staging collection is named after a random session identifier instead of the
    target path, which keeps the chunks of two handles that write the same file at the
    same time apart.

    Writes are not checked for gaps or overlaps. Ordering and assembling the chunks is
    entirely left to the server when the session is finalized.
    """

    def __init__(
        self,
        client: RemoteClient,
        target_path: str,
        staging_root: str = "/",
        session_id: Optional[str] = None,
    ) -> None:
        """Instantiate a session without touching the server (see start())."""
        self._client = client
        self._lock = threading.Lock()

        self.target_path = target_path
        self.session_id = session_id or uuid.uuid4().hex
        self.staging_path = posixpath.join(staging_root, self.session_id)

        self._state = UploadState.OPEN
        self._chunks: List[Tuple[int, int]] = []

    @staticmethod
    def start(
        client: RemoteClient, target_path: str, staging_root: str = "/"
    ) -> ChunkedUploadSession:
        """Create a new session along with its staging collection on the server."""
        session = ChunkedUploadSession(client, target_path, staging_root)

        client.mkcol(session.staging_path)

        log.debug(f"started upload {session.session_id} for {target_path}")

        return session

    @property
    def state(self) -> UploadState:
        """Return the current state of the session."""
        with self._lock:
            return self._state

    @property
    def chunks(self) -> List[Tuple[int, int]]:
        """Return the (offset, length) of all chunks written so far in file order."""
        with self._lock:
            return sorted(self._chunks)

    def write(self, offset: int, data: bytes) -> int:
        """Upload the data as the chunk starting at the given offset."""
        with self._lock:
            if self._state not in (UploadState.OPEN, UploadState.ACCUMULATING):
                raise UploadStateError(f"cannot write to {self._state.name} upload")

            self._state = UploadState.ACCUMULATING

        name = chunk_name(offset, offset + len(data))
        self._client.put(posixpath.join(self.staging_path, name), data)

        with self._lock:
            self._chunks.append((offset, len(data)))

        return len(data)

    def finalize(self) -> None:
        """
        Let the server assemble the chunks into the target path.

        This is exactly one move of the completion object. If it fails, the session is
        aborted and its staging collection is left behind on the server.
        """
        with self._lock:
            if self._state not in (UploadState.OPEN, UploadState.ACCUMULATING):
                raise UploadStateError(f"cannot finalize {self._state.name} upload")

            self._state = UploadState.FINALIZING

        completion_path = posixpath.join(self.staging_path, CHUNK_COMPLETION_NAME)

        try:
            self._client.move(completion_path, self.target_path)
        except Exception:
            with self._lock:
                self._state = UploadState.ABORTED
            raise

        with self._lock:
            self._state = UploadState.CLOSED

        log.debug(f"finalized upload {self.session_id} into {self.target_path}")

    def abort(self) -> None:
        """
        Abandon the session without assembling the chunks.

        The staging collection stays on the server. Aborting a session that has already
        been closed or aborted has no effect.
        """
        with self._lock:
            if self._state in (UploadState.OPEN, UploadState.ACCUMULATING):
                self._state = UploadState.ABORTED

                log.debug(f"aborted upload {self.session_id} for {self.target_path}")
