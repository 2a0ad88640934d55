"""
Modules that map file system semantics onto a remote document-storage server.

A WebDAV server only knows whole resources: it can list and stat them, download (a
range of) them, and replace, create, delete, move or copy them as a whole. The host
runtime on the other hand expects a file system with directory listings, metadata
requests, and open files that are read and written at arbitrary offsets.

The pieces in this package bridge that gap:

* The mount registry owns every active mount, its remote client, and its open files,
  and persists the mounts so they can be resumed when davmount restarts.
* The metadata cache remembers listings and stat results per mount so that the many
  metadata requests a file manager makes do not all turn into round trips.
* Chunked upload sessions turn random-access writes of an open file into separate
  chunk uploads that the server assembles into the final file when it is closed.
"""

from .cache import CacheLookup, MetadataCache
from .common import Metadata, MountConfig, OpenMode, mount_id
from .registry import (
    LocalMountTable,
    Mount,
    MountRegistry,
    MountSurface,
    OpenFileHandle,
)
from .store import MountStore
from .upload import ChunkedUploadSession, UploadState

__all__ = [
    "CacheLookup",
    "ChunkedUploadSession",
    "LocalMountTable",
    "Metadata",
    "MetadataCache",
    "Mount",
    "MountConfig",
    "MountRegistry",
    "MountStore",
    "MountSurface",
    "OpenFileHandle",
    "OpenMode",
    "UploadState",
    "mount_id",
]
