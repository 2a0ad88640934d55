"""Data structures used by multiple virtual file system components."""

from __future__ import annotations

import collections
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
import hashlib
import threading
from typing import Any, Dict, Iterable, Iterator, Optional

from davmount.constants import MOUNT_ID_SCHEME
from davmount.remote.common import RemoteStat


# Metadata fields that a host may ask for, in the order they are reported.
METADATA_FIELDS = ("is_directory", "name", "size", "modification_time", "mime_type")


@dataclass
class MountConfig:
    """Connection parameters of a mount, as entered by the user."""

    name: str
    url: str
    username: str
    password: str = field(repr=False)

    @property
    def mount_id(self) -> str:
        """Return the identity of the mount described by this config."""
        return mount_id(self.url, self.username)


def mount_id(url: str, username: str) -> str:
    """
    Derive the stable identity of a mount from its server URL and username.

    Mounting the same server with the same user twice results in the same identity,
    which is what makes mounting idempotent.
    """
    digest = hashlib.sha256(f"{url}\n{username}".encode()).hexdigest()
    return f"{MOUNT_ID_SCHEME}{digest}"


@dataclass
class Metadata:
    """Metadata of a file or directory in the form the host runtime understands."""

    name: str
    is_directory: bool
    size: int
    modification_time: Optional[datetime]
    mime_type: Optional[str] = None

    @staticmethod
    def from_stat(st: RemoteStat) -> Metadata:
        """Translate a remote stat record."""
        return Metadata(
            name=st.name,
            is_directory=st.type == "directory",
            size=st.size,
            modification_time=st.last_modified,
            mime_type=st.mime,
        )

    def project(self, fields: Iterable[str]) -> Dict[str, Any]:
        """Return a new record that only contains the requested fields."""
        wanted = set(fields)

        return {
            name: getattr(self, name) for name in METADATA_FIELDS if name in wanted
        }


def requested_fields(options: Dict[str, Any]) -> Iterable[str]:
    """Return the metadata fields that request options declare interest in."""
    return [name for name in METADATA_FIELDS if options.get(name)]


class OpenMode(Enum):
    """Access mode of an open file."""

    READ = "READ"
    WRITE = "WRITE"


class LockIndex:
    """
    Collection of mutexes to lock critical sections by arbitrary values.

    Used to serialize work on a single mount identity without blocking work on other
    mounts. Locks are automatically garbage collected when no longer in use (no
    threads in the critical section and none waiting to enter).
    """

    def __init__(self) -> None:
        """Instantiate a LockIndex."""
        self._global_lock = threading.Lock()

        self._locks: Dict[Any, threading.Lock] = collections.defaultdict(threading.Lock)
        self._lock_users: Dict[Any, int] = collections.defaultdict(int)

    @contextmanager
    def lock(self, key: Any) -> Iterator[None]:
        """Lock a critical section based on the specified key."""
        with self._global_lock:
            self._lock_users[key] += 1
            lock = self._locks[key]

        lock.acquire()

        try:
            yield
        finally:
            lock.release()

            with self._global_lock:
                self._lock_users[key] -= 1

                if self._lock_users[key] == 0:
                    del self._lock_users[key]
                    del self._locks[key]

    @property
    def lock_count(self) -> int:
        """Return the number of locks currently in use."""
        with self._global_lock:
            return len(self._locks)
