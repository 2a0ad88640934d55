"""Module that persists mount records so mounts survive a restart of davmount."""

from __future__ import annotations

import os
import threading
from typing import Dict

import fasteners

from davmount.filesystem.common import MountConfig
from davmount.logger import log
import davmount.rpc as rpc


class MountStore:
    """
    Mapping from mount identity to mount configuration, stored as a JSON file.

    Records are written when a mount succeeds, removed when it is unmounted, and read
    in bulk when davmount starts to resume all mounts.

    Every access locks the file for other processes (with a lock file next to it) and
    for other threads, and updates replace the file atomically, so multiple davmount
    instances can share a store without corrupting it.
    """

    def __init__(self, path: str) -> None:
        """Instantiate a store backed by the file at the given path."""
        self._path = path
        self._lock = threading.Lock()
        self._encoding = rpc.Encoding(MountConfig)

        os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)

    @property
    def path(self) -> str:
        """Return the path of the store file."""
        return self._path

    @property
    def _lock_path(self) -> str:
        """Return the path to the store lock file."""
        return f"{self._path}.lock"

    def load(self) -> Dict[str, MountConfig]:
        """Read all mount records."""
        with self._lock, fasteners.InterProcessLock(self._lock_path):
            return self._read()

    def put(self, config: MountConfig) -> None:
        """Add or replace the record for a mount."""
        with self._lock, fasteners.InterProcessLock(self._lock_path):
            records = self._read_for_update()
            records[config.mount_id] = config
            self._write(records)

    def remove(self, mount_id: str) -> None:
        """Remove the record for a mount, if there is one."""
        with self._lock, fasteners.InterProcessLock(self._lock_path):
            records = self._read_for_update()

            if records.pop(mount_id, None) is not None:
                self._write(records)

    def _read(self) -> Dict[str, MountConfig]:
        """Deserialize all records, treating a missing file as an empty store."""
        try:
            with open(self._path, "r") as f:
                records = self._encoding.load_json(f)
        except FileNotFoundError:
            return {}

        if not isinstance(records, dict):
            raise ValueError(f"mount store {self._path} is not a mapping")

        return records

    def _read_for_update(self) -> Dict[str, MountConfig]:
        """
        Read the records that an update should start from.

        An unreadable store is not considered fatal for updates, since the alternative
        is never being able to mount anything again.
        """
        try:
            return self._read()
        except Exception as e:
            log.error(f"discarding unreadable mount store {self._path}: {e}")
            return {}

    def _write(self, records: Dict[str, MountConfig]) -> None:
        """Replace the store file with the given records."""
        tmp_path = f"{self._path}.tmp"

        # Records contain passwords, so only the owner may read them
        fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)

        with os.fdopen(fd, "w") as f:
            self._encoding.dump_json(records, f)

        os.replace(tmp_path, self._path)
