"""Module that keeps track of active mounts and their open file handles."""

from __future__ import annotations

from dataclasses import dataclass, field
import threading
from typing import Callable, Dict, List, Optional

from davmount.errors import (
    AuthenticationError,
    ConnectivityError,
    ForbiddenError,
    HandleNotFoundError,
    MountNotFoundError,
    RemoteError,
)
from davmount.filesystem.cache import MetadataCache
from davmount.filesystem.common import LockIndex, MountConfig, OpenMode
from davmount.filesystem.store import MountStore
from davmount.filesystem.upload import ChunkedUploadSession
from davmount.logger import log
from davmount.remote import RemoteClient, WebDavClient


@dataclass
class HostMount:
    """Entry of the host runtime's mount table."""

    mount_id: str
    display_name: str
    writable: bool = True


class MountSurface:
    """
    Base class for the mount table of the host runtime.

    The host runtime owns the actual virtual file system mounts. davmount only asks it
    to add and remove mounts and whether a mount exists.
    """

    def get(self, mount_id: str) -> Optional[HostMount]:
        """Return the host's entry for a mount, or None if it is not mounted."""
        raise NotImplementedError()

    def mount(self, mount: HostMount) -> None:
        """Add a mount to the host's mount table."""
        raise NotImplementedError()

    def unmount(self, mount_id: str) -> None:
        """Remove a mount from the host's mount table."""
        raise NotImplementedError()

    def list(self) -> List[HostMount]:
        """Return all mounts in the host's mount table."""
        raise NotImplementedError()


class LocalMountTable(MountSurface):
    """Mount table kept in the memory of the provider service process."""

    def __init__(self) -> None:
        """Instantiate an empty mount table."""
        self._lock = threading.Lock()
        self._mounts: Dict[str, HostMount] = {}

    def get(self, mount_id: str) -> Optional[HostMount]:
        with self._lock:
            return self._mounts.get(mount_id)

    def mount(self, mount: HostMount) -> None:
        with self._lock:
            self._mounts[mount.mount_id] = mount

    def unmount(self, mount_id: str) -> None:
        with self._lock:
            self._mounts.pop(mount_id, None)

    def list(self) -> List[HostMount]:
        with self._lock:
            return sorted(self._mounts.values(), key=lambda m: m.display_name)


@dataclass
class OpenFileHandle:
    """
    A file opened by the host, identified by the id of the request that opened it.

    Only handles opened for writing have an upload session.
    """

    request_id: str
    path: str
    mode: OpenMode
    upload: Optional[ChunkedUploadSession] = None


@dataclass
class Mount:
    """Everything that belongs to one active mount."""

    mount_id: str
    config: MountConfig
    client: RemoteClient
    cache: MetadataCache = field(default_factory=MetadataCache)
    writable: bool = True

    _handles: Dict[str, OpenFileHandle] = field(
        default_factory=dict, init=False, repr=False
    )
    _handles_lock: threading.Lock = field(
        default_factory=threading.Lock, init=False, repr=False
    )

    @property
    def display_name(self) -> str:
        """Return the name the user gave to the mount."""
        return self.config.name

    def add_handle(self, handle: OpenFileHandle) -> None:
        """Register a newly opened file."""
        with self._handles_lock:
            self._handles[handle.request_id] = handle

    def get_handle(self, request_id: str) -> OpenFileHandle:
        """Return the open file with the given open request id."""
        with self._handles_lock:
            try:
                return self._handles[request_id]
            except KeyError:
                raise HandleNotFoundError(f"no open file for request {request_id}")

    def remove_handle(self, request_id: str) -> Optional[OpenFileHandle]:
        """Forget an open file, returning it if it was still open."""
        with self._handles_lock:
            return self._handles.pop(request_id, None)

    @property
    def handle_count(self) -> int:
        """Return the number of open files."""
        with self._handles_lock:
            return len(self._handles)

    def discard(self) -> None:
        """
        Drop all state of the mount.

        Pending uploads are aborted rather than finalized, because a half-written file
        should not replace the original.
        """
        with self._handles_lock:
            handles = list(self._handles.values())
            self._handles.clear()

        for handle in handles:
            if handle.upload is not None:
                handle.upload.abort()

        self.cache.clear()
        self.client.close()


ClientFactory = Callable[[MountConfig], RemoteClient]


class MountRegistry:
    """
    Process-wide table of active mounts.

    The registry is the sole owner of Mount objects. It registers mounts with the host
    runtime's mount table, persists their configuration in the mount store so they can
    be resumed after a restart, and hands them out to the request dispatcher.

    Mounting and unmounting the same identity is serialized, while different mounts
    can be set up concurrently.
    """

    def __init__(
        self,
        surface: MountSurface,
        store: MountStore,
        client_factory: ClientFactory,
    ) -> None:
        """Instantiate an empty registry."""
        self._surface = surface
        self._store = store
        self._client_factory = client_factory

        self._lock = threading.Lock()
        self._mounts: Dict[str, Mount] = {}
        self._mount_locks = LockIndex()

    @staticmethod
    def webdav_client_factory(timeout: float = 30.0) -> ClientFactory:
        """Return a factory that creates WebDAV clients with the given timeout."""

        def factory(config: MountConfig) -> RemoteClient:
            return WebDavClient(
                config.url, config.username, config.password, timeout=timeout
            )

        return factory

    def mount(self, config: MountConfig) -> str:
        """
        Mount a server, or do nothing if the host already has it mounted.

        The connection and credentials are checked by listing the root directory before
        anything is registered, and the mount record is written before the host learns
        about the mount, so a failed mount leaves no trace. Returns the mount identity.
        """
        mount_id = config.mount_id

        with self._mount_locks.lock(mount_id):
            if self._surface.get(mount_id) is not None:
                log.debug(f"{mount_id} is already mounted")
                return mount_id

            mount = self._connect(config)

            # The record must exist before the host shows the mount
            try:
                self._store.put(config)
            except Exception:
                mount.client.close()
                raise

            self._surface.mount(HostMount(mount_id, config.name, mount.writable))

            with self._lock:
                self._mounts[mount_id] = mount

        log.info(f"mounted {config.url} as '{config.name}' ({mount_id})")

        return mount_id

    def resume_mounts(self) -> List[str]:
        """
        Mount all servers from the mount store again after a restart.

        Each mount is resumed on its own, so a server that is unreachable does not
        prevent the others from being mounted. Returns the resumed identities.
        """
        try:
            records = self._store.load()
        except Exception as e:
            log.error(f"failed to read mount store {self._store.path}: {e}")
            return []

        resumed = []

        for mount_id, config in records.items():
            try:
                with self._mount_locks.lock(mount_id):
                    mount = self._connect(config)

                    host_mount = HostMount(mount_id, config.name, mount.writable)
                    self._surface.mount(host_mount)

                    with self._lock:
                        self._mounts[mount_id] = mount
            except Exception as e:
                log.error(f"failed to resume mount '{config.name}' ({config.url}): {e}")
            else:
                resumed.append(mount_id)

        log.info(f"resumed {len(resumed)} of {len(records)} mounts")

        return resumed

    def unmount(self, mount_id: str) -> None:
        """Unmount a server and forget about it, also after a restart."""
        with self._mount_locks.lock(mount_id):
            with self._lock:
                mount = self._mounts.pop(mount_id, None)

            if mount is None:
                raise MountNotFoundError(f"{mount_id} is not mounted")

            self._surface.unmount(mount_id)
            mount.discard()
            self._store.remove(mount_id)

        log.info(f"unmounted '{mount.display_name}' ({mount_id})")

    def get(self, mount_id: str) -> Mount:
        """Return the active mount with the given identity."""
        with self._lock:
            try:
                return self._mounts[mount_id]
            except KeyError:
                raise MountNotFoundError(f"{mount_id} is not mounted")

    @property
    def mount_ids(self) -> List[str]:
        """Return the identities of all active mounts."""
        with self._lock:
            return sorted(self._mounts)

    def shutdown(self) -> None:
        """
        Release all mounts as part of stopping davmount.

        Unlike unmount() this keeps the mount records, so the mounts are resumed when
        davmount starts again.
        """
        with self._lock:
            mounts = list(self._mounts.values())
            self._mounts.clear()

        for mount in mounts:
            mount.discard()

    def _connect(self, config: MountConfig) -> Mount:
        """Create a client for the server and check that it can be used."""
        client = self._client_factory(config)

        try:
            client.list("/")
        except ForbiddenError as e:
            client.close()
            raise AuthenticationError(f"{config.url} rejected the credentials: {e}")
        except RemoteError as e:
            client.close()
            raise ConnectivityError(f"failed to connect to {config.url}: {e}")

        return Mount(mount_id=config.mount_id, config=config, client=client)
