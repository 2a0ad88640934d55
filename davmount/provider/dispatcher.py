"""Module that translates provider requests into operations on the mounted server."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Tuple

from davmount.errors import NotFoundError, UnsupportedOperationError
from davmount.filesystem import (
    ChunkedUploadSession,
    Metadata,
    Mount,
    MountRegistry,
    OpenFileHandle,
    OpenMode,
)
from davmount.filesystem.common import requested_fields
from davmount.logger import log, summarize_options
from davmount.remote import normalize_path
from .common import RequestKind, Response

Options = Dict[str, Any]
Handler = Callable[[Options], Tuple[Any, ...]]


class RequestDispatcher:
    """
    Class that handles every kind of request the host runtime makes for a mount.

    Requests carry an options dict with the mount identity in "file_system_id" and the
    arguments specific to their kind, like "entry_path" or "open_request_id". Handlers
    return the positional values for the host's success callback and raise exceptions
    on failure, which handle() turns into a Response either way.

    Requests are handled concurrently from multiple threads, also for the same mount
    and the same path. The handlers keep no state of their own: everything lives in the
    mount (cache, open files), which synchronizes access internally.

    Every change to the server is made before the metadata cache is invalidated, so a
    failed change never evicts anything and a successful one is never followed by a
    cached read of the old state.
    """

    def __init__(self, registry: MountRegistry, staging_root: str = "/") -> None:
        """Instantiate a dispatcher for the mounts in the registry."""
        self._registry = registry
        self._staging_root = staging_root

        self._handlers: Dict[RequestKind, Handler] = {
            RequestKind.UNMOUNT: self.unmount,
            RequestKind.READ_DIRECTORY: self.read_directory,
            RequestKind.GET_METADATA: self.get_metadata,
            RequestKind.OPEN_FILE: self.open_file,
            RequestKind.CLOSE_FILE: self.close_file,
            RequestKind.READ_FILE: self.read_file,
            RequestKind.WRITE_FILE: self.write_file,
            RequestKind.CREATE_DIRECTORY: self.create_directory,
            RequestKind.DELETE_ENTRY: self.delete_entry,
            RequestKind.CREATE_FILE: self.create_file,
            RequestKind.COPY_ENTRY: self.copy_entry,
            RequestKind.MOVE_ENTRY: self.move_entry,
            RequestKind.TRUNCATE: self.truncate,
            RequestKind.ABORT: self.abort,
        }

    def handle(self, kind: RequestKind, options: Options) -> Response:
        """Handle a request and package its outcome for the host."""
        # Explicit check before logging because summarize_options is relatively slow
        if log.isEnabledFor(logging.DEBUG):
            log.debug(f"{kind.value}({summarize_options(options)})")

        try:
            values = self._handlers[kind](options)
        except NotFoundError as e:
            # Hosts look up nonexistent paths all the time
            log.debug(f"{kind.value} failed: {e}")
            return Response.failure(e)
        except Exception as e:
            log.error(f"{kind.value} failed: {e}")
            return Response.failure(e)

        return Response.success(*values)

    #
    # Mount lifecycle
    #

    def unmount(self, options: Options) -> Tuple[Any, ...]:
        self._registry.unmount(options["file_system_id"])
        return ()

    #
    # Metadata access
    #

    def read_directory(self, options: Options) -> Tuple[Any, ...]:
        """
        List a directory in a single response.

        The full listing is cached, which lets later metadata requests for its children
        know that they exist. The host supports paging, but the listing is always
        returned at once, so "has more" is always False.
        """
        mount = self._mount(options)
        path = normalize_path(options["directory_path"])

        entries = [Metadata.from_stat(st) for st in mount.client.list(path)]
        mount.cache.put_listing(path, entries)

        fields = requested_fields(options)

        return [entry.project(fields) for entry in entries], False

    def get_metadata(self, options: Options) -> Tuple[Any, ...]:
        """
        Retrieve the metadata of a single file or directory.

        Cached metadata is only trusted if the path was both seen in a listing of its
        parent and stat'ed on its own since the last change to it. Otherwise the server
        is asked.
        """
        if options.get("thumbnail"):
            raise UnsupportedOperationError("thumbnails are not supported")

        mount = self._mount(options)
        path = normalize_path(options["entry_path"])

        lookup = mount.cache.get(path)

        if lookup.listing_present and lookup.entry_present and lookup.metadata:
            metadata = lookup.metadata
        else:
            metadata = Metadata.from_stat(mount.client.stat(path))
            mount.cache.put_entry(path, metadata)

        return (metadata.project(requested_fields(options)),)

    #
    # File operations
    #

    def open_file(self, options: Options) -> Tuple[Any, ...]:
        """Open a file, starting an upload session on the server for writing."""
        mount = self._mount(options)
        path = normalize_path(options["file_path"])
        mode = OpenMode(options["mode"])

        upload = None

        if mode == OpenMode.WRITE:
            upload = ChunkedUploadSession.start(mount.client, path, self._staging_root)

        mount.add_handle(OpenFileHandle(options["request_id"], path, mode, upload))

        return ()

    def close_file(self, options: Options) -> Tuple[Any, ...]:
        """
        Close a file, assembling its uploaded chunks into the target if it was written.

        The handle is gone afterwards, even if assembling failed.
        """
        mount = self._mount(options)
        request_id = options["open_request_id"]
        handle = mount.get_handle(request_id)

        try:
            if handle.upload is not None:
                handle.upload.finalize()
                mount.cache.invalidate(handle.path)
        finally:
            mount.remove_handle(request_id)

        return ()

    def read_file(self, options: Options) -> Tuple[Any, ...]:
        """Read a byte range of an open file in a single response."""
        mount = self._mount(options)
        handle = mount.get_handle(options["open_request_id"])

        offset = options["offset"]
        length = options["length"]

        if length <= 0:
            return b"", False

        return mount.client.get(handle.path, offset, offset + length), False

    def write_file(self, options: Options) -> Tuple[Any, ...]:
        """Write a byte range of a file opened for writing as a new chunk."""
        mount = self._mount(options)
        handle = mount.get_handle(options["open_request_id"])

        if handle.upload is None:
            raise UnsupportedOperationError(f"{handle.path} is not open for writing")

        handle.upload.write(options["offset"], bytes(options["data"]))
        mount.cache.invalidate(handle.path)

        return ()

    def truncate(self, options: Options) -> Tuple[Any, ...]:
        """
        Change the size of a file to the given length.

        Like ftruncate(), a file that is shorter than the length is extended with zero
        bytes. WebDAV has no way to change part of a resource, so the file is
        downloaded and uploaded again as a whole. That is fine for documents, but slow
        for big files.
        """
        mount = self._mount(options)
        path = normalize_path(options["file_path"])
        length = options["length"]

        data = mount.client.get(path)
        data = data[:length] + bytes(max(0, length - len(data)))

        mount.client.put(path, data)
        mount.cache.invalidate(path)

        return ()

    #
    # File system structure
    #

    def create_directory(self, options: Options) -> Tuple[Any, ...]:
        mount = self._mount(options)
        path = normalize_path(options["directory_path"])

        mount.client.mkcol(path)
        mount.cache.invalidate(path)

        return ()

    def delete_entry(self, options: Options) -> Tuple[Any, ...]:
        mount = self._mount(options)
        path = normalize_path(options["entry_path"])

        mount.client.delete(path)
        mount.cache.invalidate(path)

        return ()

    def create_file(self, options: Options) -> Tuple[Any, ...]:
        mount = self._mount(options)
        path = normalize_path(options["file_path"])

        mount.client.put(path, b"")
        mount.cache.invalidate(path)

        return ()

    def copy_entry(self, options: Options) -> Tuple[Any, ...]:
        mount = self._mount(options)
        source = normalize_path(options["source_path"])
        target = normalize_path(options["target_path"])

        mount.client.copy(source, target)
        mount.cache.invalidate(source)
        mount.cache.invalidate(target)

        return ()

    def move_entry(self, options: Options) -> Tuple[Any, ...]:
        mount = self._mount(options)
        source = normalize_path(options["source_path"])
        target = normalize_path(options["target_path"])

        mount.client.move(source, target)
        mount.cache.invalidate(source)
        mount.cache.invalidate(target)

        return ()

    #
    # Miscellaneous
    #

    def abort(self, options: Options) -> Tuple[Any, ...]:
        """
        Acknowledge that the host gave up on an operation.

        Network calls that are already in flight cannot be interrupted and nothing is
        rolled back, so this only confirms that the abort was received.
        """
        log.info(f"abort requested for operation {options.get('operation_request_id')}")
        return ()

    def _mount(self, options: Options) -> Mount:
        """Return the mount that a request is for."""
        return self._registry.get(options["file_system_id"])
