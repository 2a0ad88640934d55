"""Module with shared fixtures and a flag to enable tests against a real server."""

from datetime import datetime, timezone
import mimetypes
import posixpath
import threading
from typing import Dict, List, Optional, Set, Tuple

import pytest

from davmount.errors import NotFoundError, RemoteError
from davmount.filesystem import LocalMountTable, MountConfig, MountRegistry, MountStore
from davmount.provider import RequestDispatcher
from davmount.remote import normalize_path, RemoteClient, RemoteStat


def pytest_addoption(parser):
    parser.addoption(
        "--webdav",
        action="store",
        default=None,
        metavar="URL",
        help="Run tests against the WebDAV server at URL",
    )


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "webdav: mark test as requiring a real WebDAV server to run"
    )


def pytest_collection_modifyitems(config, items):
    if not config.getoption("--webdav"):
        skip_webdav = pytest.mark.skip(reason="only runs with --webdav option")

        for item in items:
            if "webdav" in item.keywords:
                item.add_marker(skip_webdav)


MODIFIED = datetime(2024, 1, 1, tzinfo=timezone.utc)


class FakeRemote(RemoteClient):
    """
    In-memory WebDAV server that behaves like Nextcloud for the calls davmount makes.

    Moving the ".file" object of a collection assembles the chunks in it, ordered by
    their names, into the destination and removes the collection. Every call is
    recorded so tests can check what went over the wire.
    """

    def __init__(self):
        self.files: Dict[str, bytes] = {}
        self.dirs: Set[str] = {"/"}
        self.calls: List[Tuple] = []
        self.failures: Dict[str, Exception] = {}
        self.closed = False

        self._lock = threading.Lock()

    #
    # Test helpers
    #

    def add_file(self, path: str, data: bytes = b"") -> None:
        path = normalize_path(path)
        self._add_parents(path)
        self.files[path] = data

    def add_dir(self, path: str) -> None:
        path = normalize_path(path)
        self._add_parents(path)
        self.dirs.add(path)

    def fail(self, method: str, exc: Exception) -> None:
        """Make the next call of the given method raise exc."""
        self.failures[method] = exc

    def calls_of(self, method: str) -> List[Tuple]:
        return [call for call in self.calls if call[0] == method]

    def reset_calls(self) -> None:
        self.calls.clear()

    #
    # RemoteClient
    #

    def list(self, path: str) -> List[RemoteStat]:
        path = self._record("list", path)

        with self._lock:
            if path not in self.dirs:
                raise NotFoundError("no such collection", path, 404)

            children = [
                p
                for p in self.dirs | set(self.files)
                if p != path and posixpath.dirname(p) == path
            ]

            return [self._stat(p) for p in sorted(children)]

    def stat(self, path: str) -> RemoteStat:
        path = self._record("stat", path)

        with self._lock:
            if path not in self.dirs and path not in self.files:
                raise NotFoundError("no such resource", path, 404)

            return self._stat(path)

    def get(
        self,
        path: str,
        range_start: Optional[int] = None,
        range_end: Optional[int] = None,
    ) -> bytes:
        path = self._record("get", path, range_start, range_end)

        with self._lock:
            if path not in self.files:
                raise NotFoundError("no such file", path, 404)

            data = self.files[path]

        if range_start is None:
            return data

        return data[range_start:range_end]

    def put(self, path: str, data: bytes) -> None:
        path = self._record("put", path, data)

        with self._lock:
            if posixpath.dirname(path) not in self.dirs or path in self.dirs:
                raise RemoteError("conflict", path, 409)

            self.files[path] = bytes(data)

    def mkcol(self, path: str) -> None:
        path = self._record("mkcol", path)

        with self._lock:
            if path in self.dirs or path in self.files:
                raise RemoteError("already exists", path, 405)
            if posixpath.dirname(path) not in self.dirs:
                raise RemoteError("conflict", path, 409)

            self.dirs.add(path)

    def delete(self, path: str) -> None:
        path = self._record("delete", path)

        with self._lock:
            if path not in self.dirs and path not in self.files:
                raise NotFoundError("no such resource", path, 404)

            self._remove_tree(path)

    def move(self, src: str, dst: str) -> None:
        src = self._record("move", src, normalize_path(dst))
        dst = normalize_path(dst)

        with self._lock:
            staging, name = posixpath.split(src)

            if name == ".file" and staging in self.dirs and src not in self.files:
                self.files[dst] = self._assemble(staging)
                self._remove_tree(staging)
                return

            self._transfer(src, dst)
            self._remove_tree(src)

    def copy(self, src: str, dst: str) -> None:
        src = self._record("copy", src, normalize_path(dst))
        dst = normalize_path(dst)

        with self._lock:
            self._transfer(src, dst)

    def close(self) -> None:
        self.closed = True

    #
    # Internals
    #

    def _record(self, method: str, path: str, *args) -> str:
        path = normalize_path(path)

        with self._lock:
            self.calls.append((method, path, *args))
            exc = self.failures.pop(method, None)

        if exc is not None:
            raise exc

        return path

    def _stat(self, path: str) -> RemoteStat:
        if path in self.dirs:
            return RemoteStat(
                path=path,
                name=posixpath.basename(path),
                type="directory",
                last_modified=MODIFIED,
            )

        return RemoteStat(
            path=path,
            name=posixpath.basename(path),
            type="file",
            size=len(self.files[path]),
            last_modified=MODIFIED,
            mime=mimetypes.guess_type(path)[0] or "application/octet-stream",
        )

    def _add_parents(self, path: str) -> None:
        parent = posixpath.dirname(path)

        while parent not in self.dirs:
            self.dirs.add(parent)
            parent = posixpath.dirname(parent)

    def _assemble(self, staging: str) -> bytes:
        data = bytearray()

        chunks = sorted(p for p in self.files if posixpath.dirname(p) == staging)

        for chunk in chunks:
            offset = int(posixpath.basename(chunk).split("-")[0])
            content = self.files[chunk]

            if len(data) < offset:
                data.extend(bytes(offset - len(data)))

            data[offset : offset + len(content)] = content

        return bytes(data)

    def _transfer(self, src: str, dst: str) -> None:
        if src not in self.dirs and src not in self.files:
            raise NotFoundError("no such resource", src, 404)
        if posixpath.dirname(dst) not in self.dirs:
            raise RemoteError("conflict", dst, 409)

        self._remove_tree(dst)

        for path in sorted(self.dirs):
            if path == src or path.startswith(src + "/"):
                self.dirs.add(dst + path[len(src) :])

        for path in list(self.files):
            if path == src or path.startswith(src + "/"):
                self.files[dst + path[len(src) :]] = self.files[path]

    def _remove_tree(self, path: str) -> None:
        self.dirs = {p for p in self.dirs if p != path and not p.startswith(path + "/")}
        self.files = {
            p: d
            for p, d in self.files.items()
            if p != path and not p.startswith(path + "/")
        }


@pytest.fixture
def remote():
    remote = FakeRemote()
    remote.add_file("/reports/q1.pdf", b"%PDF" + bytes(296))
    remote.add_file("/notes.txt", b"hello world")
    remote.add_dir("/empty")
    remote.add_dir("/uploads")
    return remote


@pytest.fixture
def store(tmp_path):
    return MountStore(str(tmp_path / "mounts.json"))


@pytest.fixture
def surface():
    return LocalMountTable()


@pytest.fixture
def registry(surface, store, remote):
    return MountRegistry(surface, store, lambda config: remote)


@pytest.fixture
def docs_config():
    return MountConfig(
        name="Docs",
        url="https://cloud.example.com/remote.php/dav",
        username="alice",
        password="secret",
    )


@pytest.fixture
def docs_id(registry, docs_config, remote):
    docs_id = registry.mount(docs_config)
    remote.reset_calls()
    return docs_id


@pytest.fixture
def dispatcher(registry):
    return RequestDispatcher(registry, staging_root="/uploads")
