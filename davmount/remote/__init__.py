"""
Modules that talk to the remote document-storage server.

The virtual file system only depends on the RemoteClient interface, which addresses
every resource by path and reports failures with typed exceptions. WebDavClient
implements it for WebDAV servers.
"""

from .common import normalize_path, RemoteClient, RemoteStat
from .webdav import WebDavClient

__all__ = [
    "normalize_path",
    "RemoteClient",
    "RemoteStat",
    "WebDavClient",
]
