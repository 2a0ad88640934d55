"""Module that implements the per-mount metadata cache."""

from __future__ import annotations

from dataclasses import dataclass
import posixpath
import threading
from typing import Dict, List, Optional, Sequence

from davmount.filesystem.common import Metadata
from davmount.logger import log


@dataclass
class CacheLookup:
    """
    Result of looking up a path in the metadata cache.

    The listing flag is set if the path was seen as a child in a cached listing of its
    parent directory and the entry flag is set if the path itself was stat'ed. Metadata
    prefers the direct stat over the listing child.
    """

    listing_present: bool = False
    entry_present: bool = False
    metadata: Optional[Metadata] = None


class MetadataCache:
    """
    In-memory cache of directory listings and entry metadata for a single mount.

    Listings are only ever stored as a whole, exactly as the latest full read of the
    directory returned them. Entries are stored separately from listings so that a path
    can be known to exist without its parent having been listed, and vice versa.

    The cache has no idea of changes made by other clients of the server. It only
    forgets what it is told to forget, which is why every mutation made through a mount
    must evict the affected paths.

    All methods can be called concurrently from multiple threads.
    """

    def __init__(self) -> None:
        """Instantiate an empty cache."""
        self._lock = threading.Lock()

        self._listings: Dict[str, List[Metadata]] = {}
        self._entries: Dict[str, Metadata] = {}

    def put_listing(self, path: str, entries: Sequence[Metadata]) -> None:
        """Store the complete and ordered list of children of a directory."""
        with self._lock:
            self._listings[path] = list(entries)

    def put_entry(self, path: str, metadata: Metadata) -> None:
        """Store the metadata retrieved by a direct stat of a path."""
        with self._lock:
            self._entries[path] = metadata

    def get(self, path: str) -> CacheLookup:
        """Look up the cached metadata of a path."""
        parent, name = posixpath.split(path)

        with self._lock:
            lookup = CacheLookup()

            for child in self._listings.get(parent, []):
                if child.name == name:
                    lookup.listing_present = True
                    lookup.metadata = child
                    break

            if path in self._entries:
                lookup.entry_present = True
                lookup.metadata = self._entries[path]

            return lookup

    def remove(self, path: str) -> None:
        """Forget the listing and the entry of a path (but not its parent's listing)."""
        with self._lock:
            self._listings.pop(path, None)
            self._entries.pop(path, None)

    def invalidate(self, path: str) -> None:
        """
        Forget everything that a change to the path could have made stale.

        In addition to the path itself this drops the listing of its parent directory,
        because that listing either still contains a deleted child or is missing a
        newly created one. Everything below the path goes as well, since deleting or
        moving a directory takes its whole subtree with it.
        """
        parent = posixpath.dirname(path)
        prefix = path.rstrip("/") + "/"

        with self._lock:
            for cached in (self._listings, self._entries):
                for key in [k for k in cached if k == path or k.startswith(prefix)]:
                    del cached[key]

            if parent != path:
                self._listings.pop(parent, None)

        log.debug(f"invalidated metadata cache for {path}")

    def clear(self) -> None:
        """Forget everything."""
        with self._lock:
            self._listings.clear()
            self._entries.clear()

    def __len__(self) -> int:
        """Return the number of cached listings and entries."""
        with self._lock:
            return len(self._listings) + len(self._entries)
