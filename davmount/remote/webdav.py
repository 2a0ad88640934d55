"""
Module implementing the remote client for WebDAV servers on top of httpx.

Only the small subset of WebDAV that is needed to emulate a file system is used:
PROPFIND for listings and metadata, GET (with Range) for reading, PUT for writing whole
resources, and MKCOL, DELETE, MOVE and COPY for changing the structure. Random-access
writes are built on top of these by the chunked upload session.
"""

from __future__ import annotations

from datetime import datetime
from email.utils import parsedate_to_datetime
import logging
import posixpath
import time
from typing import Dict, Iterable, List, Optional
from urllib.parse import quote, unquote, urlsplit
import xml.etree.ElementTree as ET

import httpx

from davmount.errors import (
    ForbiddenError,
    NotFoundError,
    RemoteError,
    UnreachableError,
)
from davmount.logger import log
from .common import normalize_path, RemoteClient, RemoteStat

DAV_NS = "{DAV:}"

# Only request the properties that end up in the metadata, which keeps listings of
# large directories small.
PROPFIND_BODY = b"""<?xml version="1.0" encoding="utf-8"?>
<d:propfind xmlns:d="DAV:">
  <d:prop>
    <d:resourcetype/>
    <d:getcontentlength/>
    <d:getlastmodified/>
    <d:getcontenttype/>
  </d:prop>
</d:propfind>
"""


class WebDavClient(RemoteClient):
    """
    Remote client that talks WebDAV to a single server with basic authentication.

    A single httpx.Client (and with that a connection pool) is shared by all threads.
    """

    def __init__(
        self,
        url: str,
        username: str,
        password: str,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        """
        Instantiate a client for the server at the given URL.

        The URL may contain a path, like https://example.com/remote.php/dav, in which
        case all resource paths are relative to it. A custom transport can be
        specified to route requests somewhere other than the network.
        """
        self._http = httpx.Client(
            base_url=url,
            auth=(username, password),
            timeout=timeout,
            transport=transport,
        )

        self._base_path = unquote(self._http.base_url.path).rstrip("/")

    def __str__(self) -> str:
        return f"WebDAV ({self._http.base_url})"

    #
    # Metadata access
    #

    def list(self, path: str) -> List[RemoteStat]:
        path = normalize_path(path)

        return [st for st in self._propfind(path, depth="1") if st.path != path]

    def stat(self, path: str) -> RemoteStat:
        path = normalize_path(path)

        for st in self._propfind(path, depth="0"):
            if st.path == path:
                return st

        raise NotFoundError("resource missing from PROPFIND response", path)

    #
    # Contents
    #

    def get(
        self,
        path: str,
        range_start: Optional[int] = None,
        range_end: Optional[int] = None,
    ) -> bytes:
        """
        Download (a byte range of) a file.

        Ranged reads send an explicit Range header rather than downloading the whole
        file, so that viewers reading large documents in small pieces stay fast. A
        server is allowed to ignore the header and return the full contents, in which
        case the range is cut out locally.
        """
        if range_start is None:
            return self._request("GET", path).content

        if range_end is not None and range_end <= range_start:
            return b""

        last = "" if range_end is None else str(range_end - 1)

        response = self._request(
            "GET", path, headers={"Range": f"bytes={range_start}-{last}"}, allow=(416,)
        )

        content_range = response.headers.get("Content-Range")
        log.debug(f"webdav::GET {path} Content-Range: {content_range}")

        # Range starts beyond the end of the file
        if response.status_code == 416:
            return b""

        data = response.content

        if response.status_code == 206:
            if range_end is None:
                return data
            return data[: range_end - range_start]

        return data[range_start:range_end]

    def put(self, path: str, data: bytes) -> None:
        self._request("PUT", path, content=data)

    #
    # File system structure
    #

    def mkcol(self, path: str) -> None:
        self._request("MKCOL", path)

    def delete(self, path: str) -> None:
        self._request("DELETE", path)

    def move(self, src: str, dst: str) -> None:
        self._request("MOVE", src, headers=self._destination_headers(dst))

    def copy(self, src: str, dst: str) -> None:
        self._request("COPY", src, headers=self._destination_headers(dst))

    def close(self) -> None:
        self._http.close()

    #
    # Protocol helpers
    #

    def _destination_headers(self, dst: str) -> Dict[str, str]:
        """Build the headers that tell MOVE and COPY where to put the resource."""
        return {"Destination": str(self._url(dst)), "Overwrite": "T"}

    def _url(self, path: str) -> httpx.URL:
        """Turn a resource path into an absolute URL on the server."""
        relative = quote(normalize_path(path).lstrip("/"))

        if not relative:
            return self._http.base_url

        return self._http.base_url.join(relative)

    def _request(
        self, method: str, path: str, allow: Iterable[int] = (), **kwargs
    ) -> httpx.Response:
        """
        Send a request for the resource at path and check its response status.

        Transport failures and error statuses (except for the allowed ones) are turned
        into the matching RemoteError so that callers only ever have to deal with
        davmount's own exceptions.
        """
        t_call = time.time()

        try:
            response = self._http.request(method, self._url(path), **kwargs)
        except httpx.TransportError as e:
            raise UnreachableError(f"{method} failed: {e}", path)

        status = response.status_code

        # Explicit check before logging to avoid formatting in the common case
        if log.isEnabledFor(logging.DEBUG):
            t_millis = round((time.time() - t_call) * 1000)
            log.debug(f"webdav::{method} {path} - {status} - {t_millis} ms")

        if status < 400 or status in allow:
            return response

        message = f"{method} failed with status {status}"

        if status == 404:
            raise NotFoundError(message, path, status)
        elif status in (401, 403):
            raise ForbiddenError(message, path, status)
        else:
            raise RemoteError(message, path, status)

    def _propfind(self, path: str, depth: str) -> List[RemoteStat]:
        """Retrieve the properties of a resource and, with depth 1, its children."""
        response = self._request(
            "PROPFIND",
            path,
            headers={"Depth": depth, "Content-Type": "application/xml; charset=utf-8"},
            content=PROPFIND_BODY,
        )

        try:
            root = ET.fromstring(response.content)
        except ET.ParseError as e:
            raise RemoteError(
                f"malformed PROPFIND response: {e}", path, response.status_code
            )

        return [self._parse_response(elem) for elem in root.iter(f"{DAV_NS}response")]

    def _parse_response(self, elem: ET.Element) -> RemoteStat:
        """Turn a single <response> element of a multistatus document into a stat."""
        href = unquote(urlsplit(elem.findtext(f"{DAV_NS}href", "")).path)

        # Strip the path of the base URL to end up with a resource path
        if href.startswith(self._base_path + "/") or href == self._base_path:
            href = href[len(self._base_path) :]

        path = normalize_path(href)

        props: Dict[str, ET.Element] = {}

        for propstat in elem.iter(f"{DAV_NS}propstat"):
            status = propstat.findtext(f"{DAV_NS}status", "").split()

            # Properties the server doesn't know are reported with a 404 status
            if status[1:2] != ["200"]:
                continue

            for prop in propstat.iter(f"{DAV_NS}prop"):
                for child in prop:
                    props[child.tag] = child

        resource_type = props.get(f"{DAV_NS}resourcetype")
        is_directory = (
            resource_type is not None
            and resource_type.find(f"{DAV_NS}collection") is not None
        )

        return RemoteStat(
            path=path,
            name=posixpath.basename(path),
            type="directory" if is_directory else "file",
            size=int(self._prop_text(props, "getcontentlength") or 0),
            last_modified=self._parse_date(self._prop_text(props, "getlastmodified")),
            mime=self._prop_text(props, "getcontenttype"),
        )

    @staticmethod
    def _prop_text(props: Dict[str, ET.Element], name: str) -> Optional[str]:
        prop = props.get(f"{DAV_NS}{name}")

        if prop is None or not prop.text:
            return None

        return prop.text.strip()

    @staticmethod
    def _parse_date(value: Optional[str]) -> Optional[datetime]:
        """Parse an RFC 1123 date like "Mon, 01 Jan 2024 00:00:00 GMT"."""
        if not value:
            return None

        try:
            return parsedate_to_datetime(value)
        except (TypeError, ValueError):
            log.debug(f"unparsable modification date '{value}'")
            return None
