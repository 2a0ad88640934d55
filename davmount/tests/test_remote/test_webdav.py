from datetime import datetime, timezone

import httpx
import pytest

from davmount.errors import (
    ForbiddenError,
    NotFoundError,
    RemoteError,
    RemoteErrorKind,
    UnreachableError,
)
from davmount.remote import WebDavClient

BASE_URL = "https://cloud.example.com/remote.php/dav"


def multistatus(*responses):
    return (
        '<?xml version="1.0"?><d:multistatus xmlns:d="DAV:">'
        + "".join(responses)
        + "</d:multistatus>"
    ).encode()


def dav_response(href, collection=False, size=None, modified=None, mime=None):
    found = ["<d:resourcetype>"]
    missing = []

    if collection:
        found.append("<d:collection/>")
    found.append("</d:resourcetype>")

    for tag, value in (
        ("getcontentlength", size),
        ("getlastmodified", modified),
        ("getcontenttype", mime),
    ):
        if value is None:
            missing.append(f"<d:{tag}/>")
        else:
            found.append(f"<d:{tag}>{value}</d:{tag}>")

    propstats = (
        "<d:propstat><d:prop>"
        + "".join(found)
        + "</d:prop><d:status>HTTP/1.1 200 OK</d:status></d:propstat>"
    )

    if missing:
        propstats += (
            "<d:propstat><d:prop>"
            + "".join(missing)
            + "</d:prop><d:status>HTTP/1.1 404 Not Found</d:status></d:propstat>"
        )

    return f"<d:response><d:href>{href}</d:href>{propstats}</d:response>"


def create_client(handler):
    return WebDavClient(
        BASE_URL, "alice", "secret", transport=httpx.MockTransport(handler)
    )


def test_list():
    requests = []

    def handler(request):
        requests.append(request)

        return httpx.Response(
            207,
            content=multistatus(
                dav_response("/remote.php/dav/reports/", collection=True),
                dav_response(
                    "/remote.php/dav/reports/q1.pdf",
                    size=300,
                    modified="Mon, 01 Jan 2024 00:00:00 GMT",
                    mime="application/pdf",
                ),
                dav_response("/remote.php/dav/reports/archive/", collection=True),
            ),
        )

    client = create_client(handler)
    entries = client.list("/reports")

    assert [e.path for e in entries] == ["/reports/q1.pdf", "/reports/archive"]

    q1, archive = entries

    assert q1.name == "q1.pdf"
    assert q1.type == "file"
    assert q1.size == 300
    assert q1.mime == "application/pdf"
    assert q1.last_modified == datetime(2024, 1, 1, tzinfo=timezone.utc)

    assert archive.type == "directory"
    assert archive.size == 0
    assert archive.mime is None

    request = requests[0]

    assert request.method == "PROPFIND"
    assert request.url.path == "/remote.php/dav/reports"
    assert request.headers["Depth"] == "1"
    assert request.headers["Authorization"].startswith("Basic ")


def test_list_root():
    def handler(request):
        assert request.url.path == "/remote.php/dav/"

        return httpx.Response(
            207,
            content=multistatus(
                dav_response("/remote.php/dav/", collection=True),
                dav_response("/remote.php/dav/notes.txt", size=11),
            ),
        )

    entries = create_client(handler).list("/")

    assert [e.path for e in entries] == ["/notes.txt"]


def test_stat():
    def handler(request):
        assert request.method == "PROPFIND"
        assert request.headers["Depth"] == "0"

        return httpx.Response(
            207,
            content=multistatus(
                dav_response("/remote.php/dav/My%20Docs/a%20b.txt", size=3)
            ),
        )

    st = create_client(handler).stat("/My Docs/a b.txt")

    assert st.path == "/My Docs/a b.txt"
    assert st.name == "a b.txt"
    assert st.size == 3
    assert st.last_modified is None


def test_stat_not_found():
    client = create_client(lambda request: httpx.Response(404))

    with pytest.raises(NotFoundError) as e:
        client.stat("/missing.txt")

    assert e.value.kind == RemoteErrorKind.NOT_FOUND
    assert e.value.path == "/missing.txt"
    assert e.value.status == 404


def test_malformed_propfind_response():
    client = create_client(lambda request: httpx.Response(207, content=b"<oops"))

    with pytest.raises(RemoteError):
        client.list("/")


def test_get_whole_file():
    def handler(request):
        assert request.method == "GET"
        assert "Range" not in request.headers
        return httpx.Response(200, content=b"hello world")

    assert create_client(handler).get("/notes.txt") == b"hello world"


def test_get_range():
    content = bytes(range(256)) + bytes(44)
    ranges = []

    def handler(request):
        ranges.append(request.headers["Range"])
        return httpx.Response(
            206,
            content=content[0:50],
            headers={"Content-Range": "bytes 0-49/300"},
        )

    data = create_client(handler).get("/reports/q1.pdf", 0, 50)

    assert ranges == ["bytes=0-49"]
    assert data == content[0:50]


def test_get_range_ignored_by_server():
    content = bytes(300)

    client = create_client(lambda request: httpx.Response(200, content=content))

    assert client.get("/reports/q1.pdf", 100, 150) == content[100:150]


def test_get_range_beyond_end():
    def handler(request):
        assert request.headers["Range"] == "bytes=250-349"
        return httpx.Response(206, content=bytes(50))

    assert len(create_client(handler).get("/reports/q1.pdf", 250, 350)) == 50


def test_get_range_not_satisfiable():
    client = create_client(lambda request: httpx.Response(416))

    assert client.get("/reports/q1.pdf", 1000, 1050) == b""


def test_get_empty_range():
    def handler(request):
        raise AssertionError("no request expected")

    assert create_client(handler).get("/reports/q1.pdf", 10, 10) == b""


def test_put():
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(201)

    create_client(handler).put("/notes.txt", b"new contents")

    assert requests[0].method == "PUT"
    assert requests[0].content == b"new contents"


@pytest.mark.parametrize("method", ["move", "copy"])
def test_move_and_copy(method):
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(201)

    client = create_client(handler)
    getattr(client, method)("/a.txt", "/archive/b c.txt")

    request = requests[0]

    assert request.method == method.upper()
    assert request.url.path == "/remote.php/dav/a.txt"
    assert request.headers["Destination"] == (
        "https://cloud.example.com/remote.php/dav/archive/b%20c.txt"
    )
    assert request.headers["Overwrite"] == "T"


def test_mkcol_and_delete():
    methods = []

    def handler(request):
        methods.append((request.method, request.url.path))
        return httpx.Response(201 if request.method == "MKCOL" else 204)

    client = create_client(handler)
    client.mkcol("/new")
    client.delete("/new")

    assert methods == [
        ("MKCOL", "/remote.php/dav/new"),
        ("DELETE", "/remote.php/dav/new"),
    ]


@pytest.mark.parametrize("status", [401, 403])
def test_forbidden(status):
    client = create_client(lambda request: httpx.Response(status))

    with pytest.raises(ForbiddenError) as e:
        client.list("/")

    assert e.value.kind == RemoteErrorKind.FORBIDDEN
    assert e.value.status == status


def test_other_status():
    client = create_client(lambda request: httpx.Response(507))

    with pytest.raises(RemoteError) as e:
        client.put("/notes.txt", b"x")

    assert type(e.value) is RemoteError
    assert e.value.kind == RemoteErrorKind.OTHER
    assert e.value.status == 507


def test_unreachable():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = create_client(handler)

    with pytest.raises(UnreachableError) as e:
        client.stat("/")

    assert e.value.kind == RemoteErrorKind.UNREACHABLE
    assert e.value.status is None
