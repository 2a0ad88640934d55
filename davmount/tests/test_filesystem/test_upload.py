import itertools

import pytest

from davmount.errors import RemoteError, UnreachableError, UploadStateError
from davmount.filesystem.upload import chunk_name, ChunkedUploadSession, UploadState


def test_chunk_name():
    assert chunk_name(0, 100) == "000000000000000-000000000000100"
    assert chunk_name(100, 250) < chunk_name(250, 300)
    assert chunk_name(9, 10) < chunk_name(10, 11)


def test_start_creates_staging_collection(remote):
    session = ChunkedUploadSession.start(remote, "/notes.txt", "/uploads")

    assert session.state == UploadState.OPEN
    assert session.staging_path == f"/uploads/{session.session_id}"
    assert remote.calls == [("mkcol", session.staging_path)]
    assert session.staging_path in remote.dirs


def test_sessions_for_same_target_are_independent(remote):
    a = ChunkedUploadSession.start(remote, "/notes.txt", "/uploads")
    b = ChunkedUploadSession.start(remote, "/notes.txt", "/uploads")

    assert a.session_id != b.session_id
    assert "notes" not in a.staging_path


def test_start_failure(remote):
    remote.fail("mkcol", UnreachableError("MKCOL failed"))

    with pytest.raises(UnreachableError):
        ChunkedUploadSession.start(remote, "/notes.txt", "/uploads")


@pytest.mark.parametrize(
    "order", list(itertools.permutations([(0, 100), (100, 250), (250, 300)]))
)
def test_chunks_assembled_in_offset_order(remote, order):
    content = bytes(i % 251 for i in range(300))

    session = ChunkedUploadSession.start(remote, "/reports/big.bin", "/uploads")

    for start, end in order:
        assert session.write(start, content[start:end]) == end - start

    assert session.state == UploadState.ACCUMULATING
    assert session.chunks == [(0, 100), (100, 150), (250, 50)]

    session.finalize()

    assert session.state == UploadState.CLOSED
    assert remote.files["/reports/big.bin"] == content
    assert session.staging_path not in remote.dirs


def test_chunk_objects(remote):
    session = ChunkedUploadSession.start(remote, "/notes.txt", "/uploads")
    session.write(5, b"abc")

    assert remote.files[f"{session.staging_path}/000000000000005-000000000000008"] == (
        b"abc"
    )


def test_finalize_is_a_single_move(remote):
    session = ChunkedUploadSession.start(remote, "/notes.txt", "/uploads")
    session.write(0, b"new")

    remote.reset_calls()
    session.finalize()

    assert remote.calls == [("move", f"{session.staging_path}/.file", "/notes.txt")]
    assert remote.files["/notes.txt"] == b"new"


def test_finalize_without_writes(remote):
    session = ChunkedUploadSession.start(remote, "/notes.txt", "/uploads")
    session.finalize()

    assert session.state == UploadState.CLOSED
    assert remote.files["/notes.txt"] == b""


def test_write_after_finalize(remote):
    session = ChunkedUploadSession.start(remote, "/notes.txt", "/uploads")
    session.finalize()

    with pytest.raises(UploadStateError):
        session.write(0, b"late")

    with pytest.raises(UploadStateError):
        session.finalize()


def test_finalize_failure_aborts(remote):
    session = ChunkedUploadSession.start(remote, "/notes.txt", "/uploads")
    session.write(0, b"new")

    remote.fail("move", RemoteError("MOVE failed with status 507", "/notes.txt", 507))

    with pytest.raises(RemoteError):
        session.finalize()

    assert session.state == UploadState.ABORTED
    assert remote.files["/notes.txt"] == b"hello world"

    # Staging collection is left behind
    assert session.staging_path in remote.dirs


def test_abort(remote):
    session = ChunkedUploadSession.start(remote, "/notes.txt", "/uploads")
    session.write(0, b"new")

    remote.reset_calls()
    session.abort()

    assert session.state == UploadState.ABORTED
    assert remote.calls == []
    assert remote.files["/notes.txt"] == b"hello world"

    with pytest.raises(UploadStateError):
        session.write(3, b"more")


def test_abort_after_close(remote):
    session = ChunkedUploadSession.start(remote, "/notes.txt", "/uploads")
    session.finalize()
    session.abort()

    assert session.state == UploadState.CLOSED
