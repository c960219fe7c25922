import io
import os

from providers.impl.temp_stream import TempStream


def _stream(data: bytes) -> TempStream:
    s = TempStream.create()
    s.fill(io.BytesIO(data))
    return s


def test_fill_rewinds_to_start():
    s = _stream(b"hello world")
    try:
        assert s.tell() == 0
        assert s.read() == b"hello world"
    finally:
        s.close()


def test_seek_and_read():
    s = _stream(b"hello world")
    try:
        assert s.seek(6) == 6
        assert s.read(5) == b"world"
        assert s.seek(-5, os.SEEK_END) == 6
        assert s.read() == b"world"
    finally:
        s.close()


def test_read_at_does_not_move_position():
    s = _stream(b"abcdefgh")
    try:
        s.seek(2)
        assert s.read_at(3, 4) == b"efg"
        assert s.tell() == 2
        assert s.read(1) == b"c"
        assert s.read_at(10, 6) == b"gh"
    finally:
        s.close()


def test_close_removes_backing_file_once():
    s = _stream(b"x")
    path = s.path
    assert os.path.exists(path)

    s.close()
    assert s.closed
    assert not os.path.exists(path)

    s.close()


def test_close_tolerates_already_removed_file():
    s = _stream(b"x")
    os.remove(s.path)
    s.close()
    assert s.closed


def test_context_manager_closes():
    with _stream(b"ctx") as s:
        path = s.path
        assert s.read() == b"ctx"
    assert not os.path.exists(path)


def test_prefix_is_recognizable():
    s = TempStream.create()
    try:
        assert os.path.basename(s.path).startswith("storage-s3-")
    finally:
        s.close()
