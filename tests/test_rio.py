import os

import pytest

from labkit.rio import RIO_BUFSIZE, RioReader, ltoa, readn, writen


@pytest.fixture
def make_fd(tmp_path):
    fds = []

    def _make(data: bytes) -> int:
        path = tmp_path / f"data{len(fds)}.bin"
        path.write_bytes(data)
        fd = os.open(path, os.O_RDONLY)
        fds.append(fd)
        return fd

    yield _make
    for fd in fds:
        os.close(fd)


def test_readn_reads_requested_bytes(make_fd):
    fd = make_fd(b"hello world")
    assert readn(fd, 5) == b"hello"
    assert readn(fd, 6) == b" world"


def test_readn_short_at_eof(make_fd):
    fd = make_fd(b"abc")
    assert readn(fd, 10) == b"abc"
    assert readn(fd, 10) == b""


def test_readn_negative_raises(make_fd):
    fd = make_fd(b"abc")
    with pytest.raises(ValueError):
        readn(fd, -1)


def test_writen_writes_everything(tmp_path):
    path = tmp_path / "out.bin"
    data = bytes(range(256)) * 100
    fd = os.open(path, os.O_WRONLY | os.O_CREAT)
    try:
        assert writen(fd, data) == len(data)
    finally:
        os.close(fd)
    assert path.read_bytes() == data


def test_writen_then_readn_pipe_round_trip():
    r, w = os.pipe()
    try:
        payload = b"GET / HTTP/1.0\r\n\r\n"
        assert writen(w, payload) == len(payload)
        os.close(w)
        w = None
        assert readn(r, 1000) == payload
    finally:
        os.close(r)
        if w is not None:
            os.close(w)


def test_readlineb_splits_lines(make_fd):
    fd = make_fd(b"first\nsecond\r\nlast")
    reader = RioReader(fd)
    assert reader.readlineb() == b"first\n"
    assert reader.readlineb() == b"second\r\n"
    assert reader.readlineb() == b"last"
    assert reader.readlineb() == b""


def test_readlineb_respects_maxlen(make_fd):
    fd = make_fd(b"abcdef\n")
    reader = RioReader(fd)
    assert reader.readlineb(4) == b"abc"
    assert reader.readlineb(4) == b"def"
    assert reader.readlineb(4) == b"\n"


def test_readlineb_maxlen_one_reads_nothing(make_fd):
    fd = make_fd(b"abc\n")
    reader = RioReader(fd)
    assert reader.readlineb(1) == b""
    assert reader.readlineb() == b"abc\n"


def test_readnb_across_buffer_boundary(make_fd):
    data = bytes(i % 251 for i in range(RIO_BUFSIZE * 2 + 123))
    fd = make_fd(data)
    reader = RioReader(fd)
    pieces = []
    while True:
        chunk = reader.readnb(3000)
        if not chunk:
            break
        assert len(chunk) <= 3000
        pieces.append(chunk)
    assert b"".join(pieces) == data


def test_mixing_lines_and_bytes(make_fd):
    fd = make_fd(b"Content-length: 5\r\n\r\nhello tail")
    reader = RioReader(fd)
    assert reader.readlineb() == b"Content-length: 5\r\n"
    assert reader.readlineb() == b"\r\n"
    assert reader.readnb(5) == b"hello"
    assert reader.readnb(100) == b" tail"
    assert reader.readnb(100) == b""


def test_long_line_over_buffer_size(make_fd):
    line = b"x" * (RIO_BUFSIZE + 10) + b"\n"
    fd = make_fd(line + b"next\n")
    reader = RioReader(fd)
    assert reader.readlineb(len(line) + 1) == line
    assert reader.readlineb() == b"next\n"


def test_readnb_negative_raises(make_fd):
    reader = RioReader(make_fd(b""))
    with pytest.raises(ValueError):
        reader.readnb(-2)


def test_ltoa_zero():
    assert ltoa(0) == "0"


def test_ltoa_decimal_matches_str():
    for value in (1, 9, 10, 42, 1234567890, 2**63 - 1):
        assert ltoa(value) == str(value)


@pytest.mark.parametrize("base", [2, 8, 10, 16, 36])
def test_ltoa_round_trip(base):
    for value in (0, 1, 7, 35, 36, 255, 4096, 99991, 2**40 + 3):
        text = ltoa(value, base)
        assert int(text, base) == value
        assert text == text.lower()


def test_ltoa_negative_round_trip():
    assert int(ltoa(-255, 16), 16) == -255


@pytest.mark.parametrize("base", [0, 1, 37])
def test_ltoa_bad_base(base):
    with pytest.raises(ValueError):
        ltoa(5, base)