"""Robust I/O on file descriptors: short-count-safe reads and writes.

``readn`` and ``writen`` transfer data without buffering and keep going
after short counts and interrupted system calls. ``RioReader`` reads
through an internal buffer, so bytes and whole text lines can be taken
from the same descriptor in any order.
"""

from __future__ import annotations

import errno
import os
import string

# Size of the internal buffer of a RioReader.
RIO_BUFSIZE = 8192

# Maximum text line length and I/O buffer size.
MAXLINE = 8192
MAXBUF = 8192

# Backlog passed to listen().
LISTENQ = 1024

_DIGITS = string.digits + string.ascii_lowercase


def _read_retrying(fd: int, count: int) -> bytes:
    """``os.read`` that retries when interrupted by a signal handler."""
    while True:
        try:
            return os.read(fd, count)
        except InterruptedError:
            continue


def readn(fd: int, n: int) -> bytes:
    """Read up to ``n`` bytes from ``fd``; fewer only when end of file comes first."""
    if n < 0:
        raise ValueError("n must not be negative")
    chunks: list[bytes] = []
    nleft = n
    while nleft > 0:
        chunk = _read_retrying(fd, nleft)
        if not chunk:
            break
        chunks.append(chunk)
        nleft -= len(chunk)
    return b"".join(chunks)


def writen(fd: int, data: bytes) -> int:
    """Write all of ``data`` to ``fd`` and return the number of bytes written."""
    view = memoryview(data).cast("B")
    total = len(view)
    while view:
        try:
            written = os.write(fd, view)
        except InterruptedError:
            continue
        if written <= 0:
            raise OSError(errno.EIO, "write made no progress")
        view = view[written:]
    return total


class RioReader:
    """Buffered reader over a file descriptor."""

    def __init__(self, fd: int) -> None:
        self.fd = fd
        self._buf = b""
        self._pos = 0

    def _read(self, n: int) -> bytes:
        """Return up to ``n`` buffered bytes, refilling when the buffer is empty.

        Returns ``b""`` at end of file.
        """
        if self._pos >= len(self._buf):
            self._buf = _read_retrying(self.fd, RIO_BUFSIZE)
            self._pos = 0
            if not self._buf:
                return b""
        chunk = self._buf[self._pos:self._pos + n]
        self._pos += len(chunk)
        return chunk

    def readnb(self, n: int) -> bytes:
        """Read up to ``n`` bytes; fewer only when end of file comes first."""
        if n < 0:
            raise ValueError("n must not be negative")
        chunks: list[bytes] = []
        nleft = n
        while nleft > 0:
            chunk = self._read(nleft)
            if not chunk:
                break
            chunks.append(chunk)
            nleft -= len(chunk)
        return b"".join(chunks)

    def readlineb(self, maxlen: int = MAXLINE) -> bytes:
        """Read a line, newline included, of at most ``maxlen - 1`` bytes.

        Returns ``b""`` at end of file when nothing was read.
        """
        line = bytearray()
        while len(line) < maxlen - 1:
            c = self._read(1)
            if not c:
                break
            line += c
            if c == b"\n":
                break
        return bytes(line)


def ltoa(value: int, base: int = 10) -> str:
    """Digits of ``value`` in ``base`` (2 to 36), lower-case letters above 9."""
    if not 2 <= base <= len(_DIGITS):
        raise ValueError(f"base must be between 2 and {len(_DIGITS)}")
    sign = "-" if value < 0 else ""
    value = abs(value)
    digits: list[str] = []
    while True:
        value, digit = divmod(value, base)
        digits.append(_DIGITS[digit])
        if value == 0:
            break
    return sign + "".join(reversed(digits))