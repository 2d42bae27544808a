"""A simulated memory system: a heap that grows through an sbrk-style call.

Addresses are plain integers. The heap starts at ``heap_lo()`` and can only
grow, up to ``max_heap`` bytes; ``reset_brk`` empties it again.
"""

from __future__ import annotations

import mmap

# Default tracefile directory and the tracefiles the driver uses from it.
TRACEDIR = "/afs/cs/project/ics2/im/labs/malloclab/traces/"
DEFAULT_TRACEFILES = (
    "amptjp-bal.rep",
    "cccp-bal.rep",
    "cp-decl-bal.rep",
    "expr-bal.rep",
    "coalescing-bal.rep",
    "random-bal.rep",
    "random2-bal.rep",
    "binary-bal.rep",
    "binary2-bal.rep",
    "realloc-bal.rep",
    "realloc2-bal.rep",
)

# Estimated libc malloc throughput (ops/sec); caps the throughput score.
AVG_LIBC_THRUPUT = 600e3

# Share of the performance index given to space utilisation.
UTIL_WEIGHT = 0.60

# Alignment requirement for payload addresses, in bytes.
ALIGNMENT = 8

# Maximum heap size in bytes.
MAX_HEAP = 20 * (1 << 20)

# First address of the simulated heap.
HEAP_BASE = 0


class OutOfMemoryError(MemoryError):
    """Raised when the simulated heap cannot grow by the requested amount."""


class SimulatedMemory:
    """A heap of at most ``max_heap`` bytes that grows and never shrinks."""

    def __init__(self, max_heap: int = MAX_HEAP) -> None:
        if max_heap < 0:
            raise ValueError("max_heap must not be negative")
        self.max_heap = max_heap
        self._start = HEAP_BASE
        self._brk = self._start
        self._data = bytearray()

    def sbrk(self, incr: int) -> int:
        """Extend the heap by ``incr`` bytes and return the old break address."""
        if incr < 0 or self._brk + incr > self._start + self.max_heap:
            raise OutOfMemoryError("mem_sbrk failed. Ran out of memory...")
        old_brk = self._brk
        self._brk += incr
        needed = self._brk - self._start
        if needed > len(self._data):
            self._data.extend(bytes(needed - len(self._data)))
        return old_brk

    def reset_brk(self) -> None:
        """Make the heap empty again."""
        self._brk = self._start

    def heap_lo(self) -> int:
        """Address of the first heap byte."""
        return self._start

    def heap_hi(self) -> int:
        """Address of the last heap byte."""
        return self._brk - 1

    def heapsize(self) -> int:
        """Current heap size in bytes."""
        return self._brk - self._start

    def pagesize(self) -> int:
        """The system page size."""
        return mmap.PAGESIZE

    def _offset(self, addr: int, size: int) -> int:
        if size < 0:
            raise ValueError("size must not be negative")
        if addr < self._start or addr + size > self._brk:
            raise IndexError(
                f"access {addr:#x}+{size} lies outside heap "
                f"({self._start:#x}:{self._brk - 1:#x})"
            )
        return addr - self._start

    def read(self, addr: int, size: int) -> bytes:
        """Return ``size`` bytes starting at ``addr``."""
        offset = self._offset(addr, size)
        return bytes(self._data[offset:offset + size])

    def write(self, addr: int, data: bytes) -> None:
        """Store ``data`` starting at ``addr``."""
        offset = self._offset(addr, len(data))
        self._data[offset:offset + len(data)] = data

    def fill(self, addr: int, value: int, size: int) -> None:
        """Set ``size`` bytes at ``addr`` to the low byte of ``value``."""
        offset = self._offset(addr, size)
        self._data[offset:offset + size] = bytes([value & 0xFF]) * size