"""Allocator trace files and the range list that checks block payloads."""

from __future__ import annotations

import enum
import os
from dataclasses import dataclass, field
from typing import Any, Iterator

from labkit.memlib import ALIGNMENT

# Number of header lines before the first request in a trace file.
HDRLINES = 4


def line_number(opnum: int) -> int:
    """Line in the trace file (origin 1) of request ``opnum``."""
    return opnum + HDRLINES + 1


class OpType(enum.Enum):
    """Kind of allocator request."""

    ALLOC = "a"
    FREE = "f"
    REALLOC = "r"


@dataclass(frozen=True)
class TraceOp:
    """One request of a trace."""

    type: OpType
    index: int
    size: int = 0


@dataclass
class Trace:
    """A trace and the blocks its requests have produced so far."""

    sugg_heapsize: int
    num_ids: int
    num_ops: int
    weight: int
    ops: list[TraceOp]
    name: str = ""
    blocks: list[Any] = field(init=False, repr=False)
    block_sizes: list[int] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.blocks = [None] * self.num_ids
        self.block_sizes = [0] * self.num_ids


class TraceFormatError(ValueError):
    """Raised when a trace file is malformed."""


class PayloadError(Exception):
    """Raised when an allocated payload is misplaced."""


def parse_trace(text: str, name: str = "<trace>") -> Trace:
    """Parse the text of a trace file."""
    tokens = iter(text.split())

    def next_int(what: str) -> int:
        try:
            token = next(tokens)
        except StopIteration:
            raise TraceFormatError(f"{name}: missing {what}") from None
        try:
            value = int(token)
        except ValueError:
            raise TraceFormatError(f"{name}: bad {what} {token!r}") from None
        return value

    sugg_heapsize = next_int("suggested heap size")
    num_ids = next_int("number of ids")
    num_ops = next_int("number of ops")
    weight = next_int("weight")

    ops: list[TraceOp] = []
    max_index = 0
    for token in tokens:
        kind = token[0]
        if kind in ("a", "r"):
            index = next_int("index")
            size = next_int("size")
            if index < 0 or size < 0:
                raise TraceFormatError(f"{name}: negative value in request")
            ops.append(TraceOp(OpType(kind), index, size))
            max_index = max(max_index, index)
        elif kind == "f":
            index = next_int("index")
            if index < 0:
                raise TraceFormatError(f"{name}: negative value in request")
            ops.append(TraceOp(OpType.FREE, index))
        else:
            raise TraceFormatError(f"Bogus type character ({kind}) in tracefile {name}")

    if max_index != num_ids - 1:
        raise TraceFormatError(
            f"{name}: highest block id {max_index} does not match {num_ids} ids"
        )
    if len(ops) != num_ops:
        raise TraceFormatError(
            f"{name}: found {len(ops)} requests, header says {num_ops}"
        )
    return Trace(sugg_heapsize, num_ids, num_ops, weight, ops, name)


def read_trace(tracedir: str, filename: str) -> Trace:
    """Read and parse the trace file ``filename`` in ``tracedir``."""
    path = os.path.join(tracedir, filename)
    with open(path, encoding="ascii", errors="replace") as tracefile:
        text = tracefile.read()
    return parse_trace(text, path)


class RangeList:
    """The extents of all allocated payloads, used to detect misplaced blocks."""

    def __init__(self, alignment: int = ALIGNMENT) -> None:
        self.alignment = alignment
        self._ranges: dict[int, int] = {}

    def add(self, lo: int, size: int, heap_lo: int, heap_hi: int) -> None:
        """Check the payload ``[lo, lo+size)`` and remember it.

        Raises ``PayloadError`` when the payload is unaligned, outside the
        heap ``[heap_lo, heap_hi]`` or overlapping another payload.
        """
        if size <= 0:
            raise ValueError("payload size must be positive")
        hi = lo + size - 1
        if lo % self.alignment != 0:
            raise PayloadError(
                f"Payload address ({lo:#x}) not aligned to {self.alignment} bytes"
            )
        if lo < heap_lo or lo > heap_hi or hi < heap_lo or hi > heap_hi:
            raise PayloadError(
                f"Payload ({lo:#x}:{hi:#x}) lies outside heap "
                f"({heap_lo:#x}:{heap_hi:#x})"
            )
        for other_lo in reversed(self._ranges):
            other_hi = self._ranges[other_lo]
            if other_lo <= lo <= other_hi or other_lo <= hi <= other_hi:
                raise PayloadError(
                    f"Payload ({lo:#x}:{hi:#x}) overlaps another payload "
                    f"({other_lo:#x}:{other_hi:#x})"
                )
        self._ranges[lo] = hi

    def remove(self, lo: int) -> None:
        """Forget the payload starting at ``lo``, if there is one."""
        self._ranges.pop(lo, None)

    def clear(self) -> None:
        """Forget every payload."""
        self._ranges.clear()

    def __len__(self) -> int:
        return len(self._ranges)

    def __iter__(self) -> Iterator[tuple[int, int]]:
        return iter(self._ranges.items())

    def __contains__(self, lo: object) -> bool:
        return lo in self._ranges