"""The simplest allocator: blocks are carved off the break and never reused.

A block is an 8-byte size header followed by the payload. Freeing does
nothing, and ``realloc`` is a fresh ``malloc`` plus a copy.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from labkit.memlib import ALIGNMENT, SimulatedMemory

_SIZE_T_BYTES = 8


def align(size: int) -> int:
    """Round ``size`` up to the nearest multiple of the alignment."""
    return (size + (ALIGNMENT - 1)) & ~(ALIGNMENT - 1)


SIZE_T_SIZE = align(_SIZE_T_BYTES)


@dataclass
class Team:
    """The people responsible for an allocator."""

    teamname: str
    name1: str
    id1: str
    name2: str = ""
    id2: str = ""

    def check(self) -> list[str]:
        """Validate the team record and return the lines that describe it.

        Raises ``ValueError`` when a required field is missing.
        """
        if not self.teamname:
            raise ValueError(
                "ERROR: Please provide the information about your team "
                "in the allocator module."
            )
        lines = [f"Team Name:{self.teamname}"]
        if not self.name1 or not self.id1:
            raise ValueError("ERROR.  You must fill in all team member 1 fields!")
        lines.append(f"Member 1 :{self.name1}:{self.id1}")
        if bool(self.name2) != bool(self.id2):
            raise ValueError(
                "ERROR.  You must fill in all or none of the team member 2 ID fields!"
            )
        if self.name2:
            lines.append(f"Member 2 :{self.name2}:{self.id2}")
        return lines


TEAM = Team(
    teamname="ateam",
    name1="Harry Bovik",
    id1="bovik@example.com",
)


class NaiveAllocator:
    """Allocates by bumping the break of a :class:`SimulatedMemory`."""

    team = TEAM

    def __init__(self, memory: SimulatedMemory) -> None:
        self.memory = memory

    def init(self) -> None:
        """Prepare the allocator; this one keeps no state."""

    def malloc(self, size: int) -> int:
        """Allocate ``size`` bytes and return the payload address.

        Raises ``OutOfMemoryError`` when the heap cannot grow.
        """
        if size < 0:
            raise ValueError("size must not be negative")
        block = self.memory.sbrk(align(size + SIZE_T_SIZE))
        self.memory.write(block, size.to_bytes(_SIZE_T_BYTES, "little"))
        return block + SIZE_T_SIZE

    def free(self, ptr: Optional[int]) -> None:
        """Freeing a block does nothing."""

    def realloc(self, ptr: Optional[int], size: int) -> int:
        """Move the block at ``ptr`` into a new block of ``size`` bytes."""
        newptr = self.malloc(size)
        if ptr is None:
            return newptr
        header = self.memory.read(ptr - SIZE_T_SIZE, _SIZE_T_BYTES)
        copy_size = min(int.from_bytes(header, "little"), size)
        self.memory.write(newptr, self.memory.read(ptr, copy_size))
        self.free(ptr)
        return newptr