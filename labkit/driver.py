"""Run allocator traces and score correctness, space use and throughput."""

from __future__ import annotations

import getopt
import math
import os
import sys
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence, TextIO

from labkit.memlib import (
    ALIGNMENT,
    AVG_LIBC_THRUPUT,
    DEFAULT_TRACEFILES,
    TRACEDIR,
    UTIL_WEIGHT,
    SimulatedMemory,
)
from labkit.mm import NaiveAllocator
from labkit.timers import FunctionTimer, TimingMethod
from labkit.trace import (
    OpType,
    PayloadError,
    RangeList,
    Trace,
    TraceFormatError,
    line_number,
    read_trace,
)


@dataclass
class TraceStats:
    """Results of one allocator on one trace; secs and util count only if valid."""

    ops: float = 0.0
    valid: bool = False
    secs: float = 0.0
    util: float = 0.0


class ReferenceHeap:
    """A host-backed allocator that stands in for the system malloc."""

    def __init__(self) -> None:
        self._blocks: dict[int, bytearray] = {}
        self._next = 1

    def malloc(self, size: int) -> int:
        """Allocate ``size`` bytes and return a handle to them."""
        if size < 0:
            raise ValueError("size must not be negative")
        handle = self._next
        self._next += 1
        self._blocks[handle] = bytearray(size)
        return handle

    def realloc(self, ptr: Optional[int], size: int) -> int:
        """Resize the block ``ptr`` to ``size`` bytes, keeping its contents."""
        if ptr is None:
            return self.malloc(size)
        if size < 0:
            raise ValueError("size must not be negative")
        try:
            block = self._blocks[ptr]
        except KeyError:
            raise ValueError(f"realloc of unknown block {ptr}") from None
        if size < len(block):
            del block[size:]
        else:
            block.extend(bytes(size - len(block)))
        return ptr

    def free(self, ptr: Optional[int]) -> None:
        """Release the block ``ptr``; ``None`` is ignored."""
        if ptr is None:
            return
        if self._blocks.pop(ptr, None) is None:
            raise ValueError(f"free of unknown block {ptr}")

    def __len__(self) -> int:
        return len(self._blocks)


def _attempt(call: Callable[..., Any], *args: Any) -> Any:
    """Call an allocator function, turning memory exhaustion into ``None``."""
    try:
        return call(*args)
    except MemoryError:
        return None


class MallocDriver:
    """Checks and measures an allocator working on a simulated memory."""

    def __init__(
        self,
        memory: SimulatedMemory,
        allocator: Any,
        out: Optional[TextIO] = None,
    ) -> None:
        self.memory = memory
        self.allocator = allocator
        self.out = out if out is not None else sys.stdout
        self.ranges = RangeList(ALIGNMENT)
        self.errors = 0

    def _malloc_error(self, tracenum: int, opnum: int, msg: str) -> None:
        self.errors += 1
        print(
            f"ERROR [trace {tracenum}, line {line_number(opnum)}]: {msg}",
            file=self.out,
        )

    def _add_range(self, lo: int, size: int, tracenum: int, opnum: int) -> bool:
        try:
            self.ranges.add(lo, size, self.memory.heap_lo(), self.memory.heap_hi())
        except PayloadError as exc:
            self._malloc_error(tracenum, opnum, str(exc))
            return False
        return True

    def _init_allocator(self) -> bool:
        self.memory.reset_brk()
        try:
            result = self.allocator.init()
        except MemoryError:
            return False
        return not (isinstance(result, int) and result < 0)

    def eval_mm_valid(self, trace: Trace, tracenum: int) -> bool:
        """Run the trace, checking every payload; report errors and return validity."""
        self.ranges.clear()
        if not self._init_allocator():
            self._malloc_error(tracenum, 0, "mm_init failed.")
            return False

        for opnum, op in enumerate(trace.ops):
            index, size = op.index, op.size
            fill = index & 0xFF
            if op.type is OpType.ALLOC:
                p = _attempt(self.allocator.malloc, size)
                if p is None:
                    self._malloc_error(tracenum, opnum, "mm_malloc failed.")
                    return False
                if not self._add_range(p, size, tracenum, opnum):
                    return False
                self.memory.fill(p, fill, size)
                trace.blocks[index] = p
                trace.block_sizes[index] = size
            elif op.type is OpType.REALLOC:
                oldp = trace.blocks[index]
                newp = _attempt(self.allocator.realloc, oldp, size)
                if newp is None:
                    self._malloc_error(tracenum, opnum, "mm_realloc failed.")
                    return False
                self.ranges.remove(oldp)
                if not self._add_range(newp, size, tracenum, opnum):
                    return False
                kept = min(trace.block_sizes[index], size)
                if self.memory.read(newp, kept) != bytes([fill]) * kept:
                    self._malloc_error(
                        tracenum,
                        opnum,
                        "mm_realloc did not preserve the data from old block",
                    )
                    return False
                self.memory.fill(newp, fill, size)
                trace.blocks[index] = newp
                trace.block_sizes[index] = size
            else:
                p = trace.blocks[index]
                self.ranges.remove(p)
                self.allocator.free(p)
        return True

    def eval_mm_util(self, trace: Trace) -> float:
        """Peak total payload divided by the final heap size."""
        if not self._init_allocator():
            raise RuntimeError("mm_init failed in eval_mm_util")
        total_size = 0
        max_total_size = 0
        for op in trace.ops:
            index = op.index
            if op.type is OpType.ALLOC:
                p = _attempt(self.allocator.malloc, op.size)
                if p is None:
                    raise RuntimeError("mm_malloc failed in eval_mm_util")
                trace.blocks[index] = p
                trace.block_sizes[index] = op.size
                total_size += op.size
                max_total_size = max(max_total_size, total_size)
            elif op.type is OpType.REALLOC:
                oldsize = trace.block_sizes[index]
                newp = _attempt(self.allocator.realloc, trace.blocks[index], op.size)
                if newp is None:
                    raise RuntimeError("mm_realloc failed in eval_mm_util")
                trace.blocks[index] = newp
                trace.block_sizes[index] = op.size
                total_size += op.size - oldsize
                max_total_size = max(max_total_size, total_size)
            else:
                self.allocator.free(trace.blocks[index])
                total_size -= trace.block_sizes[index]
        heapsize = self.memory.heapsize()
        return max_total_size / heapsize if heapsize else 0.0

    def eval_mm_speed(self, trace: Trace) -> None:
        """Run the trace on the allocator without any checking."""
        if not self._init_allocator():
            raise RuntimeError("mm_init failed in eval_mm_speed")
        for op in trace.ops:
            index = op.index
            if op.type is OpType.ALLOC:
                p = _attempt(self.allocator.malloc, op.size)
                if p is None:
                    raise RuntimeError("mm_malloc error in eval_mm_speed")
                trace.blocks[index] = p
            elif op.type is OpType.REALLOC:
                newp = _attempt(self.allocator.realloc, trace.blocks[index], op.size)
                if newp is None:
                    raise RuntimeError("mm_realloc error in eval_mm_speed")
                trace.blocks[index] = newp
            else:
                self.allocator.free(trace.blocks[index])

    def eval_libc_valid(self, trace: Trace, tracenum: int) -> bool:
        """Make sure the reference allocator runs the trace to completion."""
        heap = ReferenceHeap()
        for opnum, op in enumerate(trace.ops):
            if op.type is OpType.ALLOC:
                p = _attempt(heap.malloc, op.size)
                if p is None:
                    self._malloc_error(tracenum, opnum, "libc malloc failed")
                    raise MemoryError("System message")
                trace.blocks[op.index] = p
            elif op.type is OpType.REALLOC:
                newp = _attempt(heap.realloc, trace.blocks[op.index], op.size)
                if newp is None:
                    self._malloc_error(tracenum, opnum, "libc realloc failed")
                    raise MemoryError("System message")
                trace.blocks[op.index] = newp
            else:
                heap.free(trace.blocks[op.index])
        return True

    def eval_libc_speed(self, trace: Trace) -> None:
        """Run the trace on the reference allocator without any checking."""
        heap = ReferenceHeap()
        for op in trace.ops:
            if op.type is OpType.ALLOC:
                trace.blocks[op.index] = heap.malloc(op.size)
            elif op.type is OpType.REALLOC:
                trace.blocks[op.index] = heap.realloc(trace.blocks[op.index], op.size)
            else:
                heap.free(trace.blocks[op.index])


def _kops(ops: float, secs: float) -> float:
    if secs == 0:
        return math.inf if ops > 0 else math.nan
    return (ops / 1e3) / secs


def format_results(stats: Sequence[TraceStats], errors: int = 0) -> str:
    """A table of per-trace results followed by a total line."""
    lines = ["%5s%7s %5s%8s%10s%6s" % ("trace", " valid", "util", "ops", "secs", "Kops")]
    secs = ops = util = 0.0
    for i, entry in enumerate(stats):
        if entry.valid:
            lines.append(
                "%2d%10s%5.0f%%%8.0f%10.6f%6.0f"
                % (
                    i,
                    "yes",
                    entry.util * 100.0,
                    entry.ops,
                    entry.secs,
                    _kops(entry.ops, entry.secs),
                )
            )
            secs += entry.secs
            ops += entry.ops
            util += entry.util
        else:
            lines.append("%2d%10s%6s%8s%10s%6s" % (i, "no", "-", "-", "-", "-"))
    if errors == 0:
        avg_util = util / len(stats) if stats else 0.0
        lines.append(
            "%12s%5.0f%%%8.0f%10.6f%6.0f"
            % ("Total       ", avg_util * 100.0, ops, secs, _kops(ops, secs))
        )
    else:
        lines.append("%12s%6s%8s%10s%6s" % ("Total       ", "-", "-", "-", "-"))
    return "\n".join(lines) + "\n"


def performance_index(stats: Sequence[TraceStats]) -> tuple[float, float, float]:
    """Return (utilisation points, throughput points, total) out of 100."""
    if not stats:
        raise ValueError("no trace statistics")
    secs = sum(entry.secs for entry in stats)
    ops = sum(entry.ops for entry in stats)
    avg_util = sum(entry.util for entry in stats) / len(stats)
    throughput = ops / secs if secs else math.inf
    p1 = UTIL_WEIGHT * avg_util
    if throughput > AVG_LIBC_THRUPUT:
        p2 = 1.0 - UTIL_WEIGHT
    else:
        p2 = (1.0 - UTIL_WEIGHT) * (throughput / AVG_LIBC_THRUPUT)
    return p1 * 100.0, p2 * 100.0, (p1 + p2) * 100.0


_USAGE = """\
Usage: mdriver [-hvVal] [-f <file>] [-t <dir>]
Options
\t-a         Don't check the team structure.
\t-f <file>  Use <file> as the trace file.
\t-g         Generate summary info for autograder.
\t-h         Print this message.
\t-l         Run libc malloc as well.
\t-t <dir>   Directory to find default traces.
\t-v         Print per-trace performance breakdowns.
\t-V         Print additional debug info."""


def _load(tracedir: str, filename: str, verbose: int) -> Trace:
    if verbose > 1:
        print(f"Reading tracefile: {filename}")
    return read_trace(tracedir, filename)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Command-line driver; returns the exit status."""
    args = list(sys.argv[1:] if argv is None else argv)
    try:
        opts, _rest = getopt.getopt(args, "f:t:hvVgal")
    except getopt.GetoptError:
        print(_USAGE, file=sys.stderr)
        return 1

    tracedir = TRACEDIR
    tracefiles: Optional[list[str]] = None
    verbose = 0
    team_check = True
    run_libc = False
    autograder = False
    for flag, value in opts:
        if flag == "-g":
            autograder = True
        elif flag == "-f":
            tracefiles = [value]
            tracedir = "./"
        elif flag == "-t":
            if tracefiles is not None:
                continue
            tracedir = value if value.endswith("/") else value + "/"
        elif flag == "-a":
            team_check = False
        elif flag == "-l":
            run_libc = True
        elif flag == "-v":
            verbose = 1
        elif flag == "-V":
            verbose = 2
        elif flag == "-h":
            print(_USAGE, file=sys.stderr)
            return 0

    if team_check:
        try:
            for line in NaiveAllocator.team.check():
                print(line)
        except ValueError as exc:
            print(exc)
            return 1

    if tracefiles is None:
        tracefiles = list(DEFAULT_TRACEFILES)
        print(f"Using default tracefiles in {tracedir}")

    timer = FunctionTimer(TimingMethod.GETTOD, verbose)
    memory = SimulatedMemory()
    driver = MallocDriver(memory, NaiveAllocator(memory))

    try:
        if run_libc:
            if verbose > 1:
                print("\nTesting libc malloc")
            libc_stats = [TraceStats() for _ in tracefiles]
            for i, name in enumerate(tracefiles):
                trace = _load(tracedir, name, verbose)
                libc_stats[i].ops = trace.num_ops
                if verbose > 1:
                    print("Checking libc malloc for correctness, ", end="")
                libc_stats[i].valid = driver.eval_libc_valid(trace, i)
                if libc_stats[i].valid:
                    if verbose > 1:
                        print("and performance.")
                    libc_stats[i].secs = timer.measure(
                        lambda trace=trace: driver.eval_libc_speed(trace)
                    )
            if verbose:
                print("\nResults for libc malloc:")
                print(format_results(libc_stats, driver.errors), end="")

        if verbose > 1:
            print("\nTesting mm malloc")
        mm_stats = [TraceStats() for _ in tracefiles]
        for i, name in enumerate(tracefiles):
            trace = _load(tracedir, name, verbose)
            mm_stats[i].ops = trace.num_ops
            if verbose > 1:
                print("Checking mm_malloc for correctness, ", end="")
            mm_stats[i].valid = driver.eval_mm_valid(trace, i)
            if mm_stats[i].valid:
                if verbose > 1:
                    print("efficiency, ", end="")
                mm_stats[i].util = driver.eval_mm_util(trace)
                if verbose > 1:
                    print("and performance.")
                mm_stats[i].secs = timer.measure(
                    lambda trace=trace: driver.eval_mm_speed(trace)
                )
    except OSError as exc:
        print(f"Could not open {exc.filename} in read_trace: {exc.strerror}")
        return 1
    except (TraceFormatError, RuntimeError, MemoryError) as exc:
        print(exc)
        return 1

    if verbose:
        print("\nResults for mm malloc:")
        print(format_results(mm_stats, driver.errors), end="")
        print()

    numcorrect = sum(1 for entry in mm_stats if entry.valid)
    if driver.errors == 0:
        util_points, thru_points, perfindex = performance_index(mm_stats)
        print(
            f"Perf index = {util_points:.0f} (util) + {thru_points:.0f} (thru) "
            f"= {perfindex:.0f}/100"
        )
    else:
        perfindex = 0.0
        print(f"Terminated with {driver.errors} errors")

    if autograder:
        print(f"correct:{numcorrect}")
        print(f"perfidx:{perfindex:.0f}")
    return 0


if __name__ == "__main__":
    sys.exit(main())