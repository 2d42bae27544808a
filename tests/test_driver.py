import io

import pytest

from labkit.driver import (
    MallocDriver,
    ReferenceHeap,
    TraceStats,
    format_results,
    main,
    performance_index,
)
from labkit.memlib import AVG_LIBC_THRUPUT, UTIL_WEIGHT, SimulatedMemory
from labkit.mm import NaiveAllocator
from labkit.trace import parse_trace

TRACE_TEXT = "0\n2\n4\n1\na 0 16\na 1 8\nr 0 32\nf 1\n"


def make_driver(allocator_cls=NaiveAllocator, max_heap=1 << 16):
    memory = SimulatedMemory(max_heap)
    out = io.StringIO()
    return MallocDriver(memory, allocator_cls(memory), out), memory, out


class UnalignedAllocator(NaiveAllocator):
    def malloc(self, size):
        return super().malloc(size) + 1


class SameAddressAllocator(NaiveAllocator):
    def malloc(self, size):
        super().malloc(size)
        return self.memory.heap_lo() + 8


class ForgetfulAllocator(NaiveAllocator):
    def realloc(self, ptr, size):
        return self.malloc(size)


def test_valid_trace_passes():
    driver, memory, out = make_driver()
    trace = parse_trace(TRACE_TEXT)
    assert driver.eval_mm_valid(trace, 0) is True
    assert driver.errors == 0
    assert len(driver.ranges) == 1
    assert out.getvalue() == ""


def test_valid_trace_fills_blocks_with_index_byte():
    driver, memory, _ = make_driver()
    trace = parse_trace(TRACE_TEXT)
    driver.eval_mm_valid(trace, 0)
    assert memory.read(trace.blocks[0], 32) == bytes([0]) * 32
    assert trace.block_sizes[0] == 32


def test_unaligned_payload_reported():
    driver, _, out = make_driver(UnalignedAllocator)
    trace = parse_trace(TRACE_TEXT)
    assert driver.eval_mm_valid(trace, 3) is False
    assert driver.errors == 1
    assert "ERROR [trace 3, line 5]" in out.getvalue()
    assert "not aligned" in out.getvalue()


def test_overlapping_payload_reported():
    driver, _, out = make_driver(SameAddressAllocator)
    trace = parse_trace(TRACE_TEXT)
    assert driver.eval_mm_valid(trace, 0) is False
    assert "overlaps" in out.getvalue()
    assert "line 6" in out.getvalue()


def test_realloc_must_preserve_data():
    text = "0\n1\n2\n1\na 0 16\nr 0 32\n"
    driver, _, out = make_driver(ForgetfulAllocator)
    trace = parse_trace(text)
    # index 0 fills with zero bytes, which fresh memory already holds
    assert driver.eval_mm_valid(trace, 0) is True
    text = "0\n2\n3\n1\na 0 8\na 1 16\nr 1 32\n"
    driver, _, out = make_driver(ForgetfulAllocator)
    trace = parse_trace(text)
    assert driver.eval_mm_valid(trace, 0) is False
    assert "did not preserve" in out.getvalue()


def test_out_of_memory_reported_as_malloc_failure():
    driver, _, out = make_driver(max_heap=16)
    trace = parse_trace(TRACE_TEXT)
    assert driver.eval_mm_valid(trace, 0) is False
    assert "mm_malloc failed." in out.getvalue()


def test_utilisation_for_naive_allocator():
    driver, memory, _ = make_driver()
    trace = parse_trace(TRACE_TEXT)
    util = driver.eval_mm_util(trace)
    assert util == pytest.approx(0.5)
    assert 0 < util <= 1


def test_speed_run_uses_same_heap_as_util_run():
    driver, memory, _ = make_driver()
    trace = parse_trace(TRACE_TEXT)
    driver.eval_mm_util(trace)
    after_util = memory.heapsize()
    driver.eval_mm_speed(trace)
    assert memory.heapsize() == after_util


def test_speed_run_raises_when_heap_is_too_small():
    driver, _, _ = make_driver(max_heap=16)
    with pytest.raises(RuntimeError):
        driver.eval_mm_speed(parse_trace(TRACE_TEXT))


def test_libc_valid_and_speed():
    driver, _, out = make_driver()
    trace = parse_trace(TRACE_TEXT)
    assert driver.eval_libc_valid(trace, 0) is True
    driver.eval_libc_speed(trace)
    assert isinstance(trace.blocks[0], int)
    assert driver.errors == 0


def test_reference_heap_tracks_blocks():
    heap = ReferenceHeap()
    a = heap.malloc(10)
    b = heap.malloc(20)
    assert a != b
    assert len(heap) == 2
    c = heap.realloc(a, 40)
    heap.free(c)
    assert len(heap) == 1
    with pytest.raises(ValueError):
        heap.free(c)
    with pytest.raises(ValueError):
        heap.realloc(999, 4)
    heap.free(None)
    assert len(heap) == 1


def test_format_results_rows():
    stats = [
        TraceStats(ops=1000, valid=True, secs=0.5, util=0.5),
        TraceStats(ops=10, valid=False),
    ]
    lines = format_results(stats, 0).splitlines()
    assert lines[0].split() == ["trace", "valid", "util", "ops", "secs", "Kops"]
    assert lines[1].split() == ["0", "yes", "50%", "1000", "0.500000", "2"]
    assert lines[2].split() == ["1", "no", "-", "-", "-", "-"]
    assert lines[3].startswith("Total")


def test_format_results_with_errors_hides_totals():
    stats = [TraceStats(ops=10, valid=False)]
    lines = format_results(stats, 2).splitlines()
    assert lines[-1].split() == ["Total", "-", "-", "-", "-"]


def test_performance_index_caps_throughput():
    stats = [TraceStats(ops=1e9, valid=True, secs=1.0, util=1.0)]
    util_points, thru_points, total = performance_index(stats)
    assert util_points == pytest.approx(UTIL_WEIGHT * 100)
    assert thru_points == pytest.approx((1 - UTIL_WEIGHT) * 100)
    assert total == pytest.approx(100.0)


def test_performance_index_below_cap():
    stats = [TraceStats(ops=AVG_LIBC_THRUPUT / 2, valid=True, secs=1.0, util=0.5)]
    util_points, thru_points, total = performance_index(stats)
    assert thru_points < (1 - UTIL_WEIGHT) * 100
    assert total == pytest.approx(util_points + thru_points)


def test_performance_index_needs_stats():
    with pytest.raises(ValueError):
        performance_index([])


def test_main_runs_single_trace(tmp_path, capsys):
    path = tmp_path / "small.rep"
    path.write_text(TRACE_TEXT)
    assert main(["-f", str(path), "-g", "-v", "-l"]) == 0
    output = capsys.readouterr().out
    assert "Team Name:ateam" in output
    assert "Results for libc malloc:" in output
    assert "Results for mm malloc:" in output
    assert "Perf index = " in output
    assert "correct:1" in output
    assert "perfidx:" in output


def test_main_help_and_bad_option(capsys):
    assert main(["-h"]) == 0
    assert "Usage: mdriver" in capsys.readouterr().err
    assert main(["-x"]) == 1
    assert "Usage: mdriver" in capsys.readouterr().err


def test_main_missing_trace(tmp_path, capsys):
    assert main(["-a", "-f", str(tmp_path / "none.rep")]) == 1
    assert "Could not open" in capsys.readouterr().out


def test_main_bad_trace(tmp_path, capsys):
    path = tmp_path / "bad.rep"
    path.write_text("0\n1\n1\n1\nx 0 8\n")
    assert main(["-a", "-f", str(path)]) == 1
    assert "Bogus type character (x)" in capsys.readouterr().out