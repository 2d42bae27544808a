"""Cycle counting and the K-best scheme for timing a function."""

from __future__ import annotations

import bisect
import functools
import os
import sys
import time
from dataclasses import dataclass
from typing import Callable, Optional

# Calibration parameters for timer-interrupt compensation.
NEVENT = 100
THRESHOLD = 1000
RECORDTHRESH = 3000


def _clock_ticks_per_second() -> int:
    try:
        return os.sysconf("SC_CLK_TCK")
    except (AttributeError, ValueError, OSError):
        return 100


_CLK_TCK = _clock_ticks_per_second()


def _user_ticks() -> int:
    """User CPU time of this process in clock ticks."""
    return int(os.times().user * _CLK_TCK)


class CycleCounter:
    """A counter over a monotonic clock that reports elapsed cycles.

    ``clock`` is a zero-argument callable returning the current cycle count;
    by default the nanosecond performance counter stands in for it.
    ``tick_source`` returns the user CPU time in clock ticks and is used to
    compensate for timer-interrupt overhead.
    """

    def __init__(self, clock: Optional[Callable[[], float]] = None) -> None:
        self.clock = clock if clock is not None else time.perf_counter_ns
        self.tick_source: Callable[[], int] = _user_ticks
        self.cyc_per_tick = 0.0
        self._start = 0
        self._start_tick = 0

    def start(self) -> None:
        """Record the current value of the counter."""
        self._start = self.clock()

    def elapsed(self) -> float:
        """Cycles since the last call to ``start``."""
        result = float(self.clock() - self._start)
        if result < 0:
            print(f"Error: counter returns neg value: {result:.0f}", file=sys.stderr)
        return result

    def overhead(self) -> float:
        """Cycles spent by the counter itself, measured twice to warm caches."""
        result = 0.0
        for _ in range(2):
            self.start()
            result = self.elapsed()
        return result

    def mhz(self, verbose: bool = False, sleeptime: float = 2) -> float:
        """Estimate the clock rate by counting cycles across a sleep."""
        self.start()
        time.sleep(sleeptime)
        rate = self.elapsed() / (1e6 * sleeptime)
        if verbose:
            print(f"Processor clock rate ~= {rate:.1f} MHz")
        return rate

    def _calibrate(self, verbose: bool = False) -> None:
        oldc = self.tick_source()
        self.start()
        oldt = self.elapsed()
        events = 0
        while events < NEVENT:
            newt = self.elapsed()
            if newt - oldt >= THRESHOLD:
                newc = self.tick_source()
                if newc > oldc:
                    cpt = (newt - oldt) / (newc - oldc)
                    if (self.cyc_per_tick == 0.0 or self.cyc_per_tick > cpt) \
                            and cpt > RECORDTHRESH:
                        self.cyc_per_tick = cpt
                    events += 1
                    oldc = newc
                oldt = newt
        if verbose:
            print(f"Setting cyc_per_tick to {self.cyc_per_tick:f}")

    def start_compensated(self) -> None:
        """Start counting, calibrating the per-tick overhead on first use."""
        if self.cyc_per_tick == 0.0:
            self._calibrate()
        self._start_tick = self.tick_source()
        self.start()

    def elapsed_compensated(self) -> float:
        """Elapsed cycles minus the estimated cost of timer interrupts."""
        cycles = self.elapsed()
        ticks = self.tick_source() - self._start_tick
        return cycles - ticks * self.cyc_per_tick


@dataclass
class FcycSettings:
    """Parameters of the K-best measurement scheme."""

    k: int = 3
    maxsamples: int = 20
    epsilon: float = 0.01
    compensate: bool = False
    clear_cache: bool = False
    cache_bytes: int = 1 << 19
    cache_block: int = 32


class KBestSampler:
    """Keeps the ``k`` smallest samples seen, in ascending order."""

    def __init__(self, k: int = 3, epsilon: float = 0.01) -> None:
        if k < 1:
            raise ValueError("k must be at least 1")
        self.k = k
        self.epsilon = epsilon
        self.count = 0
        self._values: list[float] = []

    @property
    def values(self) -> tuple[float, ...]:
        """The smallest samples so far, smallest first."""
        return tuple(self._values)

    def add(self, value: float) -> None:
        """Record a sample."""
        if self.count < self.k:
            bisect.insort(self._values, value)
        elif value < self._values[-1]:
            self._values.pop()
            bisect.insort(self._values, value)
        self.count += 1

    def converged(self) -> bool:
        """Whether the k smallest samples lie within epsilon of each other."""
        return (
            self.count >= self.k
            and (1 + self.epsilon) * self._values[0] >= self._values[self.k - 1]
        )

    def best(self) -> float:
        """The smallest sample."""
        if not self._values:
            raise ValueError("no samples recorded")
        return self._values[0]


@functools.lru_cache(maxsize=1)
def _cache_buffer(size: int) -> bytearray:
    return bytearray(size)


_sink = 0


def _clear_cache(cache_bytes: int, cache_block: int) -> None:
    global _sink
    buf = _cache_buffer(cache_bytes)
    _sink += sum(buf[::max(cache_block, 1)])


def fcyc(
    f: Callable[[], object],
    settings: Optional[FcycSettings] = None,
    counter: Optional[CycleCounter] = None,
) -> float:
    """Estimate the cycles used by ``f()`` with the K-best scheme."""
    settings = settings if settings is not None else FcycSettings()
    counter = counter if counter is not None else CycleCounter()
    sampler = KBestSampler(settings.k, settings.epsilon)
    while True:
        if settings.clear_cache:
            _clear_cache(settings.cache_bytes, settings.cache_block)
        if settings.compensate:
            counter.start_compensated()
            f()
            cycles = counter.elapsed_compensated()
        else:
            counter.start()
            f()
            cycles = counter.elapsed()
        sampler.add(cycles)
        if sampler.converged() or sampler.count >= settings.maxsamples:
            break
    return sampler.best()