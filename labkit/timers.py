"""Timing a function in seconds: interval timer, wall clock or cycle counter."""

from __future__ import annotations

import enum
import signal
import time
from typing import Callable, Optional

from labkit.cycles import CycleCounter, FcycSettings, fcyc

# Initial value, in seconds, loaded into the interval timers.
MAX_ETIME = 86400

# Number of runs averaged by FunctionTimer.measure.
RUNS = 10


def _check_runs(n: int) -> None:
    if n < 1:
        raise ValueError("number of runs must be at least 1")


def ftimer_itimer(f: Callable[[], object], n: int) -> float:
    """Average running time of ``f()`` over ``n`` runs, by the interval timer."""
    _check_runs(n)
    if not hasattr(signal, "setitimer"):
        start = time.perf_counter()
        for _ in range(n):
            f()
        return (time.perf_counter() - start) / n

    which = (signal.ITIMER_VIRTUAL, signal.ITIMER_REAL, signal.ITIMER_PROF)
    previous = [(timer, signal.setitimer(timer, MAX_ETIME)) for timer in which]
    try:
        start = _etime()
        for _ in range(n):
            f()
        tmeas = _etime() - start
    finally:
        for timer, (value, interval) in previous:
            signal.setitimer(timer, value, interval)
    return tmeas / n


def _etime() -> float:
    """Real seconds elapsed since the interval timers were loaded."""
    remaining, _interval = signal.getitimer(signal.ITIMER_REAL)
    return MAX_ETIME - remaining


def ftimer_gettod(f: Callable[[], object], n: int) -> float:
    """Average running time of ``f()`` over ``n`` runs, by the time of day."""
    _check_runs(n)
    start = time.time()
    for _ in range(n):
        f()
    return (time.time() - start) / n


class TimingMethod(enum.Enum):
    """How FunctionTimer measures."""

    FCYC = "fcyc"
    ITIMER = "itimer"
    GETTOD = "gettod"


class FunctionTimer:
    """Measures the running time of a function in seconds."""

    def __init__(
        self, method: TimingMethod = TimingMethod.GETTOD, verbose: int = 0
    ) -> None:
        self.method = method
        self.verbose = verbose
        self.mhz = 0.0
        self.settings: Optional[FcycSettings] = None
        self.counter: Optional[CycleCounter] = None
        if method is TimingMethod.FCYC:
            if verbose:
                print("Measuring performance with a cycle counter.")
            self.settings = FcycSettings(
                k=3, maxsamples=20, epsilon=0.01, compensate=True, clear_cache=True
            )
            self.counter = CycleCounter()
            self.mhz = self.counter.mhz(verbose > 0)
        elif method is TimingMethod.ITIMER:
            if verbose:
                print("Measuring performance with the interval timer.")
        elif verbose:
            print("Measuring performance with gettimeofday().")

    def measure(self, f: Callable[[], object]) -> float:
        """Running time of ``f()`` in seconds."""
        if self.method is TimingMethod.FCYC:
            cycles = fcyc(f, self.settings, self.counter)
            return cycles / (self.mhz * 1e6)
        if self.method is TimingMethod.ITIMER:
            return ftimer_itimer(f, RUNS)
        return ftimer_gettod(f, RUNS)