import time

import pytest

from labkit.timers import (
    RUNS,
    FunctionTimer,
    TimingMethod,
    ftimer_gettod,
    ftimer_itimer,
)


class _Counter:
    def __init__(self, delay=0.0):
        self.calls = 0
        self.delay = delay

    def __call__(self):
        self.calls += 1
        if self.delay:
            time.sleep(self.delay)


@pytest.mark.parametrize("timer", [ftimer_gettod, ftimer_itimer])
def test_calls_function_n_times(timer):
    f = _Counter()
    result = timer(f, 7)
    assert f.calls == 7
    assert result >= 0


@pytest.mark.parametrize("timer", [ftimer_gettod, ftimer_itimer])
def test_measures_average_of_sleep(timer):
    f = _Counter(delay=0.01)
    result = timer(f, 3)
    assert 0.008 <= result < 1.0


@pytest.mark.parametrize("timer", [ftimer_gettod, ftimer_itimer])
def test_zero_runs_rejected(timer):
    with pytest.raises(ValueError):
        timer(_Counter(), 0)


@pytest.mark.parametrize("method", [TimingMethod.GETTOD, TimingMethod.ITIMER])
def test_function_timer_runs_ten_times(method):
    timer = FunctionTimer(method)
    f = _Counter()
    result = timer.measure(f)
    assert f.calls == RUNS
    assert result >= 0


def test_function_timer_default_is_gettod():
    assert FunctionTimer().method is TimingMethod.GETTOD


def test_function_timer_verbose_gettod(capsys):
    FunctionTimer(TimingMethod.GETTOD, verbose=1)
    assert capsys.readouterr().out == "Measuring performance with gettimeofday().\n"


def test_function_timer_verbose_itimer(capsys):
    FunctionTimer(TimingMethod.ITIMER, verbose=2)
    assert capsys.readouterr().out == "Measuring performance with the interval timer.\n"


def test_function_timer_quiet(capsys):
    FunctionTimer(TimingMethod.ITIMER, verbose=0)
    assert capsys.readouterr().out == ""