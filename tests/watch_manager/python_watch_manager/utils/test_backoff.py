"""
Tests for the ExponentialBackoff
"""
# Standard
from datetime import timedelta

# Third Party
import pytest

# Local
from example_operator.exceptions import ConfigError
from example_operator.test_helpers.helpers import library_config
from example_operator.watch_manager.python_watch_manager.utils import (
    ExponentialBackoff,
)

KEY = "test/foo"


def make_backoff(**kwargs):
    kwargs.setdefault("base_delay", timedelta(seconds=1))
    kwargs.setdefault("max_delay", timedelta(seconds=10))
    return ExponentialBackoff(**kwargs)


def test_backoff_grows_and_caps():
    backoff = make_backoff()
    delays = [backoff.next_delay(KEY).total_seconds() for _ in range(6)]
    assert delays == [1, 2, 4, 8, 10, 10]
    assert backoff.attempts(KEY) == 6


def test_backoff_reset():
    backoff = make_backoff()
    backoff.next_delay(KEY)
    backoff.next_delay(KEY)
    backoff.reset(KEY)
    assert backoff.attempts(KEY) == 0
    assert backoff.next_delay(KEY) == timedelta(seconds=1)


def test_backoff_keys_are_independent():
    backoff = make_backoff()
    backoff.next_delay(KEY)
    backoff.next_delay(KEY)
    assert backoff.next_delay("test/bar") == timedelta(seconds=1)


def test_backoff_factor():
    backoff = make_backoff(factor=3.0, max_delay=timedelta(minutes=5))
    delays = [backoff.next_delay(KEY).total_seconds() for _ in range(3)]
    assert delays == [1, 3, 9]


@pytest.mark.parametrize(
    ["rand_value", "expected"],
    [(0.0, 0.9), (0.5, 1.0), (1.0, 1.1)],
)
def test_backoff_jitter(rand_value, expected):
    backoff = make_backoff(jitter=0.1, rand=lambda: rand_value)
    assert backoff.next_delay(KEY).total_seconds() == pytest.approx(expected)


def test_backoff_jitter_never_exceeds_max():
    backoff = make_backoff(
        max_delay=timedelta(seconds=1), jitter=0.5, rand=lambda: 1.0
    )
    assert backoff.next_delay(KEY) == timedelta(seconds=1)


def test_backoff_huge_attempt_count():
    """Many failures never overflow past the max delay"""
    backoff = make_backoff()
    for _ in range(2000):
        delay = backoff.next_delay(KEY)
    assert delay == timedelta(seconds=10)


def test_backoff_invalid_bounds():
    with pytest.raises(ConfigError):
        make_backoff(base_delay=timedelta(minutes=1), max_delay=timedelta(seconds=1))


def test_backoff_from_config():
    with library_config(
        backoff={"base_delay": "2s", "max_delay": "1m", "factor": 4, "jitter": 0}
    ):
        backoff = ExponentialBackoff.from_config()
    assert backoff.base_delay == timedelta(seconds=2)
    assert backoff.max_delay == timedelta(minutes=1)
    assert backoff.next_delay(KEY) == timedelta(seconds=2)
    assert backoff.next_delay(KEY) == timedelta(seconds=8)


def test_backoff_from_config_invalid():
    with library_config(backoff={"base_delay": "soon"}):
        with pytest.raises(ConfigError):
            ExponentialBackoff.from_config()
