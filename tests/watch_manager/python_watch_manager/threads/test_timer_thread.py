"""
Tests for the TimerThread
"""
# Standard
from datetime import datetime, timedelta
import time

# Third Party
import pytest

# Local
from example_operator.test_helpers.pwm_helpers import MockedTimerThread, wait_for

## Helpers #####################################################################


class Counter:
    def __init__(self, initial_value=0):
        self.value = initial_value

    def increment(self, value=1):
        self.value += value

    def explode(self):
        raise RuntimeError("Yikes")


## Tests #######################################################################


@pytest.mark.timeout(5)
def test_timer_thread_happy_path():
    timer = MockedTimerThread()
    timer.start_thread()

    value_tracker = Counter()
    timer.put_event(datetime.now(), value_tracker.increment)
    timer.put_event(datetime.now() + timedelta(seconds=0.1), value_tracker.increment)
    timer.put_event(datetime.now() + timedelta(seconds=0.2), value_tracker.increment, 2)
    timer.put_event(
        datetime.now() + timedelta(seconds=0.3), value_tracker.increment, value=2
    )
    assert wait_for(lambda: value_tracker.value == 6, timeout=3)
    timer.stop_thread()
    assert value_tracker.value == 6


@pytest.mark.timeout(5)
def test_timer_thread_canceled():
    timer = MockedTimerThread()

    value_tracker = Counter()
    timer.put_event(datetime.now(), value_tracker.increment)
    canceled_event = timer.put_event(
        datetime.now() + timedelta(seconds=0.5), value_tracker.increment
    )
    canceled_event.cancel()
    assert len(timer.pending_events()) == 1

    timer.start_thread()
    time.sleep(1)
    timer.stop_thread()
    assert value_tracker.value == 1


@pytest.mark.timeout(5)
def test_timer_thread_survives_failing_event():
    """An event that raises does not stop later events"""
    timer = MockedTimerThread()
    timer.start_thread()

    value_tracker = Counter()
    timer.put_event(datetime.now(), value_tracker.explode)
    timer.put_event(datetime.now() + timedelta(seconds=0.1), value_tracker.increment)
    assert wait_for(lambda: value_tracker.value == 1, timeout=3)
    assert timer.is_alive()
    timer.stop_thread()


@pytest.mark.timeout(5)
def test_timer_thread_stopped():
    """A stopped timer rejects new events and its thread exits"""
    timer = MockedTimerThread()
    timer.start_thread()
    timer.stop_thread()
    timer.join(2)
    assert not timer.is_alive()
    assert timer.put_event(datetime.now(), Counter().increment) is None
