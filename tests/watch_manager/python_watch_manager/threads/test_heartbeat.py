"""
Tests for the HeartbeatThread
"""
# Standard
from datetime import datetime, timedelta
from unittest import mock

# Third Party
import pytest

# Local
from example_operator.exceptions import ConfigError
from example_operator.test_helpers.pwm_helpers import (
    MockedHeartbeatThread,
    heartbeat_file,
)
from example_operator.watch_manager.python_watch_manager.threads.heartbeat import (
    read_heartbeat,
    write_heartbeat,
)

## Tests #######################################################################


def test_heartbeat_happy_path(heartbeat_file):
    """Make sure the heartbeat initializes correctly"""
    hb = MockedHeartbeatThread(heartbeat_file, "1s")
    assert hb.period == timedelta(seconds=1)
    assert hb.last_beat is None

    # Heartbeat not run until started
    with open(heartbeat_file, encoding="utf-8") as handle:
        assert not handle.read()

    # Start and stop the thread to trigger the first heartbeat only
    hb.start_thread()
    assert hb.wait_for_beat(timeout=5)
    hb.stop_thread()

    # Make sure the heartbeat is "current"
    assert read_heartbeat(heartbeat_file) > (datetime.now() - timedelta(seconds=5))
    assert hb.last_beat is not None


def test_heartbeat_ongoing(heartbeat_file):
    """Make sure that the heartbeat continues to beat in an ongoing way"""
    hb = MockedHeartbeatThread(heartbeat_file, "1s")

    # Start the thread and read the first one
    hb.start_thread()
    assert hb.wait_for_beat(timeout=5)
    first_hb = read_heartbeat(heartbeat_file)

    # Wait a bit and read again
    assert hb.wait_for_beat(timeout=5)
    hb.stop_thread()
    later_hb = read_heartbeat(heartbeat_file)
    assert later_hb > first_hb


def test_heartbeat_wait_times_out(heartbeat_file):
    """Waiting on a thread that never beats gives up after the timeout"""
    hb = MockedHeartbeatThread(heartbeat_file, "1s")
    assert not hb.wait_for_beat(timeout=0.1)


def test_heartbeat_write_failure(heartbeat_file):
    """A failed write is logged and the next beat is still scheduled"""
    hb = MockedHeartbeatThread(heartbeat_file, "1s")
    with mock.patch("builtins.open", side_effect=OSError("Yikes")):
        hb._beat()
    assert hb.last_beat is None
    assert len(hb.pending_events()) == 1

    hb._beat()
    assert hb.last_beat is not None
    assert read_heartbeat(heartbeat_file) > (datetime.now() - timedelta(seconds=5))
    hb.stop_thread()


def test_heartbeat_freshness(heartbeat_file):
    """A beat goes stale once two periods pass without another"""
    hb = MockedHeartbeatThread(heartbeat_file, "10s")
    assert hb.is_fresh()

    now = datetime.now()
    hb.last_beat = now - timedelta(seconds=15)
    assert hb.is_fresh(now)
    hb.last_beat = now - timedelta(seconds=25)
    assert not hb.is_fresh(now)


def test_heartbeat_invalid_period(heartbeat_file):
    """The period must be a parseable time delta"""
    with pytest.raises(ConfigError):
        MockedHeartbeatThread(heartbeat_file, "often")


def test_heartbeat_file_format(tmp_path):
    """Beats are whole second timestamps and garbage is rejected on read"""
    heartbeat = tmp_path / "heartbeat.txt"
    when = datetime(2024, 3, 1, 12, 30, 15, 999)
    write_heartbeat(str(heartbeat), when)
    assert heartbeat.read_text(encoding="utf-8") == "2024-03-01 12:30:15"
    assert read_heartbeat(str(heartbeat)) == when.replace(microsecond=0)
    assert not (tmp_path / "heartbeat.txt.tmp").exists()

    heartbeat.write_text("not a time", encoding="utf-8")
    with pytest.raises(ValueError):
        read_heartbeat(str(heartbeat))
