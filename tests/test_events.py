"""
Tests for the EventRecorder
"""

# Standard
import threading

# Third Party
import pytest

# Local
from example_operator.api import Example
from example_operator.events import EventRecorder, EventType
from example_operator.exceptions import ReconcileCancelled, TransientError
from example_operator.test_helpers.helpers import MockStoreClient, setup_cr


def test_emit_creates_event():
    """Make sure an emitted event lands in the store"""
    store = MockStoreClient()
    cr = Example.from_dict(setup_cr())
    cr.metadata.uid = "1234"
    recorder = EventRecorder(store)
    assert recorder.emit(cr, EventType.NORMAL, "Created", "Created Deployment foo")

    events = store.list("Event", namespace="test", api_version="v1")
    assert len(events) == 1
    event = events[0]
    assert event["type"] == "Normal"
    assert event["reason"] == "Created"
    assert event["involvedObject"]["kind"] == "Example"
    assert event["involvedObject"]["uid"] == "1234"
    assert event["metadata"]["name"].startswith("test-instance.")


def test_emit_failure_is_not_raised():
    """Failing to record an event never fails the caller"""
    store = MockStoreClient(create_fail=TransientError)
    cr = Example.from_dict(setup_cr())
    assert not EventRecorder(store).emit(cr, EventType.WARNING, "Oops", "oops")
    assert store.create_event.call_count == 1
    assert store.resource_writes() == []


def test_emit_uses_event_path():
    """Events go through create_event rather than the retrying create"""
    store = MockStoreClient()
    cr = Example.from_dict(setup_cr())
    assert EventRecorder(store).emit(cr, EventType.NORMAL, "Created", "created")
    store.create_event.assert_called_once()
    store.create.assert_not_called()


def test_emit_shutdown_is_raised():
    """A shutdown while recording an event aborts the caller"""
    cancel_event = threading.Event()
    store = MockStoreClient(cancel_event=cancel_event)
    cr = Example.from_dict(setup_cr())
    cancel_event.set()
    with pytest.raises(ReconcileCancelled):
        EventRecorder(store).emit(cr, EventType.NORMAL, "Created", "created")
    assert store.writes == []


def test_make_event_names_are_unique():
    """Two events for the same CR never collide"""
    cr = Example.from_dict(setup_cr())
    recorder = EventRecorder(MockStoreClient())
    first = recorder.make_event(cr, EventType.NORMAL, "A", "a", timestamp="t")
    second = recorder.make_event(cr, EventType.NORMAL, "A", "a", timestamp="t")
    assert first["metadata"]["name"] != second["metadata"]["name"]
    assert first["firstTimestamp"] == "t"
