"""
Tests for the WatchManagerBase base class
"""

# Standard
import threading
import time

# Third Party
import pytest

# Local
from example_operator.controller import ExampleController
from example_operator.watch_manager.base import WatchManagerBase

## Helpers #####################################################################


class DummyWatchManager(WatchManagerBase):
    def __init__(
        self,
        controller_type,
        watch_success=True,
        alive=True,
        ready=True,
    ):
        super().__init__(controller_type)
        self.watching = False
        self.watch_success = watch_success
        self.alive = alive
        self.ready = ready

    def watch(self):
        if self.watch_success:
            self.watching = True
            return True
        return False

    def wait(self):
        while self.watching:
            time.sleep(0.05)

    def stop(self):
        self.watching = False

    def is_alive(self):
        return self.alive

    def is_ready(self):
        return self.ready


class WidgetController(ExampleController):
    group = "widgets.example.com"
    kind = "Widget"


## Tests #######################################################################


def test_constructor_properties():
    """Test that the base class properties are set on the watch manager"""
    wm = DummyWatchManager(ExampleController)
    assert wm.controller_type == ExampleController
    assert wm.group == "example.com"
    assert wm.version == "v1"
    assert wm.kind == "Example"


def test_constructor_registrations():
    """Test that all constructed watch managers get registered"""
    wm1 = DummyWatchManager(ExampleController)
    wm2 = DummyWatchManager(WidgetController)
    assert len(WatchManagerBase._ALL_WATCHES) == 2
    assert str(wm1) in WatchManagerBase._ALL_WATCHES
    assert str(wm2) in WatchManagerBase._ALL_WATCHES


def test_constructor_no_duplicate_watches():
    """Only one watch manager may serve a kind"""
    DummyWatchManager(ExampleController)
    with pytest.raises(AssertionError):
        DummyWatchManager(ExampleController)


@pytest.mark.timeout(5)
def test_start_stop_all_blocking():
    """start_all blocks until stop_all stops every manager"""
    wm1 = DummyWatchManager(ExampleController)
    wm2 = DummyWatchManager(WidgetController)

    # Run start_all in a thread so that we can stop it
    thrd = threading.Thread(target=WatchManagerBase.start_all)
    thrd.start()
    time.sleep(0.1)
    assert wm1.watching
    assert wm2.watching
    assert thrd.is_alive()

    WatchManagerBase.stop_all()
    thrd.join(1)
    assert not thrd.is_alive()
    assert not wm1.watching
    assert not wm2.watching


def test_start_all_blocking_failure():
    """A manager that fails to start shuts down the ones already started"""
    wm1 = DummyWatchManager(ExampleController)
    wm2 = DummyWatchManager(WidgetController, watch_success=False)
    assert not WatchManagerBase.start_all()
    assert not wm1.watching
    assert not wm2.watching


def test_stop_all_continues_past_errors():
    """A manager failing to stop does not keep the others running"""
    wm1 = DummyWatchManager(ExampleController)
    wm2 = DummyWatchManager(WidgetController)
    wm1.watch()
    wm2.watch()

    def broken_stop():
        raise RuntimeError("Yikes")

    wm1.stop = broken_stop
    WatchManagerBase.stop_all()
    assert not wm2.watching


def test_all_alive_and_ready():
    """Health aggregates over every registered manager"""
    assert WatchManagerBase.all_alive()
    assert not WatchManagerBase.all_ready()

    wm1 = DummyWatchManager(ExampleController)
    wm2 = DummyWatchManager(WidgetController)
    assert WatchManagerBase.all_alive()
    assert WatchManagerBase.all_ready()

    wm2.ready = False
    assert not WatchManagerBase.all_ready()
    wm1.alive = False
    assert not WatchManagerBase.all_alive()
