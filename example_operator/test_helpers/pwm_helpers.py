"""
Utils and common classes for the python watch manager tests
"""
# Standard
from collections import Counter
from queue import Queue
from threading import Event, Lock
from typing import List, Optional, Union
from uuid import uuid4
import random
import tempfile
import time

# Third Party
import pytest

# First Party
import alog

# Local
from example_operator.api import RequestKey
from example_operator.managed_object import ManagedObject
from example_operator.reconcile import ReconciliationResult
from example_operator.store_client import DryRunStoreClient, StoreClientBase
from example_operator.watch_manager.python_watch_manager.leader_election import (
    LeadershipManagerBase,
)
from example_operator.watch_manager.python_watch_manager.leader_election.lease import (
    LeaderWithLeaseManager,
)
from example_operator.watch_manager.python_watch_manager.threads.heartbeat import (
    HeartbeatThread,
)
from example_operator.watch_manager.python_watch_manager.threads.reconcile import (
    ReconcileThread,
)
from example_operator.watch_manager.python_watch_manager.threads.timer import (
    TimerThread,
)
from example_operator.watch_manager.python_watch_manager.utils.types import (
    ReconcileCompletion,
    ReconcileRequest,
)

log = alog.use_channel("TEST")


### Mock Classes
class DisabledLeadershipManager(LeadershipManagerBase):
    """Leadership Manager that is always disabled"""

    def __init__(self):
        super().__init__()
        self.shutdown_event = Event()

    def acquire_resource(self, resource):
        return False

    def acquire(self, force: bool = False) -> bool:
        if force:
            self.shutdown_event.set()
        return self.shutdown_event.wait()

    def release(self):
        self.shutdown_event.set()

    def release_resource(self, resource=None):
        pass

    def is_leader(self, resource=None):
        return False


class MockedLeaderWithLeaseManager(LeaderWithLeaseManager):
    _disable_singleton = True


class MockedTimerThread(TimerThread):
    _disable_singleton = True


class MockedHeartbeatThread(HeartbeatThread):
    _disable_singleton = True


class MockReconcileManager:
    """Stand-in for the ReconcileManager that returns scripted results and
    tracks how many reconciles run at once, in total and per resource
    """

    def __init__(
        self,
        results: Optional[List[Union[ReconciliationResult, Exception]]] = None,
        reconcile_time: float = 0.1,
        store_client: Optional[StoreClientBase] = None,
    ):
        self.store_client = store_client or DryRunStoreClient()
        self.results = list(results or [])
        self.reconcile_time = reconcile_time
        self.calls: List[RequestKey] = []
        self.max_in_flight = 0
        self.max_in_flight_per_key: Counter = Counter()
        self._in_flight: Counter = Counter()
        self._lock = Lock()

    def reconcile(self, key: RequestKey) -> ReconciliationResult:
        with self._lock:
            self.calls.append(key)
            self._in_flight[key] += 1
            self.max_in_flight = max(self.max_in_flight, sum(self._in_flight.values()))
            self.max_in_flight_per_key[key] = max(
                self.max_in_flight_per_key[key], self._in_flight[key]
            )
            result = (
                self.results.pop(0)
                if self.results
                else ReconciliationResult(requeue=False)
            )

        time.sleep(self.reconcile_time)
        with self._lock:
            self._in_flight[key] -= 1

        if isinstance(result, Exception):
            raise result
        return result


class MockedReconcileThread(ReconcileThread):
    """Subclass of ReconcileThread that counts the reconciles it starts and
    finishes and records its requests and timer events. This was more reliable
    than using unittest.mock
    """

    def __init__(
        self,
        reconcile_manager=None,
        leadership_manager: Optional[LeadershipManagerBase] = None,
        **kwargs,
    ):
        self.requests = Queue()
        self.timer_events = Queue()
        self.reconciles_started = 0
        self.reconciles_finished = 0
        kwargs.setdefault("timer_thread", MockedTimerThread())
        super().__init__(
            reconcile_manager or MockReconcileManager(),
            leadership_manager=leadership_manager,
            **kwargs,
        )

    def push_request(self, request: ReconcileRequest):
        self.requests.put(request)
        super().push_request(request)

    def get_request(self, timeout: Optional[float] = None) -> ReconcileRequest:
        return self.requests.get(timeout=timeout)

    def _submit_reconcile(self, request: ReconcileRequest):
        self.reconciles_started += 1
        return super()._submit_reconcile(request)

    def _handle_reconcile_end(self, completion: ReconcileCompletion):
        # Count after the requeue is scheduled so that waiting on the count
        # also waits on the timer event
        key = super()._handle_reconcile_end(completion)
        self.reconciles_finished += 1
        return key

    def _create_timer_event_for_request(
        self, request: ReconcileRequest, result: ReconciliationResult
    ):
        timer_event = super()._create_timer_event_for_request(request, result)
        self.timer_events.put(timer_event)
        return timer_event


### Helper functions
def wait_for(condition, timeout: float = 5.0, interval: float = 0.05) -> bool:
    """Poll until the condition returns truthy or the timeout passes"""
    end_time = time.monotonic() + timeout
    while time.monotonic() < end_time:
        if condition():
            return True
        time.sleep(interval)
    return bool(condition())


def make_ownerref(resource, controller=True):
    metadata = resource.get("metadata", {})
    return {
        "apiVersion": resource.get("apiVersion"),
        "kind": resource.get("kind"),
        "name": metadata.get("name"),
        "uid": metadata.get("uid"),
        "controller": controller,
    }


def make_resource(
    kind="Example",
    namespace="test",
    api_version="example.com/v1",
    name="foo",
    spec=None,
    status=None,
    generation=1,
    resource_version=None,
    annotations=None,
    labels=None,
    owner_refs=None,
    finalizers=None,
):
    resource = {
        "kind": kind,
        "apiVersion": api_version,
        "metadata": {
            "name": name,
            "namespace": namespace,
            "generation": generation,
            "resourceVersion": resource_version or str(random.randint(1, 1000)),
            "ownerReferences": owner_refs or [],
            "labels": labels or {},
            "uid": str(uuid4()),
            "annotations": annotations or {},
            "finalizers": finalizers or [],
        },
        "spec": spec or {},
    }
    if status is not None:
        resource["status"] = status
    return resource


def make_managed_object(*args, **kwargs):
    return ManagedObject(make_resource(*args, **kwargs))


### Helper Fixtures
@pytest.fixture
def heartbeat_file():
    with tempfile.NamedTemporaryFile() as tmp_file:
        yield tmp_file.name
