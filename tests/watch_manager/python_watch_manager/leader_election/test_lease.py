"""
Tests for the LeaderWithLeaseManager
"""
# Standard
from datetime import datetime, timezone

# Third Party
import pytest

# Local
from example_operator.exceptions import ConfigError, ConflictError, TransientError
from example_operator.store_client import DryRunStoreClient
from example_operator.test_helpers.helpers import MockStoreClient, library_config
from example_operator.test_helpers.pwm_helpers import MockedLeaderWithLeaseManager
from example_operator.watch_manager.python_watch_manager.leader_election.lease import (
    LEASE_API_VERSION,
    LEASE_KIND,
    LEASE_TIME_FORMAT,
)

## Helpers #####################################################################

LOCK_NAME = "example-operator"
NAMESPACE = "test"


def lease_config(pod_name="current", duration="10s", poll_time="1s"):
    return library_config(
        operator_name=LOCK_NAME,
        pod_name=pod_name,
        python_watch_manager={
            "lock": {
                "poll_time": poll_time,
                "duration": duration,
                "namespace": NAMESPACE,
            }
        },
    )


def make_lease(holder, renew_time, duration_seconds=3600, transitions=1):
    return {
        "kind": LEASE_KIND,
        "apiVersion": LEASE_API_VERSION,
        "metadata": {"name": LOCK_NAME, "namespace": NAMESPACE},
        "spec": {
            "holderIdentity": holder,
            "acquireTime": "2020-01-01T00:00:00.000000Z",
            "renewTime": renew_time,
            "leaseDurationSeconds": duration_seconds,
            "leaseTransitions": transitions,
        },
    }


def now_str():
    return datetime.now(timezone.utc).strftime(LEASE_TIME_FORMAT)


def get_lease(store):
    return store.get(LEASE_KIND, LOCK_NAME, NAMESPACE, LEASE_API_VERSION)


## Tests #######################################################################


@pytest.mark.timeout(5)
def test_lease_happy_path():
    """An absent lease is created and held"""
    store = DryRunStoreClient()
    with lease_config():
        lm = MockedLeaderWithLeaseManager(store)
        assert lm.acquire()
        assert lm.is_leader()
        assert lm.acquire_resource(None)

        lease = get_lease(store)
        assert lease["spec"]["holderIdentity"] == "current"
        assert lease["spec"]["leaseDurationSeconds"] == 10
        lm.release()
        assert not lm.is_leader()


@pytest.mark.timeout(5)
def test_lease_already_owner():
    """Renewing an owned lease keeps its acquire time and transitions"""
    store = DryRunStoreClient(resources=[make_lease("current", now_str())])
    with lease_config():
        lm = MockedLeaderWithLeaseManager(store)
        lm.run_renew_or_acquire()
        assert lm.is_leader()

        lease = get_lease(store)
        assert lease["spec"]["leaseTransitions"] == 1
        assert lease["spec"]["acquireTime"] == "2020-01-01T00:00:00.000000Z"
        assert lease["spec"]["renewTime"] != "2020-01-01T00:00:00.000000Z"


@pytest.mark.timeout(5)
def test_lease_transition():
    """An expired lease is taken over"""
    store = DryRunStoreClient(
        resources=[make_lease("old", "2020-01-01T01:00:00.000000Z", 1)]
    )
    with lease_config():
        lm = MockedLeaderWithLeaseManager(store)
        lm.run_renew_or_acquire()
        assert lm.is_leader()

        lease = get_lease(store)
        assert lease["spec"]["holderIdentity"] == "current"
        assert lease["spec"]["leaseTransitions"] == 2


@pytest.mark.timeout(5)
def test_lease_not_owner():
    """A valid lease held by another replica is left alone"""
    store = DryRunStoreClient(resources=[make_lease("original", now_str())])
    with lease_config():
        lm = MockedLeaderWithLeaseManager(store)
        lm.run_renew_or_acquire()
        assert not lm.is_leader()
        assert get_lease(store)["spec"]["holderIdentity"] == "original"


@pytest.mark.timeout(5)
def test_lease_competition():
    """Only one of two replicas holds the lease until it expires"""
    store = DryRunStoreClient()
    with lease_config(pod_name="first", duration="60s"):
        first_manager = MockedLeaderWithLeaseManager(store)
    with lease_config(pod_name="second", duration="60s"):
        second_manager = MockedLeaderWithLeaseManager(store)

    first_manager.run_renew_or_acquire()
    second_manager.run_renew_or_acquire()
    assert first_manager.is_leader()
    assert not second_manager.is_leader()

    # Renewal keeps the first replica in charge
    first_manager.run_renew_or_acquire()
    second_manager.run_renew_or_acquire()
    assert first_manager.is_leader()
    assert not second_manager.is_leader()


@pytest.mark.timeout(5)
def test_lease_lost_race():
    """A conflicting write means another replica won"""
    store = MockStoreClient(create_fail=ConflictError)
    with lease_config():
        lm = MockedLeaderWithLeaseManager(store)
        lm.run_renew_or_acquire()
        assert not lm.is_leader()


@pytest.mark.timeout(5)
def test_lease_store_failure():
    """A store failure while renewing is reported as a RuntimeError"""
    store = MockStoreClient(get_fail=TransientError)
    with lease_config():
        lm = MockedLeaderWithLeaseManager(store)
        with pytest.raises(RuntimeError):
            lm.run_renew_or_acquire()
        assert not lm.is_leader()


@pytest.mark.parametrize(
    ["duration", "poll_time"],
    [("forever", "1s"), ("10s", "sometimes")],
)
def test_lease_invalid_config(duration, poll_time):
    """Unparseable durations are configuration errors"""
    with lease_config(duration=duration, poll_time=poll_time):
        with pytest.raises(ConfigError):
            MockedLeaderWithLeaseManager(DryRunStoreClient())
