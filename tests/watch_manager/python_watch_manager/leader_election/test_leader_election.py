"""
Tests for the leadership common functions and the dry run leadership
"""
# Third Party
import pytest

# Local
from example_operator.api import RequestKey
from example_operator.test_helpers.helpers import library_config
from example_operator.watch_manager.python_watch_manager.leader_election import (
    DryRunLeadershipManager,
    LeaderWithLeaseManager,
    get_leader_election_class,
)


@pytest.mark.parametrize(
    ["config", "expected_class"],
    [
        ["leader-with-lease", LeaderWithLeaseManager],
        ["dryrun", DryRunLeadershipManager],
    ],
)
def test_get_leader_election_class(config, expected_class):
    with library_config(python_watch_manager={"lock": {"type": config}}):
        assert get_leader_election_class() == expected_class


def test_dry_run_leads_from_acquire_to_release():
    """Uncontested leadership starts at acquire and ends at release"""
    lm = DryRunLeadershipManager()
    key = RequestKey("test", "foo")
    assert not lm.is_leader()
    assert not lm.acquire_resource(key)

    assert lm.acquire()
    assert lm.acquire_resource(key)
    assert lm.is_leader()
    assert lm.is_leader(key)
    lm.release_resource(key)
    assert lm.is_leader()

    lm.release()
    assert not lm.is_leader()
    assert not lm.acquire_resource(key)
    assert lm.acquire(force=True)
    assert lm.is_leader()
