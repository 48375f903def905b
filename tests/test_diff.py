"""
Tests for the diff engine
"""

# Standard
import copy

# Third Party
import pytest

# Local
from example_operator.api import Example
from example_operator.desired_state import build_desired_children
from example_operator.diff import (
    ActionType,
    apply_actions,
    plan_actions,
    semantically_equal,
)
from example_operator.exceptions import InvalidSpecError
from example_operator.store_client import is_owned_by, set_owner_reference
from example_operator.test_helpers.helpers import MockStoreClient, setup_cr

## Helpers #####################################################################


def make_owner(**kwargs):
    cr_dict = setup_cr(**kwargs)
    cr_dict["metadata"]["uid"] = "owner-uid"
    return Example.from_dict(cr_dict)


def as_stored(owner, desired):
    """Simulate what the store returns for a written child"""
    stored = set_owner_reference(owner, copy.deepcopy(desired))
    stored["metadata"].update(
        {"uid": "child-uid", "resourceVersion": "5", "generation": 1}
    )
    stored["spec"]["progressDeadlineSeconds"] = 600
    stored["status"] = {"readyReplicas": 1}
    return stored


## plan_actions ################################################################


def test_plan_create_when_absent():
    """A desired child that does not exist is created with an owner ref"""
    owner = make_owner()
    desired = build_desired_children(owner)
    actions = plan_actions(desired, [], owner)
    assert [action.action for action in actions] == [ActionType.CREATE]
    assert is_owned_by(actions[0].body, "owner-uid")


def test_plan_noop_when_equal():
    """Server populated fields never cause an update"""
    owner = make_owner()
    desired = build_desired_children(owner)
    observed = [as_stored(owner, child) for child in desired]
    actions = plan_actions(desired, observed, owner)
    assert [action.action for action in actions] == [ActionType.NOOP]
    assert actions[0].observed == observed[0]


def test_plan_update_on_drift():
    """A drifted child is updated, pinned to the observed resourceVersion"""
    owner = make_owner(size=3)
    desired = build_desired_children(owner)
    observed = as_stored(owner, desired[0])
    observed["spec"]["replicas"] = 2
    actions = plan_actions(desired, [observed], owner)
    assert [action.action for action in actions] == [ActionType.UPDATE]
    body = actions[0].body
    assert body["spec"]["replicas"] == 3
    assert body["metadata"]["resourceVersion"] == "5"
    assert body["metadata"]["uid"] == "child-uid"
    # Server defaulted fields are kept and status is never written
    assert body["spec"]["progressDeadlineSeconds"] == 600
    assert "status" not in body


def test_plan_adopts_unowned_child():
    """A child with the desired name and no controller is adopted"""
    owner = make_owner()
    desired = build_desired_children(owner)
    observed = copy.deepcopy(desired[0])
    observed["metadata"]["resourceVersion"] = "3"
    actions = plan_actions(desired, [observed], owner)
    assert [action.action for action in actions] == [ActionType.UPDATE]
    assert is_owned_by(actions[0].body, "owner-uid")


def test_plan_refuses_foreign_controlled_child():
    """A child controlled by a different owner is never taken over"""
    owner = make_owner()
    desired = build_desired_children(owner)
    observed = copy.deepcopy(desired[0])
    observed["metadata"]["ownerReferences"] = [
        {"kind": "Other", "name": "other", "uid": "other-uid", "controller": True}
    ]
    with pytest.raises(InvalidSpecError):
        plan_actions(desired, [observed], owner)


def test_plan_deletes_only_owned_orphans():
    """Undesired children are deleted only when owned by the CR"""
    owner = make_owner()
    desired = build_desired_children(owner)
    owned_orphan = as_stored(owner, desired[0])
    owned_orphan["metadata"]["name"] = "old-name"
    foreign = copy.deepcopy(owned_orphan)
    foreign["metadata"]["name"] = "foreign"
    foreign["metadata"]["ownerReferences"] = []

    actions = plan_actions(desired, [owned_orphan, foreign], owner)
    assert [(action.action, action.name) for action in actions] == [
        (ActionType.DELETE, "old-name"),
        (ActionType.CREATE, "test-instance"),
    ]


def test_plan_is_deterministic():
    """The same inputs always produce the same ordered actions"""
    owner = make_owner()
    desired = build_desired_children(owner)
    observed = [as_stored(owner, desired[0])]
    assert plan_actions(desired, observed, owner) == plan_actions(
        desired, observed, owner
    )


## semantically_equal ##########################################################


def test_semantically_equal_ignores_extra_fields():
    """Only the fields the desired manifest sets are compared"""
    desired = {"metadata": {"name": "foo"}, "spec": {"a": 1, "b": [{"c": 1}]}}
    observed = {
        "metadata": {"name": "foo", "uid": "1"},
        "spec": {"a": 1, "b": [{"c": 1, "d": 2}], "e": 3},
        "status": {"ok": True},
    }
    assert semantically_equal(desired, observed)


def test_semantically_equal_detects_changes():
    """A changed or missing desired field is a difference"""
    metadata = {"name": "foo"}
    desired = {"metadata": metadata, "spec": {"a": 1, "b": [1, 2]}}
    assert not semantically_equal(
        desired, {"metadata": metadata, "spec": {"a": 2, "b": [1, 2]}}
    )
    assert not semantically_equal(desired, {"metadata": metadata, "spec": {"b": [1, 2]}})
    assert not semantically_equal(
        desired, {"metadata": metadata, "spec": {"a": 1, "b": [1]}}
    )


## apply_actions ###############################################################


def test_apply_actions_writes_in_order():
    """Each non-noop action writes once and the children are returned"""
    owner = make_owner()
    store = MockStoreClient(resources=[owner.to_dict()])
    desired = build_desired_children(owner)
    result = apply_actions(store, plan_actions(desired, [], owner))
    assert result.changed
    assert store.resource_writes() == [("create", "Deployment", "test-instance")]
    assert result.children[0]["metadata"]["uid"]

    # Applying the plan for the stored state is a no-op
    store.writes.clear()
    result = apply_actions(store, plan_actions(desired, result.children, owner))
    assert not result.changed
    assert store.writes == []


def test_apply_actions_recreates_vanished_child():
    """An update of a child that vanished turns into a create"""
    owner = make_owner(size=3)
    desired = build_desired_children(owner)
    observed = as_stored(owner, desired[0])
    observed["spec"]["replicas"] = 1
    store = MockStoreClient()
    result = apply_actions(store, plan_actions(desired, [observed], owner))
    assert store.resource_writes() == [
        ("update", "Deployment", "test-instance"),
        ("create", "Deployment", "test-instance"),
    ]
    assert result.children[0]["spec"]["replicas"] == 3


def test_apply_actions_delete_absent():
    """Deleting a child that is already gone is not an applied write"""
    owner = make_owner()
    desired = build_desired_children(owner)
    orphan = as_stored(owner, desired[0])
    orphan["metadata"]["name"] = "gone"
    store = MockStoreClient()
    actions = [
        action
        for action in plan_actions([], [orphan], owner)
        if action.action == ActionType.DELETE
    ]
    result = apply_actions(store, actions)
    assert not result.changed
