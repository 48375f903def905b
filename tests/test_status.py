"""
Tests for the status projection
"""

# Local
from example_operator.api import Condition, Example
from example_operator.exceptions import (
    FinalizerError,
    InvalidSpecError,
    TransientError,
)
from example_operator.status import (
    READY_CONDITION,
    STATUS_FALSE,
    STATUS_TRUE,
    STATUS_UNKNOWN,
    ReadyReason,
    ReconcileOutcome,
    project_status,
    set_condition,
    status_changed,
)
from example_operator.test_helpers.helpers import setup_cr

NOW = "2024-01-01T00:00:00Z"
LATER = "2024-01-01T01:00:00Z"

## Helpers #####################################################################


def make_cr(size=2, generation=3, status=None):
    cr_dict = setup_cr(size=size)
    cr_dict["metadata"]["generation"] = generation
    if status is not None:
        cr_dict["status"] = status
    return Example.from_dict(cr_dict)


def make_deployment(ready_replicas=None, name="test-instance"):
    deployment = {"kind": "Deployment", "metadata": {"name": name}}
    if ready_replicas is not None:
        deployment["status"] = {"readyReplicas": ready_replicas}
    return deployment


def ready(status):
    return status.get_condition(READY_CONDITION)


## project_status ##############################################################


def test_project_status_stable():
    """All replicas ready reports Ready=True"""
    status = project_status(make_cr(), [make_deployment(2)], ReconcileOutcome(), NOW)
    assert status.ready_replicas == 2
    assert status.name == "test-instance"
    assert status.observed_generation == 3
    cond = ready(status)
    assert cond.status == STATUS_TRUE
    assert cond.reason == ReadyReason.STABLE.value
    assert cond.last_transition_time == NOW


def test_project_status_in_progress():
    """Some replicas ready reports the rollout in progress"""
    status = project_status(make_cr(), [make_deployment(1)], ReconcileOutcome(), NOW)
    assert status.ready_replicas == 1
    assert ready(status).status == STATUS_FALSE
    assert ready(status).reason == ReadyReason.IN_PROGRESS.value


def test_project_status_initializing():
    """Children without any status are still initializing"""
    status = project_status(make_cr(), [make_deployment()], ReconcileOutcome(), NOW)
    assert status.ready_replicas == 0
    assert ready(status).status == STATUS_UNKNOWN
    assert ready(status).reason == ReadyReason.INITIALIZING.value


def test_project_status_null_child_status():
    """Null status blocks on children count as zero ready replicas"""
    null_status = make_deployment()
    null_status["status"] = None
    null_ready = make_deployment(name="other")
    null_ready["status"] = {"readyReplicas": None}
    status = project_status(
        make_cr(status={"readyReplicas": None}),
        [null_status, null_ready],
        ReconcileOutcome(),
        NOW,
    )
    assert status.ready_replicas == 0


def test_project_status_zero_size_is_ready():
    """A size of zero is immediately ready"""
    status = project_status(
        make_cr(size=0), [make_deployment()], ReconcileOutcome(), NOW
    )
    assert ready(status).status == STATUS_TRUE


def test_project_status_failures():
    """Each failure maps to its reason and keeps the previous aggregates"""
    cr = make_cr(status={"name": "test-instance", "readyReplicas": 1})
    for error, reason in [
        (InvalidSpecError("bad size"), ReadyReason.INVALID_SPEC),
        (TransientError("timeout"), ReadyReason.RECONCILE_FAILED),
        (FinalizerError("cleanup"), ReadyReason.CLEANUP_FAILED),
    ]:
        status = project_status(cr, None, ReconcileOutcome(error=error), NOW)
        assert status.ready_replicas == 1
        assert status.name == "test-instance"
        assert ready(status).status == STATUS_FALSE
        assert ready(status).reason == reason.value
        assert ready(status).message == str(error)


def test_project_status_deleting():
    """A successful pass of a deleting CR reports Deleting"""
    status = project_status(
        make_cr(), None, ReconcileOutcome(deleting=True), NOW
    )
    assert ready(status).status == STATUS_FALSE
    assert ready(status).reason == ReadyReason.DELETING.value


def test_project_status_does_not_modify_cr():
    """Projection is pure"""
    cr = make_cr()
    before = cr.to_dict()
    project_status(cr, [make_deployment(2)], ReconcileOutcome(), NOW)
    assert cr.to_dict() == before


def test_project_status_keeps_transition_time():
    """The transition time only changes when the condition status changes"""
    cr = make_cr()
    first = project_status(cr, [make_deployment(2)], ReconcileOutcome(), NOW)
    cr.status = first
    second = project_status(cr, [make_deployment(2)], ReconcileOutcome(), LATER)
    assert ready(second).last_transition_time == NOW
    cr.status = second
    third = project_status(cr, [make_deployment(1)], ReconcileOutcome(), LATER)
    assert ready(third).last_transition_time == LATER


## set_condition ###############################################################


def test_set_condition_replaces_in_place():
    """Exactly one condition per type is kept in its original position"""
    conditions = [
        Condition(type="Other", status="True"),
        Condition(type=READY_CONDITION, status="False", last_transition_time=NOW),
    ]
    updated = set_condition(
        conditions, Condition(type=READY_CONDITION, status="True"), LATER
    )
    assert [cond.type for cond in updated] == ["Other", READY_CONDITION]
    assert updated[1].status == "True"
    assert updated[1].last_transition_time == LATER
    # The input is not modified
    assert conditions[1].status == "False"


## status_changed ##############################################################


def test_status_changed_ignores_timestamps():
    """Only a timestamp change is not a meaningful change"""
    cond = Condition(type=READY_CONDITION, status="True", last_transition_time=NOW)
    current = {"readyReplicas": 2, "conditions": [cond.to_dict()]}
    cond.last_transition_time = LATER
    conditions = [cond.to_dict()]
    assert not status_changed(current, {"readyReplicas": 2, "conditions": conditions})
    assert status_changed(current, {"readyReplicas": 1, "conditions": conditions})
    assert status_changed(None, current)
