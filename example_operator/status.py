"""
This module holds the common functionality used to project the status of an
Example from the observed state of its children and the outcome of the latest
reconcile.

The Example status carries a single Ready condition:

* True/Stable: the reconcile succeeded and every desired replica is ready
* False/InProgress: the reconcile succeeded and replicas are still rolling out
* False/<failure reason>: the reconcile failed (InvalidSpec, ReconcileFailed,
  CleanupFailed) or the resource is being deleted (Deleting)
* Unknown/Initializing: the children have not reported any state yet
"""

# Standard
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional
import copy

# Third Party
from deepdiff import DeepDiff

# First Party
import alog

# Local
from .api import Condition, Example, ExampleStatus
from .exceptions import FinalizerError, InvalidSpecError
from .utils import now_timestamp

log = alog.use_channel("STTUS")

## Public ######################################################################

# The "type" value of the ready condition
READY_CONDITION = "Ready"

# The key in the condition used for the timestamp
TIMESTAMP_KEY = "lastTransitionTime"

# Condition status values
STATUS_TRUE = "True"
STATUS_FALSE = "False"
STATUS_UNKNOWN = "Unknown"


class ReadyReason(Enum):
    """Nested class to hold reason constants for the Ready condition"""

    # Every desired replica is ready
    STABLE = "Stable"

    # The children have not reported state yet
    INITIALIZING = "Initializing"

    # The rollout is in progress
    IN_PROGRESS = "InProgress"

    # The desired state cannot be built from the spec
    INVALID_SPEC = "InvalidSpec"

    # The reconcile failed and will be retried
    RECONCILE_FAILED = "ReconcileFailed"

    # A cleanup action failed during deletion and will be retried
    CLEANUP_FAILED = "CleanupFailed"

    # Deletion has been requested and cleanup is running
    DELETING = "Deleting"


@dataclass
class ReconcileOutcome:
    """The outcome of a single reconcile pass as seen by the status projector"""

    # The error that ended the pass, if any
    error: Optional[Exception] = None

    # Whether the pass ran the finalizer path
    deleting: bool = False

    @property
    def succeeded(self) -> bool:
        return self.error is None


def set_condition(
    conditions: List[Condition],
    condition: Condition,
    now: Optional[str] = None,
) -> List[Condition]:
    """Set a condition into a list of conditions, replacing any condition of
    the same type. The lastTransitionTime is kept from the existing condition
    unless the status value changes.

    Args:
        conditions:  List[Condition]
            The current conditions
        condition:  Condition
            The condition to set
        now:  Optional[str]
            The timestamp to use for a transition

    Returns:
        conditions:  List[Condition]
            A new list of conditions with exactly one entry for the type
    """
    condition = copy.copy(condition)
    existing = [cond for cond in conditions if cond.type == condition.type]
    if existing and existing[0].status == condition.status:
        condition.last_transition_time = existing[0].last_transition_time
    else:
        log.debug2(
            "%s transitioned to %s (%s)",
            condition.type,
            condition.status,
            condition.reason,
        )
        condition.last_transition_time = now or now_timestamp()

    # Replace in position so that condition order is stable
    updated = []
    placed = False
    for cond in conditions:
        if cond.type != condition.type:
            updated.append(cond)
        elif not placed:
            updated.append(condition)
            placed = True
    if not placed:
        updated.append(condition)
    return updated


def project_status(
    cr: Example,
    observed_children: Optional[List[dict]],
    outcome: ReconcileOutcome,
    now: Optional[str] = None,
) -> ExampleStatus:
    """Derive the status of an Example from its observed children and the
    outcome of the reconcile that observed them. The CR is not modified.

    Args:
        cr:  Example
            The CR as read at the start of the reconcile
        observed_children:  Optional[List[dict]]
            The children after the reconcile applied its changes. None when the
            reconcile ended before observing them, in which case aggregate
            fields keep their previous values.
        outcome:  ReconcileOutcome
            The outcome of the reconcile
        now:  Optional[str]
            Timestamp to use for any condition transition

    Returns:
        status:  ExampleStatus
            The projected status
    """
    previous = cr.status
    status = ExampleStatus(
        name=previous.name,
        observed_generation=cr.metadata.generation,
        ready_replicas=previous.ready_replicas,
        conditions=list(previous.conditions),
    )

    if observed_children is not None:
        status.ready_replicas = sum(
            int((child.get("status") or {}).get("readyReplicas") or 0)
            for child in observed_children
            if child.get("kind") == "Deployment"
        )
        if observed_children:
            status.name = observed_children[0].get("metadata", {}).get("name")

    ready = _ready_condition(cr, observed_children, outcome, status.ready_replicas)
    status.conditions = set_condition(status.conditions, ready, now)
    return status


def status_changed(current_status: dict, new_status: dict) -> bool:
    """Compare two status objects to determine if there is a meaningful change
    between the current status and the proposed new status. A meaningful change
    is defined as any change besides a timestamp.

    Args:
        current_status:  dict
            The raw status dict from the current CR
        new_status:  dict
            The proposed new status

    Returns:
        status_changed:  bool
            True if there is a meaningful change between the current status and
            the new status
    """
    # Status objects must be dicts
    if not isinstance(current_status, dict) or not isinstance(new_status, dict):
        return True

    # Perform a deep diff, excluding timestamps
    return bool(
        DeepDiff(
            current_status,
            new_status,
            exclude_obj_callback=lambda _, path: path.endswith(f"{TIMESTAMP_KEY}']"),
        )
    )


## Implementation Details ######################################################


def _ready_condition(
    cr: Example,
    observed_children: Optional[List[dict]],
    outcome: ReconcileOutcome,
    ready_replicas: int,
) -> Condition:
    """Construct the Ready condition for the outcome"""
    if not outcome.succeeded:
        reason = _failure_reason(outcome.error)
        return Condition(
            type=READY_CONDITION,
            status=STATUS_FALSE,
            reason=reason.value,
            message=str(outcome.error),
        )

    if outcome.deleting:
        return Condition(
            type=READY_CONDITION,
            status=STATUS_FALSE,
            reason=ReadyReason.DELETING.value,
            message="Deletion in progress",
        )

    desired_replicas = cr.spec.size
    if ready_replicas >= desired_replicas:
        return Condition(
            type=READY_CONDITION,
            status=STATUS_TRUE,
            reason=ReadyReason.STABLE.value,
            message=f"{ready_replicas}/{desired_replicas} replicas ready",
        )

    # Children that have never reported a status have not been observed by
    # their own controllers yet
    if not any((child.get("status") or {}) for child in observed_children or []):
        return Condition(
            type=READY_CONDITION,
            status=STATUS_UNKNOWN,
            reason=ReadyReason.INITIALIZING.value,
            message="Waiting for children to report status",
        )

    return Condition(
        type=READY_CONDITION,
        status=STATUS_FALSE,
        reason=ReadyReason.IN_PROGRESS.value,
        message=f"{ready_replicas}/{desired_replicas} replicas ready",
    )


def _failure_reason(error: Exception) -> ReadyReason:
    if isinstance(error, InvalidSpecError):
        return ReadyReason.INVALID_SPEC
    if isinstance(error, FinalizerError):
        return ReadyReason.CLEANUP_FAILED
    return ReadyReason.RECONCILE_FAILED
