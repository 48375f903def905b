"""
The diff engine compares the desired children of a CR against the children
observed in the store and decides, per child, whether to create, update, delete
or leave it alone. Only fields set by the desired manifest take part in the
comparison, so server populated fields (status, uid, managedFields, defaulted
spec values) never cause an update.
"""

# Standard
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
import copy

# Third Party
from deepdiff import DeepDiff

# First Party
import alog

# Local
from .api import Example
from .exceptions import InvalidSpecError
from .store_client import StoreClientBase, is_owned_by, set_owner_reference
from .utils import merge_configs

log = alog.use_channel("DIFF")

## Types #######################################################################


class ActionType(Enum):
    """What to do with a single child"""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    NOOP = "noop"


@dataclass
class ChildAction:
    """One planned change to a child"""

    action: ActionType
    kind: str
    name: str
    # The manifest to write for CREATE/UPDATE
    body: Optional[dict] = None
    # The child as observed before the action
    observed: Optional[dict] = None

    @property
    def sort_key(self) -> Tuple[str, str]:
        return (self.kind, self.name)


@dataclass
class ApplyResult:
    """The outcome of applying a list of actions"""

    # The children as they exist after the actions were applied
    children: List[dict] = field(default_factory=list)
    # The actions that resulted in a store write
    applied: List[ChildAction] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.applied)


## Public ######################################################################


def plan_actions(
    desired: List[dict],
    observed: List[dict],
    owner: Example,
) -> List[ChildAction]:
    """Decide what to do with each child

    Args:
        desired:  List[dict]
            The desired children built from the CR's spec
        observed:  List[dict]
            The children currently in the store
        owner:  Example
            The CR that owns the children

    Returns:
        actions:  List[ChildAction]
            One action per desired child plus one DELETE per owned observed
            child that is no longer desired, ordered by (kind, name)
    """
    observed_map = {_child_key(child): child for child in observed}
    desired_keys = set()
    owner_uid = owner.metadata.uid
    actions = []

    for child in desired:
        key = _child_key(child)
        desired_keys.add(key)
        body = set_owner_reference(owner, copy.deepcopy(child))
        current = observed_map.get(key)

        if current is None:
            log.debug2("%s/%s is absent", *key)
            actions.append(ChildAction(ActionType.CREATE, *key, body=body))
            continue

        if not is_owned_by(current, owner_uid):
            _check_adoptable(current, key)
            log.debug2("%s/%s exists without an owner. Adopting", *key)
        elif semantically_equal(child, current):
            log.debug3("%s/%s is unchanged", *key)
            actions.append(ChildAction(ActionType.NOOP, *key, observed=current))
            continue

        actions.append(
            ChildAction(
                ActionType.UPDATE,
                *key,
                body=_update_body(body, current),
                observed=current,
            )
        )

    for key, current in observed_map.items():
        if key in desired_keys:
            continue
        if is_owned_by(current, owner_uid):
            log.debug2("%s/%s is no longer desired", *key)
            actions.append(ChildAction(ActionType.DELETE, *key, observed=current))
        else:
            log.debug("Not deleting %s/%s which is not owned by %s", *key, owner.key)

    return sorted(actions, key=lambda action: action.sort_key)


def apply_actions(
    store_client: StoreClientBase,
    actions: List[ChildAction],
) -> ApplyResult:
    """Carry out a planned list of actions in order. Errors propagate to the
    caller after the preceding actions have been applied.

    Args:
        store_client:  StoreClientBase
            The client to write with
        actions:  List[ChildAction]
            The actions from plan_actions

    Returns:
        result:  ApplyResult
            The children after the actions and which actions wrote to the store
    """
    result = ApplyResult()
    for action in actions:
        if action.action == ActionType.NOOP:
            result.children.append(action.observed)
            continue

        log.debug("Applying %s to %s/%s", action.action.value, action.kind, action.name)
        if action.action == ActionType.CREATE:
            result.children.append(store_client.create(action.body))

        elif action.action == ActionType.UPDATE:
            updated = store_client.update(action.body)
            if updated is None:
                # The child vanished between the list and the update
                log.debug2("%s/%s vanished. Recreating", action.kind, action.name)
                body = copy.deepcopy(action.body)
                body["metadata"].pop("resourceVersion", None)
                updated = store_client.create(body)
            result.children.append(updated)

        elif action.action == ActionType.DELETE:
            metadata = action.observed.get("metadata", {})
            if not store_client.delete(
                kind=action.kind,
                name=action.name,
                namespace=metadata.get("namespace"),
                api_version=action.observed.get("apiVersion"),
            ):
                log.debug2("%s/%s already deleted", action.kind, action.name)
                continue

        result.applied.append(action)
    return result


def semantically_equal(desired: dict, observed: dict) -> bool:
    """Compare a desired child with the observed child, looking only at the
    fields the desired manifest sets
    """
    desired = copy.deepcopy(desired)
    desired.get("metadata", {}).pop("ownerReferences", None)
    diff = DeepDiff(desired, _project(observed, desired))
    if diff:
        log.debug3("Found diff: %s", diff)
    return not diff


## Implementation Details ######################################################


def _child_key(child: dict) -> Tuple[str, str]:
    return (child.get("kind"), child.get("metadata", {}).get("name"))


def _project(observed: Any, template: Any) -> Any:
    """Project an observed value onto the shape of the template, dropping any
    keys the template does not set
    """
    if isinstance(template, dict) and isinstance(observed, dict):
        return {
            key: _project(observed[key], val) if key in observed else None
            for key, val in template.items()
        }
    if (
        isinstance(template, list)
        and isinstance(observed, list)
        and len(template) == len(observed)
    ):
        return [_project(obs, tmpl) for obs, tmpl in zip(observed, template)]
    return observed


def _update_body(body: dict, current: dict) -> dict:
    """Merge the desired body over the observed child so that server populated
    fields survive the replace, pinned to the observed resourceVersion
    """
    merged = copy.deepcopy(current)
    merged.pop("status", None)
    merged = merge_configs(merged, copy.deepcopy(body))
    merged["metadata"]["ownerReferences"] = body["metadata"]["ownerReferences"]
    merged["metadata"]["resourceVersion"] = current.get("metadata", {}).get(
        "resourceVersion"
    )
    return merged


def _check_adoptable(current: dict, key: Tuple[str, str]):
    """An existing child controlled by another owner can not be taken over"""
    controllers: List[Dict[str, Any]] = [
        ref
        for ref in current.get("metadata", {}).get("ownerReferences", [])
        if ref.get("controller")
    ]
    if controllers:
        raise InvalidSpecError(
            f"{key[0]}/{key[1]} already exists and is controlled by "
            f"{controllers[0].get('kind')}/{controllers[0].get('name')}"
        )
