"""
This module holds common functionality for managing ownerReferences on the
children created for a CR
"""

# Standard
from typing import Union

# First Party
import alog

# Local
from ..api import Example

log = alog.use_channel("OWNRF")


def make_owner_reference(owner_cr: Union[Example, dict]) -> dict:
    """Make an owner reference for the given CR instance

    Args:
        owner_cr:  Union[Example, dict]
            The owning CR

    Returns:
        owner_reference:  dict
            The dict entry for the `metadata.ownerReferences` entry of the owned
            object
    """
    if isinstance(owner_cr, Example):
        owner_cr = owner_cr.to_dict()
    metadata = owner_cr.get("metadata", {})
    return {
        "apiVersion": owner_cr.get("apiVersion"),
        "kind": owner_cr.get("kind"),
        "name": metadata.get("name"),
        "uid": metadata.get("uid"),
        # Only one owner may be the controller. Children belong to exactly one
        # CR, so it is always this one.
        "controller": True,
        # The parent will not be deleted until this object completes its
        # deletion
        "blockOwnerDeletion": True,
    }


def set_owner_reference(owner_cr: Example, child_obj: dict) -> dict:
    """Set the single owner reference for this CR on the child object in place,
    replacing any reference to a different controller

    Returns:
        child_obj:  dict
            The same child object for convenience
    """
    owner_ref = make_owner_reference(owner_cr)
    metadata = child_obj.setdefault("metadata", {})
    refs = [
        ref
        for ref in metadata.get("ownerReferences", [])
        if not ref.get("controller") and ref.get("uid") != owner_ref["uid"]
    ]
    refs.append(owner_ref)
    log.debug3("Owner refs for %s: %s", metadata.get("name"), refs)
    metadata["ownerReferences"] = refs
    return child_obj


def is_owned_by(child_obj: dict, owner_uid: str) -> bool:
    """Determine whether the child object carries an owner reference to the
    owner with the given uid
    """
    if not owner_uid:
        return False
    return any(
        ref.get("uid") == owner_uid
        for ref in child_obj.get("metadata", {}).get("ownerReferences", [])
    )
