"""
Typed representation of the Example custom resource and the metadata it
shares with every other kubernetes object. Each type holds its parts as named
fields and converts to and from the camelCase dict form used on the wire.
"""

# Standard
from dataclasses import dataclass, field
from typing import Any, Dict, List, NamedTuple, Optional
import copy

# Local
from .. import constants

## Metadata ####################################################################

# Metadata keys that are parsed into named fields. Everything else is carried
# in ObjectMeta.extra so that a read-modify-write does not drop server fields.
_META_FIELDS = {
    "name": "name",
    "namespace": "namespace",
    "uid": "uid",
    "generation": "generation",
    "resourceVersion": "resource_version",
    "deletionTimestamp": "deletion_timestamp",
    "finalizers": "finalizers",
    "ownerReferences": "owner_references",
    "labels": "labels",
    "annotations": "annotations",
}


@dataclass
class ObjectMeta:  # pylint: disable=too-many-instance-attributes
    """The metadata block common to every object in the store"""

    name: Optional[str] = None
    namespace: Optional[str] = None
    uid: Optional[str] = None
    generation: Optional[int] = None
    resource_version: Optional[str] = None
    deletion_timestamp: Optional[str] = None
    finalizers: List[str] = field(default_factory=list)
    owner_references: List[dict] = field(default_factory=list)
    labels: Dict[str, str] = field(default_factory=dict)
    annotations: Dict[str, str] = field(default_factory=dict)
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, metadata: Optional[dict]) -> "ObjectMeta":
        metadata = copy.deepcopy(metadata or {})
        kwargs = {
            attr: metadata.pop(key)
            for key, attr in _META_FIELDS.items()
            if metadata.get(key) is not None
        }
        return cls(**kwargs, extra=metadata)

    def to_dict(self) -> dict:
        metadata = copy.deepcopy(self.extra)
        for key, attr in _META_FIELDS.items():
            value = getattr(self, attr)
            # Empty collections are omitted to match what the server returns
            if value is None or (isinstance(value, (list, dict)) and not value):
                continue
            metadata[key] = copy.deepcopy(value)
        return metadata


## Conditions ##################################################################


@dataclass
class Condition:
    """A single entry in status.conditions"""

    type: str
    status: str
    reason: str = ""
    message: str = ""
    last_transition_time: Optional[str] = None

    @classmethod
    def from_dict(cls, condition: dict) -> "Condition":
        return cls(
            type=condition.get("type"),
            status=condition.get("status"),
            reason=condition.get("reason", ""),
            message=condition.get("message", ""),
            last_transition_time=condition.get("lastTransitionTime"),
        )

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "status": self.status,
            "reason": self.reason,
            "message": self.message,
            "lastTransitionTime": self.last_transition_time,
        }


## Example #####################################################################


@dataclass
class ExampleSpec:
    """The desired state of an Example. Values are kept exactly as read so that
    malformed input reaches the desired-state builder and is reported there.
    """

    name: Optional[str] = None
    size: Any = None

    @classmethod
    def from_dict(cls, spec: Optional[dict]) -> "ExampleSpec":
        spec = spec or {}
        return cls(name=spec.get("name"), size=spec.get("size"))

    def to_dict(self) -> dict:
        return {
            key: value
            for key, value in (("name", self.name), ("size", self.size))
            if value is not None
        }


@dataclass
class ExampleStatus:
    """The observed state of an Example"""

    name: Optional[str] = None
    observed_generation: Optional[int] = None
    ready_replicas: int = 0
    conditions: List[Condition] = field(default_factory=list)

    @classmethod
    def from_dict(cls, status: Optional[dict]) -> "ExampleStatus":
        status = status or {}
        return cls(
            name=status.get("name"),
            observed_generation=status.get("observedGeneration"),
            ready_replicas=status.get("readyReplicas") or 0,
            conditions=[
                Condition.from_dict(cond) for cond in status.get("conditions") or []
            ],
        )

    def to_dict(self) -> dict:
        status = {
            "readyReplicas": self.ready_replicas,
            "conditions": [cond.to_dict() for cond in self.conditions],
        }
        if self.name is not None:
            status["name"] = self.name
        if self.observed_generation is not None:
            status["observedGeneration"] = self.observed_generation
        return status

    def get_condition(self, condition_type: str) -> Optional[Condition]:
        """Get the condition of the given type if present"""
        for cond in self.conditions:
            if cond.type == condition_type:
                return cond
        return None


@dataclass
class Example:
    """The Example custom resource"""

    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    spec: ExampleSpec = field(default_factory=ExampleSpec)
    status: ExampleStatus = field(default_factory=ExampleStatus)
    api_version: str = f"{constants.API_GROUP}/{constants.API_VERSION}"
    kind: str = constants.KIND

    @classmethod
    def from_dict(cls, resource: dict) -> "Example":
        return cls(
            api_version=resource.get(
                "apiVersion", f"{constants.API_GROUP}/{constants.API_VERSION}"
            ),
            kind=resource.get("kind", constants.KIND),
            metadata=ObjectMeta.from_dict(resource.get("metadata")),
            spec=ExampleSpec.from_dict(resource.get("spec")),
            status=ExampleStatus.from_dict(resource.get("status")),
        )

    def to_dict(self) -> dict:
        return {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "metadata": self.metadata.to_dict(),
            "spec": self.spec.to_dict(),
            "status": self.status.to_dict(),
        }

    @property
    def key(self) -> "RequestKey":
        """The identity used to queue reconciles of this resource"""
        return RequestKey(namespace=self.metadata.namespace, name=self.metadata.name)

    @property
    def is_deleting(self) -> bool:
        """Deletion has been requested and is waiting on finalizers"""
        return bool(self.metadata.deletion_timestamp)

    @property
    def is_paused(self) -> bool:
        """Reconciliation has been paused with the pause annotation"""
        return (
            str(
                self.metadata.annotations.get(constants.PAUSE_ANNOTATION_NAME, "")
            ).lower()
            == "true"
        )


@dataclass
class ExampleList:
    """A list of Example resources as returned by a list call"""

    items: List[Example] = field(default_factory=list)
    resource_version: Optional[str] = None
    api_version: str = f"{constants.API_GROUP}/{constants.API_VERSION}"
    kind: str = constants.LIST_KIND

    @classmethod
    def from_dict(cls, resource: dict) -> "ExampleList":
        return cls(
            api_version=resource.get(
                "apiVersion", f"{constants.API_GROUP}/{constants.API_VERSION}"
            ),
            kind=resource.get("kind", constants.LIST_KIND),
            resource_version=resource.get("metadata", {}).get("resourceVersion"),
            items=[Example.from_dict(item) for item in resource.get("items", [])],
        )

    def to_dict(self) -> dict:
        metadata = {}
        if self.resource_version is not None:
            metadata["resourceVersion"] = self.resource_version
        return {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "metadata": metadata,
            "items": [item.to_dict() for item in self.items],
        }


## Request Key #################################################################


class RequestKey(NamedTuple):
    """The deduplicated identity of a unit of reconcile work"""

    namespace: Optional[str]
    name: str

    def __str__(self):
        return f"{self.namespace}/{self.name}"
