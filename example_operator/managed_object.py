"""
Helper object to represent a raw kubernetes object seen by the operator
"""
# Standard
from typing import Optional

# Local
from .api import RequestKey

KUBE_LIST_IDENTIFIER = "List"


class ManagedObject:
    """Basic struct to represent a kubernetes object read from the store"""

    def __init__(self, definition: dict):
        self.kind = definition.get("kind")
        self.metadata = definition.get("metadata", {})
        self.name = self.metadata.get("name")
        self.namespace = self.metadata.get("namespace")
        self.uid: Optional[str] = self.metadata.get("uid")
        self.resource_version = self.metadata.get("resourceVersion")
        self.api_version = definition.get("apiVersion")
        self.definition = definition

        # If resource is not list then check name
        assert self.kind is not None, "No kind found"
        if KUBE_LIST_IDENTIFIER not in self.kind:
            assert self.name is not None, "No name found"
        assert self.api_version is not None, "No apiVersion found"

    @property
    def key(self) -> RequestKey:
        """The reconcile identity of this object"""
        return RequestKey(namespace=self.namespace, name=self.name)

    def get(self, *args, **kwargs):
        """Pass get calls to the objects definition"""
        return self.definition.get(*args, **kwargs)

    def __str__(self):
        return f"{self.api_version}/{self.kind}/{self.namespace}/{self.name}"

    def __repr__(self):
        return str(self)

    def __hash__(self):
        """Hash explicitly excludes the definition so that the object's
        identifier in a map is based only on its identity in the store
        """
        return hash(self.uid or str(self))

    def __eq__(self, other):
        return hash(self) == hash(other)
