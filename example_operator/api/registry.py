"""
Explicit registry mapping group/version/kind to the python types that parse
them. A registry is built once at startup and handed to the components that
need to decode objects, rather than registering into module-level state.
"""

# Standard
from typing import Dict, Optional, Tuple, Type

# First Party
import alog

# Local
from .. import constants
from ..exceptions import ConfigError
from .types import Example, ExampleList

log = alog.use_channel("REGIS")

GroupVersionKind = Tuple[str, str, str]


class TypeRegistry:
    """Map of (group, version, kind) to the type that decodes it"""

    def __init__(self):
        self._types: Dict[GroupVersionKind, Type] = {}

    def register(self, group: str, version: str, kind: str, type_class: Type):
        """Register a type for the given gvk

        Args:
            group:  str
                The api group (empty for the core group)
            version:  str
                The api version
            kind:  str
                The kind served by the group/version
            type_class:  Type
                A class implementing from_dict/to_dict
        """
        gvk = (group, version, kind)
        if gvk in self._types:
            raise ConfigError(f"Type already registered for {gvk}")
        log.debug2("Registering %s for %s", type_class.__name__, gvk)
        self._types[gvk] = type_class

    def lookup(self, api_version: str, kind: str) -> Optional[Type]:
        """Look up the type for an apiVersion string and kind"""
        group, _, version = api_version.rpartition("/")
        return self._types.get((group, version, kind))

    def decode(self, resource: dict):
        """Parse a raw dict into its registered type, or return it unchanged
        when no type is registered for its gvk
        """
        type_class = self.lookup(resource.get("apiVersion", ""), resource.get("kind"))
        if type_class is None:
            return resource
        return type_class.from_dict(resource)

    def __contains__(self, gvk: GroupVersionKind) -> bool:
        return gvk in self._types

    def __len__(self) -> int:
        return len(self._types)


def build_registry() -> TypeRegistry:
    """Construct the registry holding the Example types"""
    registry = TypeRegistry()
    registry.register(
        constants.API_GROUP, constants.API_VERSION, constants.KIND, Example
    )
    registry.register(
        constants.API_GROUP, constants.API_VERSION, constants.LIST_KIND, ExampleList
    )
    return registry
