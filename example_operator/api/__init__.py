"""
Typed api objects for the Example custom resource
"""

# Local
from .registry import TypeRegistry, build_registry
from .types import (
    Condition,
    Example,
    ExampleList,
    ExampleSpec,
    ExampleStatus,
    ObjectMeta,
    RequestKey,
)
