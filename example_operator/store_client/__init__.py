"""
The store_client module holds the abstraction over the declarative store and
its implementations
"""

# Local
from .base import StoreClientBase
from .dry_run_store_client import DryRunStoreClient
from .kube_event import KubeEventType, KubeWatchEvent
from .kube_store_client import KubeStoreClient, classify_api_exception
from .owner_references import is_owned_by, make_owner_reference, set_owner_reference
