"""
Top-level imports for the example operator
"""

# Local
from . import config, constants, metrics, status
from .api import Example, ExampleList, ExampleStatus, RequestKey, TypeRegistry
from .controller import Controller, ExampleController
from .finalizer import CleanupAction, FinalizerManager, LabeledResourceCleanup
from .reconcile import ReconcileManager, ReconciliationResult
from .store_client import DryRunStoreClient, KubeStoreClient, StoreClientBase
from .watch_manager import PythonWatchManager, WatchManagerBase
