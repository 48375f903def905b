"""
Custom logging formats that contain more detailed operator logs
"""

# Standard
from contextlib import contextmanager
from typing import Optional
import threading

# First Party
from alog import AlogJsonFormatter
import alog

log = alog.use_channel("LOGFT")

# Reconciles run on worker threads, so the identity of the resource being
# reconciled is tracked per thread
_RECONCILE_CONTEXT = threading.local()


@contextmanager
def reconcile_context(resource: dict, reconciliation_id: Optional[str] = None):
    """Attach a resource and reconciliation id to every log record emitted by
    the current thread while the context is open

    Args:
        resource:  dict
            A manifest (or manifest stub) identifying the resource
        reconciliation_id:  Optional[str]
            The id of the running reconcile
    """
    previous = getattr(_RECONCILE_CONTEXT, "value", None)
    _RECONCILE_CONTEXT.value = (resource, reconciliation_id)
    try:
        yield
    finally:
        _RECONCILE_CONTEXT.value = previous


def current_reconcile_context():
    """Get the (resource, reconciliation_id) of the current thread or None"""
    return getattr(_RECONCILE_CONTEXT, "value", None)


class ExampleJsonFormatter(AlogJsonFormatter):
    """Custom Log Format that extends AlogJsonFormatter to add the identity of
    the resource being reconciled, the reconciliationId, and thread information
    """

    _FIELDS_TO_PRINT = AlogJsonFormatter._FIELDS_TO_PRINT + [
        "thread",
        "threadName",
        "kind",
        "apiVersion",
        "resourceVersion",
        "resourceName",
        "resourceNamespace",
        "reconciliationId",
    ]

    def format(self, record):
        context = current_reconcile_context()
        resource, reconciliation_id = context if context else (None, None)

        reconciliation_id = getattr(record, "reconciliationId", reconciliation_id)
        if reconciliation_id:
            record.reconciliationId = reconciliation_id

        if resource := getattr(record, "resource", resource):
            record.kind = resource.get("kind")
            record.apiVersion = resource.get("apiVersion")

            metadata = resource.get("metadata", {})
            record.resourceVersion = metadata.get("resourceVersion")
            record.resourceName = metadata.get("name")
            record.resourceNamespace = metadata.get("namespace")

        return super().format(record)
