"""
Best-effort recording of kubernetes Events against an Example so that users can
see what the operator did with `kubectl describe`.
"""

# Standard
from enum import Enum
from typing import Optional
import uuid

# First Party
import alog

# Local
from . import constants
from .api import Example
from .exceptions import ReconcileCancelled
from .store_client import StoreClientBase
from .utils import now_timestamp

log = alog.use_channel("EVENT")


class EventType(Enum):
    """The two event types accepted by the event sink"""

    NORMAL = "Normal"
    WARNING = "Warning"


class EventRecorder:
    """Emit v1 Events describing what happened to a CR. Failing to record an
    event never fails the caller, but a shutdown still aborts it.
    """

    def __init__(
        self,
        store_client: StoreClientBase,
        component: str = constants.MANAGER_NAME,
    ):
        self.store_client = store_client
        self.component = component

    def emit(
        self,
        cr: Example,
        event_type: EventType,
        reason: str,
        message: str,
    ) -> bool:
        """Record an event for the CR

        Args:
            cr:  Example
                The object the event is about
            event_type:  EventType
                Normal or Warning
            reason:  str
                Short CamelCase reason (e.g. Created, UpdateFailed)
            message:  str
                Human readable description

        Returns:
            recorded:  bool
                True if the event was written to the store
        """
        event = self.make_event(cr, event_type, reason, message)
        try:
            self.store_client.create_event(event)
        except ReconcileCancelled:
            raise
        except Exception as err:  # pylint: disable=broad-except
            log.warning(
                "Failed to record %s event %s for %s: %s",
                event_type.value,
                reason,
                cr.key,
                err,
            )
            return False
        log.debug2("Recorded %s event %s for %s", event_type.value, reason, cr.key)
        return True

    def make_event(
        self,
        cr: Example,
        event_type: EventType,
        reason: str,
        message: str,
        timestamp: Optional[str] = None,
    ) -> dict:
        """Build the v1 Event manifest"""
        timestamp = timestamp or now_timestamp()
        return {
            "apiVersion": "v1",
            "kind": "Event",
            "metadata": {
                "name": f"{cr.metadata.name}.{uuid.uuid4().hex[:16]}",
                "namespace": cr.metadata.namespace,
            },
            "involvedObject": {
                "apiVersion": cr.api_version,
                "kind": cr.kind,
                "name": cr.metadata.name,
                "namespace": cr.metadata.namespace,
                "uid": cr.metadata.uid,
                "resourceVersion": cr.metadata.resource_version,
            },
            "type": event_type.value,
            "reason": reason,
            "message": message,
            "source": {"component": self.component},
            "reportingComponent": self.component,
            "firstTimestamp": timestamp,
            "lastTimestamp": timestamp,
            "count": 1,
        }
