"""The WatchThread Class is responsible for monitoring the store for
resource events
"""
# Standard
from collections import OrderedDict
from typing import Dict, Optional, Tuple
import os

# First Party
import alog

# Local
from .... import config
from ....api import RequestKey
from ....managed_object import ManagedObject
from ....store_client import KubeEventType, KubeWatchEvent, StoreClientBase
from ..leader_election import LeadershipManagerBase
from ..utils import (
    FINGERPRINT_KEEP_COUNT,
    ReconcileRequest,
    ReconcileRequestType,
    parse_time_delta,
)
from .base import ThreadBase

log = alog.use_channel("WTCTH")

# Forward declaration of ReconcileThread
RECONCILE_THREAD_TYPE = "ReconcileThread"


class WatchThread(ThreadBase):  # pylint: disable=too-many-instance-attributes
    """The WatchThread monitors the store for changes to a specific kind either
    cluster-wide or for a particular namespace. Events for the reconciled kind
    request a reconcile of the resource itself. Events for a child kind request
    a reconcile of the owner named by the child's controller ownerReference.

    MODIFIED events of the reconciled kind that only change its status are
    skipped, so the operator's own status writes do not retrigger reconciles.
    """

    def __init__(  # pylint: disable=too-many-arguments
        self,
        reconcile_thread: RECONCILE_THREAD_TYPE,
        kind: str,
        api_version: str,
        namespace: Optional[str] = None,
        store_client: Optional[StoreClientBase] = None,
        leadership_manager: Optional[LeadershipManagerBase] = None,
        owner_kind: Optional[str] = None,
        owner_api_version: Optional[str] = None,
    ):
        """Initialize a WatchThread by assigning instance variables and creating maps

        Args:
            reconcile_thread: ReconcileThread
                The reconcile thread to submit requests to
            kind: str
                The kind to watch
            api_version: str
                The api_version to watch
            namespace: Optional[str] = None
                The namespace to watch. If none then cluster-wide
            store_client: Optional[StoreClientBase]
                The store client to watch events with
            leadership_manager: Optional[LeadershipManagerBase]
                The leadership manager to use for elections
            owner_kind: Optional[str]
                For a child watch, the kind of the owner to reconcile
            owner_api_version: Optional[str]
                For a child watch, the api_version of the owner to reconcile
        """
        # Setup initial variables
        self.reconcile_thread = reconcile_thread
        self.kind = kind
        self.api_version = api_version
        self.namespace = namespace
        self.owner_kind = owner_kind
        self.owner_api_version = owner_api_version

        name = f"watch_thread_{self.api_version}_{self.kind}"
        if self.namespace:
            name = name + f"_{self.namespace}"
        super().__init__(
            name=name,
            daemon=True,
            store_client=store_client,
            leadership_manager=leadership_manager,
        )

        # Track the last seen fingerprint of each resource so that status-only
        # changes can be skipped
        self.fingerprints: "OrderedDict[str, Tuple]" = OrderedDict()

        # Variables for tracking retries
        self.attempts_left = config.python_watch_manager.watch_retry_count
        self.retry_delay = parse_time_delta(
            config.python_watch_manager.watch_retry_delay or ""
        )
        self.started_watch = False

    def run(self):
        """The WatchThread's control loop continuously watches the StoreClient
        for any new events. For every event it resolves the identity of the CR
        to reconcile and submits a ReconcileRequest if the event is relevant
        """
        # Check for leadership and shutdown at the start
        list_resource_version = None
        while True:
            try:
                if not self.check_preconditions():
                    log.debug("Checking preconditions failed. Shutting down")
                    return

                self.started_watch = True
                for event in self.store_client.watch_objects(
                    self.kind,
                    self.api_version,
                    namespace=self.namespace,
                    resource_version=list_resource_version,
                ):
                    # Validate leadership on each event
                    if not self.check_preconditions():
                        log.debug("Checking preconditions failed. Shutting down")
                        return

                    self._handle_event(event)
                    list_resource_version = event.resource.resource_version

                # The stream ended on its own
                if self.should_stop():
                    return

            except Exception as exc:  # pylint: disable=broad-except
                log.info(
                    "Exception raised when attempting to watch %s",
                    repr(exc),
                    exc_info=exc,
                )
                if self.attempts_left <= 0:
                    log.error(
                        "Unable to start watch within %d attempts",
                        config.python_watch_manager.watch_retry_count,
                    )
                    os._exit(1)

                if not self.wait_on_precondition(self.retry_delay.total_seconds()):
                    log.debug(
                        "Checking preconditions failed during retry. Shutting down"
                    )
                    return
                self.attempts_left = self.attempts_left - 1
                log.info("Restarting watch with %d attempts left", self.attempts_left)

    ## Class Interface ###################################################

    def stop_thread(self):
        """Override stop_thread to end the store client's watches as well"""
        super().stop_thread()
        if self.store_client is not None:
            self.store_client.stop_watches()

    def is_watching(self) -> bool:
        """True once the thread has started streaming and is still alive"""
        return self.started_watch and self.is_alive()

    ## Event Functions  ###################################################

    def _handle_event(self, event: KubeWatchEvent):
        """Filter an event and request a reconcile for it

        Args:
            event: KubeWatchEvent
                The KubeWatchEvent from the store
        """
        resource = event.resource
        key = self._resolve_key(resource)
        if key is None:
            log.debug3("Skipping %s without a reconcilable owner", resource)
            return

        if not self._passes_filter(event):
            log.debug2("Skipping status-only %s event for %s", event.type.value, key)
            return

        request_type = event.type
        if self.owner_kind:
            request_type = ReconcileRequestType.DEPENDENT
        log.debug("Requesting reconcile for %s from %s event", key, event.type.value)
        self.reconcile_thread.push_request(ReconcileRequest(key, request_type))

    def _resolve_key(self, resource: ManagedObject) -> Optional[RequestKey]:
        """Get the identity of the CR an event's resource maps to"""
        if not self.owner_kind:
            return resource.key

        for owner_ref in resource.metadata.get("ownerReferences", []):
            if (
                owner_ref.get("controller")
                and owner_ref.get("kind") == self.owner_kind
                and (
                    not self.owner_api_version
                    or owner_ref.get("apiVersion") == self.owner_api_version
                )
            ):
                return RequestKey(resource.namespace, owner_ref.get("name"))
        return None

    def _passes_filter(self, event: KubeWatchEvent) -> bool:
        """Children always pass. A reconciled resource passes unless the event
        is a MODIFIED whose spec-relevant fields are unchanged
        """
        if self.owner_kind:
            return True

        resource = event.resource
        fingerprint_key = f"{resource.namespace}/{resource.name}"
        if event.type == KubeEventType.DELETED:
            self.fingerprints.pop(fingerprint_key, None)
            return True

        fingerprint = self._fingerprint(resource)
        previous = self.fingerprints.get(fingerprint_key)
        self.fingerprints[fingerprint_key] = fingerprint
        self.fingerprints.move_to_end(fingerprint_key)
        while len(self.fingerprints) > FINGERPRINT_KEEP_COUNT:
            self.fingerprints.popitem(last=False)

        return not (event.type == KubeEventType.MODIFIED and previous == fingerprint)

    @staticmethod
    def _fingerprint(resource: ManagedObject) -> Tuple:
        metadata = resource.metadata
        return (
            metadata.get("uid"),
            metadata.get("generation"),
            metadata.get("deletionTimestamp"),
            tuple(metadata.get("finalizers") or []),
            tuple(sorted((metadata.get("annotations") or {}).items())),
        )


def get_watch_threads(
    reconcile_thread: RECONCILE_THREAD_TYPE,
    kind: str,
    api_version: str,
    namespaces: Optional[list] = None,
    **kwargs: Dict,
) -> list:
    """Create one WatchThread per namespace, or a single cluster-wide thread
    when no namespaces are given or "*" is one of them
    """
    if not namespaces or "*" in namespaces:
        return [WatchThread(reconcile_thread, kind, api_version, None, **kwargs)]
    return [
        WatchThread(reconcile_thread, kind, api_version, namespace, **kwargs)
        for namespace in namespaces
    ]
