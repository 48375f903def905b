"""
This defines the base class for all store clients. A store client carries out
the reads and writes of the CR and its children against the declarative store.

Every failure is classified into the operator's error taxonomy before it leaves
the client:
    * NotFound is not an error: get returns None, update returns None and
      delete returns False
    * A stale resourceVersion raises ConflictError
    * Timeouts, throttling and server errors raise TransientError
    * Anything else raises ClusterError (or InvalidSpecError for a rejected
      object)
"""

# Standard
from typing import Iterator, List, Optional
import abc
import threading

# First Party
import alog

# Local
from ..api import TypeRegistry
from ..exceptions import ReconcileCancelled
from .kube_event import KubeWatchEvent

log = alog.use_channel("STORE")


class StoreClientBase(abc.ABC):
    """Base class for store clients. The public operations check for shutdown
    before delegating to the implementation so that an in-flight reconcile
    aborts at the next store call boundary.
    """

    def __init__(
        self,
        registry: Optional[TypeRegistry] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        """
        Args:
            registry:  Optional[TypeRegistry]
                Registry used to decode objects in get_typed
            cancel_event:  Optional[threading.Event]
                Event that is set when the operator is shutting down
        """
        self.registry = registry
        self.cancel_event = cancel_event

    ## Interface ###############################################################

    def get(
        self,
        kind: str,
        name: str,
        namespace: Optional[str] = None,
        api_version: Optional[str] = None,
    ) -> Optional[dict]:
        """Fetch the current state of a single object

        Args:
            kind:  str
                The kind of the object to fetch
            name:  str
                The name of the object to fetch
            namespace:  Optional[str]
                The namespace of the object or None for cluster scoped objects
            api_version:  Optional[str]
                The api_version of the resource kind to fetch

        Returns:
            current_state:  Optional[dict]
                The dict representation of the object or None if not present
        """
        self._check_cancelled()
        log.debug3("Getting %s/%s/%s/%s", api_version, kind, namespace, name)
        return self._get(kind, name, namespace, api_version)

    def get_typed(
        self,
        kind: str,
        name: str,
        namespace: Optional[str] = None,
        api_version: Optional[str] = None,
    ):
        """Fetch an object and decode it with the type registry. Objects with
        no registered type are returned as dicts.
        """
        content = self.get(kind, name, namespace, api_version)
        if content is None or self.registry is None:
            return content
        return self.registry.decode(content)

    def list(
        self,
        kind: str,
        namespace: Optional[str] = None,
        api_version: Optional[str] = None,
        label_selector: Optional[str] = None,
    ) -> List[dict]:
        """List the objects of a kind, optionally filtered by a label selector

        Returns:
            current_state:  List[dict]
                The matching objects or an empty list if none match
        """
        self._check_cancelled()
        log.debug3(
            "Listing %s/%s in %s [%s]", api_version, kind, namespace, label_selector
        )
        return self._list(kind, namespace, api_version, label_selector)

    def create(self, resource: dict) -> dict:
        """Create a new object

        Args:
            resource:  dict
                The full manifest of the object to create

        Returns:
            created:  dict
                The object as stored, with server populated fields
        """
        self._check_cancelled()
        log.debug3("Creating %s", _resource_str(resource))
        return self._create(resource)

    def create_event(self, event: dict) -> dict:
        """Create a v1 Event. Events are informational, so this makes a single
        attempt with a short timeout instead of retrying like create.

        Args:
            event:  dict
                The full manifest of the Event

        Returns:
            created:  dict
                The Event as stored
        """
        self._check_cancelled()
        log.debug3("Creating event %s", _resource_str(event))
        return self._create_event(event)

    def update(self, resource: dict) -> Optional[dict]:
        """Replace an existing object. When the manifest carries
        metadata.resourceVersion, the update only succeeds if it matches the
        stored version.

        Args:
            resource:  dict
                The full manifest of the object to update

        Returns:
            updated:  Optional[dict]
                The object as stored or None if it no longer exists
        """
        self._check_cancelled()
        log.debug3("Updating %s", _resource_str(resource))
        return self._update(resource)

    def update_status(self, resource: dict) -> Optional[dict]:
        """Replace the status subresource of an existing object. Only the
        status block of the given manifest is written.

        Returns:
            updated:  Optional[dict]
                The object as stored or None if it no longer exists
        """
        self._check_cancelled()
        log.debug3("Updating status of %s", _resource_str(resource))
        return self._update_status(resource)

    def delete(
        self,
        kind: str,
        name: str,
        namespace: Optional[str] = None,
        api_version: Optional[str] = None,
    ) -> bool:
        """Request deletion of an object. Objects holding finalizers are only
        marked with a deletionTimestamp until their finalizers are cleared.

        Returns:
            deleted:  bool
                True if a delete was issued, False if the object was absent
        """
        self._check_cancelled()
        log.debug3("Deleting %s/%s/%s/%s", api_version, kind, namespace, name)
        return self._delete(kind, name, namespace, api_version)

    @abc.abstractmethod
    def watch_objects(
        self,
        kind: str,
        api_version: Optional[str] = None,
        namespace: Optional[str] = None,
        resource_version: Optional[str] = None,
        timeout: Optional[int] = None,
    ) -> Iterator[KubeWatchEvent]:
        """The watch_objects function listens for changes in the store and
        returns a stream of KubeWatchEvents. The stream starts with an ADDED
        event for every existing object.

        Args:
            kind:  str
                The kind of the objects to watch
            api_version:  Optional[str]
                The api_version of the resource kind to watch
            namespace:  Optional[str]
                The namespace to watch or None for all namespaces
            resource_version:  Optional[str]
                The resource_version the events must be newer than
            timeout:  Optional[int]
                Seconds after which the stream ends

        Returns:
            watch_stream: Iterator[KubeWatchEvent]
                A stream of KubeWatchEvents generated while watching
        """

    def stop_watches(self):
        """End every open watch stream so that watching threads can exit"""

    ## Implementation ##########################################################

    @abc.abstractmethod
    def _get(
        self,
        kind: str,
        name: str,
        namespace: Optional[str],
        api_version: Optional[str],
    ) -> Optional[dict]:
        """Implementation of get"""

    @abc.abstractmethod
    def _list(
        self,
        kind: str,
        namespace: Optional[str],
        api_version: Optional[str],
        label_selector: Optional[str],
    ) -> List[dict]:
        """Implementation of list"""

    @abc.abstractmethod
    def _create(self, resource: dict) -> dict:
        """Implementation of create"""

    def _create_event(self, event: dict) -> dict:
        """Implementation of create_event. Stores without retries or request
        timeouts create events like any other object.
        """
        return self._create(event)

    @abc.abstractmethod
    def _update(self, resource: dict) -> Optional[dict]:
        """Implementation of update"""

    @abc.abstractmethod
    def _update_status(self, resource: dict) -> Optional[dict]:
        """Implementation of update_status"""

    @abc.abstractmethod
    def _delete(
        self,
        kind: str,
        name: str,
        namespace: Optional[str],
        api_version: Optional[str],
    ) -> bool:
        """Implementation of delete"""

    def _check_cancelled(self):
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise ReconcileCancelled("Shutdown requested before store call")


def _resource_str(resource: dict) -> str:
    metadata = resource.get("metadata", {})
    return "/".join(
        str(part)
        for part in (
            resource.get("apiVersion"),
            resource.get("kind"),
            metadata.get("namespace"),
            metadata.get("name"),
        )
    )
