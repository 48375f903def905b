"""
This StoreClient is responsible for delegating store operations to the
openshift library. It is the one that will be used when the operator is running
in the cluster or outside the cluster making live changes.
"""
# Standard
from typing import Iterator, List, Optional
import threading
import time

# Third Party
from kubernetes import client
from kubernetes.watch import Watch
from openshift.dynamic import DynamicClient
from openshift.dynamic.exceptions import ResourceNotFoundError, ResourceNotUniqueError
from openshift.dynamic.resource import Resource
import kubernetes
import urllib3

# First Party
import alog

# Local
from .. import config
from ..exceptions import TransientError, assert_cluster, classify_status_code
from ..managed_object import ManagedObject
from .base import StoreClientBase
from .kube_event import KubeEventType, KubeWatchEvent

log = alog.use_channel("KUBES")

# See this document for value reasonings
# https://github.com/kubernetes-client/python/blob/master/examples/watch/timeout-settings.md
SERVER_WATCH_TIMEOUT = 3600
CLIENT_WATCH_TIMEOUT = 30

# Errors raised by urllib3 when the request never got a response
_CONNECTION_ERRORS = (
    urllib3.exceptions.MaxRetryError,
    urllib3.exceptions.ProtocolError,
    urllib3.exceptions.TimeoutError,
    ConnectionError,
)


def classify_api_exception(err: Exception) -> Optional[Exception]:
    """Map an exception raised by the kubernetes/openshift clients into the
    operator error taxonomy. None is returned for NotFound.
    """
    if isinstance(err, client.exceptions.ApiException):
        return classify_status_code(err.status, f"{err.status} {err.reason}")
    if isinstance(err, _CONNECTION_ERRORS):
        return classify_status_code(None, str(err))
    return err


class KubeStoreClient(StoreClientBase):
    """This StoreClient uses the openshift DynamicClient to interact with the
    cluster
    """

    def __init__(self, kube_client: Optional[DynamicClient] = None, **kwargs):
        """
        Args:
            kube_client:  Optional[DynamicClient]
                A preconfigured client. If not given, one is created lazily
                from the in-cluster or local kube config.
        """
        super().__init__(**kwargs)
        self._client = kube_client
        self._watch_lock = threading.Lock()
        self._open_watches: List[Watch] = []

    @property
    def client(self) -> DynamicClient:
        """Lazy property access to the client"""
        if self._client is None:
            self._client = self._setup_client()
        return self._client

    def watch_objects(
        self,
        kind: str,
        api_version: Optional[str] = None,
        namespace: Optional[str] = None,
        resource_version: Optional[str] = None,
        timeout: Optional[int] = None,
        watch_manager: Optional[Watch] = None,
    ) -> Iterator[KubeWatchEvent]:
        watch_manager = watch_manager if watch_manager else Watch()
        with self._watch_lock:
            self._open_watches.append(watch_manager)
        resource_handle = self._get_resource_handle(kind, api_version)
        assert_cluster(
            resource_handle,
            f"Failed to fetch resource handle for {namespace}/{api_version}/{kind}",
        )

        while True:
            try:
                for event_obj in watch_manager.stream(
                    resource_handle.get,
                    resource_version=resource_version,
                    namespace=namespace,
                    serialize=False,
                    timeout_seconds=timeout or SERVER_WATCH_TIMEOUT,
                    _request_timeout=CLIENT_WATCH_TIMEOUT,
                ):
                    event_type = KubeEventType(event_obj["type"])
                    event_resource = ManagedObject(event_obj["object"])
                    resource_version = event_resource.resource_version
                    yield KubeWatchEvent(event_type, event_resource)
            except client.exceptions.ApiException as exception:
                if exception.status == 410:
                    log.debug2(
                        "Resource age expired, restarting watch %s/%s", kind, api_version
                    )
                    resource_version = None
                else:
                    log.info("Unknown ApiException received, re-raising")
                    raise classify_api_exception(exception) from exception
            except urllib3.exceptions.ReadTimeoutError:
                log.debug4("Watch Socket closed, restarting watch %s/%s", kind, api_version)
            except urllib3.exceptions.ProtocolError:
                log.debug2(
                    "Invalid Chunk from server, restarting watch %s/%s", kind, api_version
                )

            # This is hidden attribute so probably not best to check
            if watch_manager._stop or timeout:  # pylint: disable=protected-access
                log.debug("Stopping store watch for %s/%s", kind, api_version)
                with self._watch_lock:
                    if watch_manager in self._open_watches:
                        self._open_watches.remove(watch_manager)
                return

    def stop_watches(self):
        with self._watch_lock:
            for watch_manager in self._open_watches:
                watch_manager.stop()
            self._open_watches = []

    ## Implementation Details ##################################################

    def _get(self, kind, name, namespace, api_version):
        resource_handle = self._get_resource_handle(kind, api_version)
        if not resource_handle:
            return None
        resource = self._call(
            resource_handle.get, namespace=namespace, name=name
        )
        return resource.to_dict() if resource is not None else None

    def _list(self, kind, namespace, api_version, label_selector) -> List[dict]:
        resource_handle = self._get_resource_handle(kind, api_version)
        if not resource_handle:
            return []
        list_obj = self._call(
            resource_handle.get, namespace=namespace, label_selector=label_selector
        )
        if list_obj is None:
            return []
        return list_obj.to_dict().get("items", [])

    def _create(self, resource):
        return self._create_object(resource)

    def _create_event(self, event):
        return self._create_object(
            event,
            max_retries=0,
            request_timeout=config.store.event_request_timeout,
        )

    def _create_object(self, resource, **call_kwargs):
        resource_handle = self._require_resource_handle(resource)
        metadata = resource.get("metadata", {})
        namespace = metadata.get("namespace")
        result = self._call(
            resource_handle.create, body=resource, namespace=namespace, **call_kwargs
        )
        # Creates only 404 when the target namespace is missing
        assert_cluster(
            result is not None,
            f"Cannot create {resource.get('kind')}/{metadata.get('name')}: "
            f"namespace {namespace} not found",
        )
        return result.to_dict()

    def _update(self, resource):
        resource_handle = self._require_resource_handle(resource)
        namespace = resource.get("metadata", {}).get("namespace")
        result = self._call(resource_handle.replace, body=resource, namespace=namespace)
        return result.to_dict() if result is not None else None

    def _update_status(self, resource):
        resource_handle = self._require_resource_handle(resource)
        namespace = resource.get("metadata", {}).get("namespace")
        result = self._call(
            resource_handle.status.replace, body=resource, namespace=namespace
        )
        return result.to_dict() if result is not None else None

    def _delete(self, kind, name, namespace, api_version):
        resource_handle = self._get_resource_handle(kind, api_version)
        if not resource_handle:
            return False
        return self._call(resource_handle.delete, name=name, namespace=namespace) is not None

    def _call(self, operation, max_retries=None, request_timeout=None, **kwargs):
        """Run a single client operation with a bounded request timeout,
        retrying transient failures and classifying the final failure.

        Returns:
            result:  Any
                The operation's result or None if the object was not found
        """
        if max_retries is None:
            max_retries = config.store.retries
        if request_timeout is None:
            request_timeout = config.store.request_timeout
        for attempt in range(max_retries + 1):
            try:
                return operation(_request_timeout=request_timeout, **kwargs)
            except (client.exceptions.ApiException, *_CONNECTION_ERRORS) as err:
                classified = classify_api_exception(err)
                if classified is None:
                    log.debug2("Object not found for %s", kwargs.get("name"))
                    return None
                if isinstance(classified, TransientError) and attempt < max_retries:
                    backoff_duration = config.store.retry_backoff_base_seconds * (
                        attempt + 1
                    )
                    log.debug2(
                        "Transient error [%s]. Retrying in %fs", err, backoff_duration
                    )
                    time.sleep(backoff_duration)
                    self._check_cancelled()
                    continue
                log.debug("Store call failed with %s", type(classified).__name__)
                raise classified from err
        return None  # pragma: no cover

    def _require_resource_handle(self, resource: dict) -> Resource:
        kind = resource.get("kind")
        api_version = resource.get("apiVersion")
        resource_handle = self._get_resource_handle(kind, api_version)
        assert_cluster(
            resource_handle, f"Failed to fetch resource handle for {api_version}/{kind}"
        )
        return resource_handle

    def _get_resource_handle(self, kind: str, api_version: str) -> Optional[Resource]:
        """Get the openshift resource handle for a specified kind and api_version"""
        resources = None
        try:
            resources = self.client.resources.get(kind=kind, api_version=api_version)
        except (ResourceNotFoundError, ResourceNotUniqueError):
            log.debug(
                "No objects of kind [%s] found or multiple objects matching request found",
                kind,
            )
        except _CONNECTION_ERRORS as err:
            raise TransientError(f"Failed to discover {api_version}/{kind}") from err
        return resources

    @staticmethod
    def _setup_client():
        """Create a DynamicClient that will work based on where the operator is
        running
        """
        # Try in-cluster config
        try:
            log.debug2("Running with in-cluster config")

            # Create Empty Config and load in-cluster information
            kube_config = kubernetes.client.Configuration()
            kubernetes.config.load_incluster_config(client_configuration=kube_config)

            # Generate ApiClient and return Openshift DynamicClient
            api_client = kubernetes.client.ApiClient(kube_config)
            return DynamicClient(api_client)

        # Fall back to out-of-cluster config
        except kubernetes.config.ConfigException:
            log.debug2("Running with out-of-cluster config")
            return DynamicClient(kubernetes.config.new_client_from_config())
