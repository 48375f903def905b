"""
The DryRunStoreClient implements the StoreClient interface but does not
actually interact with a cluster and instead holds the state of the store in a
local map. It mimics the store semantics the reconcile core depends on:
optimistic concurrency on resourceVersion, generation bumps on spec changes,
finalizer-gated deletion and owner reference garbage collection.
"""

# Standard
from datetime import datetime, timedelta
from queue import Empty, Queue
from threading import RLock
from typing import Dict, Iterator, List, Optional, Tuple
import copy
import itertools
import uuid

# First Party
import alog

# Local
from ..exceptions import ConflictError, InvalidSpecError
from ..managed_object import ManagedObject
from ..utils import now_timestamp
from .base import StoreClientBase
from .kube_event import KubeEventType, KubeWatchEvent

log = alog.use_channel("DRY-RUN")

# Key used to look up an object in the store
_ObjectKey = Tuple[Optional[str], str, str, str]


class DryRunStoreClient(StoreClientBase):
    """
    Store client which keeps the whole store in memory
    """

    def __init__(self, resources: Optional[List[dict]] = None, **kwargs):
        """Construct with an optional list of resources to preload

        Args:
            resources:  Optional[List[dict]]
                Manifests to load into the store without triggering watches
        """
        super().__init__(**kwargs)
        self._lock = RLock()
        self._store_content: Dict[_ObjectKey, dict] = {}
        self._resource_versions = itertools.count(1)
        self._watches: List[Tuple[Tuple[str, Optional[str], Optional[str]], Queue]] = []
        for resource in resources or []:
            self._create(copy.deepcopy(resource), notify=False)

    ## Interface ###############################################################

    def watch_objects(
        self,
        kind: str,
        api_version: Optional[str] = None,
        namespace: Optional[str] = None,
        resource_version: Optional[str] = None,
        timeout: Optional[int] = None,
    ) -> Iterator[KubeWatchEvent]:
        """Watch the store for changes by registering an event queue"""
        event_queue = Queue()
        with self._lock:
            initial = self._list(kind, namespace, api_version, None)
            self._watches.append(((kind, api_version, namespace), event_queue))

        try:
            for manifest in initial:
                yield KubeWatchEvent(KubeEventType.ADDED, ManagedObject(manifest))

            end_time = datetime.max
            if timeout:
                end_time = datetime.now() + timedelta(seconds=timeout)
            while datetime.now() < end_time:
                wait_time = min((end_time - datetime.now()).total_seconds(), 1.0)
                try:
                    event = event_queue.get(timeout=max(wait_time, 0.01))
                except Empty:
                    continue
                if event is None:
                    log.debug2("Watch for %s/%s closed", api_version, kind)
                    return
                yield event
        finally:
            with self._lock:
                self._watches = [
                    watch for watch in self._watches if watch[1] is not event_queue
                ]

    ## Dry Run Methods #########################################################

    def stop_watches(self):
        with self._lock:
            for _, event_queue in self._watches:
                event_queue.put(None)

    def all_objects(self) -> List[dict]:
        """Get a copy of every object in the store"""
        with self._lock:
            return copy.deepcopy(list(self._store_content.values()))

    ## Implementation Details ##################################################

    def _get(self, kind, name, namespace, api_version):
        log.debug2("DRY RUN get [%s/%s/%s/%s]", api_version, kind, namespace, name)
        with self._lock:
            for key, content in self._store_content.items():
                if key[:2] == (namespace, kind) and key[3] == name:
                    if api_version is None or key[2] == api_version:
                        return copy.deepcopy(content)
        return None

    def _list(self, kind, namespace, api_version, label_selector):
        log.debug2(
            "DRY RUN list [%s/%s] in %s [%s]", api_version, kind, namespace, label_selector
        )
        matches = []
        with self._lock:
            for key, content in self._store_content.items():
                if key[1] != kind:
                    continue
                if namespace is not None and key[0] != namespace:
                    continue
                if api_version is not None and key[2] != api_version:
                    continue
                labels = content.get("metadata", {}).get("labels", {})
                if label_selector and not match_selector(labels, label_selector):
                    continue
                matches.append(copy.deepcopy(content))
        return sorted(matches, key=lambda obj: obj["metadata"]["name"])

    def _create(self, resource, notify=True):
        key = _object_key(resource)
        with self._lock:
            if key in self._store_content:
                raise ConflictError(f"Object {key} already exists")
            resource = copy.deepcopy(resource)
            metadata = resource.setdefault("metadata", {})
            metadata.setdefault("uid", str(uuid.uuid4()))
            metadata.setdefault("creationTimestamp", now_timestamp())
            metadata["generation"] = 1
            metadata["resourceVersion"] = self._next_resource_version()
            metadata.pop("deletionTimestamp", None)
            self._store_content[key] = resource
            log.debug2("DRY RUN created %s", key)
            if notify:
                self._notify(KubeEventType.ADDED, resource)
            return copy.deepcopy(resource)

    def _update(self, resource):
        key = _object_key(resource)
        with self._lock:
            current = self._get_current_checked(key, resource)
            if current is None:
                return None

            updated = copy.deepcopy(resource)
            metadata = updated.setdefault("metadata", {})
            current_meta = current["metadata"]

            # Server owned fields are never changed by a client update
            for field_name in ("uid", "creationTimestamp", "deletionTimestamp"):
                if field_name in current_meta:
                    metadata[field_name] = current_meta[field_name]
                else:
                    metadata.pop(field_name, None)
            if "status" in current:
                updated["status"] = current["status"]
            else:
                updated.pop("status", None)
            metadata["generation"] = current_meta.get("generation", 1)
            if updated.get("spec") != current.get("spec"):
                metadata["generation"] += 1

            metadata["resourceVersion"] = current_meta.get("resourceVersion")
            if updated == current:
                log.debug2("DRY RUN update of %s made no change", key)
                return copy.deepcopy(current)

            metadata["resourceVersion"] = self._next_resource_version()
            self._store_content[key] = updated
            log.debug2("DRY RUN updated %s", key)
            self._notify(KubeEventType.MODIFIED, updated)

            # A deleting object whose finalizers have been cleared is removed
            if metadata.get("deletionTimestamp") and not metadata.get("finalizers"):
                self._remove(key)
            return copy.deepcopy(updated)

    def _update_status(self, resource):
        key = _object_key(resource)
        with self._lock:
            current = self._get_current_checked(key, resource)
            if current is None:
                return None
            if current.get("status") == resource.get("status"):
                return copy.deepcopy(current)
            updated = copy.deepcopy(current)
            updated["status"] = copy.deepcopy(resource.get("status"))
            updated["metadata"]["resourceVersion"] = self._next_resource_version()
            self._store_content[key] = updated
            log.debug2("DRY RUN updated status of %s", key)
            self._notify(KubeEventType.MODIFIED, updated)
            return copy.deepcopy(updated)

    def _delete(self, kind, name, namespace, api_version):
        with self._lock:
            current = self._get(kind, name, namespace, api_version)
            if current is None:
                return False
            key = _object_key(current)
            metadata = self._store_content[key]["metadata"]
            if not metadata.get("finalizers"):
                self._remove(key)
                return True

            if not metadata.get("deletionTimestamp"):
                log.debug2("DRY RUN marking %s for deletion", key)
                metadata["deletionTimestamp"] = now_timestamp()
                metadata["resourceVersion"] = self._next_resource_version()
                self._notify(KubeEventType.MODIFIED, self._store_content[key])
            return True

    def _get_current_checked(self, key: _ObjectKey, resource: dict) -> Optional[dict]:
        """Get the stored object for the key, raising a ConflictError when the
        given resource carries a stale resourceVersion
        """
        current = self._store_content.get(key)
        if current is None:
            log.debug2("DRY RUN %s not found", key)
            return None
        requested_version = resource.get("metadata", {}).get("resourceVersion")
        current_version = current["metadata"].get("resourceVersion")
        if requested_version and requested_version != current_version:
            log.debug(
                "DRY RUN conflict on %s: %s != %s",
                key,
                requested_version,
                current_version,
            )
            raise ConflictError(
                f"resourceVersion {requested_version} of {key} is stale",
                resource_version=current_version,
            )
        return current

    def _remove(self, key: _ObjectKey):
        """Physically remove an object and garbage collect its children"""
        removed = self._store_content.pop(key)
        log.debug2("DRY RUN removed %s", key)
        self._notify(KubeEventType.DELETED, removed)
        owner_uid = removed["metadata"].get("uid")
        for child in list(self._store_content.values()):
            if any(
                ref.get("uid") == owner_uid
                for ref in child["metadata"].get("ownerReferences", [])
            ):
                log.debug3("DRY RUN garbage collecting %s", _object_key(child))
                self._delete(
                    child["kind"],
                    child["metadata"]["name"],
                    child["metadata"].get("namespace"),
                    child["apiVersion"],
                )

    def _notify(self, event_type: KubeEventType, resource: dict):
        meta = resource.get("metadata", {})
        for (kind, api_version, namespace), event_queue in self._watches:
            if kind != resource.get("kind"):
                continue
            if api_version is not None and api_version != resource.get("apiVersion"):
                continue
            if namespace is not None and namespace != meta.get("namespace"):
                continue
            event_queue.put(
                KubeWatchEvent(event_type, ManagedObject(copy.deepcopy(resource)))
            )

    def _next_resource_version(self) -> str:
        return str(next(self._resource_versions))


## Helpers #####################################################################


def _object_key(resource: dict) -> _ObjectKey:
    metadata = resource.get("metadata", {})
    if not resource.get("kind") or not resource.get("apiVersion"):
        raise InvalidSpecError("Object must have kind and apiVersion")
    if not metadata.get("name"):
        raise InvalidSpecError("Object must have metadata.name")
    return (
        metadata.get("namespace"),
        resource["kind"],
        resource["apiVersion"],
        metadata["name"],
    )


def match_selector(labels: dict, label_selector: str) -> bool:
    """Determine whether a set of labels matches an equality based label
    selector (key=value, key==value, key!=value, key, !key joined by commas).
    For the complete documentation regarding selectors see:
    https://kubernetes.io/docs/concepts/overview/working-with-objects/labels/#label-selectors
    """
    for requirement in (part.strip() for part in label_selector.split(",")):
        if not requirement:
            continue
        if "!=" in requirement:
            key, value = (part.strip() for part in requirement.split("!=", 1))
            if labels.get(key) == value:
                return False
        elif "=" in requirement:
            key, value = (
                part.strip() for part in requirement.replace("==", "=").split("=", 1)
            )
            if labels.get(key) != value:
                return False
        elif requirement.startswith("!"):
            if requirement[1:].strip() in labels:
                return False
        elif requirement not in labels:
            return False
    return True
