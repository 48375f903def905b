"""
The finalizer manager gates deletion of an Example. While the controller's
finalizer token is on the CR, the store only marks it with a deletionTimestamp.
The manager runs the cleanup actions, records each completed action on the CR
so an interrupted cleanup resumes where it stopped, and removes the token once
every action has succeeded.
"""

# Standard
from typing import List, Optional, Set, Tuple
import abc
import hashlib

# First Party
import alog

# Local
from . import constants
from .api import Example
from .events import EventRecorder, EventType
from .exceptions import ExampleOperatorError, FinalizerError, ReconcileCancelled
from .store_client import StoreClientBase

log = alog.use_channel("FINLZ")

# Label values are limited to 63 characters
OWNER_LABEL_HASH_LENGTH = 40


def make_owner_label_value(namespace: str, name: str) -> str:
    """Fixed length owner label value for the CR with the given namespace and
    name. The pair is hashed since "<namespace>.<name>" can exceed the label
    value limit even when both parts are valid.
    """
    owner = f"{namespace}/{name}".encode("utf-8")
    return hashlib.sha256(owner).hexdigest()[:OWNER_LABEL_HASH_LENGTH]


## Cleanup Actions #############################################################


class CleanupAction(abc.ABC):
    """A single idempotent step run before the CR is removed. Running an action
    that has already (partially) completed must be safe.
    """

    @property
    @abc.abstractmethod
    def name(self) -> str:
        """Unique name recorded in the progress annotation once complete"""

    @abc.abstractmethod
    def run(self, store_client: StoreClientBase, cr: Example):
        """Run the cleanup, raising on failure"""


class LabeledResourceCleanup(CleanupAction):
    """Delete every object of a kind labeled as belonging to the CR. These are
    objects owner references can not cover, such as objects in another
    namespace.
    """

    def __init__(self, kind: str, api_version: str, namespace: Optional[str] = None):
        """
        Args:
            kind:  str
                The kind of the labeled objects
            api_version:  str
                The api_version of the labeled objects
            namespace:  Optional[str]
                Only look in this namespace. All namespaces if None.
        """
        self.kind = kind
        self.api_version = api_version
        self.namespace = namespace

    @property
    def name(self) -> str:
        return f"delete-labeled-{self.kind.lower()}"

    @staticmethod
    def owner_label_value(cr: Example) -> str:
        """The value of the owner label for objects belonging to the CR"""
        return make_owner_label_value(cr.metadata.namespace, cr.metadata.name)

    def run(self, store_client: StoreClientBase, cr: Example):
        selector = f"{constants.OWNER_LABEL_NAME}={self.owner_label_value(cr)}"
        for obj in store_client.list(
            kind=self.kind,
            namespace=self.namespace,
            api_version=self.api_version,
            label_selector=selector,
        ):
            metadata = obj.get("metadata", {})
            # A False return means it is already gone, which is the goal
            deleted = store_client.delete(
                kind=self.kind,
                name=metadata.get("name"),
                namespace=metadata.get("namespace"),
                api_version=self.api_version,
            )
            log.debug2(
                "Cleanup of %s/%s/%s: %s",
                self.kind,
                metadata.get("namespace"),
                metadata.get("name"),
                "deleted" if deleted else "already absent",
            )


## Finalizer Manager ###########################################################


class FinalizerManager:
    """Add, run and remove the controller's finalizer"""

    def __init__(
        self,
        store_client: StoreClientBase,
        cleanup_actions: Optional[List[CleanupAction]] = None,
        finalizer_name: str = constants.FINALIZER_NAME,
        event_recorder: Optional[EventRecorder] = None,
    ):
        self.store_client = store_client
        self.cleanup_actions = cleanup_actions or []
        self.finalizer_name = finalizer_name
        self.event_recorder = event_recorder or EventRecorder(store_client)

        names = [action.name for action in self.cleanup_actions]
        assert len(names) == len(set(names)), f"Duplicate cleanup actions: {names}"

    def has_finalizer(self, cr: Example) -> bool:
        return self.finalizer_name in cr.metadata.finalizers

    def ensure_finalizer(self, cr: Example) -> bool:
        """Make sure the CR carries the finalizer token, persisting it before
        returning. The CR is updated in place with the stored metadata.

        Returns:
            present:  bool
                True if the CR holds the finalizer, False if the CR vanished
                before it could be added
        """
        if self.has_finalizer(cr):
            return True

        log.debug("Adding finalizer %s to %s", self.finalizer_name, cr.key)
        cr.metadata.finalizers.append(self.finalizer_name)
        return self._persist_metadata(cr)

    def finalize(self, cr: Example) -> Tuple[bool, Optional[Exception]]:
        """Run the outstanding cleanup actions and remove the finalizer

        Args:
            cr:  Example
                The CR being deleted. Updated in place as progress is persisted.

        Returns:
            done:  bool
                True once the finalizer has been removed (or was never present)
            error:  Optional[Exception]
                The error that stopped the cleanup
        """
        if not self.has_finalizer(cr):
            log.debug("No finalizer on %s. Nothing to clean up", cr.key)
            return True, None

        completed = self._completed_actions(cr)
        for action in self.cleanup_actions:
            if action.name in completed:
                log.debug2("Cleanup action %s already complete", action.name)
                continue

            log.info("Running cleanup action %s for %s", action.name, cr.key)
            try:
                action.run(self.store_client, cr)
            except ReconcileCancelled:
                raise
            except Exception as err:  # pylint: disable=broad-except
                error = FinalizerError(
                    f"Cleanup action {action.name} failed: {err}", action_name=action.name
                )
                error.__cause__ = err
                log.warning("%s for %s", error, cr.key)
                self.event_recorder.emit(
                    cr, EventType.WARNING, "CleanupFailed", str(error)
                )
                return False, error

            completed.add(action.name)
            error = self._record_progress(cr, completed)
            if error is not None:
                return False, error

        log.info("Cleanup complete for %s. Removing finalizer", cr.key)
        cr.metadata.finalizers = [
            token for token in cr.metadata.finalizers if token != self.finalizer_name
        ]
        cr.metadata.annotations.pop(constants.CLEANUP_PROGRESS_ANNOTATION_NAME, None)
        try:
            self._persist_metadata(cr)
        except ExampleOperatorError as err:
            return False, err
        self.event_recorder.emit(
            cr, EventType.NORMAL, "CleanupCompleted", "Cleanup complete"
        )
        return True, None

    ## Implementation Details ##################################################

    @staticmethod
    def _completed_actions(cr: Example) -> Set[str]:
        progress = cr.metadata.annotations.get(
            constants.CLEANUP_PROGRESS_ANNOTATION_NAME, ""
        )
        return {name for name in progress.split(",") if name}

    def _record_progress(self, cr: Example, completed: Set[str]) -> Optional[Exception]:
        cr.metadata.annotations[constants.CLEANUP_PROGRESS_ANNOTATION_NAME] = ",".join(
            sorted(completed)
        )
        try:
            self._persist_metadata(cr)
        except ExampleOperatorError as err:
            log.debug("Failed to record cleanup progress: %s", err)
            return err
        return None

    def _persist_metadata(self, cr: Example) -> bool:
        """Write the CR's metadata, refreshing it from the stored object"""
        updated = self.store_client.update(cr.to_dict())
        if updated is None:
            log.debug("%s vanished before its metadata was written", cr.key)
            return False
        stored = Example.from_dict(updated)
        cr.metadata.resource_version = stored.metadata.resource_version
        cr.metadata.generation = stored.metadata.generation
        return True
