"""
The ReconcileManager class manages an individual reconcile of an Example. It
fetches the CR, routes it through the finalizer or the active path, applies the
diff of desired and observed children and persists the projected status once
on the way out.
"""

# Standard
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import List, Optional
import base64
import time
import uuid

# First Party
import alog

# Local
from . import config, metrics
from .api import Example, ExampleStatus, RequestKey, TypeRegistry, build_registry
from .controller import Controller, ExampleController
from .diff import ApplyResult, ActionType, apply_actions, plan_actions
from .events import EventRecorder, EventType
from .exceptions import (
    ClusterError,
    ConflictError,
    FinalizerError,
    InvalidSpecError,
    ReconcileCancelled,
    assert_config,
)
from .finalizer import FinalizerManager
from .log_format import reconcile_context
from .status import (
    READY_CONDITION,
    STATUS_FALSE,
    STATUS_TRUE,
    ReconcileOutcome,
    project_status,
    status_changed,
)
from .store_client import StoreClientBase
from .utils import parse_time_delta

log = alog.use_channel("RECON")


## Data models #################################################################


class ResourcePhase(Enum):
    """The lifecycle phase of a CR. Deleting is terminal."""

    ACTIVE = "Active"
    DELETING = "Deleting"


@dataclass
class ReconciliationResult:
    """ReconciliationResult is the result of a reconciliation"""

    # Flag to control requeue of current reconcile request
    requeue: bool
    # Fixed delay before the requeue. None means use the error backoff.
    requeue_after: Optional[timedelta] = None
    # The exception that ended the reconcile, if any
    exception: Optional[Exception] = None


## ReconcileSession ############################################################


class ReconcileSession:
    """Context for a single reconcile pass of one CR. Leaving the context
    projects the status from whatever the pass observed and persists it exactly
    once, whether the pass succeeded or raised.
    """

    def __init__(
        self,
        store_client: StoreClientBase,
        cr: Example,
        event_recorder: EventRecorder,
        retry_conflicts: bool = False,
    ):
        """
        Args:
            store_client:  StoreClientBase
                The client used to persist the status
            cr:  Example
                The CR being reconciled
            event_recorder:  EventRecorder
                Recorder for Ready transitions
            retry_conflicts:  bool
                If True, a ConflictError leaving the session is about to be
                retried locally and no status is written for it
        """
        self.store_client = store_client
        self.cr = cr
        self.event_recorder = event_recorder
        self.retry_conflicts = retry_conflicts
        self.phase = ResourcePhase.DELETING if cr.is_deleting else ResourcePhase.ACTIVE
        self.outcome = ReconcileOutcome(deleting=self.phase == ResourcePhase.DELETING)
        self.observed_children: Optional[List[dict]] = None
        self.persist_status = True
        self.status_written = False
        self._original_status = cr.status.to_dict()

    def __enter__(self) -> "ReconcileSession":
        return self

    def __exit__(self, exc_type, exc_value, _traceback) -> bool:
        if isinstance(exc_value, ReconcileCancelled):
            log.debug("Reconcile of %s cancelled. Not writing status", self.cr.key)
            return False
        if isinstance(exc_value, ConflictError) and self.retry_conflicts:
            log.debug2("Conflict on %s will be retried. Not writing status", self.cr.key)
            return False
        if exc_value is not None:
            self.outcome.error = exc_value
        if not self.persist_status:
            return False

        try:
            self._persist()
        except Exception as err:  # pylint: disable=broad-except
            if exc_value is None:
                raise
            log.warning(
                "Failed to persist status of %s after error %s: %s",
                self.cr.key,
                exc_value,
                err,
            )
        return False

    def _persist(self):
        status = project_status(self.cr, self.observed_children, self.outcome)
        new_status = status.to_dict()
        if not status_changed(self._original_status, new_status):
            log.debug2("Status of %s unchanged", self.cr.key)
            return

        log.debug("Updating status of %s", self.cr.key)
        body = self.cr.to_dict()
        body["status"] = new_status
        try:
            updated = self.store_client.update_status(body)
        except ConflictError:
            # Status is owned by this controller, so a refreshed
            # resourceVersion is all a retry needs
            current = self.store_client.get(
                kind=self.cr.kind,
                name=self.cr.metadata.name,
                namespace=self.cr.metadata.namespace,
                api_version=self.cr.api_version,
            )
            if current is None:
                return
            body["metadata"]["resourceVersion"] = current["metadata"].get(
                "resourceVersion"
            )
            updated = self.store_client.update_status(body)

        if updated is None:
            log.debug("%s vanished before its status was written", self.cr.key)
            return
        self.status_written = True
        self.cr.status = ExampleStatus.from_dict(updated.get("status"))
        self.cr.metadata.resource_version = updated["metadata"].get("resourceVersion")
        self._record_transition(status)

    def _record_transition(self, status: ExampleStatus):
        """Emit an event when the Ready condition changes"""
        previous = ExampleStatus.from_dict(self._original_status).get_condition(
            READY_CONDITION
        )
        current = status.get_condition(READY_CONDITION)
        if current is None or (
            previous is not None
            and (previous.status, previous.reason) == (current.status, current.reason)
        ):
            return
        if current.status == STATUS_TRUE:
            self.event_recorder.emit(
                self.cr, EventType.NORMAL, current.reason, current.message
            )
        elif (
            current.status == STATUS_FALSE
            and self.outcome.error is not None
            and not isinstance(self.outcome.error, FinalizerError)
        ):
            self.event_recorder.emit(
                self.cr, EventType.WARNING, current.reason, current.message
            )


## ReconcileManager ############################################################


class ReconcileManager:
    """This class manages reconciliations of Example resources. Its primary
    function is to run reconciles given the identity of a CR, a Controller and
    the current state of the store via a StoreClient.
    """

    ## Construction ############################################################

    def __init__(
        self,
        store_client: StoreClientBase,
        controller: Optional[Controller] = None,
        registry: Optional[TypeRegistry] = None,
        event_recorder: Optional[EventRecorder] = None,
        conflict_retries: Optional[int] = None,
    ):
        """The constructor sets up the properties used across every
        reconcile and checks that the current config is valid.

        Args:
            store_client:  StoreClientBase
                The client for every store call of every reconcile
            controller:  Optional[Controller]
                The controller describing the managed kind. Defaults to the
                ExampleController.
            registry:  Optional[TypeRegistry]
                The type registry used to decode CRs. Defaults to the store
                client's registry, then to a freshly built one.
            event_recorder:  Optional[EventRecorder]
                Recorder for events. Defaults to one writing through the store
                client.
            conflict_retries:  Optional[int]
                Number of local re-fetch and retry passes on a ConflictError
        """
        self.store_client = store_client
        self.controller = controller or ExampleController()
        self.registry = registry or store_client.registry or build_registry()
        self.event_recorder = event_recorder or EventRecorder(store_client)
        self.finalizer_manager = FinalizerManager(
            store_client,
            cleanup_actions=self.controller.cleanup_actions(),
            finalizer_name=self.controller.finalizer,
            event_recorder=self.event_recorder,
        )
        self.conflict_retries = (
            config.conflict_retries if conflict_retries is None else conflict_retries
        )
        assert_config(
            self.registry.lookup(self.controller.api_version, self.controller.kind)
            is not None,
            f"No type registered for {self.controller}",
        )

        self.reconcile_period = parse_time_delta(config.reconcile_period)
        self.invalid_spec_requeue_period = parse_time_delta(
            config.invalid_spec_requeue_period
        )

    ## Reconciliation ##########################################################

    def reconcile(self, key: RequestKey) -> ReconciliationResult:
        """This is the main entrypoint for reconciliations. It never raises:
        every error is classified into the returned result.

        Args:
            key:  RequestKey
                The namespace and name of the CR to reconcile

        Returns:
            reconcile_result:  ReconciliationResult
                The result of the reconcile
        """
        reconcile_id = self.generate_id()
        log.info("Reconciling %s [%s]", key, reconcile_id)
        start_time = time.monotonic()
        metrics.reconciles_in_flight.inc()
        resource = {
            "kind": self.controller.kind,
            "apiVersion": self.controller.api_version,
            "metadata": {"name": key.name, "namespace": key.namespace},
        }
        try:
            with reconcile_context(resource, reconcile_id):
                result = self._reconcile_with_conflict_retries(key)

        except InvalidSpecError as err:
            log.warning("Invalid spec for %s: %s", key, err)
            result = ReconciliationResult(
                requeue=True,
                requeue_after=self.invalid_spec_requeue_period,
                exception=err,
            )

        except ReconcileCancelled as err:
            log.info("Reconcile of %s cancelled", key)
            result = ReconciliationResult(requeue=False, exception=err)

        # Capture all generic exceptions
        except Exception as err:  # pylint: disable=broad-except
            log.warning(
                "Handling caught error in reconcile of %s: %s", key, err, exc_info=True
            )
            result = ReconciliationResult(requeue=True, exception=err)

        finally:
            metrics.reconciles_in_flight.dec()
            metrics.reconcile_duration_seconds.observe(time.monotonic() - start_time)

        self._record_result(result)
        log.debug(
            "Finished reconcile of %s [%s]: requeue=%s after=%s",
            key,
            reconcile_id,
            result.requeue,
            result.requeue_after,
        )
        return result

    @classmethod
    def generate_id(cls) -> str:
        """Generates a unique human readable id for this reconciliation

        Returns:
            id: str
                A unique base32 encoded id
        """
        uuid4 = uuid.uuid4()
        base32_str = base64.b32encode(uuid4.bytes).decode("utf-8")
        reconcile_id = base32_str[:22]
        log.debug3("Generated reconcile id: %s", reconcile_id)
        return reconcile_id

    ## Implementation Details ##################################################

    def _reconcile_with_conflict_retries(self, key: RequestKey) -> ReconciliationResult:
        """Run reconcile passes, re-fetching the CR after each conflict"""
        for attempt in range(self.conflict_retries + 1):
            try:
                return self._reconcile_once(
                    key, retry_conflicts=attempt < self.conflict_retries
                )
            except ConflictError as err:
                if attempt >= self.conflict_retries:
                    raise
                log.debug(
                    "Conflict reconciling %s (%d/%d): %s",
                    key,
                    attempt + 1,
                    self.conflict_retries,
                    err,
                )
        raise ConflictError(f"Exhausted conflict retries for {key}")  # pragma: no cover

    def _reconcile_once(
        self, key: RequestKey, retry_conflicts: bool
    ) -> ReconciliationResult:
        """Run a single pass against a freshly fetched CR"""
        cr = self.store_client.get_typed(
            kind=self.controller.kind,
            name=key.name,
            namespace=key.namespace,
            api_version=self.controller.api_version,
        )
        if cr is None:
            log.debug("%s not found. Assuming it was deleted", key)
            return ReconciliationResult(requeue=False)
        if not isinstance(cr, Example):
            raise ClusterError(f"Fetched {key} decoded as {type(cr).__name__}")

        if cr.is_paused and not cr.is_deleting:
            log.info("%s is paused. Exiting reconciliation", key)
            return ReconciliationResult(requeue=False)

        with ReconcileSession(
            self.store_client,
            cr,
            self.event_recorder,
            retry_conflicts=retry_conflicts,
        ) as session:
            log.debug2("%s is %s", key, session.phase.value)
            if session.phase == ResourcePhase.DELETING:
                return self._run_finalizer(session)
            return self._run_active(session)

    def _run_finalizer(self, session: ReconcileSession) -> ReconciliationResult:
        """Delegate the deleting CR to the finalizer manager"""
        done, error = self.finalizer_manager.finalize(session.cr)
        if error is not None:
            raise error
        if done:
            # The CR is gone or only held by other finalizers
            session.persist_status = False
        return ReconciliationResult(requeue=not done)

    def _run_active(self, session: ReconcileSession) -> ReconciliationResult:
        """Drive the children of an active CR toward the desired state"""
        cr = session.cr
        if not self.finalizer_manager.ensure_finalizer(cr):
            session.persist_status = False
            return ReconciliationResult(requeue=False)

        desired = self.controller.build_children(cr)
        observed = self._observe_children(cr, desired)
        actions = plan_actions(desired, observed, cr)
        log.debug2(
            "Planned actions for %s: %s",
            cr.key,
            [(action.action.value, action.kind, action.name) for action in actions],
        )
        result = apply_actions(self.store_client, actions)
        session.observed_children = result.children
        self._record_actions(cr, result)

        if self.reconcile_period is None:
            return ReconciliationResult(requeue=False)
        return ReconciliationResult(requeue=True, requeue_after=self.reconcile_period)

    def _observe_children(self, cr: Example, desired: List[dict]) -> List[dict]:
        """Find the existing children by label and by desired name"""
        observed = {}
        for api_version, kind in self.controller.child_types():
            for child in self.store_client.list(
                kind=kind,
                namespace=cr.metadata.namespace,
                api_version=api_version,
                label_selector=self.controller.child_selector(cr),
            ):
                observed[(kind, child["metadata"]["name"])] = child

        # A child with the desired name may exist without the labels
        for child in desired:
            key = (child["kind"], child["metadata"]["name"])
            if key in observed:
                continue
            current = self.store_client.get(
                kind=child["kind"],
                name=child["metadata"]["name"],
                namespace=child["metadata"].get("namespace"),
                api_version=child["apiVersion"],
            )
            if current is not None:
                observed[key] = current
        return list(observed.values())

    def _record_actions(self, cr: Example, result: ApplyResult):
        reasons = {
            ActionType.CREATE: "Created",
            ActionType.UPDATE: "Updated",
            ActionType.DELETE: "Deleted",
        }
        for action in result.applied:
            metrics.child_actions_total.labels(action=action.action.value).inc()
            self.event_recorder.emit(
                cr,
                EventType.NORMAL,
                reasons[action.action],
                f"{reasons[action.action]} {action.kind} {action.name}",
            )

    @staticmethod
    def _record_result(result: ReconciliationResult):
        error = result.exception
        if error is None:
            label = "success"
        elif isinstance(error, InvalidSpecError):
            label = "invalid_spec"
        elif isinstance(error, ReconcileCancelled):
            label = "cancelled"
        else:
            label = "error"
        metrics.reconcile_total.labels(result=label).inc()
        if error is not None:
            metrics.reconcile_errors_total.labels(error_type=type(error).__name__).inc()
