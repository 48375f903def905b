"""
The ReconcileThread is the heart of the PythonWatchManager. It owns the work
queue and the pool of reconcile workers, guarantees that at most one reconcile
runs per resource identity, and schedules requeues.
"""
# Standard
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timedelta
from functools import partial
from typing import Dict, List, Optional, Union
import os
import queue
import threading

# First Party
import alog

# Local
from .... import config, metrics
from ....api import RequestKey
from ....reconcile import ReconcileManager, ReconciliationResult
from ..leader_election import LeadershipManagerBase
from ..utils import (
    JOIN_WORKER_TIMEOUT,
    ExponentialBackoff,
    ReconcileCompletion,
    ReconcileRequest,
    ReconcileRequestType,
    TimerEvent,
)
from .base import ThreadBase
from .timer import TimerThread

log = alog.use_channel("RCLTH")

QueueItem = Union[ReconcileRequest, ReconcileCompletion]


class ReconcileThread(ThreadBase):  # pylint: disable=too-many-instance-attributes
    """This class is the core reconciliation class that dispatches requests to
    worker threads, tracks the running reconciles, and handles their results.
    Requests for a resource that is already being reconciled are collapsed into
    a single pending request which starts once the running reconcile ends.
    """

    def __init__(  # pylint: disable=too-many-arguments
        self,
        reconcile_manager: ReconcileManager,
        leadership_manager: Optional[LeadershipManagerBase] = None,
        backoff: Optional[ExponentialBackoff] = None,
        timer_thread: Optional[TimerThread] = None,
        cancel_event: Optional[threading.Event] = None,
        max_concurrent_reconciles: Optional[int] = None,
    ):
        """Initialize the required queues, helper threads, and reconcile tracking. Also
        gather any onetime configuration options

        Args:
            reconcile_manager: ReconcileManager
                The manager that runs a single reconcile
            leadership_manager: Optional[LeadershipManagerBase]
                The leadership_manager for tracking elections
            backoff: Optional[ExponentialBackoff]
                The backoff for failed requests. Built from config if None
            timer_thread: Optional[TimerThread]
                The timer used to schedule requeues. The shared TimerThread if
                None
            cancel_event: Optional[threading.Event]
                Event set on shutdown so in-flight reconciles abort at their
                next store call
            max_concurrent_reconciles: Optional[int]
                Size of the worker pool. Taken from config (or the cpu count)
                if None
        """
        super().__init__(
            name="reconcile_thread",
            store_client=reconcile_manager.store_client,
            leadership_manager=leadership_manager,
        )
        self.reconcile_manager = reconcile_manager
        self.cancel_event = cancel_event

        # Setup the queue shared by requests and worker completions
        self.request_queue: "queue.Queue[QueueItem]" = queue.Queue()

        # Setup helper threads
        self.timer_thread: TimerThread = timer_thread or TimerThread()
        self.backoff = backoff or ExponentialBackoff.from_config()

        # Setup reconcile, request, and event mappings
        self.running_reconciles: Dict[RequestKey, Future] = {}
        self.pending_reconciles: Dict[RequestKey, ReconcileRequest] = {}
        self.event_map: Dict[RequestKey, TimerEvent] = {}

        # Setup control variables
        self.process_overload = threading.Event()

        # Configure the max number of concurrent reconciles via either config
        # or number of cpus
        self.max_concurrent_reconciles = (
            max_concurrent_reconciles
            or config.python_watch_manager.max_concurrent_reconciles
            or os.cpu_count()
        )
        self.executor = ThreadPoolExecutor(
            max_workers=self.max_concurrent_reconciles,
            thread_name_prefix="reconcile_worker",
        )

        # Delay for a requeue that asked for neither a fixed delay nor backoff
        self.default_requeue_after = timedelta(seconds=config.requeue_after_seconds)

    def run(self):
        """The reconcile thread's control flow is to wait for either a new
        reconcile request or a worker completion. If it's a reconcile request
        the thread checks if one is already running for the resource and if not
        starts a new one. If a reconcile is already running or the thread
        couldn't start a new one the request gets added to the pending
        reconciles. There can only be one pending reconcile per resource. If
        the thread received a completion it handles the result and starts the
        resource's pending reconcile.
        """
        while True:
            if not self.check_preconditions():
                return

            items = self._get_all_requests()

            # Check preconditions both before and after waiting
            if not self.check_preconditions():
                return

            for item in items:
                log.debug3("Processing item %s", item)

                # Handle reconcile end events
                if isinstance(item, ReconcileCompletion):
                    key = self._handle_reconcile_end(item)

                    # If the pool was overloaded every resource may have a
                    # pending request, otherwise only the completed resource
                    if self.process_overload.is_set():
                        for pending_key in list(self.pending_reconciles.keys()):
                            if not self._handle_pending_reconcile(pending_key):
                                break
                    else:
                        self._handle_pending_reconcile(key)

                elif item.type == ReconcileRequestType.STOPPED:
                    log.debug("Received stop request")
                    return

                else:
                    self._handle_request(item)

            self._update_queue_depth()

    ## Class Interface ###################################################

    def start_thread(self):
        """Override start_thread to start helper threads"""
        self.timer_thread.start_thread()
        super().start_thread()

    def stop_thread(self):
        """Override stop_thread to cancel in-flight reconciles and wait for the
        workers to finish
        """
        super().stop_thread()
        if self.cancel_event is not None:
            self.cancel_event.set()
        self.timer_thread.stop_thread()

        # Reawaken reconcile thread to stop
        if self.is_alive():
            log.debug("Pushing stop reconcile request")
            self.request_queue.put(ReconcileRequest(None, ReconcileRequestType.STOPPED))
            log.debug("Waiting for reconcile thread to finish")
            self.join(JOIN_WORKER_TIMEOUT)

        # Wait until all reconciles have completed. Requests that never started
        # are dropped.
        log.info("Waiting for Running Reconciles to end")
        for future in list(self.running_reconciles.values()):
            future.cancel()
        self.executor.shutdown(wait=True)
        self.running_reconciles.clear()
        self.pending_reconciles.clear()
        for event in self.event_map.values():
            event.cancel()
        self.event_map.clear()
        self._update_queue_depth()

    ## Public Interface ###################################################

    def push_request(self, request: ReconcileRequest):
        """Push request to reconcile queue

        Args:
            request: ReconcileRequest
                the ReconcileRequest to add to the queue
        """
        log.debug("Pushing request '%s' to reconcile queue", request)
        self.request_queue.put(request)

    def is_running(self, key: RequestKey) -> bool:
        """Check whether a reconcile is in flight for a resource"""
        return key in self.running_reconciles

    ## Event Handlers ###################################################

    def _handle_request(self, request: ReconcileRequest):
        """Attempt to start a reconcile for a request. If it can't start a
        reconcile or one is already running then push it to the pending
        reconciles
        """
        log.debug3("Got request %s from queue", request)
        if request.uid() in self.running_reconciles:
            log.debug2("Reconcile already running for %s", request.uid())
            self._push_to_pending_reconcile(request)
        elif not self._start_reconcile_for_request(request):
            self._push_to_pending_reconcile(request)

    def _handle_reconcile_end(self, completion: ReconcileCompletion) -> RequestKey:
        """Handle a reconcile end event. The function releases the resource and
        creates a requeue/periodic event if one is needed.

        Args:
            completion: ReconcileCompletion
                The completion notice pushed by the worker

        Returns:
            key: RequestKey
                The identity of the resource whose reconcile ended
        """
        key = completion.uid()
        result = completion.result

        # Remove reconcile from map and release resource lock
        self.running_reconciles.pop(key, None)
        self.leadership_manager.release_resource(key)

        log.info(
            "Reconcile of %s completed with result requeue=%s after=%s error=%s",
            key,
            result.requeue,
            result.requeue_after,
            result.exception,
        )

        # Cancel any existing requeue events
        if key in self.event_map:
            log.debug2("Marking event as stale: %s", self.event_map[key])
            self.event_map.pop(key).cancel()

        # Create a new timer event if one is needed
        event = self._create_timer_event_for_request(completion.request, result)
        if event:
            self.event_map[key] = event

        return key

    def _create_timer_event_for_request(
        self, request: ReconcileRequest, result: ReconciliationResult
    ) -> Optional[TimerEvent]:
        """Enqueue either a requeue or periodic reconcile request for a given
        result. A failed reconcile without a fixed delay backs off
        exponentially, and every reconcile without an error resets the backoff.

        Args:
            request: ReconcileRequest
                The original reconcile request
            result: ReconciliationResult
                The result of the reconcile

        Returns:
            timer_event: Optional[TimerEvent]
                The timer event if one was created
        """
        key = request.uid()
        if result.exception is None:
            self.backoff.reset(key)

        # Short circuit if event is not needed or if theres already a pending
        # reconcile which will start right away
        if not result.requeue:
            return None
        if key in self.pending_reconciles:
            return None

        # Create requeue_time and type based on the result
        request_type = ReconcileRequestType.REQUEUED
        if result.requeue_after is not None:
            requeue_after = result.requeue_after
            if result.exception is None:
                request_type = ReconcileRequestType.PERIODIC
        elif result.exception is not None:
            requeue_after = self.backoff.next_delay(key)
        else:
            requeue_after = self.default_requeue_after

        future_request = ReconcileRequest(key, request_type)
        log.debug2("Requeueing %s in %s", future_request, requeue_after)
        return self.timer_thread.put_event(
            datetime.now() + requeue_after, self.push_request, future_request
        )

    ## Pending Event Helpers ###################################################

    def _handle_pending_reconcile(self, key: RequestKey) -> bool:
        """Start reconcile for pending request if there is one

        Args:
             key: RequestKey
                The identity of the resource being reconciled

        Returns:
            successful_start: bool
                If there was a pending reconcile that got started"""
        # Check if resource has pending request
        if key in self.running_reconciles or key not in self.pending_reconciles:
            return False

        # Start reconcile for request
        request = self.pending_reconciles[key]
        log.debug4("Got request %s from pending reconciles", request)
        if self._start_reconcile_for_request(request):
            self.pending_reconciles.pop(key)
            return True
        return False

    def _push_to_pending_reconcile(self, request: ReconcileRequest):
        """Push a request to the pending queue if it's newer than the current event

        Args:
            request:  ReconcileRequest
                The request to possibly add to the pending_reconciles
        """
        key = request.uid()
        # Only update queue if request is newer
        if key in self.pending_reconciles:
            if request.timestamp > self.pending_reconciles[key].timestamp:
                log.debug3("Updating reconcile queue with event %s", request)
                self.pending_reconciles[key] = request
            else:
                log.debug4("Event in queue is newer than event %s", request)
        else:
            log.debug3("Adding event %s to reconcile queue", request)
            self.pending_reconciles[key] = request

    ## Worker functions ##################################################

    def _start_reconcile_for_request(self, request: ReconcileRequest) -> bool:
        """Start a reconcile on a worker for a given request

        Args:
            request: ReconcileRequest
                The request to attempt to start

        Returns:
            successfully_started: bool
                If a worker was given the request
        """
        # If thread is supposed to shutdown then don't start a reconcile
        if self.should_stop():
            return False

        # Check if there are too many reconciles running
        if len(self.running_reconciles) >= self.max_concurrent_reconciles:
            log.debug("Unable to start reconcile, max concurrent jobs reached")
            self.process_overload.set()
            return False

        # Attempt to acquire lock on resource. If failed skip starting
        if not self.leadership_manager.acquire_resource(request.uid()):
            log.debug("Unable to obtain leadership lock for %s", request)
            return False

        self.process_overload.clear()
        log.debug("Starting reconcile for request %s", request)
        future = self._submit_reconcile(request)
        self.running_reconciles[request.uid()] = future
        future.add_done_callback(partial(self._reconcile_done, request))
        return True

    def _submit_reconcile(self, request: ReconcileRequest) -> Future:
        """Helper function to hand the request to the worker pool. This
        was largely created to ease the testing and mocking process

        Args:
            request: ReconcileRequest
                The request to reconcile

        Returns:
            future: Future
                The future of the running reconcile
        """
        return self.executor.submit(self.reconcile_manager.reconcile, request.uid())

    def _reconcile_done(self, request: ReconcileRequest, future: Future):
        """Worker callback that hands the result back to the control loop"""
        if future.cancelled():
            log.debug2("Reconcile of %s was cancelled before starting", request)
            return

        err = future.exception()
        if err is not None:
            log.error(
                "Reconcile of %s raised: %s", request.uid(), err, exc_info=err
            )
            result = ReconciliationResult(requeue=True, exception=err)
        else:
            result = future.result()
        self.request_queue.put(ReconcileCompletion(request, result))

    ## Queue Functions ##################################################

    def _get_all_requests(self, timeout: Optional[float] = None) -> List[QueueItem]:
        """Get all of the items from the reconcile queue. Blocks until at least
        one item is available

        Args:
            timeout: Optional[float]=None
                The timeout to wait for the first item. If None wait forever

        Returns:
            items: List[QueueItem]
                The list of requests and completions gathered from the queue
        """
        try:
            item_list = [self.request_queue.get(timeout=timeout)]
        except queue.Empty:
            return []

        while True:
            try:
                item_list.append(self.request_queue.get(block=False))
            except queue.Empty:
                break

        # If there is a stop request then immediately return it
        for item in item_list:
            if (
                isinstance(item, ReconcileRequest)
                and item.type == ReconcileRequestType.STOPPED
            ):
                return [item]
        return item_list

    def _update_queue_depth(self):
        """Publish the number of requests waiting for a worker"""
        waiting = len(self.pending_reconciles) + sum(
            1
            for item in list(self.request_queue.queue)
            if isinstance(item, ReconcileRequest)
        )
        metrics.work_queue_depth.set(waiting)
