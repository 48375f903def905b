"""
Python-based implementation of the WatchManager
"""

# Standard
from typing import List, Optional, Type
import threading

# First Party
import alog

# Local
from ... import config
from ...api import build_registry
from ...controller import Controller, ExampleController
from ...reconcile import ReconcileManager
from ...store_client import DryRunStoreClient, KubeStoreClient, StoreClientBase
from ..base import WatchManagerBase
from .leader_election import LeadershipManagerBase, get_leader_election_class
from .threads import HeartbeatThread, ReconcileThread, WatchThread, get_watch_threads

log = alog.use_channel("PYTHW")


class PythonWatchManager(WatchManagerBase):
    """The PythonWatchManager uses the store client's watch to follow a
    particular Controller's kind and execute reconciles. It does the following

    1. Start a watch of the controller's kind and of each child kind for each
       namespace
    2. Start a reconcile thread which runs reconciles on a pool of workers
    """

    def __init__(
        self,
        controller_type: Type[Controller] = ExampleController,
        store_client: Optional[StoreClientBase] = None,
        namespace_list: Optional[List[str]] = None,
        reconcile_thread: Optional[ReconcileThread] = None,
        leadership_manager: Optional[LeadershipManagerBase] = None,
    ):
        """Initialize the required threads and submit the watch requests
        Args:
            controller_type: Type[Controller]
                The controller to be watched
            store_client: Optional[StoreClientBase]
                An optional StoreClient override
            namespace_list: Optional[List[str]]
                A list of namespaces to watch
            reconcile_thread: Optional[ReconcileThread]
                An optional ReconcileThread override
            leadership_manager: Optional[LeadershipManagerBase]
                An optional leader election override
        """
        super().__init__(controller_type)

        # Setup Control variables
        self.shutdown = threading.Event()
        self.cancel_event = threading.Event()

        # Handle functional args
        if store_client is None:
            store_client_type = DryRunStoreClient if config.dry_run else KubeStoreClient
            log.debug("Using %s", store_client_type.__name__)
            store_client = store_client_type(
                registry=build_registry(), cancel_event=self.cancel_event
            )
        elif store_client.cancel_event is None:
            store_client.cancel_event = self.cancel_event
        self.store_client = store_client

        # Setup watch namespace
        self.namespace_list = namespace_list or []
        if not namespace_list and config.watch_namespace != "":
            self.namespace_list = config.watch_namespace.split(",")

        # Setup Threads
        self.controller = controller_type()
        self.leadership_manager: LeadershipManagerBase = (
            leadership_manager or get_leader_election_class()(self.store_client)
        )
        self.reconcile_thread: ReconcileThread = reconcile_thread or ReconcileThread(
            ReconcileManager(self.store_client, controller=self.controller),
            leadership_manager=self.leadership_manager,
            cancel_event=self.store_client.cancel_event,
        )
        self.heartbeat_thread: Optional[HeartbeatThread] = None
        if config.python_watch_manager.heartbeat_file:
            self.heartbeat_thread = HeartbeatThread(
                config.python_watch_manager.heartbeat_file,
                config.python_watch_manager.heartbeat_period,
            )

        # Start thread for each resource watch. The controller's own kind is
        # watched along with every child kind it owns.
        watch_kwargs = {
            "store_client": self.store_client,
            "leadership_manager": self.leadership_manager,
        }
        self.controller_watches: List[WatchThread] = get_watch_threads(
            self.reconcile_thread,
            self.kind,
            self.controller_type.api_version,
            self.namespace_list,
            **watch_kwargs,
        )
        for api_version, kind in self.controller.child_types():
            self.controller_watches.extend(
                get_watch_threads(
                    self.reconcile_thread,
                    kind,
                    api_version,
                    self.namespace_list,
                    owner_kind=self.kind,
                    owner_api_version=self.controller_type.api_version,
                    **watch_kwargs,
                )
            )

    ## Interface ###############################################################

    def watch(self) -> bool:
        """Check for leadership and start all threads

        Returns:
            success:  bool
                True if all threads are running correctly
        """
        log.info("Starting PythonWatchManager: %s", self)

        if not self.leadership_manager.is_leader():
            log.debug("Acquiring Leadership lock before starting %s", self)
            self.leadership_manager.acquire()

        # If watch has been shutdown then exit before starting threads
        if self.shutdown.is_set():
            return False

        # Start reconcile thread and all watch threads
        self.reconcile_thread.start_thread()
        for watch_thread in self.controller_watches:
            log.debug("Starting watch_thread: %s", watch_thread)
            watch_thread.start_thread()
        if self.heartbeat_thread:
            log.debug("Starting heartbeat_thread")
            self.heartbeat_thread.start_thread()
        return True

    def wait(self):
        """Wait shutdown to be signaled"""
        self.shutdown.wait()

    def stop(self):
        """Stop all threads. In-flight reconciles are cancelled at their next
        store call and this waits for them to finish
        """

        log.info(
            "Stopping PythonWatchManager for %s/%s/%s",
            self.group,
            self.version,
            self.kind,
        )

        # Set shutdown and acquire leadership to clear any deadlocks
        self.shutdown.set()
        self.leadership_manager.acquire(force=True)

        # Stop all threads
        for watch_thread in self.controller_watches:
            watch_thread.stop_thread()
        self.reconcile_thread.stop_thread()
        self.leadership_manager.release()
        if self.heartbeat_thread:
            self.heartbeat_thread.stop_thread()

    def is_alive(self) -> bool:
        """Alive until shutdown or until the heartbeat goes stale"""
        if self.shutdown.is_set():
            return False
        if not self.heartbeat_thread or not self.heartbeat_thread.is_alive():
            return True
        return self.heartbeat_thread.is_fresh()

    def is_ready(self) -> bool:
        """Ready once leadership is held and every watch is streaming"""
        return (
            not self.shutdown.is_set()
            and self.leadership_manager.is_leader()
            and self.reconcile_thread.is_alive()
            and all(watch.is_watching() for watch in self.controller_watches)
        )
