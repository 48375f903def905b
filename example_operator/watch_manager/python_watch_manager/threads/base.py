"""
Common start, stop and leadership handling for the watch manager threads
"""

# Standard
from typing import Optional
import threading

# First Party
import alog

# Local
from ....store_client import StoreClientBase
from ..leader_election import DryRunLeadershipManager, LeadershipManagerBase

log = alog.use_channel("TRDBS")


class ThreadBase(threading.Thread):
    """A thread that can be stopped with an event and that only does work
    while this replica is the leader
    """

    def __init__(
        self,
        name: Optional[str] = None,
        daemon: Optional[bool] = None,
        store_client: Optional[StoreClientBase] = None,
        leadership_manager: Optional[LeadershipManagerBase] = None,
    ):
        """
        Args:
            name: Optional[str]
                Thread name
            daemon: Optional[bool]
                Whether the interpreter may exit while the thread runs
            store_client: Optional[StoreClientBase]
                The store this thread reads and writes, if any
            leadership_manager: Optional[LeadershipManagerBase]
                Gate for the thread's work. Defaults to uncontested leadership.
        """
        self.store_client = store_client
        self.leadership_manager = leadership_manager or DryRunLeadershipManager()
        self.shutdown = threading.Event()
        super().__init__(name=name, daemon=daemon)

    ## Abstract Interface ######################################################

    def run(self):
        """The thread's control loop. The thread stops when this returns."""
        raise NotImplementedError()

    ## Base Class Interface ####################################################

    def start_thread(self):
        """Start the thread unless it is already running"""
        if not self.is_alive():
            log.info("Starting %s: %s", self.__class__.__name__, self.name)
            self.start()

    def stop_thread(self):
        """Ask the control loop to exit"""
        log.info("Stopping %s: %s", self.__class__.__name__, self.name)
        self.shutdown.set()

    def should_stop(self) -> bool:
        return self.shutdown.is_set()

    def check_preconditions(self) -> bool:
        """Block until this replica leads, then report whether the loop should
        keep going
        """
        if self.should_stop():
            return False

        if self.leadership_manager and not self.leadership_manager.is_leader():
            log.debug3("Waiting for leadership")
            self.leadership_manager.acquire()

        return not self.should_stop()

    def wait_on_precondition(self, timeout: float) -> bool:
        """Sleep for up to timeout seconds, waking early on shutdown"""
        self.shutdown.wait(timeout)
        return self.check_preconditions()
