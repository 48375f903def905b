"""Base classes for leader election implementations"""

# Standard
from typing import Optional
import abc
import threading

# First Party
import alog

# Local
from .... import config
from ....api import RequestKey
from ....exceptions import assert_config
from ....store_client import StoreClientBase
from ..utils import ABCSingletonMeta, parse_time_delta

log = alog.use_channel("LDREL")


class LeadershipManagerBase(abc.ABC):
    """
    Leadership gates every reconcile. Only the replica holding the global lock
    runs reconciles; the others wait in acquire() and never touch the store.
    An implementation may additionally lock individual Example resources.
    """

    def __init__(self, store_client: Optional[StoreClientBase] = None):
        """
        Args:
            store_client:  Optional[StoreClientBase]
                Client used to read and write the lock object, if any
        """
        self.store_client = store_client

    ## Lock Interface ####################################################
    @abc.abstractmethod
    def acquire(self, force: bool = False) -> bool:
        """
        Block until this replica holds the global lock

        Args:
            force:  bool
                Mark the lock as held without contacting the store. Used on
                shutdown to release anything blocked in acquire.

        Returns:
            success:  bool
                True once the lock is held
        """

    @abc.abstractmethod
    def acquire_resource(self, resource: RequestKey) -> bool:
        """
        Block until this replica may reconcile the given resource

        Args:
            resource:  RequestKey
                The Example about to be reconciled
        Returns:
            success:  bool
                True once the resource may be reconciled
        """

    @abc.abstractmethod
    def release(self):
        """
        Give up the global lock
        """

    @abc.abstractmethod
    def release_resource(self, resource: RequestKey):
        """
        Give up the lock on a single resource

        Args:
            resource:  RequestKey
                The Example whose reconcile finished
        """

    @abc.abstractmethod
    def is_leader(self, resource: Optional[RequestKey] = None) -> bool:
        """
        Check whether this replica currently leads

        Args:
            resource:  Optional[RequestKey]
                Check the lock for this resource instead of the global lock
        Returns:
            leader:  bool
                True while the lock is held
        """


class ThreadedLeaderManagerBase(LeadershipManagerBase, metaclass=ABCSingletonMeta):
    """
    Leadership backed by a lock object that must be polled. A background
    thread calls renew_or_acquire every poll_time; subclasses implement that
    one method and report the outcome with acquire_lock / release_lock.
    """

    def __init__(self, store_client: StoreClientBase):
        super().__init__(store_client)

        self.leader = threading.Event()
        self.shutdown = threading.Event()

        # Serializes polls from the background thread and from acquire()
        self.run_lock = threading.Lock()

        self.leadership_thread = self._make_thread()

        poll_time = config.python_watch_manager.lock.poll_time
        poll_time_delta = parse_time_delta(poll_time)
        assert_config(
            poll_time_delta,
            f"Invalid 'python_watch_manager.lock.poll_time' value: '{poll_time}'",
        )
        self.poll_time = poll_time_delta.total_seconds()

    ## Public Interface ####################################################

    def renew_or_acquire(self):
        """
        Poll the lock object once, calling acquire_lock or release_lock
        """
        raise NotImplementedError

    def acquire_lock(self):
        """Record that this replica holds the lock"""
        if not self.leader.is_set():
            log.info("Acquired leadership lock")
        self.leader.set()

    def release_lock(self):
        """Record that this replica does not hold the lock"""
        if self.leader.is_set():
            log.warning("Lost leadership lock")
        self.leader.clear()

    ## Lock Interface ####################################################
    def acquire(self, force: bool = False) -> bool:
        """
        Make sure the polling thread runs, then block until the lock is held
        """
        if force:
            self.leader.set()
            return True

        if self.leadership_thread.is_alive():
            self.run_renew_or_acquire()
        else:
            # A thread object can only be started once
            if self.leadership_thread.ident:
                self.leadership_thread = self._make_thread()
            log.info(
                "Starting %s: %s", self.__class__.__name__, self.leadership_thread.name
            )
            self.leadership_thread.start()

        return self.leader.wait()

    def acquire_resource(self, resource: RequestKey) -> bool:
        """Resources are covered by the global lock"""
        return self.leader.wait()

    def release(self):
        """
        Stop polling and then drop the lock
        """
        self.shutdown.set()
        if self.leadership_thread.is_alive():
            self.leadership_thread.join()
        self.leader.clear()

    def release_resource(self, resource: RequestKey):
        """Resources are covered by the global lock"""

    def is_leader(self, resource: Optional[RequestKey] = None) -> bool:
        return self.leader.is_set()

    ## Implementation Details ####################################################

    def _make_thread(self) -> threading.Thread:
        return threading.Thread(name="leadership_thread", target=self.run, daemon=True)

    def run(self):
        """Poll the lock until shutdown. A failed poll drops leadership until
        a later poll succeeds.
        """
        while not self.shutdown.is_set():
            try:
                self.run_renew_or_acquire()
            except RuntimeError:
                self.release_lock()
            self.shutdown.wait(self.poll_time)
        log.debug("Shutting down %s Thread", self.__class__.__name__)

    def run_renew_or_acquire(self):
        """
        Run one poll under the run lock, wrapping any failure in a
        RuntimeError
        """
        log.debug2("Running renew or acquire for %s lock", self.__class__.__name__)
        with self.run_lock:
            try:
                self.renew_or_acquire()
            except Exception as err:
                log.warning(
                    "Error detected while acquiring leadership lock", exc_info=True
                )
                raise RuntimeError("Error detected when acquiring lock") from err
