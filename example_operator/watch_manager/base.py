"""
Interface shared by watch managers. A watch manager connects the Example kind
to its Controller, runs the reconcile loop and reports its health.
"""

# Standard
from typing import Type
import abc

# First Party
import alog

# Local
from ..controller import Controller

log = alog.use_channel("WATCH")


class WatchManagerBase(abc.ABC):
    """Base for a manager that drives the Controller of one custom resource
    kind. Every constructed manager is registered by kind so that the CLI can
    start, stop and health check all of them together.
    """

    # str(manager) -> manager for every constructed manager
    _ALL_WATCHES = {}

    ## Interface ###############################################################

    def __init__(
        self,
        controller_type: Type[Controller],
    ):
        """Register a manager for the kind served by controller_type

        Args:
            controller_type:  Type[Controller],
                The Controller class for the watched group/version/kind
        """
        self.controller_type = controller_type
        self.group = controller_type.group
        self.version = controller_type.version
        self.kind = controller_type.kind

        # Register this watch instance
        watch_key = str(self)
        assert (
            watch_key not in self._ALL_WATCHES
        ), "Only a single controller may watch a given group/version/kind"
        self._ALL_WATCHES[watch_key] = self

    @abc.abstractmethod
    def watch(self) -> bool:
        """Start watching and reconciling without blocking

        Returns:
            success:  bool
                True if everything started
        """

    @abc.abstractmethod
    def wait(self):
        """Block until the manager has been stopped"""

    @abc.abstractmethod
    def stop(self):
        """Stop watching and reconciling. Safe to call when not running."""

    @abc.abstractmethod
    def is_alive(self) -> bool:
        """Liveness of the watch: False once it can no longer make progress"""

    @abc.abstractmethod
    def is_ready(self) -> bool:
        """Readiness of the watch: True while it is the leader and watching"""

    ## Utilities ###############################################################

    @classmethod
    def start_all(cls) -> bool:
        """Start every registered manager and block until they all stop. If
        one fails to start, the ones already started are stopped.

        Returns:
            success:  bool
                True if every manager started
        """
        started_watches = []
        success = True
        # Sorted so that the start order is stable
        for _, watch in sorted(cls._ALL_WATCHES.items()):
            if watch.watch():
                log.debug("Successfully started %s", watch)
                started_watches.append(watch)
            else:
                log.warning("Failed to start %s", watch)
                success = False

                for started_watch in started_watches:
                    started_watch.stop()
                break

        # Wait on all of them to terminate
        for watch in cls._ALL_WATCHES.values():
            watch.wait()

        return success

    @classmethod
    def stop_all(cls):
        """Stop every registered manager. A failure to stop one does not
        prevent stopping the rest.
        """
        for watch in cls._ALL_WATCHES.values():
            try:
                watch.stop()
                log.debug2("Waiting for %s to terminate", watch)
                watch.wait()
            except Exception as exc:  # pylint: disable=broad-exception-caught
                log.error("Failed to stop watch manager %s", exc, exc_info=True)

    @classmethod
    def all_alive(cls) -> bool:
        """True if every registered watch is alive"""
        return all(watch.is_alive() for watch in cls._ALL_WATCHES.values())

    @classmethod
    def all_ready(cls) -> bool:
        """True if at least one watch is registered and every watch is ready"""
        return bool(cls._ALL_WATCHES) and all(
            watch.is_ready() for watch in cls._ALL_WATCHES.values()
        )

    ## Implementation Details ##################################################

    def __str__(self):
        """Identify the manager by its controller"""
        return f"Watch[{self.controller_type}]"
