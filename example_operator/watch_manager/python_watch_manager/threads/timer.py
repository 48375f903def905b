"""
The TimerThread runs delayed actions such as requeues and heartbeats on one
shared thread
"""

# Standard
from datetime import datetime
from heapq import heappop, heappush
from typing import Any, Callable, Dict, List, Optional
import threading

# First Party
import alog

# Local
from ..utils import MIN_SLEEP_TIME, Singleton, TimerEvent
from .base import ThreadBase

log = alog.use_channel("TMRTH")


class TimerThread(ThreadBase, metaclass=Singleton):
    """Scheduler for delayed actions. Events are held in a heap ordered by
    their due time and every due event runs on this thread, so scheduling a
    requeue never costs a thread of its own.
    """

    def __init__(self, name: Optional[str] = None):
        super().__init__(name=name or "timer_thread", daemon=True)

        # Guarded by the condition, which is also used to wake the loop
        self.timer_heap: List[TimerEvent] = []
        self.notify_condition = threading.Condition()

    def run(self):
        """Sleep until the earliest event is due (or a new event arrives) and
        then run everything that has come due
        """
        if not self.check_preconditions():
            return

        while True:
            with self.notify_condition:
                sleep_for = self._get_time_to_sleep()
                log.debug4("Timer sleeping for %s", sleep_for or "ever")
                self.notify_condition.wait(timeout=sleep_for)

            if not self.check_preconditions():
                return

            for event in self._pop_due_events():
                log.debug2("Running timer event: %s", event)
                try:
                    event.run()
                except Exception as err:  # pylint: disable=broad-except
                    log.error("Timer event %s failed: %s", event, err, exc_info=True)

    ## Class Interface ###################################################

    def stop_thread(self):
        """Set the shutdown flag and wake the loop so that it sees it"""
        super().stop_thread()
        with self.notify_condition:
            self.notify_condition.notify_all()

    ## Public Interface ###################################################

    def put_event(
        self, time: datetime, action: Callable, *args: Any, **kwargs: Dict
    ) -> Optional[TimerEvent]:
        """Schedule action(*args, **kwargs) to run at the given time

        Args:
            time: datetime
                When the action is due
            action: Callable
                The function to run
            *args: Any
                Positional args for the action
            **kwargs: Dict
                Keyword args for the action

        Returns:
            event: Optional[TimerEvent]
                The scheduled event, which may be cancelled, or None when the
                timer has been stopped
        """
        if self.should_stop():
            return None

        event = TimerEvent(time=time, action=action, args=args, kwargs=kwargs)
        with self.notify_condition:
            heappush(self.timer_heap, event)
            self.notify_condition.notify_all()
        return event

    def pending_events(self) -> List[TimerEvent]:
        """Get the scheduled events that have not been cancelled"""
        with self.notify_condition:
            return sorted(event for event in self.timer_heap if not event.stale)

    ## Implementation Details ############################################

    def _get_time_to_sleep(self) -> Optional[float]:
        """Seconds until the earliest event is due, or None when nothing is
        scheduled
        """
        with self.notify_condition:
            if not self.timer_heap:
                return None
            remaining = (self.timer_heap[0].time - datetime.now()).total_seconds()
            return max(remaining, MIN_SLEEP_TIME)

    def _pop_due_events(self) -> List[TimerEvent]:
        """Remove and return every event that is due, dropping cancelled ones"""
        now = datetime.now()
        due = []
        with self.notify_condition:
            while self.timer_heap and self.timer_heap[0].time <= now:
                event = heappop(self.timer_heap)
                if event.stale:
                    log.debug3("Dropping cancelled timer event %s", event)
                    continue
                due.append(event)
        return due
