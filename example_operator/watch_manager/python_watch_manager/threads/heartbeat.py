"""
The heartbeat records that the watch manager's timer loop is still turning. A
timestamp is written to a file every period so that an exec liveness check (see
the check-heartbeat command) and the /healthz endpoint can detect a hung
operator.
"""

# Standard
from datetime import datetime, timedelta
from typing import Optional
import os
import threading

# First Party
import alog

# Local
from ....exceptions import ConfigError
from ..utils import parse_time_delta
from .timer import TimerThread

log = alog.use_channel("HBEAT")

# Readable by GNU date, as in `date -d "$(cat heartbeat.txt)"`. Whole seconds
# only, so periods below 1s are not useful.
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Number of periods that may pass without a beat before it counts as stale
MISSED_BEATS_ALLOWED = 2


def write_heartbeat(path: str, when: datetime):
    """Replace the heartbeat file with the given time. The file is swapped in
    whole so that readers never see a partial timestamp.
    """
    tmp_path = f"{path}.tmp"
    with open(tmp_path, "w", encoding="utf-8") as handle:
        handle.write(when.strftime(DATE_FORMAT))
    os.replace(tmp_path, path)


def read_heartbeat(path: str) -> datetime:
    """Parse the time out of a heartbeat file

    Raises:
        FileNotFoundError if no beat has been written
        ValueError if the content is not a heartbeat
    """
    with open(path, encoding="utf-8") as handle:
        return datetime.strptime(handle.read().strip(), DATE_FORMAT)


class HeartbeatThread(TimerThread):
    """Timer thread whose only standing event is the next beat"""

    def __init__(self, heartbeat_file: str, heartbeat_period: str):
        """
        Args:
            heartbeat_file:  str
                Path of the file the beats are written to
            heartbeat_period:  str
                Time delta string (e.g. 30s) between beats
        """
        period = parse_time_delta(heartbeat_period)
        if period is None:
            raise ConfigError(f"Invalid heartbeat_period: '{heartbeat_period}'")
        self.heartbeat_file = heartbeat_file
        self.period: timedelta = period
        self.last_beat: Optional[datetime] = None

        # Counts completed beats so that waiters can tell a new one happened
        self._beats = 0
        self._beat_condition = threading.Condition()
        super().__init__(name="heartbeat_thread")

    def run(self):
        self._beat()
        return super().run()

    def wait_for_beat(self, timeout: Optional[float] = None) -> bool:
        """Block until the next beat after this call

        Returns:
            beat:  bool
                False if the timeout passed first
        """
        with self._beat_condition:
            seen = self._beats
            return self._beat_condition.wait_for(
                lambda: self._beats > seen, timeout=timeout
            )

    def is_fresh(self, now: Optional[datetime] = None) -> bool:
        """True until MISSED_BEATS_ALLOWED periods pass without a written beat.
        Before the first beat there is nothing to judge, so it counts as fresh.
        """
        if self.last_beat is None:
            return True
        now = now or datetime.now()
        return now - self.last_beat <= MISSED_BEATS_ALLOWED * self.period

    ## Implementation Details ############################################

    def _beat(self):
        now = datetime.now()
        log.debug3("Heartbeat %s", now)
        try:
            write_heartbeat(self.heartbeat_file, now)
            self.last_beat = now
        except OSError as err:
            log.warning("Failed to write heartbeat file: %s", err, exc_info=True)

        with self._beat_condition:
            self._beats += 1
            self._beat_condition.notify_all()

        if not self.should_stop():
            self.put_event(now + self.period, self._beat)
