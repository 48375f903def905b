"""
Exponential backoff with jitter for failed reconcile requests
"""

# Standard
from datetime import timedelta
from typing import Callable, Dict, Hashable, Optional
import random
import threading

# First Party
import alog

# Local
from .... import config
from ....exceptions import ConfigError
from ....utils import parse_time_delta

log = alog.use_channel("BKOFF")


class ExponentialBackoff:
    """Per-key exponential backoff. Each failure of a key doubles (by factor)
    its next delay up to max_delay. A success resets the key to base_delay.
    Jitter spreads the delay by up to +/- jitter of its value without ever
    exceeding max_delay.
    """

    def __init__(
        self,
        base_delay: timedelta,
        max_delay: timedelta,
        factor: float = 2.0,
        jitter: float = 0.0,
        rand: Optional[Callable[[], float]] = None,
    ):
        """
        Args:
            base_delay:  timedelta
                Delay after the first failure
            max_delay:  timedelta
                Upper bound on every delay
            factor:  float
                Multiplier applied for each consecutive failure
            jitter:  float
                Fraction of the delay to randomize by, between 0 and 1
            rand:  Optional[Callable[[], float]]
                Source of uniform [0, 1) numbers. Defaults to random.random
        """
        if base_delay > max_delay:
            raise ConfigError(
                f"Backoff base delay {base_delay} exceeds max delay {max_delay}"
            )
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.factor = factor
        self.jitter = jitter
        self._rand = rand or random.random
        self._attempts: Dict[Hashable, int] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls) -> "ExponentialBackoff":
        """Build the backoff from the library config's backoff section"""
        base_delay = parse_time_delta(config.backoff.base_delay)
        max_delay = parse_time_delta(config.backoff.max_delay)
        if base_delay is None or max_delay is None:
            raise ConfigError(
                f"Invalid backoff delays: '{config.backoff.base_delay}', "
                f"'{config.backoff.max_delay}'"
            )
        return cls(
            base_delay=base_delay,
            max_delay=max_delay,
            factor=float(config.backoff.factor),
            jitter=float(config.backoff.jitter),
        )

    def next_delay(self, key: Hashable) -> timedelta:
        """Record a failure for the key and get the delay before its retry"""
        with self._lock:
            attempts = self._attempts.get(key, 0)
            self._attempts[key] = attempts + 1

        base_seconds = self.base_delay.total_seconds()
        max_seconds = self.max_delay.total_seconds()
        try:
            delay = min(base_seconds * (self.factor**attempts), max_seconds)
        except OverflowError:
            delay = max_seconds

        if self.jitter:
            delay = delay * (1 + self.jitter * (2 * self._rand() - 1))
        delay = min(max(delay, 0.0), max_seconds)
        log.debug3("Backoff for %s after %d failures: %ss", key, attempts + 1, delay)
        return timedelta(seconds=delay)

    def reset(self, key: Hashable):
        """Forget the failures of a key"""
        with self._lock:
            self._attempts.pop(key, None)

    def attempts(self, key: Hashable) -> int:
        """Get the number of consecutive failures recorded for a key"""
        with self._lock:
            return self._attempts.get(key, 0)
