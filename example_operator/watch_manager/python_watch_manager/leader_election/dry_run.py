"""Leadership for a single replica or a dry run, where there is nobody to
compete with
"""
# Standard
from typing import Optional
import threading

# First Party
import alog

# Local
from ....api import RequestKey
from .base import LeadershipManagerBase

log = alog.use_channel("LDREL")


class DryRunLeadershipManager(LeadershipManagerBase):
    """Leadership without a lock object. acquire never blocks and leadership
    lasts until release. Resource locks always succeed while leading.
    """

    def __init__(self, store_client=None):
        super().__init__(store_client)
        self._leading = threading.Event()

    def acquire(self, force: bool = False) -> bool:
        if not self._leading.is_set():
            log.debug("Taking uncontested leadership")
        self._leading.set()
        return True

    def acquire_resource(self, resource: RequestKey) -> bool:
        return self._leading.is_set()

    def release(self):
        self._leading.clear()

    def release_resource(self, resource: RequestKey):
        """Resource locks are implied by leadership"""

    def is_leader(self, resource: Optional[RequestKey] = None) -> bool:
        return self._leading.is_set()
