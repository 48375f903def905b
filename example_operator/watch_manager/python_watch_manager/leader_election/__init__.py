"""__init__ file for leadership election classes. Imports all leadership managers
 and defines a generic helper"""
# Standard
from typing import Type

# Local
from .... import config
from .base import LeadershipManagerBase, ThreadedLeaderManagerBase
from .dry_run import DryRunLeadershipManager
from .lease import LeaderWithLeaseManager


def get_leader_election_class() -> Type[LeadershipManagerBase]:
    """Get the current configured leadership election"""
    if config.python_watch_manager.lock.type == "leader-with-lease":
        return LeaderWithLeaseManager
    return DryRunLeadershipManager
