"""Import the ThreadBase and subclasses"""
# Local
from .base import ThreadBase
from .heartbeat import HeartbeatThread
from .reconcile import ReconcileThread
from .timer import TimerThread
from .watch import WatchThread, get_watch_threads
