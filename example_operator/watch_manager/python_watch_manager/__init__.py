"""
Python-based implementation of the WatchManager built on a thread worker pool
"""

# Local
from .python_watch_manager import PythonWatchManager
