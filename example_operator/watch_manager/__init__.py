"""
Top-level watch_manager imports
"""

# Local
from .base import WatchManagerBase
from .python_watch_manager import PythonWatchManager
