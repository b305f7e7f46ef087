"""
Top-level watch_manager imports
"""

# Local
from .base import WatchManagerBase
from .python_watch_manager import PythonWatchManager

# Expose the static start/stop functions at the top
start_all = WatchManagerBase.start_all
stop_all = WatchManagerBase.stop_all
