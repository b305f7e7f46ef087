"""
Thread based watch manager
"""

# Local
from .python_watch_manager import PythonWatchManager
