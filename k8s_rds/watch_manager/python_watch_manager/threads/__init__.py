"""Import the ThreadBase and subclasses"""
# Local
from .base import ThreadBase
from .dispatch import DispatchThread
from .watch import WatchThread
