"""
Helper module to define shared types related to Kube Events
"""

# Standard
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

# Local
from ..managed_object import ManagedObject


class KubeEventType(Enum):
    """Enum for all possible kubernetes event types"""

    DELETED = "DELETED"
    MODIFIED = "MODIFIED"
    ADDED = "ADDED"


@dataclass
class KubeWatchEvent:
    """DataClass containing the type, resource, and timestamp of a
    particular event. Modifications also carry the last version of the
    resource seen before this one.
    """

    type: KubeEventType
    resource: ManagedObject
    old_resource: Optional[ManagedObject] = None
    timestamp: datetime = field(default_factory=datetime.now)
