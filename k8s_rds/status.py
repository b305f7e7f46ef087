"""
This module holds the status representation shared by Database and DBCluster
resources. The only status fields ever written are:

{
    "state": one of "", "Creating", "Created", "Updated", "Failed",
    "message": human readable detail (the error text for "Failed"),
}
"""

# Standard
from enum import Enum
from typing import Optional

# First Party
import alog

log = alog.use_channel("STTUS")

## Public ######################################################################

STATE_KEY = "state"
MESSAGE_KEY = "message"


class ResourceState(str, Enum):
    """The lifecycle states of a managed resource"""

    UNSET = ""
    CREATING = "Creating"
    CREATED = "Created"
    UPDATED = "Updated"
    FAILED = "Failed"


def make_status(state: ResourceState, message: Optional[str] = None) -> dict:
    """Make the status dict for a resource

    Args:
        state:  ResourceState
            The state to report
        message:  Optional[str]
            The message to report. Defaults to the state name so a successful
            transition reads like "Created".

    Returns:
        status:  dict
            The full status dict to write onto the resource
    """
    return {
        STATE_KEY: state.value,
        MESSAGE_KEY: state.value if message is None else message,
    }


def get_state(manifest: dict) -> ResourceState:
    """Read the current state from a resource manifest. Missing or unknown
    values are treated as the initial state.
    """
    raw_state = (manifest.get("status") or {}).get(STATE_KEY) or ""
    try:
        return ResourceState(raw_state)
    except ValueError:
        log.warning("Unknown resource state [%s]. Treating as unset", raw_state)
        return ResourceState.UNSET


def get_message(manifest: dict) -> str:
    """Read the current status message from a resource manifest"""
    return (manifest.get("status") or {}).get(MESSAGE_KEY) or ""
