"""
Blocking availability polling for instances and clusters
"""

# Standard
from typing import Callable, Optional
import threading
import time

# First Party
import alog

# Local
from ... import config
from ...exceptions import AvailabilityTimeoutError, ProvisioningError
from .describe import DescribeResult

log = alog.use_channel("RDSWT")

AVAILABLE = "available"


def wait_for_availability(
    describe: Callable[[], DescribeResult],
    status_key: str,
    identifier: str,
    shutdown: Optional[threading.Event] = None,
) -> dict:
    """Wait for a resource to reach the "available" status.

    The first check happens after the initial delay plus one poll interval.
    Every check after that is one poll interval apart, and the deadline is
    absolute from the start of the wait.

    Args:
        describe:  Callable[[], DescribeResult]
            Function describing the resource being waited on
        status_key:  str
            The key of the status field in the described resource
            (DBInstanceStatus or Status)
        identifier:  str
            Identifier of the resource (for logs and errors)
        shutdown:  Optional[threading.Event]
            Event that cancels the wait when set

    Returns:
        resource:  dict
            The described resource once it is available

    Raises:
        AvailabilityTimeoutError: If the deadline passes
        ProvisioningError: If the resource disappears, a describe fails or the
            wait is cancelled
    """
    shutdown = shutdown or threading.Event()
    availability = config.availability
    log.info("Waiting for %s to become available", identifier)
    deadline = time.monotonic() + availability.timeout_seconds

    if shutdown.wait(availability.initial_delay_seconds):
        raise ProvisioningError("wait cancelled", operation="Wait", identifier=identifier)

    while True:
        if shutdown.wait(availability.poll_interval_seconds):
            raise ProvisioningError(
                "wait cancelled", operation="Wait", identifier=identifier
            )

        result = describe()
        if not result.is_found:
            raise ProvisioningError(
                "resource disappeared while waiting for availability",
                operation="Wait",
                identifier=identifier,
            )
        status = result.resource.get(status_key)
        log.debug2("%s status: %s", identifier, status)
        if status == AVAILABLE:
            log.info("%s is now available", identifier)
            return result.resource

        if time.monotonic() >= deadline:
            raise AvailabilityTimeoutError(
                f"waited too long for {identifier} to become available "
                f"(last status: {status})",
                operation="Wait",
                identifier=identifier,
            )
