"""
Tests for the availability waiter
"""

# Standard
from unittest import mock
import threading

# Third Party
import pytest

# Local
from k8s_rds.exceptions import AvailabilityTimeoutError, ProvisioningError
from k8s_rds.provider.rds.describe import DescribeResult
from k8s_rds.provider.rds.waiter import wait_for_availability
from k8s_rds.test_helpers.helpers import FAST_AVAILABILITY, library_config


def statuses(*values):
    """A describe function returning the given statuses in order"""
    return mock.Mock(
        side_effect=[
            DescribeResult.found({"Status": value, "Id": i})
            for i, value in enumerate(values)
        ]
    )


def test_available_immediately():
    """The first check returns once the resource is available"""
    describe = statuses("available")
    with library_config(availability=FAST_AVAILABILITY):
        resource = wait_for_availability(describe, "Status", "cl")
    assert resource == {"Status": "available", "Id": 0}
    assert describe.call_count == 1


def test_polls_until_available():
    """Every poll describes the resource again"""
    describe = statuses("creating", "backing-up", "available")
    with library_config(availability=FAST_AVAILABILITY):
        resource = wait_for_availability(describe, "Status", "cl")
    assert resource["Id"] == 2
    assert describe.call_count == 3


def test_timeout():
    """The deadline raises an AvailabilityTimeoutError with the last status"""
    describe = mock.Mock(return_value=DescribeResult.found({"Status": "creating"}))
    with library_config(
        availability={
            "initial_delay_seconds": 0,
            "poll_interval_seconds": 0.01,
            "timeout_seconds": 0.05,
        }
    ):
        with pytest.raises(AvailabilityTimeoutError, match="creating"):
            wait_for_availability(describe, "Status", "cl")
    assert describe.call_count >= 1


def test_disappeared():
    """A resource that vanishes while waiting is an error"""
    describe = mock.Mock(return_value=DescribeResult.not_found())
    with library_config(availability=FAST_AVAILABILITY):
        with pytest.raises(ProvisioningError, match="disappeared"):
            wait_for_availability(describe, "Status", "cl")


def test_cancelled():
    """A set shutdown event cancels the wait before any describe"""
    describe = mock.Mock()
    shutdown = threading.Event()
    shutdown.set()
    with library_config(availability=FAST_AVAILABILITY):
        with pytest.raises(ProvisioningError, match="cancelled"):
            wait_for_availability(describe, "Status", "cl", shutdown)
    describe.assert_not_called()


def test_describe_error_propagates():
    """Errors from the describe function end the wait"""
    describe = mock.Mock(side_effect=ProvisioningError("denied"))
    with library_config(availability=FAST_AVAILABILITY):
        with pytest.raises(ProvisioningError, match="denied"):
            wait_for_availability(describe, "DBInstanceStatus", "db")
