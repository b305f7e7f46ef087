"""
Tests for the tagged describe results and API call wrapping
"""

# Standard
from unittest import mock

# Third Party
from botocore.exceptions import EndpointConnectionError
import pytest

# Local
from k8s_rds.exceptions import ProvisioningError
from k8s_rds.provider.rds.describe import (
    DescribeStatus,
    call_api,
    describe_db_cluster,
    describe_db_cluster_snapshot,
    describe_db_instance,
    describe_db_snapshot,
    describe_db_subnet_group,
    error_code,
)
from k8s_rds.test_helpers.aws import (
    FakeRDSClient,
    client_error,
    make_cluster,
    make_instance,
)


def test_describe_found():
    """Existing resources are FOUND with their description"""
    rds = FakeRDSClient(
        instances={"db": make_instance("db")},
        clusters={"cl": make_cluster("cl")},
        snapshots=["snap"],
        cluster_snapshots=["csnap"],
        subnet_groups=["sg"],
    )
    result = describe_db_instance(rds, "db")
    assert result.status is DescribeStatus.FOUND
    assert result.is_found
    assert result.resource["DBInstanceIdentifier"] == "db"
    assert describe_db_cluster(rds, "cl").resource["DBClusterIdentifier"] == "cl"
    assert describe_db_snapshot(rds, "snap").is_found
    assert describe_db_cluster_snapshot(rds, "csnap").is_found
    assert describe_db_subnet_group(rds, "sg").is_found


def test_describe_not_found():
    """Every not-found error code maps onto NOT_FOUND"""
    rds = FakeRDSClient()
    for result in [
        describe_db_instance(rds, "db"),
        describe_db_cluster(rds, "cl"),
        describe_db_snapshot(rds, "snap"),
        describe_db_cluster_snapshot(rds, "csnap"),
        describe_db_subnet_group(rds, "sg"),
    ]:
        assert result.status is DescribeStatus.NOT_FOUND
        assert result.resource == {}


def test_describe_empty_list():
    """An empty result list is NOT_FOUND"""
    rds = mock.Mock()
    rds.describe_db_instances.return_value = {"DBInstances": []}
    assert not describe_db_instance(rds, "db").is_found


def test_describe_other_error():
    """Any other error is a ProvisioningError naming the operation"""
    rds = FakeRDSClient(
        errors={
            "describe_db_instances": client_error(
                "AccessDenied", "DescribeDBInstances"
            )
        }
    )
    with pytest.raises(ProvisioningError) as exc_info:
        describe_db_instance(rds, "db")
    assert exc_info.value.operation == "DescribeDBInstances"
    assert exc_info.value.identifier == "db"
    assert "AccessDenied" in str(exc_info.value)


def test_describe_connection_error():
    """Transport errors are ProvisioningErrors too"""
    rds = mock.Mock()
    rds.describe_db_clusters.side_effect = EndpointConnectionError(
        endpoint_url="https://rds.example.com"
    )
    with pytest.raises(ProvisioningError):
        describe_db_cluster(rds, "cl")


def test_call_api():
    """call_api passes the kwargs through and wraps errors"""
    func = mock.Mock(return_value={"ok": True})
    assert call_api("Op", "id", func, A=1) == {"ok": True}
    func.assert_called_once_with(A=1)

    func = mock.Mock(side_effect=client_error("Throttling", "Op"))
    with pytest.raises(ProvisioningError, match="Op \\[id\\]: Throttling"):
        call_api("Op", "id", func)


def test_error_code():
    """The error code is read from the ClientError response"""
    assert error_code(client_error("DBInstanceNotFound", "Op")) == "DBInstanceNotFound"
