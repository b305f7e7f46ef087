"""
Tests for subnet group management
"""

# Standard
from unittest import mock

# Third Party
from botocore.exceptions import EndpointConnectionError
import pytest

# Local
from k8s_rds import constants
from k8s_rds.exceptions import DiscoveryError, ProvisioningError
from k8s_rds.provider.rds.discovery import NetworkEnvironment
from k8s_rds.provider.rds.subnet_group import (
    SubnetGroupDeleteOutcome,
    delete_subnet_group,
    ensure_subnet_group,
    log_subnet_group_outcome,
)
from k8s_rds.test_helpers.aws import FakeRDSClient
from k8s_rds.test_helpers.helpers import TEST_VPC_ID

ENV = NetworkEnvironment(
    vpc_id=TEST_VPC_ID,
    subnet_ids=["subnet-1", "subnet-2"],
    security_group_ids=["sg-1"],
)
GROUP_NAME = f"db-subnetgroup-{TEST_VPC_ID}"


def test_ensure_creates():
    """A missing group is created with the VPC subnets and the advisory tag"""
    rds = FakeRDSClient()
    assert ensure_subnet_group(rds, ENV) == GROUP_NAME
    rds.create_db_subnet_group.assert_called_once_with(
        DBSubnetGroupName=GROUP_NAME,
        DBSubnetGroupDescription=f"RDS Subnet Group for VPC: {TEST_VPC_ID}",
        SubnetIds=["subnet-1", "subnet-2"],
        Tags=[
            {
                "Key": constants.SUBNET_GROUP_TAG_KEY,
                "Value": constants.SUBNET_GROUP_TAG_VALUE,
            }
        ],
    )
    assert GROUP_NAME in rds.subnet_groups


def test_ensure_existing():
    """An existing group is reused"""
    rds = FakeRDSClient(subnet_groups=[GROUP_NAME])
    assert ensure_subnet_group(rds, ENV) == GROUP_NAME
    rds.create_db_subnet_group.assert_not_called()


def test_ensure_no_subnets():
    """Creating a group without subnets is a discovery error"""
    rds = FakeRDSClient()
    with pytest.raises(DiscoveryError, match="no subnets"):
        ensure_subnet_group(rds, NetworkEnvironment(vpc_id=TEST_VPC_ID))
    rds.create_db_subnet_group.assert_not_called()


def test_delete_deleted():
    """A successful delete reports DELETED"""
    rds = FakeRDSClient(subnet_groups=[GROUP_NAME])
    assert delete_subnet_group(rds, GROUP_NAME) is SubnetGroupDeleteOutcome.DELETED
    assert not rds.subnet_groups


@pytest.mark.parametrize(
    ["code", "outcome"],
    [
        ("InvalidDBSubnetGroupStateFault", SubnetGroupDeleteOutcome.IN_USE),
        ("DBSubnetGroupNotFoundFault", SubnetGroupDeleteOutcome.NOT_FOUND),
        ("InvalidDBSubnetStateFault", SubnetGroupDeleteOutcome.NOT_AVAILABLE),
    ],
)
def test_delete_outcomes(code, outcome):
    """Known delete errors are classified instead of raised"""
    rds = FakeRDSClient(subnet_group_delete_code=code)
    assert delete_subnet_group(rds, GROUP_NAME) is outcome
    log_subnet_group_outcome(GROUP_NAME, outcome)


def test_delete_missing():
    """Deleting a group that does not exist reports NOT_FOUND"""
    assert (
        delete_subnet_group(FakeRDSClient(), GROUP_NAME)
        is SubnetGroupDeleteOutcome.NOT_FOUND
    )


def test_delete_unknown_error():
    """Unknown delete errors are raised"""
    rds = FakeRDSClient(subnet_group_delete_code="AccessDenied")
    with pytest.raises(ProvisioningError, match="AccessDenied"):
        delete_subnet_group(rds, GROUP_NAME)


def test_delete_connection_error():
    """Transport errors carry the operation and the group name"""
    rds = mock.Mock()
    rds.delete_db_subnet_group.side_effect = EndpointConnectionError(
        endpoint_url="https://rds.example.com"
    )
    with pytest.raises(ProvisioningError) as exc_info:
        delete_subnet_group(rds, GROUP_NAME)
    assert exc_info.value.operation == "DeleteDBSubnetGroup"
    assert exc_info.value.identifier == GROUP_NAME
