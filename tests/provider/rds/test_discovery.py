"""
Tests for network environment discovery
"""

# Third Party
import pytest

# Local
from k8s_rds.exceptions import DiscoveryError
from k8s_rds.provider.rds.discovery import (
    NetworkEnvironment,
    discover_environment,
    get_first_node,
    get_instance_id_from_provider_id,
    get_node_region,
)
from k8s_rds.test_helpers.aws import FakeEC2Client
from k8s_rds.test_helpers.helpers import (
    TEST_INSTANCE_ID,
    TEST_REGION,
    TEST_VPC_ID,
    MockDeployManager,
    library_config,
    make_node,
)

## Nodes #######################################################################


def test_get_first_node():
    """The first listed node is returned"""
    dm = MockDeployManager(resources=[make_node()])
    assert get_first_node(dm)["metadata"]["name"] == "node-1"


def test_get_first_node_none():
    """A cluster without nodes is a discovery error"""
    with pytest.raises(DiscoveryError, match="nodes"):
        get_first_node(MockDeployManager())


def test_get_first_node_list_failure():
    """Failing to list nodes is a discovery error"""
    dm = MockDeployManager(resources=[make_node()], filter_fail=True)
    with pytest.raises(DiscoveryError, match="unable to get nodes"):
        get_first_node(dm)


def test_instance_id_from_provider_id():
    """The instance id is the last segment of the providerID"""
    assert (
        get_instance_id_from_provider_id("aws:///us-east-1a/i-0abc") == "i-0abc"
    )
    assert get_instance_id_from_provider_id("") == ""


def test_node_region_from_labels():
    """The region comes from the node topology label"""
    assert get_node_region(make_node()) == TEST_REGION


def test_node_region_legacy_label():
    """The deprecated failure-domain label is also read"""
    node = make_node(region=None)
    node["metadata"]["labels"]["failure-domain.beta.kubernetes.io/region"] = "eu-west-1"
    assert get_node_region(node) == "eu-west-1"


def test_node_region_config_override():
    """A configured region wins over the labels"""
    with library_config(aws={"region": "ap-south-1"}):
        assert get_node_region(make_node()) == "ap-south-1"


def test_node_region_missing():
    """No label and no config means no region"""
    assert get_node_region(make_node(region=None)) is None


## Environment #################################################################


def test_discover_private():
    """Private subnets are selected when not public"""
    ec2 = FakeEC2Client(security_group_ids=["sg-1", "sg-2"])
    env = discover_environment(ec2, make_node(), public=False, region=TEST_REGION)
    assert env == NetworkEnvironment(
        vpc_id=TEST_VPC_ID,
        subnet_ids=["subnet-private"],
        security_group_ids=["sg-1", "sg-2"],
        region=TEST_REGION,
    )
    ec2.describe_instances.assert_called_once_with(
        Filters=[{"Name": "instance-id", "Values": [TEST_INSTANCE_ID]}]
    )
    ec2.describe_subnets.assert_called_once_with(
        Filters=[{"Name": "vpc-id", "Values": [TEST_VPC_ID]}]
    )


def test_discover_public():
    """Public subnets are selected when public"""
    env = discover_environment(FakeEC2Client(), make_node(), public=True)
    assert env.subnet_ids == ["subnet-public"]


def test_discover_skips_unknown_public_state():
    """Subnets that do not report MapPublicIpOnLaunch are never selected"""
    ec2 = FakeEC2Client(subnets={"subnet-a": None, "subnet-b": False})
    env = discover_environment(ec2, make_node(), public=False)
    assert env.subnet_ids == ["subnet-b"]


def test_discover_unknown_instance():
    """A node whose instance cannot be described is a discovery error"""
    ec2 = FakeEC2Client(instance_id="i-other")
    with pytest.raises(DiscoveryError, match=TEST_INSTANCE_ID):
        discover_environment(ec2, make_node(), public=False)


def test_discover_no_provider_id():
    """A node without a providerID is a discovery error"""
    node = make_node()
    del node["spec"]["providerID"]
    with pytest.raises(DiscoveryError, match="providerID"):
        discover_environment(FakeEC2Client(), node, public=False)


def test_subnet_group_name():
    """The subnet group is named after the VPC"""
    assert NetworkEnvironment(vpc_id="vpc-1").subnet_group_name == "db-subnetgroup-vpc-1"
