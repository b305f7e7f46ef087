"""
Network environment discovery.

The first node of the cluster defines the network: its EC2 instance gives the
VPC and the security groups, and the VPC's subnets are filtered on whether
they assign public IPs. All nodes are assumed to share one VPC.
"""

# Standard
from dataclasses import dataclass, field
from typing import List, Optional

# First Party
import alog

# Local
from ... import config, constants
from ...deploy_manager import DeployManagerBase
from ...exceptions import assert_discovery
from .describe import call_api

log = alog.use_channel("RDSDC")


@dataclass
class NetworkEnvironment:
    """The network a new database is attached to"""

    vpc_id: str
    subnet_ids: List[str] = field(default_factory=list)
    security_group_ids: List[str] = field(default_factory=list)
    region: Optional[str] = None

    @property
    def subnet_group_name(self) -> str:
        """Deterministic name of the subnet group for this VPC"""
        return f"db-subnetgroup-{self.vpc_id}"


def get_first_node(deploy_manager: DeployManagerBase) -> dict:
    """Get the first Node of the cluster

    Raises:
        DiscoveryError: If nodes cannot be listed or there are none
    """
    success, nodes = deploy_manager.filter_objects_current_state(
        kind="Node", api_version="v1"
    )
    assert_discovery(success, "unable to get nodes")
    assert_discovery(nodes, "unable to find any nodes in the cluster")
    return nodes[0]


def get_instance_id_from_provider_id(provider_id: str) -> str:
    """The EC2 instance id is the last path segment of a node's providerID
    (aws:///us-east-1a/i-0123456789abcdef0)
    """
    return (provider_id or "").rsplit("/", 1)[-1]


def get_node_region(node: dict) -> Optional[str]:
    """The region to use. An explicit config value wins over the node labels."""
    if config.aws.region:
        return config.aws.region
    labels = (node.get("metadata") or {}).get("labels") or {}
    for label in constants.REGION_NODE_LABELS:
        if labels.get(label):
            return labels[label]
    log.warning("No region label found on node")
    return None


def discover_environment(
    ec2_client,
    node: dict,
    public: bool,
    region: Optional[str] = None,
) -> NetworkEnvironment:
    """Resolve the VPC, subnets and security groups from a node

    Args:
        ec2_client:
            boto3 EC2 client
        node:  dict
            The node manifest whose instance defines the network
        public:  bool
            Whether to select subnets that map public IPs on launch
        region:  Optional[str]
            The region the clients were built for

    Returns:
        environment:  NetworkEnvironment
            The discovered network

    Raises:
        DiscoveryError: If the node's instance cannot be resolved
        ProvisioningError: If an EC2 call fails
    """
    instance_id = get_instance_id_from_provider_id(
        (node.get("spec") or {}).get("providerID", "")
    )
    assert_discovery(instance_id, "node has no providerID")
    log.info("Taking network from node instance %s", instance_id)

    response = call_api(
        "DescribeInstances",
        instance_id,
        ec2_client.describe_instances,
        Filters=[{"Name": "instance-id", "Values": [instance_id]}],
    )
    reservations = response.get("Reservations") or []
    assert_discovery(
        reservations and reservations[0].get("Instances"),
        f"unable to describe AWS instance {instance_id}",
    )
    instance = reservations[0]["Instances"][0]
    vpc_id = instance.get("VpcId")
    assert_discovery(vpc_id, f"instance {instance_id} is not in a VPC")

    security_group_ids = [
        group["GroupId"] for group in instance.get("SecurityGroups") or []
    ]
    log.debug("Found security groups %s", security_group_ids)

    log.info("Found VPC %s will search for subnets in that VPC", vpc_id)
    response = call_api(
        "DescribeSubnets",
        vpc_id,
        ec2_client.describe_subnets,
        Filters=[{"Name": "vpc-id", "Values": [vpc_id]}],
    )
    subnet_ids = []
    for subnet in response.get("Subnets") or []:
        map_public = subnet.get("MapPublicIpOnLaunch")
        if map_public is not None and map_public == bool(public):
            subnet_ids.append(subnet["SubnetId"])
        else:
            log.debug2(
                "Skipping subnet %s since its public state was %s and we were looking for %s",
                subnet.get("SubnetId"),
                map_public,
                public,
            )
    log.debug("Found subnets %s", subnet_ids)

    return NetworkEnvironment(
        vpc_id=vpc_id,
        subnet_ids=subnet_ids,
        security_group_ids=security_group_ids,
        region=region,
    )
