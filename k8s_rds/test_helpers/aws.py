"""
In-memory fakes for the boto3 RDS and EC2 clients. Every API method is a
mock.Mock whose side effect works against the fake's state, so tests can
both drive behavior and assert on the calls made. Errors are real botocore
ClientErrors.
"""

# Standard
from typing import Dict, List, Optional
from unittest import mock
import copy

# Third Party
from botocore.exceptions import ClientError

# Local
from .helpers import TEST_INSTANCE_ID, TEST_VPC_ID

AVAILABLE = "available"


def client_error(code: str, operation: str, message: str = "") -> ClientError:
    """Build a botocore ClientError with the given error code"""
    return ClientError(
        {"Error": {"Code": code, "Message": message or code}},
        operation,
    )


def make_instance(identifier: str, status: str = AVAILABLE, **kwargs) -> dict:
    """A DescribeDBInstances entry"""
    instance = {
        "DBInstanceIdentifier": identifier,
        "DBInstanceStatus": status,
        "Endpoint": {"Address": f"{identifier}.rds.example.com", "Port": 5432},
    }
    instance.update(kwargs)
    return instance


def make_cluster(
    identifier: str,
    status: str = AVAILABLE,
    members: Optional[List[str]] = None,
    **kwargs,
) -> dict:
    """A DescribeDBClusters entry"""
    cluster = {
        "DBClusterIdentifier": identifier,
        "Status": status,
        "Endpoint": f"{identifier}.cluster.rds.example.com",
        "DBClusterMembers": [
            {"DBInstanceIdentifier": member, "IsClusterWriter": i == 0}
            for i, member in enumerate(members or [])
        ],
    }
    cluster.update(kwargs)
    return cluster


class FakeRDSClient:  # pylint: disable=too-many-instance-attributes
    """Fake boto3 RDS client. Created resources are immediately available."""

    def __init__(
        self,
        instances: Optional[Dict[str, dict]] = None,
        clusters: Optional[Dict[str, dict]] = None,
        snapshots: Optional[List[str]] = None,
        cluster_snapshots: Optional[List[str]] = None,
        subnet_groups: Optional[List[str]] = None,
        subnet_group_delete_code: Optional[str] = None,
        errors: Optional[Dict[str, ClientError]] = None,
    ):
        """
        Args:
            instances:  Optional[Dict[str, dict]]
                Existing instances by identifier
            clusters:  Optional[Dict[str, dict]]
                Existing clusters by identifier
            snapshots:  Optional[List[str]]
                Existing DB snapshot identifiers
            cluster_snapshots:  Optional[List[str]]
                Existing DB cluster snapshot identifiers
            subnet_groups:  Optional[List[str]]
                Existing subnet group names
            subnet_group_delete_code:  Optional[str]
                Error code that DeleteDBSubnetGroup fails with
            errors:  Optional[Dict[str, ClientError]]
                Errors to raise by client method name
        """
        self.instances = copy.deepcopy(instances or {})
        self.clusters = copy.deepcopy(clusters or {})
        self.snapshots = set(snapshots or [])
        self.cluster_snapshots = set(cluster_snapshots or [])
        self.subnet_groups = set(subnet_groups or [])
        self.subnet_group_delete_code = subnet_group_delete_code
        self.errors = errors or {}

        for name in [
            "describe_db_instances",
            "describe_db_snapshots",
            "describe_db_clusters",
            "describe_db_cluster_snapshots",
            "describe_db_subnet_groups",
            "create_db_subnet_group",
            "delete_db_subnet_group",
            "create_db_instance",
            "restore_db_instance_from_db_snapshot",
            "modify_db_instance",
            "delete_db_instance",
            "create_db_cluster",
            "restore_db_cluster_from_snapshot",
            "modify_db_cluster",
            "delete_db_cluster",
        ]:
            setattr(self, name, mock.Mock(side_effect=self._wrap(name)))

    def _wrap(self, name):
        impl = getattr(self, f"_{name}")

        def call(**kwargs):
            if name in self.errors:
                raise self.errors[name]
            return impl(**kwargs)

        return call

    ## Describe ################################################################

    def _describe_db_instances(self, DBInstanceIdentifier):
        if DBInstanceIdentifier not in self.instances:
            raise client_error("DBInstanceNotFound", "DescribeDBInstances")
        return {"DBInstances": [copy.deepcopy(self.instances[DBInstanceIdentifier])]}

    def _describe_db_snapshots(self, DBSnapshotIdentifier):
        if DBSnapshotIdentifier not in self.snapshots:
            raise client_error("DBSnapshotNotFound", "DescribeDBSnapshots")
        return {"DBSnapshots": [{"DBSnapshotIdentifier": DBSnapshotIdentifier}]}

    def _describe_db_clusters(self, DBClusterIdentifier):
        if DBClusterIdentifier not in self.clusters:
            raise client_error("DBClusterNotFoundFault", "DescribeDBClusters")
        return {"DBClusters": [copy.deepcopy(self.clusters[DBClusterIdentifier])]}

    def _describe_db_cluster_snapshots(self, DBClusterSnapshotIdentifier):
        if DBClusterSnapshotIdentifier not in self.cluster_snapshots:
            raise client_error(
                "DBClusterSnapshotNotFoundFault", "DescribeDBClusterSnapshots"
            )
        return {
            "DBClusterSnapshots": [
                {"DBClusterSnapshotIdentifier": DBClusterSnapshotIdentifier}
            ]
        }

    def _describe_db_subnet_groups(self, DBSubnetGroupName):
        if DBSubnetGroupName not in self.subnet_groups:
            raise client_error("DBSubnetGroupNotFoundFault", "DescribeDBSubnetGroups")
        return {"DBSubnetGroups": [{"DBSubnetGroupName": DBSubnetGroupName}]}

    ## Subnet groups ###########################################################

    def _create_db_subnet_group(self, DBSubnetGroupName, **_):
        self.subnet_groups.add(DBSubnetGroupName)
        return {"DBSubnetGroup": {"DBSubnetGroupName": DBSubnetGroupName}}

    def _delete_db_subnet_group(self, DBSubnetGroupName):
        if self.subnet_group_delete_code:
            raise client_error(self.subnet_group_delete_code, "DeleteDBSubnetGroup")
        if DBSubnetGroupName not in self.subnet_groups:
            raise client_error("DBSubnetGroupNotFoundFault", "DeleteDBSubnetGroup")
        self.subnet_groups.remove(DBSubnetGroupName)
        return {}

    ## Instances ###############################################################

    def _add_instance(self, identifier, cluster_identifier=None):
        self.instances[identifier] = make_instance(identifier)
        if cluster_identifier in self.clusters:
            self.clusters[cluster_identifier]["DBClusterMembers"].append(
                {"DBInstanceIdentifier": identifier, "IsClusterWriter": False}
            )
        return {"DBInstance": copy.deepcopy(self.instances[identifier])}

    def _create_db_instance(self, DBInstanceIdentifier, **kwargs):
        return self._add_instance(
            DBInstanceIdentifier, kwargs.get("DBClusterIdentifier")
        )

    def _restore_db_instance_from_db_snapshot(self, DBInstanceIdentifier, **kwargs):
        return self._add_instance(
            DBInstanceIdentifier, kwargs.get("DBClusterIdentifier")
        )

    def _modify_db_instance(self, DBInstanceIdentifier, **_):
        if DBInstanceIdentifier not in self.instances:
            raise client_error("DBInstanceNotFound", "ModifyDBInstance")
        return {"DBInstance": copy.deepcopy(self.instances[DBInstanceIdentifier])}

    def _delete_db_instance(self, DBInstanceIdentifier, **_):
        if DBInstanceIdentifier not in self.instances:
            raise client_error("DBInstanceNotFound", "DeleteDBInstance")
        instance = self.instances.pop(DBInstanceIdentifier)
        for cluster in self.clusters.values():
            cluster["DBClusterMembers"] = [
                member
                for member in cluster["DBClusterMembers"]
                if member["DBInstanceIdentifier"] != DBInstanceIdentifier
            ]
        return {"DBInstance": instance}

    ## Clusters ################################################################

    def _create_db_cluster(self, DBClusterIdentifier, **_):
        self.clusters[DBClusterIdentifier] = make_cluster(DBClusterIdentifier)
        return {"DBCluster": copy.deepcopy(self.clusters[DBClusterIdentifier])}

    def _restore_db_cluster_from_snapshot(self, DBClusterIdentifier, **_):
        return self._create_db_cluster(DBClusterIdentifier)

    def _modify_db_cluster(self, DBClusterIdentifier, **_):
        if DBClusterIdentifier not in self.clusters:
            raise client_error("DBClusterNotFoundFault", "ModifyDBCluster")
        return {"DBCluster": copy.deepcopy(self.clusters[DBClusterIdentifier])}

    def _delete_db_cluster(self, DBClusterIdentifier, **_):
        if DBClusterIdentifier not in self.clusters:
            raise client_error("DBClusterNotFoundFault", "DeleteDBCluster")
        return {"DBCluster": self.clusters.pop(DBClusterIdentifier)}


class FakeEC2Client:
    """Fake boto3 EC2 client holding one instance in one VPC"""

    def __init__(
        self,
        instance_id: str = TEST_INSTANCE_ID,
        vpc_id: str = TEST_VPC_ID,
        security_group_ids: Optional[List[str]] = None,
        subnets: Optional[Dict[str, Optional[bool]]] = None,
    ):
        """
        Args:
            instance_id:  str
                The id of the only instance
            vpc_id:  str
                The VPC of the instance
            security_group_ids:  Optional[List[str]]
                The security groups attached to the instance
            subnets:  Optional[Dict[str, Optional[bool]]]
                MapPublicIpOnLaunch by subnet id. None leaves the flag out.
        """
        self.instance_id = instance_id
        self.vpc_id = vpc_id
        self.security_group_ids = (
            ["sg-1"] if security_group_ids is None else security_group_ids
        )
        self.subnets = (
            {"subnet-private": False, "subnet-public": True}
            if subnets is None
            else subnets
        )
        self.describe_instances = mock.Mock(side_effect=self._describe_instances)
        self.describe_subnets = mock.Mock(side_effect=self._describe_subnets)

    def _describe_instances(self, Filters):
        instance_ids = Filters[0]["Values"]
        if self.instance_id not in instance_ids:
            return {"Reservations": []}
        return {
            "Reservations": [
                {
                    "Instances": [
                        {
                            "InstanceId": self.instance_id,
                            "VpcId": self.vpc_id,
                            "SecurityGroups": [
                                {"GroupId": group_id, "GroupName": group_id}
                                for group_id in self.security_group_ids
                            ],
                        }
                    ]
                }
            ]
        }

    def _describe_subnets(self, Filters):
        if self.vpc_id not in Filters[0]["Values"]:
            return {"Subnets": []}
        subnets = []
        for subnet_id, map_public in self.subnets.items():
            subnet = {"SubnetId": subnet_id, "VpcId": self.vpc_id}
            if map_public is not None:
                subnet["MapPublicIpOnLaunch"] = map_public
            subnets.append(subnet)
        return {"Subnets": subnets}
