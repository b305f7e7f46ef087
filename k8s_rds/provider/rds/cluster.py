"""
DB cluster lifecycle: create or restore, update and delete (with cascading
delete of the cluster's member instances)
"""

# Standard
from typing import Callable, Optional
import threading

# First Party
import alog

# Local
from ...exceptions import K8sRdsError, ProvisioningError
from ...resources import DBCluster
from .describe import (
    call_api,
    describe_db_cluster,
    describe_db_cluster_snapshot,
    describe_db_instance,
)
from .discovery import NetworkEnvironment
from .instance import DELETING, INSTANCE_STATUS_KEY, final_snapshot_identifier
from .subnet_group import delete_subnet_group, ensure_subnet_group, log_subnet_group_outcome
from .tags import build_tags
from .waiter import wait_for_availability

log = alog.use_channel("RDSCL")

CLUSTER_STATUS_KEY = "Status"

## Inputs ######################################################################


def _set_if(params: dict, key: str, value):
    if value not in (None, "", 0):
        params[key] = value


def _scaling(cluster: DBCluster) -> Optional[dict]:
    """The serverless v2 scaling block, only when both bounds are set"""
    scaling = cluster.scaling
    if (
        scaling is None
        or scaling.min_capacity is None
        or scaling.max_capacity is None
    ):
        return None
    return {
        "MinCapacity": scaling.min_capacity,
        "MaxCapacity": scaling.max_capacity,
    }


def _common_inputs(cluster: DBCluster, params: dict) -> dict:
    """Optional parameters shared by create and restore"""
    _set_if(params, "EngineVersion", cluster.engine_version)
    _set_if(params, "DatabaseName", cluster.db_name)
    _set_if(params, "Port", cluster.port)
    _set_if(params, "DBClusterInstanceClass", cluster.instance_class)
    _set_if(params, "StorageType", cluster.storage_type)
    _set_if(params, "Iops", cluster.iops)
    _set_if(params, "ServerlessV2ScalingConfiguration", _scaling(cluster))
    if cluster.publicly_accessible is not None:
        params["PubliclyAccessible"] = cluster.publicly_accessible
    return params


def create_cluster_input(
    cluster: DBCluster,
    subnet_group: str,
    security_group_ids: list,
    password: str,
) -> dict:
    """Build the CreateDBCluster parameters for a DBCluster"""
    params = {
        "DBClusterIdentifier": cluster.cluster_identifier,
        "Engine": cluster.engine,
        "MasterUsername": cluster.master_username,
        "MasterUserPassword": password,
        "DBSubnetGroupName": subnet_group,
        "VpcSecurityGroupIds": list(security_group_ids or []),
        "StorageEncrypted": cluster.storage_encrypted,
        "DeletionProtection": cluster.deletion_protection,
        "Tags": build_tags(cluster.annotations, cluster.labels, cluster.tags),
    }
    _set_if(params, "AllocatedStorage", cluster.allocated_storage)
    if cluster.backup_retention_period is not None:
        params["BackupRetentionPeriod"] = cluster.backup_retention_period
    return _common_inputs(cluster, params)


def restore_cluster_input(
    cluster: DBCluster,
    subnet_group: str,
    security_group_ids: list,
) -> dict:
    """Build the RestoreDBClusterFromSnapshot parameters for a DBCluster"""
    params = {
        "DBClusterIdentifier": cluster.cluster_identifier,
        "SnapshotIdentifier": cluster.snapshot_identifier,
        "Engine": cluster.engine,
        "DBSubnetGroupName": subnet_group,
        "VpcSecurityGroupIds": list(security_group_ids or []),
        "DeletionProtection": cluster.deletion_protection,
        "Tags": build_tags(cluster.annotations, cluster.labels, cluster.tags),
    }
    return _common_inputs(cluster, params)


def modify_cluster_input(cluster: DBCluster) -> dict:
    """Build the ModifyDBCluster parameters. Numbers and strings are only sent
    when set.
    """
    params = {
        "DBClusterIdentifier": cluster.cluster_identifier,
        "ApplyImmediately": cluster.apply_immediately,
        "DeletionProtection": cluster.deletion_protection,
    }
    _set_if(params, "EngineVersion", cluster.engine_version)
    _set_if(params, "Port", cluster.port)
    _set_if(params, "AllocatedStorage", cluster.allocated_storage)
    _set_if(params, "DBClusterInstanceClass", cluster.instance_class)
    _set_if(params, "StorageType", cluster.storage_type)
    _set_if(params, "Iops", cluster.iops)
    _set_if(params, "ServerlessV2ScalingConfiguration", _scaling(cluster))
    if cluster.backup_retention_period is not None:
        params["BackupRetentionPeriod"] = cluster.backup_retention_period
    return params


def delete_cluster_input(cluster: DBCluster, timestamp: Optional[int] = None) -> dict:
    """Build the DeleteDBCluster parameters with the final snapshot policy"""
    params = {
        "DBClusterIdentifier": cluster.cluster_identifier,
        "SkipFinalSnapshot": cluster.skip_final_snapshot,
    }
    if not cluster.skip_final_snapshot:
        params["FinalDBSnapshotIdentifier"] = final_snapshot_identifier(
            cluster, timestamp
        )
    return params


## Lifecycle ###################################################################


def _wait(rds_client, identifier: str, shutdown: Optional[threading.Event]) -> dict:
    return wait_for_availability(
        lambda: describe_db_cluster(rds_client, identifier),
        CLUSTER_STATUS_KEY,
        identifier,
        shutdown,
    )


def create_cluster(
    rds_client,
    environment: NetworkEnvironment,
    cluster: DBCluster,
    get_secret: Callable[[str, str, str], str],
    shutdown: Optional[threading.Event] = None,
) -> str:
    """Create, restore or find the backend cluster and wait for it

    Returns:
        hostname:  str
            The cluster (writer) endpoint
    """
    identifier = cluster.cluster_identifier
    subnet_group = ensure_subnet_group(rds_client, environment)

    if describe_db_cluster(rds_client, identifier).is_found:
        log.info("DB cluster %s already exists", identifier)
    elif cluster.snapshot_identifier and describe_db_cluster_snapshot(
        rds_client, cluster.snapshot_identifier
    ).is_found:
        log.info(
            "Restoring DB cluster %s from snapshot %s",
            identifier,
            cluster.snapshot_identifier,
        )
        call_api(
            "RestoreDBClusterFromSnapshot",
            identifier,
            rds_client.restore_db_cluster_from_snapshot,
            **restore_cluster_input(
                cluster, subnet_group, environment.security_group_ids
            ),
        )
    else:
        if cluster.snapshot_identifier:
            log.warning(
                "Cluster snapshot %s not found. Creating DB cluster %s from scratch",
                cluster.snapshot_identifier,
                identifier,
            )
        password = get_secret(
            cluster.namespace,
            cluster.master_user_password.name,
            cluster.master_user_password.key,
        )
        log.info("Creating DB cluster %s", identifier)
        call_api(
            "CreateDBCluster",
            identifier,
            rds_client.create_db_cluster,
            **create_cluster_input(
                cluster, subnet_group, environment.security_group_ids, password
            ),
        )

    resource = _wait(rds_client, identifier, shutdown)
    hostname = resource.get("Endpoint")
    if not hostname:
        raise ProvisioningError(
            "no endpoint on the available cluster",
            operation="DescribeDBClusters",
            identifier=identifier,
        )
    return hostname


def update_cluster(
    rds_client,
    cluster: DBCluster,
    shutdown: Optional[threading.Event] = None,
):
    """Apply the mutable fields of a DBCluster to its backend cluster"""
    identifier = cluster.cluster_identifier
    _wait(rds_client, identifier, shutdown)
    params = modify_cluster_input(cluster)
    call_api("ModifyDBCluster", identifier, rds_client.modify_db_cluster, **params)
    if params["ApplyImmediately"]:
        log.info("DB cluster %s modified and will be updated immediately", identifier)
    else:
        log.info(
            "DB cluster %s modified and the update is pending until the next maintenance window",
            identifier,
        )
    _wait(rds_client, identifier, shutdown)


def _delete_member(rds_client, member_id: str, shutdown: Optional[threading.Event]):
    """Delete one member instance of a cluster unless it is gone or going"""
    member = describe_db_instance(rds_client, member_id)
    if not member.is_found:
        log.info("Cluster member %s not found. Skipping", member_id)
        return
    if member.resource.get(INSTANCE_STATUS_KEY) == DELETING:
        log.info("Cluster member %s is already being deleted", member_id)
        return

    wait_for_availability(
        lambda: describe_db_instance(rds_client, member_id),
        INSTANCE_STATUS_KEY,
        member_id,
        shutdown,
    )
    call_api(
        "DeleteDBInstance",
        member_id,
        rds_client.delete_db_instance,
        DBInstanceIdentifier=member_id,
        SkipFinalSnapshot=True,
    )
    log.info("Deleted cluster member %s", member_id)


def delete_cluster(
    rds_client,
    environment: NetworkEnvironment,
    cluster: DBCluster,
    shutdown: Optional[threading.Event] = None,
    timestamp: Optional[int] = None,
):
    """Delete the member instances, then the cluster itself, then the subnet
    group. A member that fails to delete is logged and skipped.
    """
    identifier = cluster.cluster_identifier
    if cluster.deletion_protection:
        log.warning(
            "Not deleting %s in %s since it is a delete protected cluster",
            cluster.name,
            cluster.namespace,
        )
        return

    existing = describe_db_cluster(rds_client, identifier)
    if not existing.is_found:
        log.warning("DB cluster %s not found. Nothing to delete", identifier)
        return
    if existing.resource.get(CLUSTER_STATUS_KEY) == DELETING:
        log.info("DB cluster %s is already being deleted", identifier)
        return

    resource = _wait(rds_client, identifier, shutdown)
    for member in resource.get("DBClusterMembers") or []:
        member_id = member.get("DBInstanceIdentifier")
        try:
            _delete_member(rds_client, member_id, shutdown)
        except K8sRdsError as err:
            log.warning("Failed to delete cluster member %s: %s", member_id, err)

    params = delete_cluster_input(cluster, timestamp)
    call_api("DeleteDBCluster", identifier, rds_client.delete_db_cluster, **params)
    if not params["SkipFinalSnapshot"]:
        log.info(
            "Will create DB cluster final snapshot: %s",
            params["FinalDBSnapshotIdentifier"],
        )

    name = environment.subnet_group_name
    log_subnet_group_outcome(name, delete_subnet_group(rds_client, name))
