"""
DB instance lifecycle: create or restore, update and delete.

Instances are addressed by a deterministic identifier so that a redelivered
event always targets the same backend instance. Instances that belong to a
DBCluster get their network, credentials and storage from the cluster.
"""

# Standard
from typing import Callable, Optional
import threading
import time

# First Party
import alog

# Local
from ...exceptions import ProvisioningError
from ...resources import Database
from .describe import call_api, describe_db_instance, describe_db_snapshot
from .discovery import NetworkEnvironment
from .subnet_group import delete_subnet_group, ensure_subnet_group, log_subnet_group_outcome
from .tags import build_tags
from .waiter import wait_for_availability

log = alog.use_channel("RDSIN")

INSTANCE_STATUS_KEY = "DBInstanceStatus"
DELETING = "deleting"

## Inputs ######################################################################


def final_snapshot_identifier(resource, timestamp: Optional[int] = None) -> str:
    """The final snapshot name: <name>-<namespace>-<unix nanoseconds>"""
    timestamp = time.time_ns() if timestamp is None else timestamp
    return f"{resource.name}-{resource.namespace}-{timestamp}"


def _set_if(params: dict, key: str, value):
    """Only set a parameter when it carries a value"""
    if value not in (None, "", 0):
        params[key] = value


def create_instance_input(
    db: Database,
    subnet_group: Optional[str] = None,
    security_group_ids: Optional[list] = None,
    password: Optional[str] = None,
) -> dict:
    """Build the CreateDBInstance parameters for a Database"""
    params = {
        "DBInstanceIdentifier": db.instance_identifier,
        "DBInstanceClass": db.instance_class,
        "Engine": db.engine,
        "PubliclyAccessible": db.publicly_accessible,
        "Tags": build_tags(db.annotations, db.labels, db.tags),
    }
    if db.is_cluster_member:
        params["DBClusterIdentifier"] = db.db_cluster_identifier
        return params

    params.update(
        {
            "MasterUsername": db.username,
            "MasterUserPassword": password,
            "DBSubnetGroupName": subnet_group,
            "VpcSecurityGroupIds": list(security_group_ids or []),
            "MultiAZ": db.multi_az,
            "StorageEncrypted": db.storage_encrypted,
            "DeletionProtection": db.delete_protection,
        }
    )
    _set_if(params, "DBName", db.db_name)
    _set_if(params, "AllocatedStorage", db.size)
    _set_if(params, "MaxAllocatedStorage", db.max_allocated_size)
    _set_if(params, "EngineVersion", db.version)
    _set_if(params, "StorageType", db.storage_type)
    _set_if(params, "Iops", db.iops)
    if db.backup_retention_period is not None:
        params["BackupRetentionPeriod"] = db.backup_retention_period
    return params


def restore_instance_input(
    db: Database,
    subnet_group: Optional[str] = None,
    security_group_ids: Optional[list] = None,
) -> dict:
    """Build the RestoreDBInstanceFromDBSnapshot parameters for a Database"""
    params = {
        "DBInstanceIdentifier": db.instance_identifier,
        "DBSnapshotIdentifier": db.snapshot_identifier,
        "PubliclyAccessible": db.publicly_accessible,
        "Tags": build_tags(db.annotations, db.labels, db.tags),
    }
    _set_if(params, "DBInstanceClass", db.instance_class)
    _set_if(params, "Engine", db.engine)
    if db.is_cluster_member:
        params["DBClusterIdentifier"] = db.db_cluster_identifier
        return params

    params.update(
        {
            "DBSubnetGroupName": subnet_group,
            "VpcSecurityGroupIds": list(security_group_ids or []),
            "MultiAZ": db.multi_az,
            "DeletionProtection": db.delete_protection,
        }
    )
    _set_if(params, "StorageType", db.storage_type)
    _set_if(params, "Iops", db.iops)
    return params


def modify_instance_input(db: Database) -> dict:
    """Build the ModifyDBInstance parameters. Numbers and strings are only
    sent when set so that unset fields never reset the backend.
    """
    params = {
        "DBInstanceIdentifier": db.instance_identifier,
        "ApplyImmediately": db.apply_immediately,
        "PubliclyAccessible": db.publicly_accessible,
    }
    _set_if(params, "DBInstanceClass", db.instance_class)
    if db.is_cluster_member:
        return params

    params.update(
        {
            "MultiAZ": db.multi_az,
            "DeletionProtection": db.delete_protection,
        }
    )
    _set_if(params, "AllocatedStorage", db.size)
    _set_if(params, "MaxAllocatedStorage", db.max_allocated_size)
    _set_if(params, "EngineVersion", db.version)
    _set_if(params, "StorageType", db.storage_type)
    _set_if(params, "Iops", db.iops)
    if db.backup_retention_period is not None:
        params["BackupRetentionPeriod"] = db.backup_retention_period
    return params


def delete_instance_input(db: Database, timestamp: Optional[int] = None) -> dict:
    """Build the DeleteDBInstance parameters with the final snapshot policy.
    Cluster members never take their own final snapshot.
    """
    skip_final_snapshot = db.skip_final_snapshot or db.is_cluster_member
    params = {
        "DBInstanceIdentifier": db.instance_identifier,
        "SkipFinalSnapshot": skip_final_snapshot,
    }
    if not skip_final_snapshot:
        params["FinalDBSnapshotIdentifier"] = final_snapshot_identifier(db, timestamp)
    return params


## Lifecycle ###################################################################


def _wait(rds_client, identifier: str, shutdown: Optional[threading.Event]) -> dict:
    return wait_for_availability(
        lambda: describe_db_instance(rds_client, identifier),
        INSTANCE_STATUS_KEY,
        identifier,
        shutdown,
    )


def create_instance(
    rds_client,
    environment: NetworkEnvironment,
    db: Database,
    get_secret: Callable[[str, str, str], str],
    shutdown: Optional[threading.Event] = None,
) -> str:
    """Create, restore or find the instance for a Database and wait for it

    Args:
        rds_client:
            boto3 RDS client
        environment:  NetworkEnvironment
            The discovered network
        db:  Database
            The resource to create the instance for
        get_secret:  Callable[[str, str, str], str]
            Resolves (namespace, secret name, key) to the password
        shutdown:  Optional[threading.Event]
            Event that cancels the availability wait

    Returns:
        hostname:  str
            The endpoint address of the available instance
    """
    identifier = db.instance_identifier
    subnet_group = None
    if not db.is_cluster_member:
        subnet_group = ensure_subnet_group(rds_client, environment)

    if describe_db_instance(rds_client, identifier).is_found:
        log.info("DB instance %s already exists", identifier)
    elif db.snapshot_identifier and describe_db_snapshot(
        rds_client, db.snapshot_identifier
    ).is_found:
        log.info(
            "Restoring DB instance %s from snapshot %s",
            identifier,
            db.snapshot_identifier,
        )
        call_api(
            "RestoreDBInstanceFromDBSnapshot",
            identifier,
            rds_client.restore_db_instance_from_db_snapshot,
            **restore_instance_input(
                db, subnet_group, environment.security_group_ids
            ),
        )
    else:
        if db.snapshot_identifier:
            log.warning(
                "Snapshot %s not found. Creating DB instance %s from scratch",
                db.snapshot_identifier,
                identifier,
            )
        password = None
        if not db.is_cluster_member:
            password = get_secret(db.namespace, db.password.name, db.password.key)
        log.info("Creating DB instance %s", identifier)
        call_api(
            "CreateDBInstance",
            identifier,
            rds_client.create_db_instance,
            **create_instance_input(
                db, subnet_group, environment.security_group_ids, password
            ),
        )

    instance = _wait(rds_client, identifier, shutdown)
    hostname = (instance.get("Endpoint") or {}).get("Address")
    if not hostname:
        raise ProvisioningError(
            "no endpoint address on the available instance",
            operation="DescribeDBInstances",
            identifier=identifier,
        )
    return hostname


def update_instance(
    rds_client,
    db: Database,
    shutdown: Optional[threading.Event] = None,
):
    """Apply the mutable fields of a Database to its instance"""
    identifier = db.instance_identifier
    _wait(rds_client, identifier, shutdown)
    params = modify_instance_input(db)
    call_api("ModifyDBInstance", identifier, rds_client.modify_db_instance, **params)
    if params["ApplyImmediately"]:
        log.info("DB instance %s modified and will be updated immediately", identifier)
    else:
        log.info(
            "DB instance %s modified and the update is pending until the next maintenance window",
            identifier,
        )
    _wait(rds_client, identifier, shutdown)


def delete_instance(
    rds_client,
    environment: NetworkEnvironment,
    db: Database,
    shutdown: Optional[threading.Event] = None,
    timestamp: Optional[int] = None,
):
    """Delete the instance of a Database, honoring deletion protection and
    the final snapshot policy, then clean up the subnet group
    """
    identifier = db.instance_identifier
    if db.delete_protection:
        log.warning(
            "Not deleting %s in %s since it is a delete protected database",
            db.name,
            db.namespace,
        )
        return

    existing = describe_db_instance(rds_client, identifier)
    if not existing.is_found:
        log.warning("DB instance %s not found. Nothing to delete", identifier)
        return
    if existing.resource.get(INSTANCE_STATUS_KEY) == DELETING:
        log.info("DB instance %s is already being deleted", identifier)
        return

    params = delete_instance_input(db, timestamp)
    _wait(rds_client, identifier, shutdown)
    call_api("DeleteDBInstance", identifier, rds_client.delete_db_instance, **params)
    if not params["SkipFinalSnapshot"]:
        log.info("Will create DB final snapshot: %s", params["FinalDBSnapshotIdentifier"])

    if not db.is_cluster_member:
        name = environment.subnet_group_name
        log_subnet_group_outcome(name, delete_subnet_group(rds_client, name))
