"""
CustomResourceDefinition manifests for the Database and DBCluster kinds and
the startup registration that applies them
"""

# Standard
from typing import List

# First Party
import alog

# Local
from . import constants
from .deploy_manager import DeployManagerBase
from .exceptions import assert_cluster

log = alog.use_channel("CRD")

CRD_API_VERSION = "apiextensions.k8s.io/v1"
CRD_KIND = "CustomResourceDefinition"

## Schemas #####################################################################


def _string(description: str, **kwargs) -> dict:
    return {"type": "string", "description": description, **kwargs}


def _integer(description: str, **kwargs) -> dict:
    return {"type": "integer", "description": description, **kwargs}


def _boolean(description: str) -> dict:
    return {"type": "boolean", "description": description}


def _secret_ref(description: str) -> dict:
    return {
        "type": "object",
        "description": description,
        "properties": {
            "name": _string("Name of the secret"),
            "key": _string("Key within the secret"),
        },
    }


_NAME_PATTERN = r"^[A-Za-z]\w+$"
_STORAGE_TYPE_PATTERN = r"^(gp2|gp3|io1|standard)$"

_STATUS_SCHEMA = {
    "type": "object",
    "properties": {
        "state": _string("State of the deploy"),
        "message": _string("Detailed message around the state"),
    },
}

_DATABASE_SPEC_SCHEMA = {
    "username": _string(
        "User Name to access the database",
        minLength=1,
        maxLength=16,
        pattern=_NAME_PATTERN,
    ),
    "password": _secret_ref("Secret holding the master password"),
    "dbname": _string(
        "Database name", minLength=1, maxLength=63, pattern=_NAME_PATTERN
    ),
    "engine": _string("database engine. Ex: postgres, mysql, aurora-postgresql"),
    "version": _string("database engine version. ex 5.1.49"),
    "class": _string("instance class name. Ex: db.m5.24xlarge or db.m3.medium"),
    "size": _integer("Database size in Gb", minimum=20, maximum=64000),
    "MaxAllocatedSize": _integer(
        "Maximum size in Gb when storage autoscaling", minimum=20, maximum=64000
    ),
    "multiaz": _boolean("should it be available in multiple availability zones?"),
    "publicaccess": _boolean("is the database publicly accessible?"),
    "encrypted": _boolean("should the storage be encrypted?"),
    "storagetype": _string(
        "gp2, gp3, io1 or standard", pattern=_STORAGE_TYPE_PATTERN
    ),
    "iops": _integer("I/O operations per second", minimum=1000, maximum=80000),
    "backupretentionperiod": _integer(
        "Retention period in days. 0 means disabled", minimum=0, maximum=35
    ),
    "deleteprotection": _boolean("Enable or disable deletion protection"),
    "tags": _string("Tags to create on the instance, format key=value,key1=value1"),
    "provider": _string("aws or local"),
    "skipfinalsnapshot": _boolean("Skip the final snapshot on delete"),
    "applyimmediately": _boolean("Apply modifications outside the maintenance window"),
    "snapshotidentifier": _string("Snapshot to restore the instance from"),
    "dbclusteridentifier": _string("Identifier of the owning DBCluster"),
    "dbinstanceidentifier": _string("Explicit instance identifier"),
}

_DBCLUSTER_SPEC_SCHEMA = {
    "DBName": _string(
        "Database name", minLength=1, maxLength=63, pattern=_NAME_PATTERN
    ),
    "MasterUsername": _string(
        "Master user name", minLength=1, maxLength=16, pattern=_NAME_PATTERN
    ),
    "MasterUserPassword": _secret_ref("Secret holding the master password"),
    "DBClusterIdentifier": _string("Explicit cluster identifier"),
    "Engine": _string("database engine. Ex: aurora-postgresql"),
    "EngineVersion": _string("database engine version"),
    "AllocatedStorage": _integer("Storage in Gb"),
    "BackupRetentionPeriod": _integer(
        "Retention period in days", minimum=0, maximum=35
    ),
    "DBClusterInstanceClass": _string("instance class of the cluster members"),
    "DeletionProtection": _boolean("Enable or disable deletion protection"),
    "Iops": _integer("I/O operations per second", minimum=1000, maximum=80000),
    "Port": _integer("Port the cluster listens on", minimum=1150, maximum=65535),
    "storagetype": _string("Storage type", pattern=_STORAGE_TYPE_PATTERN),
    "provider": _string("aws or local"),
    "tags": _string("Tags to create on the cluster, format key=value,key1=value1"),
    "encrypted": _boolean("should the storage be encrypted?"),
    "ServerlessV2ScalingConfiguration": {
        "type": "object",
        "properties": {
            "MinCapacity": {"type": "number", "minimum": 0.5, "maximum": 128},
            "MaxCapacity": {"type": "number", "minimum": 0.5, "maximum": 128},
        },
    },
    "MultiAZ": _boolean("should it be available in multiple availability zones?"),
    "SkipFinalSnapshot": _boolean("Skip the final snapshot on delete"),
    "PubliclyAccessible": _boolean("is the cluster publicly accessible?"),
    "ApplyImmediately": _boolean("Apply modifications outside the maintenance window"),
    "SnapshotIdentifier": _string("Snapshot to restore the cluster from"),
}

## Public ######################################################################


def make_crd(
    kind: str,
    plural: str,
    spec_properties: dict,
    short_names: List[str] = None,
) -> dict:
    """Build a namespaced CRD manifest for one kind with a status subresource

    Args:
        kind:  str
            The kind name (e.g. Database)
        plural:  str
            The plural resource name (e.g. databases)
        spec_properties:  dict
            openAPIV3Schema properties for the spec
        short_names:  List[str]
            Optional short names for kubectl

    Returns:
        crd:  dict
            The full CustomResourceDefinition manifest
    """
    names = {"plural": plural, "kind": kind}
    if short_names:
        names["shortNames"] = short_names
    return {
        "apiVersion": CRD_API_VERSION,
        "kind": CRD_KIND,
        "metadata": {"name": f"{plural}.{constants.GROUP}"},
        "spec": {
            "group": constants.GROUP,
            "scope": "Namespaced",
            "names": names,
            "versions": [
                {
                    "name": constants.VERSION,
                    "served": True,
                    "storage": True,
                    "subresources": {"status": {}},
                    "schema": {
                        "openAPIV3Schema": {
                            "type": "object",
                            "properties": {
                                "spec": {
                                    "type": "object",
                                    "x-kubernetes-preserve-unknown-fields": True,
                                    "properties": spec_properties,
                                },
                                "status": _STATUS_SCHEMA,
                            },
                        }
                    },
                }
            ],
        },
    }


def database_crd() -> dict:
    """The CRD for the Database kind"""
    return make_crd(
        constants.DATABASE_KIND, constants.DATABASE_PLURAL, _DATABASE_SPEC_SCHEMA
    )


def dbcluster_crd() -> dict:
    """The CRD for the DBCluster kind"""
    return make_crd(
        constants.DBCLUSTER_KIND,
        constants.DBCLUSTER_PLURAL,
        _DBCLUSTER_SPEC_SCHEMA,
        short_names=[constants.DBCLUSTER_SHORT_NAME],
    )


def register_crds(deploy_manager: DeployManagerBase):
    """Apply both CRDs. An existing CRD is updated in place.

    Raises:
        ClusterError: If either CRD could not be applied
    """
    for crd in [database_crd(), dbcluster_crd()]:
        log.info("Registering CRD %s", crd["metadata"]["name"])
        success, changed = deploy_manager.deploy([crd])
        assert_cluster(success, f"Failed to register CRD {crd['metadata']['name']}")
        log.debug2("CRD %s changed? %s", crd["metadata"]["name"], changed)
