"""
Describe calls against RDS as tagged results.

Every lifecycle operation starts by asking RDS whether something exists. A
"not found" answer is a normal branch (create, restore, skip) while any other
failure ends the reconcile, so describe calls return a DescribeResult instead
of raising for the not-found case.
"""

# Standard
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

# Third Party
from botocore.exceptions import BotoCoreError, ClientError

# First Party
import alog

# Local
from ...exceptions import ProvisioningError

log = alog.use_channel("RDSDS")

# Error codes RDS returns when the described resource does not exist
NOT_FOUND_CODES = frozenset(
    [
        "DBInstanceNotFound",
        "DBInstanceNotFoundFault",
        "DBSnapshotNotFound",
        "DBSnapshotNotFoundFault",
        "DBClusterNotFoundFault",
        "DBClusterSnapshotNotFoundFault",
        "DBSubnetGroupNotFoundFault",
    ]
)


class DescribeStatus(Enum):
    """Outcome of a describe call that did not fail"""

    FOUND = "FOUND"
    NOT_FOUND = "NOT_FOUND"


@dataclass
class DescribeResult:
    """Tagged describe result. The resource is only set when FOUND."""

    status: DescribeStatus
    resource: dict = field(default_factory=dict)

    @classmethod
    def found(cls, resource: dict) -> "DescribeResult":
        return cls(DescribeStatus.FOUND, resource)

    @classmethod
    def not_found(cls) -> "DescribeResult":
        return cls(DescribeStatus.NOT_FOUND)

    @property
    def is_found(self) -> bool:
        return self.status is DescribeStatus.FOUND


def error_code(err: ClientError) -> str:
    """Get the service error code out of a botocore ClientError"""
    return err.response.get("Error", {}).get("Code", "")


def call_api(operation: str, identifier: Optional[str], func: Callable, **kwargs) -> Any:
    """Run a single RDS/EC2 API call and wrap any failure with the operation
    name and the identifier it was made for

    Args:
        operation:  str
            Name of the API operation (used in the error message)
        identifier:  Optional[str]
            Identifier of the resource the call targets
        func:  Callable
            The bound boto3 client method
        **kwargs:
            Request parameters

    Returns:
        response:  Any
            The API response

    Raises:
        ProvisioningError: If the call fails for any reason
    """
    log.debug2("Calling %s for [%s]", operation, identifier)
    log.debug4("%s request: %s", operation, kwargs)
    try:
        return func(**kwargs)
    except ClientError as err:
        raise ProvisioningError(
            f"{error_code(err)}: {err}", operation=operation, identifier=identifier
        ) from err
    except BotoCoreError as err:
        raise ProvisioningError(
            str(err), operation=operation, identifier=identifier
        ) from err


def _describe(
    operation: str,
    identifier: str,
    func: Callable,
    list_key: str,
    **kwargs,
) -> DescribeResult:
    """Shared describe implementation mapping not-found codes and empty result
    lists to NOT_FOUND
    """
    try:
        response = func(**kwargs)
    except ClientError as err:
        code = error_code(err)
        if code in NOT_FOUND_CODES:
            log.debug2("%s: [%s] not found (%s)", operation, identifier, code)
            return DescribeResult.not_found()
        raise ProvisioningError(
            f"{code}: {err}", operation=operation, identifier=identifier
        ) from err
    except BotoCoreError as err:
        raise ProvisioningError(
            str(err), operation=operation, identifier=identifier
        ) from err

    items = response.get(list_key) or []
    if not items:
        log.debug2("%s: [%s] returned no items", operation, identifier)
        return DescribeResult.not_found()
    return DescribeResult.found(items[0])


## Public ######################################################################


def describe_db_instance(rds_client, identifier: str) -> DescribeResult:
    """Describe a DB instance by identifier"""
    return _describe(
        "DescribeDBInstances",
        identifier,
        rds_client.describe_db_instances,
        "DBInstances",
        DBInstanceIdentifier=identifier,
    )


def describe_db_snapshot(rds_client, identifier: str) -> DescribeResult:
    """Describe a DB snapshot by identifier"""
    return _describe(
        "DescribeDBSnapshots",
        identifier,
        rds_client.describe_db_snapshots,
        "DBSnapshots",
        DBSnapshotIdentifier=identifier,
    )


def describe_db_cluster(rds_client, identifier: str) -> DescribeResult:
    """Describe a DB cluster by identifier"""
    return _describe(
        "DescribeDBClusters",
        identifier,
        rds_client.describe_db_clusters,
        "DBClusters",
        DBClusterIdentifier=identifier,
    )


def describe_db_cluster_snapshot(rds_client, identifier: str) -> DescribeResult:
    """Describe a DB cluster snapshot by identifier"""
    return _describe(
        "DescribeDBClusterSnapshots",
        identifier,
        rds_client.describe_db_cluster_snapshots,
        "DBClusterSnapshots",
        DBClusterSnapshotIdentifier=identifier,
    )


def describe_db_subnet_group(rds_client, name: str) -> DescribeResult:
    """Describe a DB subnet group by name"""
    return _describe(
        "DescribeDBSubnetGroups",
        name,
        rds_client.describe_db_subnet_groups,
        "DBSubnetGroups",
        DBSubnetGroupName=name,
    )
