"""
Subnet group management. One subnet group is shared by every database created
in a VPC, so creation is ensure-or-create and deletion reports, rather than
hides, the cases where the group cannot go away yet.
"""

# Standard
from enum import Enum

# Third Party
from botocore.exceptions import BotoCoreError, ClientError

# First Party
import alog

# Local
from ... import constants
from ...exceptions import ProvisioningError, assert_discovery
from .describe import call_api, describe_db_subnet_group, error_code
from .discovery import NetworkEnvironment

log = alog.use_channel("RDSSG")


class SubnetGroupDeleteOutcome(Enum):
    """Classified result of deleting a subnet group"""

    DELETED = "DELETED"
    IN_USE = "IN_USE"
    NOT_FOUND = "NOT_FOUND"
    NOT_AVAILABLE = "NOT_AVAILABLE"


_DELETE_ERROR_OUTCOMES = {
    "InvalidDBSubnetGroupStateFault": SubnetGroupDeleteOutcome.IN_USE,
    "DBSubnetGroupNotFoundFault": SubnetGroupDeleteOutcome.NOT_FOUND,
    "InvalidDBSubnetStateFault": SubnetGroupDeleteOutcome.NOT_AVAILABLE,
}


def ensure_subnet_group(rds_client, environment: NetworkEnvironment) -> str:
    """Make sure the subnet group for the environment's VPC exists

    Args:
        rds_client:
            boto3 RDS client
        environment:  NetworkEnvironment
            The discovered network

    Returns:
        name:  str
            The subnet group name

    Raises:
        DiscoveryError: If the group must be created but no subnets were found
        ProvisioningError: If a describe or create call fails
    """
    name = environment.subnet_group_name
    if describe_db_subnet_group(rds_client, name).is_found:
        log.debug("Subnet group %s already exists", name)
        return name

    assert_discovery(
        environment.subnet_ids,
        f"unable to create subnet group {name}: no subnets found in VPC {environment.vpc_id}",
    )
    log.info("Creating subnet group %s with subnets %s", name, environment.subnet_ids)
    call_api(
        "CreateDBSubnetGroup",
        name,
        rds_client.create_db_subnet_group,
        DBSubnetGroupName=name,
        DBSubnetGroupDescription=f"RDS Subnet Group for VPC: {environment.vpc_id}",
        SubnetIds=environment.subnet_ids,
        Tags=[
            {
                "Key": constants.SUBNET_GROUP_TAG_KEY,
                "Value": constants.SUBNET_GROUP_TAG_VALUE,
            }
        ],
    )
    return name


def delete_subnet_group(rds_client, name: str) -> SubnetGroupDeleteOutcome:
    """Try to delete a subnet group and classify the result

    Raises:
        ProvisioningError: For any error that is not a known outcome
    """
    try:
        rds_client.delete_db_subnet_group(DBSubnetGroupName=name)
    except ClientError as err:
        code = error_code(err)
        outcome = _DELETE_ERROR_OUTCOMES.get(code)
        if outcome is None:
            raise ProvisioningError(
                f"{code}: {err}", operation="DeleteDBSubnetGroup", identifier=name
            ) from err
        return outcome
    except BotoCoreError as err:
        raise ProvisioningError(
            str(err), operation="DeleteDBSubnetGroup", identifier=name
        ) from err
    return SubnetGroupDeleteOutcome.DELETED


def log_subnet_group_outcome(name: str, outcome: SubnetGroupDeleteOutcome):
    """Report a subnet group delete outcome"""
    if outcome is SubnetGroupDeleteOutcome.DELETED:
        log.info("Deleted subnet group %s", name)
    elif outcome is SubnetGroupDeleteOutcome.IN_USE:
        log.warning("Subnet group %s is still in use and was not deleted", name)
    elif outcome is SubnetGroupDeleteOutcome.NOT_FOUND:
        log.warning("Subnet group %s was not found", name)
    else:
        log.warning("Subnet group %s is not in an available state", name)
