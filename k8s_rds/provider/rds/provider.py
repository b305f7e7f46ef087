"""
The AWS RDS DatabaseProvider
"""

# Standard
from typing import Optional
import threading

# Third Party
from botocore.config import Config as BotoConfig
import boto3

# First Party
import alog

# Local
from ... import config
from ...deploy_manager import DeployManagerBase
from ...resources import Database, DBCluster
from ..base import DatabaseProvider
from ..service import KubeServiceAccessor
from . import cluster as cluster_ops
from . import instance as instance_ops
from .discovery import (
    NetworkEnvironment,
    discover_environment,
    get_first_node,
    get_node_region,
)

log = alog.use_channel("RDSPV")


def make_client_config(region: Optional[str]) -> BotoConfig:
    """The botocore client config shared by the RDS and EC2 clients"""
    return BotoConfig(
        region_name=region,
        retries={"max_attempts": config.aws.max_attempts, "mode": "standard"},
    )


class RDSProvider(DatabaseProvider):
    """DatabaseProvider backed by AWS RDS. Endpoints are published as
    ExternalName Services.
    """

    def __init__(
        self,
        rds_client,
        ec2_client,
        environment: NetworkEnvironment,
        services: KubeServiceAccessor,
        shutdown: Optional[threading.Event] = None,
    ):
        """
        Args:
            rds_client:
                boto3 RDS client
            ec2_client:
                boto3 EC2 client
            environment:  NetworkEnvironment
                The discovered network new databases are attached to
            services:  KubeServiceAccessor
                Accessor for Services and Secrets in the cluster
            shutdown:  Optional[threading.Event]
                Event that cancels availability waits
        """
        self.rds_client = rds_client
        self.ec2_client = ec2_client
        self.environment = environment
        self.services = services
        self.shutdown = shutdown or threading.Event()

    @classmethod
    def from_cluster(
        cls,
        deploy_manager: DeployManagerBase,
        public: bool = False,
        shutdown: Optional[threading.Event] = None,
    ) -> "RDSProvider":
        """Build the provider by resolving the region and the network from the
        first node of the cluster

        Raises:
            DiscoveryError: If nodes or the network cannot be resolved
            ProvisioningError: If an EC2 call fails
        """
        node = get_first_node(deploy_manager)
        region = get_node_region(node)
        log.debug("Using region %s", region)
        client_config = make_client_config(region)
        rds_client = boto3.client("rds", config=client_config)
        ec2_client = boto3.client("ec2", config=client_config)
        environment = discover_environment(ec2_client, node, public, region)
        return cls(
            rds_client=rds_client,
            ec2_client=ec2_client,
            environment=environment,
            services=KubeServiceAccessor(deploy_manager),
            shutdown=shutdown,
        )

    ## Database ################################################################

    def create_database(self, db: Database) -> str:
        return instance_ops.create_instance(
            self.rds_client, self.environment, db, self.get_secret, self.shutdown
        )

    def update_database(self, db: Database):
        instance_ops.update_instance(self.rds_client, db, self.shutdown)

    def delete_database(self, db: Database):
        instance_ops.delete_instance(
            self.rds_client, self.environment, db, self.shutdown
        )

    ## DBCluster ###############################################################

    def create_db_cluster(self, cluster: DBCluster) -> str:
        return cluster_ops.create_cluster(
            self.rds_client, self.environment, cluster, self.get_secret, self.shutdown
        )

    def update_db_cluster(self, cluster: DBCluster):
        cluster_ops.update_cluster(self.rds_client, cluster, self.shutdown)

    def delete_db_cluster(self, cluster: DBCluster):
        cluster_ops.delete_cluster(
            self.rds_client, self.environment, cluster, self.shutdown
        )

    ## Service #################################################################

    def create_service(self, namespace: str, hostname: str, name: str):
        self.services.create_service(namespace, hostname, name)

    def delete_service(self, namespace: str, name: str):
        self.services.delete_service(namespace, name)

    def get_secret(self, namespace: str, secret_name: str, key: str) -> str:
        return self.services.get_secret(namespace, secret_name, key)
