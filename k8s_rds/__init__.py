"""
Package exports
"""

# Local
from . import config, status, watch_manager
from .controller import Controller, DatabaseController, DBClusterController
from .deploy_manager import DeployManagerBase
from .exceptions import assert_cluster, assert_config, assert_discovery
from .provider import DatabaseProvider, ServiceProvider, get_provider
from .resources import Database, DBCluster
