"""
Database providers and the factory that picks one per resource
"""

# Standard
from typing import Optional
import threading

# First Party
import alog

# Local
from .. import constants
from ..deploy_manager import DeployManagerBase
from ..exceptions import ConfigError
from ..resources import ResourceBase, get_provider_name
from .base import DatabaseProvider, ServiceProvider
from .local import LocalProvider
from .rds import RDSProvider
from .service import KubeServiceAccessor

log = alog.use_channel("PROVD")


def get_provider(
    resource: ResourceBase,
    deploy_manager: DeployManagerBase,
    shutdown: Optional[threading.Event] = None,
) -> DatabaseProvider:
    """Construct the provider selected for a resource

    Args:
        resource:  ResourceBase
            The parsed resource. Its provider field wins over config.provider.
        deploy_manager:  DeployManagerBase
            The deploy manager the provider talks to the cluster with
        shutdown:  Optional[threading.Event]
            Event that cancels long running waits

    Returns:
        provider:  DatabaseProvider
            The constructed provider

    Raises:
        ConfigError: If the provider name is unknown
    """
    name = get_provider_name(resource)
    log.debug2("Using provider [%s] for [%s/%s]", name, resource.namespace, resource.name)
    if name == constants.AWS_PROVIDER:
        return RDSProvider.from_cluster(
            deploy_manager,
            public=bool(resource.publicly_accessible),
            shutdown=shutdown,
        )
    if name == constants.LOCAL_PROVIDER:
        return LocalProvider(deploy_manager, shutdown=shutdown)
    raise ConfigError(f"Unknown provider [{name}]")
