"""
The Controller classes turn Database and DBCluster change events into provider
calls and write the resulting state back onto the resource's status.

Status transitions on add:

    "" -> Creating -> Created
                   -> Failed (with the error text)

and on update (only when a tracked field changed):

    * -> Updated
      -> Failed (with the error text)

Deletes never touch the status since the resource is on its way out.
"""

# Standard
from typing import Callable, Optional, Type
import abc
import threading

# First Party
import alog

# Local
from . import config, constants
from .deploy_manager import DeployManagerBase, KubeEventType, KubeWatchEvent
from .exceptions import ConfigError, StatusUpdateError, assert_config
from .managed_object import ManagedObject
from .provider import DatabaseProvider, get_provider
from .resources import (
    Database,
    DBCluster,
    ResourceBase,
    get_provider_name,
    validate_spec,
)
from .status import ResourceState, get_state, make_status
from .utils import parse_namespace_list

## Globals #####################################################################

log = alog.use_channel("CTRLR")

ProviderFactory = Callable[
    [ResourceBase, DeployManagerBase, Optional[threading.Event]], DatabaseProvider
]


## Controller ##################################################################


class Controller(abc.ABC):
    """A Controller handles the events of a single custom resource kind. The
    kind specific parts are the typed resource view and the three provider
    calls. Everything else (namespace filtering, the status state machine and
    error handling) lives here.
    """

    # Derived classes must set the kind and the typed resource class
    group = constants.GROUP
    version = constants.VERSION
    kind = None
    resource_type: Type[ResourceBase] = None

    def __init__(
        self,
        deploy_manager: DeployManagerBase,
        provider_factory: Optional[ProviderFactory] = None,
        shutdown: Optional[threading.Event] = None,
    ):
        """
        Args:
            deploy_manager:  DeployManagerBase
                The deploy manager used for status writes and cluster lookups
            provider_factory:  Optional[ProviderFactory]
                Function constructing the provider for a resource. Defaults to
                get_provider.
            shutdown:  Optional[threading.Event]
                Event passed to providers to cancel long running waits

        Raises:
            ConfigError: If both namespace filters are set
        """
        assert self.kind, "Controller.kind must be a non-empty string"
        assert self.resource_type, "Controller.resource_type must be set"
        self.deploy_manager = deploy_manager
        self.provider_factory = provider_factory or get_provider
        self.shutdown = shutdown or threading.Event()

        self.exclude_namespaces = parse_namespace_list(config.exclude_namespaces)
        self.include_namespaces = parse_namespace_list(config.include_namespaces)
        assert_config(
            not (self.exclude_namespaces and self.include_namespaces),
            "exclude_namespaces and include_namespaces are mutually exclusive",
        )

    def __str__(self):
        return f"Controller({self.group}/{self.version}/{self.kind})"

    @property
    def api_version(self) -> str:
        """The full apiVersion of the managed kind"""
        return f"{self.group}/{self.version}"

    ## Abstract Interface ######################################################

    @abc.abstractmethod
    def create(self, provider: DatabaseProvider, resource: ResourceBase) -> str:
        """Create the backend resource and return the hostname to publish"""

    @abc.abstractmethod
    def update(self, provider: DatabaseProvider, resource: ResourceBase):
        """Apply the tracked fields to the backend resource"""

    @abc.abstractmethod
    def delete(self, provider: DatabaseProvider, resource: ResourceBase):
        """Delete the backend resource"""

    ## Public Interface ########################################################

    @alog.logged_function(log.debug2)
    def handle(self, event: KubeWatchEvent):
        """Dispatch a single watch event. Errors never propagate out of here.

        Args:
            event:  KubeWatchEvent
                The event to handle
        """
        if event.type == KubeEventType.DELETED:
            self.on_delete(event.resource)
        elif event.type == KubeEventType.MODIFIED and event.old_resource is not None:
            self.on_update(event.old_resource, event.resource)
        else:
            self.on_add(event.resource)

    def is_excluded(self, resource: ManagedObject) -> bool:
        """Whether the resource's namespace is filtered out"""
        if self.exclude_namespaces and resource.namespace in self.exclude_namespaces:
            log.info(
                "%s %s is in excluded namespace %s. Ignoring...",
                self.kind,
                resource.name,
                resource.namespace,
            )
            return True
        if (
            self.include_namespaces
            and resource.namespace not in self.include_namespaces
        ):
            log.info(
                "%s %s is in a non included namespace %s. Ignoring...",
                self.kind,
                resource.name,
                resource.namespace,
            )
            return True
        return False

    def on_add(self, resource: ManagedObject):
        """Create the backend for a new (or redelivered) resource

        An aws resource that is already Created is skipped so that redelivery
        never provisions twice. Local resources are always re-applied.
        """
        if self.is_excluded(resource):
            return

        log.info("Adding %s", resource, extra=self.log_extra(resource))
        self._create(resource)

    def on_update(self, old_resource: ManagedObject, resource: ManagedObject):
        """Update the backend when a tracked field changed. Anything else is
        ignored without a provider call or a status write.

        A resource that never reached Created has no backend to update, so an
        edit of its spec runs the create path again instead.
        """
        if self.is_excluded(resource):
            return

        if get_state(resource.definition) not in [
            ResourceState.CREATED,
            ResourceState.UPDATED,
        ]:
            if old_resource.get("spec") == resource.get("spec"):
                log.debug2("Spec of uncreated %s did not change", resource)
                return
            log.info(
                "Spec of uncreated %s changed. Retrying creation",
                resource,
                extra=self.log_extra(resource),
            )
            self._create(resource)
            return

        try:
            typed = self.resource_type.from_manifest(resource.definition)
            previous = self.resource_type.from_manifest(old_resource.definition)
            changed = typed.changed_fields(previous)
            if not changed:
                log.debug2("No tracked field changed on %s", resource)
                return

            log.info(
                "Updating %s. Changed fields: %s",
                resource,
                changed,
                extra=self.log_extra(resource),
            )
            validate_spec(typed)
            provider = self.provider_factory(typed, self.deploy_manager, self.shutdown)
            self.update(provider, typed)
            self.set_state(resource, ResourceState.UPDATED)
        except Exception as err:  # pylint: disable=broad-exception-caught
            log.warning(
                "%s update failed: %s",
                self.kind,
                err,
                exc_info=True,
                extra=self.log_extra(resource),
            )
            self._set_failed(resource, err)

    def on_delete(self, resource: ManagedObject):
        """Best effort delete of the backend and the published service"""
        if self.is_excluded(resource):
            return

        log.info("Deleting %s", resource, extra=self.log_extra(resource))
        try:
            typed = self.resource_type.from_manifest(resource.definition)
            provider = self.provider_factory(typed, self.deploy_manager, self.shutdown)
        except Exception as err:  # pylint: disable=broad-exception-caught
            log.error("Unable to get a provider for %s: %s", resource, err)
            return

        try:
            self.delete(provider, typed)
        except Exception as err:  # pylint: disable=broad-exception-caught
            log.error("Failed to delete %s: %s", resource, err, exc_info=True)

        try:
            provider.delete_service(typed.namespace, typed.name)
        except Exception as err:  # pylint: disable=broad-exception-caught
            log.error("Failed to delete service for %s: %s", resource, err)
        log.info("Deletion of %s done", resource)

    ## Status ##################################################################

    def set_state(
        self,
        resource: ManagedObject,
        state: ResourceState,
        message: Optional[str] = None,
    ):
        """Write the state onto the resource's status

        Raises:
            StatusUpdateError: If the write did not go through
        """
        log.debug("Setting %s state to [%s]", resource, state.value)
        success, _ = self.deploy_manager.set_status(
            kind=self.kind,
            name=resource.name,
            namespace=resource.namespace,
            status=make_status(state, message),
            api_version=self.api_version,
        )
        if not success:
            raise StatusUpdateError(
                f"{self.kind} status update to {state.value} failed for {resource}"
            )

    def _set_failed(self, resource: ManagedObject, err: Exception):
        try:
            self.set_state(resource, ResourceState.FAILED, str(err))
        except StatusUpdateError as status_err:
            log.error("%s", status_err)

    ## Implementation Details ##################################################

    def _create(self, resource: ManagedObject):
        try:
            typed = self.resource_type.from_manifest(resource.definition)
            if (
                typed.state == ResourceState.CREATED
                and get_provider_name(typed) == constants.AWS_PROVIDER
            ):
                log.debug("%s is already created. Skipping", resource)
                return
            if typed.state != ResourceState.CREATED:
                self.set_state(resource, ResourceState.CREATING)

            validate_spec(typed)
            provider = self.provider_factory(typed, self.deploy_manager, self.shutdown)
            hostname = self.create(provider, typed)
            log.info("Creating service '%s' for %s", typed.name, hostname)
            provider.create_service(typed.namespace, hostname, typed.name)
            self.set_state(resource, ResourceState.CREATED)
        except Exception as err:  # pylint: disable=broad-exception-caught
            log.warning(
                "%s creation failed: %s",
                self.kind,
                err,
                exc_info=True,
                extra=self.log_extra(resource),
            )
            self._set_failed(resource, err)

    def log_extra(self, resource: ManagedObject) -> dict:
        """Extra fields for the json log formatter"""
        return {"resource": resource.definition}


class DatabaseController(Controller):
    """Controller for Database resources"""

    kind = constants.DATABASE_KIND
    resource_type = Database

    def create(self, provider: DatabaseProvider, resource: Database) -> str:
        return provider.create_database(resource)

    def update(self, provider: DatabaseProvider, resource: Database):
        provider.update_database(resource)

    def delete(self, provider: DatabaseProvider, resource: Database):
        provider.delete_database(resource)


class DBClusterController(Controller):
    """Controller for DBCluster resources. Deleting a cluster first deletes
    every Database resource that is a member of it.
    """

    kind = constants.DBCLUSTER_KIND
    resource_type = DBCluster

    def create(self, provider: DatabaseProvider, resource: DBCluster) -> str:
        return provider.create_db_cluster(resource)

    def update(self, provider: DatabaseProvider, resource: DBCluster):
        provider.update_db_cluster(resource)

    def delete(self, provider: DatabaseProvider, resource: DBCluster):
        self.delete_members(resource)
        provider.delete_db_cluster(resource)

    def delete_members(self, cluster: DBCluster):
        """Delete the Database resources whose cluster identifier matches.
        Failures are logged and the remaining members are still deleted.
        """
        success, manifests = self.deploy_manager.filter_objects_current_state(
            kind=constants.DATABASE_KIND,
            namespace=cluster.namespace,
            api_version=constants.API_VERSION,
        )
        if not success:
            log.error("Unable to list the databases of cluster %s", cluster.name)
            return

        for manifest in manifests:
            try:
                member = Database.from_manifest(manifest)
            except ConfigError as err:
                log.warning("Skipping unparsable database: %s", err)
                continue
            if member.db_cluster_identifier != cluster.cluster_identifier:
                continue
            log.info(
                "Deleting member database %s of cluster %s",
                member.name,
                cluster.cluster_identifier,
            )
            success, _ = self.deploy_manager.disable(
                [
                    {
                        "apiVersion": constants.API_VERSION,
                        "kind": constants.DATABASE_KIND,
                        "metadata": {
                            "name": member.name,
                            "namespace": member.namespace,
                        },
                    }
                ]
            )
            if not success:
                log.error("Failed to delete member database %s", member.name)


CONTROLLER_TYPES = [DatabaseController, DBClusterController]
