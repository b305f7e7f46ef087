"""The WatchThread Class is responsible for monitoring the cluster for
resource events
"""
# Standard
from typing import Dict, Optional
import os

# Third Party
from kubernetes import watch

# First Party
import alog

# Local
from .... import config
from ....deploy_manager import DeployManagerBase, KubeEventType, KubeWatchEvent
from ....managed_object import ManagedObject
from ....utils import parse_time_delta
from .base import ThreadBase
from .dispatch import DispatchThread

log = alog.use_channel("WTCHTHRD")


class WatchThread(ThreadBase):
    """The WatchThread streams the events of one kind, either cluster-wide or
    for one namespace, and pushes them to the kind's DispatchThread. It keeps
    the last seen version of every resource so that a modification carries
    both the old and the new manifest.
    """

    def __init__(  # pylint: disable=too-many-arguments
        self,
        dispatch_thread: DispatchThread,
        kind: str,
        api_version: str,
        namespace: Optional[str] = None,
        deploy_manager: DeployManagerBase = None,
    ):
        """
        Args:
            dispatch_thread:  DispatchThread
                The thread to push events to
            kind:  str
                The kind to watch
            api_version:  str
                The api_version to watch
            namespace:  Optional[str]
                The namespace to watch. If none then cluster-wide
            deploy_manager:  DeployManagerBase
                The deploy_manager to watch events with
        """
        self.dispatch_thread = dispatch_thread
        self.kind = kind
        self.api_version = api_version
        self.namespace = namespace

        name = f"watch_thread_{self.api_version}_{self.kind}"
        if self.namespace:
            name = name + f"_{self.namespace}"
        super().__init__(name=name, daemon=True, deploy_manager=deploy_manager)

        # Setup kubernetes watch resource
        self.kubernetes_watch = watch.Watch()

        # Last seen version of every resource by uid
        self.last_seen: Dict[str, ManagedObject] = {}

        # Variables for tracking retries
        self.attempts_left = config.watch.retry_count
        self.retry_delay = parse_time_delta(config.watch.retry_delay or "")

    def run(self):
        """Watch the deploy manager and push every meaningful event to the
        dispatch thread. The watch is restarted on failure until the retry
        count is used up, which terminates the process.
        """
        list_resource_version = 0
        while True:
            try:
                if self.should_stop():
                    log.debug("Shutdown requested. Stopping %s", self.name)
                    return

                for event in self.deploy_manager.watch_objects(
                    self.kind,
                    self.api_version,
                    namespace=self.namespace,
                    resource_version=list_resource_version,
                    watch_manager=self.kubernetes_watch,
                ):
                    if self.should_stop():
                        log.debug("Shutdown requested. Stopping %s", self.name)
                        return

                    tracked = self.track_event(event)
                    if tracked is None:
                        continue
                    log.debug(
                        "Pushing %s event for %s",
                        tracked.type.value,
                        tracked.resource,
                        extra={"resource": tracked.resource.definition},
                    )
                    self.dispatch_thread.push_event(tracked)

                # Update the resource version to only get new events
                list_resource_version = self.kubernetes_watch.resource_version
            except Exception as exc:  # pylint: disable=broad-exception-caught
                log.info(
                    "Exception raised when attempting to watch %s",
                    repr(exc),
                    exc_info=exc,
                )
                if self.attempts_left <= 0:
                    log.error(
                        "Unable to start watch within %d attempts",
                        config.watch.retry_count,
                    )
                    os._exit(1)

                retry_seconds = self.retry_delay.total_seconds() if self.retry_delay else 0
                if not self.wait_on_shutdown(retry_seconds):
                    log.debug("Shutdown requested during retry. Stopping %s", self.name)
                    return
                self.attempts_left = self.attempts_left - 1
                log.info("Restarting watch with %d attempts left", self.attempts_left)

    def stop_thread(self):
        """Override stop_thread to stop the kubernetes client's Watch as well"""
        super().stop_thread()
        self.kubernetes_watch.stop()

    def track_event(self, event: KubeWatchEvent) -> Optional[KubeWatchEvent]:
        """Turn a raw watch event into the event the controller handles

        * The first sighting of a uid is an addition, whatever the raw type
        * A later sighting with a new resourceVersion is a modification that
          carries the previous manifest
        * A repeated resourceVersion (re-listing after a restart) is dropped
        * A deletion forgets the uid

        Args:
            event:  KubeWatchEvent
                The raw event from the watch stream

        Returns:
            event:  Optional[KubeWatchEvent]
                The event to dispatch or None if it should be dropped
        """
        resource = event.resource
        if event.type == KubeEventType.DELETED:
            self.last_seen.pop(resource.uid, None)
            return event

        previous = self.last_seen.get(resource.uid)
        self.last_seen[resource.uid] = resource
        if previous is None:
            return KubeWatchEvent(
                type=KubeEventType.ADDED,
                resource=resource,
                timestamp=event.timestamp,
            )
        if (
            previous.resource_version is not None
            and previous.resource_version == resource.resource_version
        ):
            log.debug3("Dropping repeated event for %s", resource)
            return None
        return KubeWatchEvent(
            type=KubeEventType.MODIFIED,
            resource=resource,
            old_resource=previous,
            timestamp=event.timestamp,
        )
