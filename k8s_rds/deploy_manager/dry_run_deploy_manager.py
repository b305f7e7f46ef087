"""
The DryRunDeployManager implements the DeployManager interface but does not
actually interact with the cluster and instead holds the state of the cluster in
a local map.
"""

# Standard
from datetime import datetime, timedelta
from queue import Empty, Queue
from threading import RLock
from typing import Callable, Iterator, List, Optional, Tuple
import copy
import random
import uuid

# Third Party
from kubernetes.watch import Watch

# First Party
import alog

# Local
from ..managed_object import ManagedObject
from .base import DeployManagerBase
from .kube_event import KubeEventType, KubeWatchEvent

log = alog.use_channel("DRY-RUN")

# Lock to ensure disable/deploys are thread safe
DRY_RUN_CLUSTER_LOCK = RLock()


class DryRunDeployManager(DeployManagerBase):
    """
    Deploy manager which doesn't actually deploy!
    """

    def __init__(
        self,
        resources: Optional[List[dict]] = None,
        strict_resource_version: bool = False,
    ):
        """Construct with an optional set of resources that are already present
        in the "cluster"

        Args:
            resources:  Optional[List[dict]]
                Initial cluster content
            strict_resource_version:  bool
                If true, writes carrying a stale resourceVersion are rejected
        """
        self._cluster_content = {}
        self.strict_resource_version = strict_resource_version

        # Dicts of registered watches and deletion watchers
        self._watches = {}
        self._finalizers = {}

        self._deploy(resources or [], call_watches=False)

    ## Interface ###############################################################

    def deploy(self, resource_definitions: List[dict]) -> Tuple[bool, bool]:
        log.info("DRY RUN deploy")
        return self._deploy(resource_definitions)

    def disable(self, resource_definitions: List[dict]) -> Tuple[bool, bool]:
        log.info("DRY RUN disable")
        changed = False
        for resource in resource_definitions:
            api_version = resource.get("apiVersion")
            kind = resource.get("kind")
            name = resource.get("metadata", {}).get("name")
            namespace = resource.get("metadata", {}).get("namespace")
            _, content = self.get_object_current_state(
                kind=kind, api_version=api_version, namespace=namespace, name=name
            )
            if content is None:
                continue

            changed = True
            with DRY_RUN_CLUSTER_LOCK:
                self._delete_key(namespace, kind, content.get("apiVersion"), name)

            for key, callback in self._get_registered_watches(
                content.get("apiVersion"), kind, namespace, name, finalizer=True
            ):
                log.debug2("Calling registered delete watch [%s] for [%s]", callback, key)
                callback(content)

        return True, changed

    def get_object_current_state(
        self,
        kind: str,
        name: str,
        namespace: Optional[str] = None,
        api_version: Optional[str] = None,
    ) -> Tuple[bool, Optional[dict]]:
        log.info(
            "DRY RUN get_object_current_state of [%s/%s] in [%s]", kind, name, namespace
        )
        matches = []
        kind_entries = self._cluster_content.get(namespace, {}).get(kind, {})
        for api_ver, entries in kind_entries.items():
            if name in entries and (api_ver == api_version or api_version is None):
                matches.append(entries[name])
        log.debug(
            "Found %d matches for [%s/%s] in %s", len(matches), kind, name, namespace
        )
        if len(matches) == 1:
            return True, copy.deepcopy(matches[0])
        return True, None

    def filter_objects_current_state(
        self,
        kind: str,
        namespace: Optional[str] = None,
        api_version: Optional[str] = None,
        label_selector: Optional[str] = None,
    ) -> Tuple[bool, List[dict]]:
        log.info(
            "DRY RUN filter_objects_current_state of [%s] in [%s]", kind, namespace
        )
        namespaces = (
            [namespace] if namespace is not None else list(self._cluster_content)
        )
        matches = []
        for search_namespace in namespaces:
            kind_entries = self._cluster_content.get(search_namespace, {}).get(kind, {})
            for api_ver, entries in kind_entries.items():
                if api_ver != api_version and api_version is not None:
                    continue
                for resource in entries.values():
                    labels = resource.get("metadata", {}).get("labels") or {}
                    if label_selector is not None and not _match_labels(
                        labels, label_selector
                    ):
                        continue
                    matches.append(copy.deepcopy(resource))
        return True, matches

    def set_status(
        self,
        kind: str,
        name: str,
        namespace: Optional[str],
        status: dict,
        api_version: Optional[str] = None,
    ) -> Tuple[bool, bool]:
        log.info(
            "DRY RUN set_status of [%s.%s/%s] in %s: %s",
            api_version,
            kind,
            name,
            namespace,
            status,
        )
        object_content = self.get_object_current_state(
            kind, name, namespace, api_version
        )[1]
        if object_content is None:
            log.debug("Did not find [%s/%s] in %s", kind, name, namespace)
            return False, False
        prev_status = object_content.get("status")
        object_content["status"] = status
        self._deploy([object_content], call_watches=False)
        return True, prev_status != status

    def watch_objects(
        self,
        kind: str,
        api_version: Optional[str] = None,
        namespace: Optional[str] = None,
        resource_version: Optional[str] = None,
        watch_manager: Optional[Watch] = None,
        timeout: Optional[int] = 15,
    ) -> Iterator[KubeWatchEvent]:
        """Watch the DryRunDeployManager for resource changes by registering
        callbacks. The stream ends once the timeout passes or the watch_manager
        is stopped.
        """
        event_queue = Queue()

        def add_event(manifest: dict):
            """Callback triggered when resources are deployed"""
            event_queue.put(
                KubeWatchEvent(type=KubeEventType.MODIFIED, resource=ManagedObject(manifest))
            )

        def delete_event(manifest: dict):
            """Callback triggered when resources are disabled"""
            event_queue.put(
                KubeWatchEvent(type=KubeEventType.DELETED, resource=ManagedObject(manifest))
            )

        # Get initial resources
        _, manifests = self.filter_objects_current_state(
            kind=kind, api_version=api_version, namespace=namespace
        )
        for manifest in manifests:
            event = KubeWatchEvent(
                type=KubeEventType.ADDED, resource=ManagedObject(manifest)
            )
            log.debug2("Yielding initial event %s", event)
            yield event

        end_time = datetime.max
        if timeout:
            end_time = datetime.now() + timedelta(seconds=timeout)

        self.register_watch(
            api_version=api_version,
            kind=kind,
            namespace=namespace,
            callback=add_event,
        )
        self.register_finalizer(
            api_version=api_version,
            kind=kind,
            namespace=namespace,
            callback=delete_event,
        )

        log.debug2("Waiting till %s", end_time)
        try:
            while True:
                sec_till_end = min(
                    max((end_time - datetime.now()).total_seconds(), 0.01), 1
                )
                try:
                    event = event_queue.get(timeout=sec_till_end)
                    log.debug2("Yielding event %s", event)
                    yield event
                except Empty:
                    pass

                if datetime.now() > end_time:
                    return
                if watch_manager is not None and watch_manager._stop:  # pylint: disable=protected-access
                    log.debug2("Watch stopped for %s/%s", api_version, kind)
                    return
        finally:
            watch_key = self._watch_key(
                api_version=api_version, kind=kind, namespace=namespace
            )
            self._watches.get(watch_key, []).remove(add_event)
            self._finalizers.get(watch_key, []).remove(delete_event)

    ## Dry Run Methods #########################################################

    def register_watch(
        self,
        api_version: str,
        kind: str,
        callback: Callable[[dict], None],
        namespace="",
        name="",
    ):
        """Register a callback to watch for deploy events on a given
        api_version/kind
        """
        watch_key = self._watch_key(
            api_version=api_version, kind=kind, namespace=namespace, name=name
        )
        log.debug("Registering watch for %s", watch_key)
        self._watches.setdefault(watch_key, []).append(callback)

    def register_finalizer(
        self,
        api_version: str,
        kind: str,
        callback: Callable[[dict], None],
        namespace="",
        name="",
    ):
        """Register a callback to call on deletion events on a given
        api_version/kind
        """
        watch_key = self._watch_key(
            api_version=api_version, kind=kind, namespace=namespace, name=name
        )
        log.debug("Registering deletion watch for %s", watch_key)
        self._finalizers.setdefault(watch_key, []).append(callback)

    ## Implementation Details ##################################################

    @staticmethod
    def _watch_key(api_version="", kind="", namespace="", name=""):
        return ":".join([api_version or "", kind or "", namespace or "", name or ""])

    def _get_registered_watches(
        self,
        api_version: str = "",
        kind: str = "",
        namespace: str = "",
        name: str = "",
        finalizer: bool = False,
    ) -> List[Tuple[str, Callable]]:
        matching_keys = [
            self._watch_key(
                api_version=api_version, kind=kind, namespace=namespace, name=name
            ),
            self._watch_key(api_version=api_version, kind=kind, namespace=namespace),
            self._watch_key(api_version=api_version, kind=kind),
        ]
        callback_map = self._finalizers if finalizer else self._watches
        return [
            (key, callback)
            for key, callback_list in callback_map.items()
            if key in matching_keys
            for callback in callback_list
        ]

    def _delete_key(self, namespace, kind, api_version, name):
        del self._cluster_content[namespace][kind][api_version][name]
        if not self._cluster_content[namespace][kind][api_version]:
            del self._cluster_content[namespace][kind][api_version]
        if not self._cluster_content[namespace][kind]:
            del self._cluster_content[namespace][kind]
        if not self._cluster_content[namespace]:
            del self._cluster_content[namespace]

    def _deploy(self, resource_definitions, call_watches=True):
        changes = False
        for resource in resource_definitions:
            resource = copy.deepcopy(resource)
            api_version = resource.get("apiVersion")
            kind = resource.get("kind")
            name = resource.get("metadata", {}).get("name")
            namespace = resource.get("metadata", {}).get("namespace")
            log.debug(
                "DRY RUN deploy [%s/%s/%s/%s]", namespace, kind, api_version, name
            )
            log.debug4(resource)

            with DRY_RUN_CLUSTER_LOCK:
                entries = (
                    self._cluster_content.setdefault(namespace, {})
                    .setdefault(kind, {})
                    .setdefault(api_version, {})
                )
                current = copy.deepcopy(entries.get(name, {}))
                current_metadata = current.get("metadata", {})
                old_resource_version = current_metadata.get("resourceVersion")
                resource_metadata = resource.setdefault("metadata", {})

                if (
                    self.strict_resource_version
                    and resource_metadata.get("resourceVersion")
                    and old_resource_version
                    and resource_metadata.get("resourceVersion")
                    != old_resource_version
                ):
                    log.warning(
                        "Unable to deploy resource. resourceVersion is out of date"
                    )
                    return False, False

                # Status is only written through set_status
                if call_watches and "status" in current:
                    resource["status"] = current["status"]

                compare_current = copy.deepcopy(current)
                compare_current.get("metadata", {}).pop("resourceVersion", None)
                compare_resource = copy.deepcopy(resource)
                compare_resource["metadata"].pop("resourceVersion", None)
                for server_field in ["creationTimestamp", "uid"]:
                    compare_current.get("metadata", {}).pop(server_field, None)
                    compare_resource["metadata"].pop(server_field, None)
                changed = compare_current != compare_resource
                changes = changes or changed

                resource_metadata["creationTimestamp"] = current_metadata.get(
                    "creationTimestamp", datetime.now().isoformat()
                )
                resource_metadata["uid"] = current_metadata.get(
                    "uid", resource_metadata.get("uid") or str(uuid.uuid4())
                )
                resource_metadata["resourceVersion"] = str(
                    random.randint(1, 100000)
                ).zfill(6)
                entries[name] = resource

            if call_watches and changed:
                for key, callback in self._get_registered_watches(
                    api_version, kind, namespace, name
                ):
                    log.debug2("Calling registered watch [%s] for [%s]", callback, key)
                    callback(copy.deepcopy(resource))

        return True, changes


def _match_labels(labels: dict, label_selector: str) -> bool:
    """Match a set of labels against an equality-based selector such as
    "app=db,tier!=cache". Bare keys match when the label exists.
    """
    for selector in filter(None, (part.strip() for part in label_selector.split(","))):
        if "!=" in selector:
            key, _, value = selector.partition("!=")
            if labels.get(key.strip()) == value.strip():
                return False
        elif "=" in selector:
            key, _, value = selector.partition("=")
            if labels.get(key.strip()) != value.strip().lstrip("="):
                return False
        elif selector.startswith("!"):
            if selector[1:].strip() in labels:
                return False
        elif selector not in labels:
            return False
    return True
