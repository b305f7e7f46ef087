"""
Python-based implementation of the WatchManager
"""

# Standard
from typing import List, Optional, Type
import threading

# First Party
import alog

# Local
from ... import config
from ...controller import Controller, ProviderFactory
from ...deploy_manager import DeployManagerBase, OpenshiftDeployManager
from ...utils import parse_namespace_list
from ..base import WatchManagerBase
from .threads import DispatchThread, WatchThread

log = alog.use_channel("PYTHW")


class PythonWatchManager(WatchManagerBase):
    """The PythonWatchManager uses the kubernetes watch client to feed the
    events of one kind to its Controller. It runs

    1. One WatchThread per watched namespace (or one cluster-wide)
    2. One DispatchThread that hands the events to the Controller in order
    """

    def __init__(
        self,
        controller_type: Type[Controller],
        deploy_manager: Optional[DeployManagerBase] = None,
        namespace_list: Optional[List[str]] = None,
        provider_factory: Optional[ProviderFactory] = None,
    ):
        """Initialize the required threads

        Args:
            controller_type:  Type[Controller]
                The controller to be watched
            deploy_manager:  Optional[DeployManagerBase]
                An optional DeployManager override
            namespace_list:  Optional[List[str]]
                The namespaces to watch. Defaults to include_namespaces, and an
                empty list watches cluster-wide.
            provider_factory:  Optional[ProviderFactory]
                An optional override for how providers are constructed
        """
        super().__init__(controller_type)

        if deploy_manager is None:
            log.debug("Using OpenshiftDeployManager")
            deploy_manager = OpenshiftDeployManager()
        self.deploy_manager = deploy_manager

        if namespace_list is None:
            namespace_list = parse_namespace_list(config.include_namespaces)
        self.namespace_list = namespace_list

        # The shutdown event is shared with the controller so that stopping
        # also cancels any availability wait in progress
        self.shutdown = threading.Event()
        self.controller = controller_type(
            self.deploy_manager,
            provider_factory=provider_factory,
            shutdown=self.shutdown,
        )

        self.dispatch_thread = DispatchThread(self.controller)
        api_version = f"{self.group}/{self.version}"
        self.watch_threads: List[WatchThread] = [
            WatchThread(
                self.dispatch_thread,
                self.kind,
                api_version,
                namespace,
                self.deploy_manager,
            )
            for namespace in (self.namespace_list or [None])
        ]

    ## Interface ###############################################################

    def watch(self) -> bool:
        """Start the dispatch thread and all watch threads

        Returns:
            success:  bool
                True if the threads were started
        """
        log.info("Starting PythonWatchManager: %s", self)
        if self.shutdown.is_set():
            return False

        self.dispatch_thread.start_thread()
        for watch_thread in self.watch_threads:
            log.debug("Starting watch_thread: %s", watch_thread.name)
            watch_thread.start_thread()
        return True

    def wait(self):
        """Wait for shutdown to be signaled"""
        self.shutdown.wait()

    def stop(self):
        """Stop all threads. A reconcile in progress sees the shutdown event
        and returns early.
        """
        log.info(
            "Stopping PythonWatchManager for %s/%s/%s",
            self.group,
            self.version,
            self.kind,
        )
        self.shutdown.set()
        for watch_thread in self.watch_threads:
            watch_thread.stop_thread()
        self.dispatch_thread.stop_thread()
