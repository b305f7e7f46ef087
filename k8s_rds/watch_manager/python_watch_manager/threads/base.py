"""
Module for the ThreadBase Class
"""

# Standard
import threading

# First Party
import alog

# Local
from ....deploy_manager import DeployManagerBase

log = alog.use_channel("TRDUTLS")


class ThreadBase(threading.Thread):
    """Base class for the watch and dispatch threads. It handles starting and
    stopping through a shared shutdown event.
    """

    def __init__(
        self,
        name: str = None,
        daemon: bool = None,
        deploy_manager: DeployManagerBase = None,
    ):
        """
        Args:
            name:  str
                The name of the thread
            daemon:  bool
                Whether python should skip waiting for this thread on exit
            deploy_manager:  DeployManagerBase
                The deploy manager available to this thread
        """
        self.deploy_manager = deploy_manager
        self.shutdown = threading.Event()
        super().__init__(name=name, daemon=daemon)

    def run(self):
        """Control loop for the thread. Once this function exits the thread stops"""
        raise NotImplementedError()

    def start_thread(self):
        """If the thread is not already alive start it"""
        if not self.is_alive():
            log.info("Starting %s: %s", self.__class__.__name__, self.name)
            self.start()

    def stop_thread(self):
        """Set the shutdown event"""
        log.info("Stopping %s: %s", self.__class__.__name__, self.name)
        self.shutdown.set()

    def should_stop(self) -> bool:
        """Helper to determine if a thread should shutdown"""
        return self.shutdown.is_set()

    def wait_on_shutdown(self, timeout: float) -> bool:
        """Wait for the given time unless shutdown is signaled first

        Returns:
            keep_running:  bool
                False if the thread should stop
        """
        self.shutdown.wait(timeout)
        return not self.should_stop()
