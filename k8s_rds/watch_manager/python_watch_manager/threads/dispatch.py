"""
The DispatchThread is the single consumer of the events of one resource kind
"""

# Standard
from queue import Queue

# First Party
import alog

# Local
from ....controller import Controller
from ....deploy_manager import KubeWatchEvent
from .base import ThreadBase

log = alog.use_channel("DSPTHRD")


class DispatchThread(ThreadBase):
    """Events are handled one at a time in arrival order, so a resource is
    never reconciled by two overlapping calls. A slow reconcile delays the
    following events of the same kind.
    """

    def __init__(self, controller: Controller):
        """
        Args:
            controller:  Controller
                The controller that handles every event pushed to this thread
        """
        self.controller = controller
        self.event_queue: "Queue[KubeWatchEvent]" = Queue()
        super().__init__(
            name=f"dispatch_thread_{controller.kind}",
            daemon=True,
            deploy_manager=controller.deploy_manager,
        )

    def run(self):
        """Pull events until stopped. A None on the queue wakes the loop up for
        shutdown.
        """
        while not self.should_stop():
            event = self.event_queue.get()
            if event is None:
                continue
            log.debug("Dispatching %s event for %s", event.type.value, event.resource)
            try:
                self.controller.handle(event)
            except Exception as exc:  # pylint: disable=broad-exception-caught
                log.error(
                    "Unhandled error while handling %s: %s",
                    event.resource,
                    exc,
                    exc_info=True,
                )
        log.debug("Dispatch thread %s stopped", self.name)

    def push_event(self, event: KubeWatchEvent):
        """Queue an event for the controller"""
        log.debug3("Queueing %s event for %s", event.type.value, event.resource)
        self.event_queue.put(event)

    def stop_thread(self):
        """Set the shutdown event and wake up the consumer"""
        super().stop_thread()
        self.event_queue.put(None)
