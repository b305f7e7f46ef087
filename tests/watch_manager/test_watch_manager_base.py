"""
Tests for the WatchManagerBase base class
"""

# Standard
import threading
import time

# Third Party
import pytest

# Local
from k8s_rds.controller import DatabaseController, DBClusterController
from k8s_rds.watch_manager.base import WatchManagerBase

## Helpers #####################################################################


class DummyWatchManager(WatchManagerBase):
    def __init__(
        self,
        controller_type,
        watch_success=True,
        stop_wait=0.0,
    ):
        super().__init__(controller_type)
        self.watching = False
        self.watch_success = watch_success
        self.stop_wait = stop_wait

    def watch(self):
        if self.watch_success:
            self.watching = True
            return True
        return False

    def wait(self):
        while self.watching:
            time.sleep(0.05)

    def stop(self):
        if self.stop_wait:
            threading.Thread(target=self._delayed_stop).start()
        else:
            self.watching = False

    def _delayed_stop(self):
        time.sleep(self.stop_wait)
        self.watching = False


## Tests #######################################################################


def test_constructor_properties():
    """The controller's group, version and kind are copied onto the manager"""
    wm = DummyWatchManager(DatabaseController)
    assert wm.controller_type == DatabaseController
    assert wm.group == "cloudnatix.com"
    assert wm.version == "v1"
    assert wm.kind == "Database"
    assert str(wm) == "Watch[cloudnatix.com/v1/Database]"


def test_constructor_registrations():
    """All constructed watch managers get registered"""
    wm1 = DummyWatchManager(DatabaseController)
    wm2 = DummyWatchManager(DBClusterController)
    assert len(WatchManagerBase._ALL_WATCHES) == 2
    assert str(wm1) in WatchManagerBase._ALL_WATCHES
    assert str(wm2) in WatchManagerBase._ALL_WATCHES


def test_constructor_no_duplicate_watches():
    """A kind can only be watched once"""
    DummyWatchManager(DatabaseController)
    with pytest.raises(AssertionError):
        DummyWatchManager(DatabaseController)


def test_start_stop_all_blocking():
    """start_all blocks until stop_all stops every manager"""
    wm1 = DummyWatchManager(DatabaseController)
    wm2 = DummyWatchManager(DBClusterController, stop_wait=0.1)

    thrd = threading.Thread(target=WatchManagerBase.start_all)
    thrd.start()
    time.sleep(0.1)

    assert wm1.watching
    assert wm2.watching
    assert thrd.is_alive()

    WatchManagerBase.stop_all()
    assert not wm1.watching
    assert not wm2.watching
    thrd.join(1)
    assert not thrd.is_alive()


def test_start_all_blocking_failure():
    """A manager that fails to start shuts down the ones already started"""
    # DBCluster sorts before Database so it is started first
    wm1 = DummyWatchManager(DatabaseController, watch_success=False)
    wm2 = DummyWatchManager(DBClusterController)

    assert not WatchManagerBase.start_all()
    assert not wm1.watching
    assert not wm2.watching


def test_stop_all_errors_logged():
    """A manager that fails to stop does not block the others"""
    wm1 = DummyWatchManager(DatabaseController)
    wm2 = DummyWatchManager(DBClusterController)
    wm1.watching = wm2.watching = True

    def bad_stop():
        raise RuntimeError("stuck")

    wm2.stop = bad_stop
    WatchManagerBase.stop_all()
    assert not wm1.watching
