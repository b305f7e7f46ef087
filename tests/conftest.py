"""
Shared test config
"""
# Standard
from unittest import mock

# Third Party
import pytest

# Local
from k8s_rds.test_helpers.helpers import configure_logging
from k8s_rds.watch_manager import WatchManagerBase

configure_logging()


@pytest.fixture(autouse=True)
def no_local_kubeconfig():
    """This fixture makes sure the tests run as if KUBECONFIG is not exported in
    the environment, even if it is
    """
    with mock.patch(
        "kubernetes.config.new_client_from_config", side_effect=RuntimeError
    ):
        yield


@pytest.fixture(autouse=True)
def reset_watches():
    """Every test starts without registered watch managers"""
    WatchManagerBase._ALL_WATCHES = {}
    yield
    WatchManagerBase._ALL_WATCHES = {}
