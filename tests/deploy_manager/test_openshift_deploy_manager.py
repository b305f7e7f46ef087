"""
Tests for the OpenshiftDeployManager
"""
# Standard
from unittest import mock
import copy

# Third Party
from kubernetes.client.rest import ApiException
from openshift.dynamic.exceptions import ConflictError, ForbiddenError, NotFoundError
import pytest

# Local
from k8s_rds import constants
from k8s_rds.deploy_manager import KubeEventType
from k8s_rds.deploy_manager.openshift_deploy_manager import OpenshiftDeployManager
from k8s_rds.test_helpers.helpers import (
    TEST_NAME,
    TEST_NAMESPACE,
    library_config,
    make_database,
)

## Helpers #####################################################################


def api_error(error_type, status):
    return error_type(ApiException(status=status, reason=error_type.__name__))


def setup_testable_manager(current=None):
    """Set up a deploy manager over a mocked dynamic client. The returned
    handle is the resource handle every kind resolves to.
    """
    dynamic_client = mock.MagicMock()
    handle = dynamic_client.resources.get.return_value
    if current is not None:
        handle.get.return_value.to_dict.side_effect = lambda: copy.deepcopy(current)
    return OpenshiftDeployManager(dynamic_client), handle


@pytest.fixture(autouse=True)
def no_backoff():
    with library_config(status_retries=2, retry_backoff_base_seconds=0):
        yield


def set_created(dm):
    return dm.set_status(
        kind=constants.DATABASE_KIND,
        name=TEST_NAME,
        namespace=TEST_NAMESPACE,
        status={"state": "Created", "message": "Created"},
        api_version=constants.API_VERSION,
    )


## Tests #######################################################################

################
## set_status ##
################


def test_set_status_changed():
    """A new status is written through the status subresource"""
    dm, handle = setup_testable_manager(make_database(status="Creating"))
    assert set_created(dm) == (True, True)
    handle.get.assert_called_once_with(name=TEST_NAME, namespace=TEST_NAMESPACE)
    body = handle.status.replace.call_args.kwargs["body"]
    assert body["status"] == {"state": "Created", "message": "Created"}
    assert body["spec"] == make_database()["spec"]


def test_set_status_unchanged():
    """Writing the current status is a no-op"""
    dm, handle = setup_testable_manager(make_database(status="Created"))
    assert set_created(dm) == (True, False)
    handle.status.replace.assert_not_called()


def test_set_status_conflict_resolves():
    """A conflicting write is retried against a fresh read"""
    dm, handle = setup_testable_manager(make_database(status="Creating"))
    handle.status.replace.side_effect = [api_error(ConflictError, 409), None]
    assert set_created(dm) == (True, True)
    assert handle.status.replace.call_count == 2
    assert handle.get.call_count == 2


def test_set_status_conflict_persists():
    """Conflicts beyond the retry limit fail the write"""
    dm, handle = setup_testable_manager(make_database(status="Creating"))
    handle.status.replace.side_effect = api_error(ConflictError, 409)
    assert set_created(dm) == (False, False)
    assert handle.status.replace.call_count == 3


def test_set_status_missing_resource():
    """A resource that is gone fails the write without retries"""
    dm, handle = setup_testable_manager()
    handle.get.side_effect = api_error(NotFoundError, 404)
    assert set_created(dm) == (False, False)
    assert handle.get.call_count == 1


############
## deploy ##
############


def test_deploy_new_resource():
    """A missing resource is applied"""
    dm, handle = setup_testable_manager()
    handle.get.side_effect = api_error(NotFoundError, 404)
    manifest = make_database()
    assert dm.deploy([manifest]) == (True, True)
    handle.server_side_apply.assert_called_once()
    assert handle.server_side_apply.call_args.kwargs["field_manager"] == "k8s-rds"


def test_deploy_no_change():
    """An identical resource is not applied again"""
    manifest = make_database()
    dm, handle = setup_testable_manager(manifest)
    assert dm.deploy([manifest]) == (True, False)
    handle.server_side_apply.assert_not_called()


def test_deploy_field_manager_conflict():
    """Field manager conflicts are forced"""
    dm, handle = setup_testable_manager()
    handle.get.side_effect = api_error(NotFoundError, 404)
    handle.server_side_apply.side_effect = [api_error(ConflictError, 409), None]
    assert dm.deploy([make_database()]) == (True, True)
    assert handle.server_side_apply.call_args.kwargs["force_conflicts"] is True


def test_deploy_forbidden():
    """A forbidden lookup fails the deploy"""
    dm, handle = setup_testable_manager()
    handle.get.side_effect = api_error(ForbiddenError, 403)
    assert dm.deploy([make_database()]) == (False, False)


def test_deploy_empty_list():
    """Nothing to deploy is a success without change"""
    dm, _ = setup_testable_manager()
    assert dm.deploy([]) == (True, False)


#############
## disable ##
#############


def test_disable_present():
    """Present resources are deleted"""
    dm, handle = setup_testable_manager()
    assert dm.disable([make_database()]) == (True, True)
    handle.delete.assert_called_once_with(name=TEST_NAME, namespace=TEST_NAMESPACE)


def test_disable_not_present():
    """Deleting a missing resource is a success without change"""
    dm, handle = setup_testable_manager()
    handle.delete.side_effect = api_error(NotFoundError, 404)
    assert dm.disable([make_database()]) == (True, False)


###################
## current state ##
###################


def test_get_object_current_state():
    """Lookups return the object dict or None"""
    manifest = make_database()
    dm, handle = setup_testable_manager(manifest)
    assert dm.get_object_current_state(
        constants.DATABASE_KIND, TEST_NAME, TEST_NAMESPACE, constants.API_VERSION
    ) == (True, manifest)

    handle.get.side_effect = api_error(NotFoundError, 404)
    assert dm.get_object_current_state(
        constants.DATABASE_KIND, TEST_NAME, TEST_NAMESPACE, constants.API_VERSION
    ) == (True, None)

    handle.get.side_effect = api_error(ForbiddenError, 403)
    assert dm.get_object_current_state(
        constants.DATABASE_KIND, TEST_NAME, TEST_NAMESPACE, constants.API_VERSION
    ) == (False, None)


def test_filter_objects_current_state():
    """Listing returns the items of the list object"""
    manifest = make_database()
    dm, handle = setup_testable_manager({"items": [manifest]})
    assert dm.filter_objects_current_state(
        constants.DATABASE_KIND,
        TEST_NAMESPACE,
        constants.API_VERSION,
        label_selector="app=db",
    ) == (True, [manifest])
    handle.get.assert_called_once_with(label_selector="app=db", namespace=TEST_NAMESPACE)


def test_cluster_scoped_lookup():
    """Lookups without a namespace are not namespaced"""
    dm, handle = setup_testable_manager({"items": []})
    dm.filter_objects_current_state("Node", api_version="v1")
    assert handle.namespaced is False


###########
## watch ##
###########


def test_watch_objects():
    """Stream events are converted until the watch is stopped"""
    dm, _ = setup_testable_manager()
    watch = mock.Mock()
    watch._stop = True
    watch.stream.return_value = iter(
        [
            {"type": "ADDED", "object": make_database(resource_version="1")},
            {"type": "DELETED", "object": make_database(resource_version="2")},
        ]
    )
    events = list(
        dm.watch_objects(
            constants.DATABASE_KIND,
            constants.API_VERSION,
            namespace=TEST_NAMESPACE,
            watch_manager=watch,
        )
    )
    assert [event.type for event in events] == [
        KubeEventType.ADDED,
        KubeEventType.DELETED,
    ]
    assert events[0].resource.name == TEST_NAME
    assert watch.stream.call_args.kwargs["namespace"] == TEST_NAMESPACE


def test_watch_objects_expired_restarts():
    """An expired resource version restarts the watch from scratch"""
    dm, _ = setup_testable_manager()
    watch = mock.Mock()
    watch._stop = False
    calls = []

    def stream(*_, **kwargs):
        calls.append(kwargs["resource_version"])
        if len(calls) == 1:
            raise ApiException(status=410)
        watch._stop = True
        return iter([])

    watch.stream.side_effect = stream
    assert not list(
        dm.watch_objects(
            constants.DATABASE_KIND, constants.API_VERSION, watch_manager=watch
        )
    )
    assert calls == [0, None]


def test_watch_objects_api_error():
    """Other api errors end the watch"""
    dm, _ = setup_testable_manager()
    watch = mock.Mock()
    watch._stop = False
    watch.stream.side_effect = ApiException(status=500)
    with pytest.raises(ApiException):
        list(
            dm.watch_objects(
                constants.DATABASE_KIND, constants.API_VERSION, watch_manager=watch
            )
        )
