"""
This module holds common helper functions for making testing easy
"""

# Standard
from contextlib import contextmanager
from unittest import mock
import base64
import copy
import inspect
import os

# First Party
import aconfig
import alog

# Local
from k8s_rds import constants
from k8s_rds.cmd.run_operator_cmd import RunOperatorCmd
from k8s_rds.config import library_config as config_detail_dict
from k8s_rds.deploy_manager.dry_run_deploy_manager import DryRunDeployManager
from k8s_rds.utils import merge_configs

log = alog.use_channel("TEST")


def configure_logging():
    alog.configure(
        os.environ.get("LOG_LEVEL", "off"),
        os.environ.get("LOG_FILTERS", ""),
        formatter="json"
        if os.environ.get("LOG_JSON", "").lower() == "true"
        else "pretty",
        thread_id=os.environ.get("LOG_THREAD_ID", "").lower() == "true",
    )


configure_logging()

TEST_NAME = "mydb"
TEST_CLUSTER_NAME = "mycluster"
TEST_NAMESPACE = "test"
TEST_UID = "12345678-1234-1234-1234-123456789012"
TEST_VPC_ID = "vpc-0123456789"
TEST_INSTANCE_ID = "i-0123456789abcdef0"
TEST_REGION = "us-east-1"
TEST_PASSWORD = "s3cr3t-pa55"

# Availability polling that never sleeps
FAST_AVAILABILITY = {
    "initial_delay_seconds": 0,
    "poll_interval_seconds": 0,
    "timeout_seconds": 5,
}


@contextmanager
def library_config(**config_overrides):
    """This context manager sets library config values temporarily and reverts
    them on completion. Dict values are merged onto the nested section they
    override.
    """
    # Override the configs and hang onto the old values
    old_vals = {}
    for key, val in config_overrides.items():
        if key in config_detail_dict:
            old_vals[key] = config_detail_dict[key]
            if isinstance(val, dict):
                val = merge_configs(copy.deepcopy(dict(old_vals[key])), val)
        if isinstance(val, dict):
            val = aconfig.Config(val, override_env_vars=False)
        config_detail_dict[key] = val

    # Yield to the context
    try:
        yield
    finally:
        # Revert to the old values
        for key in config_overrides:
            if key in old_vals:
                config_detail_dict[key] = old_vals[key]
            else:
                del config_detail_dict[key]


def get_failable_method(fail_flag, method, failure_return=False):
    log.debug4(
        "Setting up failable mock of [%s] with fail flag: %s", str(method), fail_flag
    )

    def failable_method(*args, **kwargs):
        if isinstance(fail_flag, Exception) or (
            inspect.isclass(fail_flag) and issubclass(fail_flag, Exception)
        ):
            log.debug4("Raising in failable mock")
            raise fail_flag
        if callable(fail_flag):
            res = fail_flag()
            if res is not None:
                return res
        elif fail_flag == "assert":
            raise AssertionError(f"You told me to fail {method}!")
        elif fail_flag:
            log.debug4("Returning %s", failure_return)
            return failure_return
        return method(*args, **kwargs)

    return failable_method


class MockDeployManager(DryRunDeployManager):
    """The MockDeployManager wraps a standard DryRunDeployManager and adds
    configuration options to simulate failures in each of its operations.
    """

    def __init__(
        self,
        deploy_fail=False,
        deploy_raise=False,
        disable_fail=False,
        disable_raise=False,
        get_state_fail=False,
        get_state_raise=False,
        filter_fail=False,
        set_status_fail=False,
        set_status_raise=False,
        auto_enable=True,
        resources=None,
        resource_dir=None,
        **kwargs,
    ):
        """This DeployManager can be configured to have various failure cases
        and will mock the state of the cluster so that get_object_current_state
        will pull its information from the local dict.
        """
        resources = list(resources or [])
        resources = resources + RunOperatorCmd._parse_resource_dir(resource_dir)
        for resource in resources:
            resource.setdefault("apiVersion", "v1")
        super().__init__(resources, **kwargs)

        self.deploy_fail = "assert" if deploy_raise else deploy_fail
        self.disable_fail = "assert" if disable_raise else disable_fail
        self.get_state_fail = "assert" if get_state_raise else get_state_fail
        self.filter_fail = filter_fail
        self.set_status_fail = "assert" if set_status_raise else set_status_fail

        # If auto-enabling, turn the mocks on now
        if auto_enable:
            self.enable_mocks()

    ## Helpers for Tests ##

    def enable_mocks(self):
        """Turn the mocks on"""
        self.deploy = mock.Mock(
            side_effect=get_failable_method(
                self.deploy_fail, super().deploy, (False, False)
            )
        )
        self.disable = mock.Mock(
            side_effect=get_failable_method(
                self.disable_fail, super().disable, (False, False)
            )
        )
        self.get_object_current_state = mock.Mock(
            side_effect=get_failable_method(
                self.get_state_fail, super().get_object_current_state, (False, None)
            )
        )
        self.filter_objects_current_state = mock.Mock(
            side_effect=get_failable_method(
                self.filter_fail, super().filter_objects_current_state, (False, [])
            )
        )
        self.set_status = mock.Mock(
            side_effect=get_failable_method(
                self.set_status_fail, super().set_status, (False, False)
            )
        )

    def get_obj(self, kind, name, namespace=None, api_version=None):
        return self.get_object_current_state(kind, name, namespace, api_version)[1]

    def has_obj(self, *args, **kwargs):
        return self.get_obj(*args, **kwargs) is not None

    def get_state(self, kind, name, namespace=TEST_NAMESPACE):
        """Get the status.state of a custom resource"""
        obj = self.get_obj(kind, name, namespace, constants.API_VERSION) or {}
        return (obj.get("status") or {}).get("state")

    def status_states(self) -> list:
        """All states written through set_status, in order"""
        return [
            call.kwargs["status"]["state"] for call in self.set_status.call_args_list
        ]


## Manifests ###################################################################


def make_database(
    name=TEST_NAME,
    namespace=TEST_NAMESPACE,
    status=None,
    uid=TEST_UID,
    resource_version=None,
    labels=None,
    annotations=None,
    **spec_overrides,
):
    """Make a Database manifest with a valid default spec"""
    spec = {
        "username": "postgres",
        "password": {"name": "mydb-secret", "key": "password"},
        "dbname": "mydb",
        "engine": "postgres",
        "version": "14.7",
        "class": "db.t3.micro",
        "size": 20,
        "backupretentionperiod": 7,
        "storagetype": "gp2",
        "provider": "aws",
    }
    spec.update(spec_overrides)
    manifest = {
        "apiVersion": constants.API_VERSION,
        "kind": constants.DATABASE_KIND,
        "metadata": {
            "name": name,
            "namespace": namespace,
            "uid": uid,
            "labels": labels or {},
            "annotations": annotations or {},
        },
        "spec": spec,
    }
    if resource_version is not None:
        manifest["metadata"]["resourceVersion"] = resource_version
    if status is not None:
        manifest["status"] = {"state": status, "message": status}
    return manifest


def make_dbcluster(
    name=TEST_CLUSTER_NAME,
    namespace=TEST_NAMESPACE,
    status=None,
    uid=TEST_UID,
    resource_version=None,
    **spec_overrides,
):
    """Make a DBCluster manifest with a valid default spec"""
    spec = {
        "DBName": "mydb",
        "MasterUsername": "postgres",
        "MasterUserPassword": {"name": "mycluster-secret", "key": "password"},
        "Engine": "aurora-postgresql",
        "EngineVersion": "15.3",
        "BackupRetentionPeriod": 7,
        "Port": 5432,
        "provider": "aws",
    }
    spec.update(spec_overrides)
    manifest = {
        "apiVersion": constants.API_VERSION,
        "kind": constants.DBCLUSTER_KIND,
        "metadata": {"name": name, "namespace": namespace, "uid": uid},
        "spec": spec,
    }
    if resource_version is not None:
        manifest["metadata"]["resourceVersion"] = resource_version
    if status is not None:
        manifest["status"] = {"state": status, "message": status}
    return manifest


def make_node(
    name="node-1",
    instance_id=TEST_INSTANCE_ID,
    region=TEST_REGION,
):
    """Make a Node manifest as it looks on EKS"""
    labels = {}
    if region:
        labels["topology.kubernetes.io/region"] = region
    return {
        "apiVersion": "v1",
        "kind": "Node",
        "metadata": {"name": name, "labels": labels},
        "spec": {"providerID": f"aws:///{region or 'zone'}a/{instance_id}"},
    }


def make_secret(name, key="password", value=TEST_PASSWORD, namespace=TEST_NAMESPACE):
    """Make a Secret manifest holding a single base64 encoded key"""
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": {"name": name, "namespace": namespace},
        "data": {key: base64.b64encode(value.encode("utf-8")).decode("utf-8")},
    }
