"""
Service and Secret access through the deploy manager
"""

# Standard
import base64
import binascii

# First Party
import alog

# Local
from .. import constants
from ..deploy_manager import DeployManagerBase
from ..exceptions import ClusterError, assert_cluster
from .base import ServiceProvider

log = alog.use_channel("SVCAC")


def external_name_service(namespace: str, hostname: str, name: str) -> dict:
    """Build the ExternalName Service that maps the resource name onto the
    backend endpoint
    """
    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": {
            "name": name,
            "namespace": namespace,
            "labels": {"app": name},
            "annotations": {
                constants.SERVICE_ORIGIN_ANNOTATION: constants.RDS_SERVICE_ORIGIN
            },
        },
        "spec": {
            "type": "ExternalName",
            "externalName": hostname,
            "ports": [
                {
                    "name": constants.DATABASE_PORT_NAME,
                    "port": constants.DATABASE_PORT,
                    "targetPort": constants.DATABASE_PORT,
                    "protocol": "TCP",
                }
            ],
        },
    }


class KubeServiceAccessor(ServiceProvider):
    """ServiceProvider that publishes ExternalName Services"""

    def __init__(self, deploy_manager: DeployManagerBase):
        self.deploy_manager = deploy_manager

    def create_service(self, namespace: str, hostname: str, name: str):
        log.info("Publishing service [%s/%s] -> %s", namespace, name, hostname)
        success, changed = self.deploy_manager.deploy(
            [external_name_service(namespace, hostname, name)]
        )
        assert_cluster(success, f"Failed to create service {name} in {namespace}")
        log.debug2("Service [%s/%s] changed? %s", namespace, name, changed)

    def delete_service(self, namespace: str, name: str):
        log.info("Deleting service [%s/%s]", namespace, name)
        success, _ = self.deploy_manager.disable(
            [
                {
                    "apiVersion": "v1",
                    "kind": "Service",
                    "metadata": {"name": name, "namespace": namespace},
                }
            ]
        )
        assert_cluster(success, f"Failed to delete service {name} in {namespace}")

    def get_secret(self, namespace: str, secret_name: str, key: str) -> str:
        log.debug2("Fetching secret [%s/%s] key %s", namespace, secret_name, key)
        success, secret = self.deploy_manager.get_object_current_state(
            kind="Secret", name=secret_name, namespace=namespace, api_version="v1"
        )
        assert_cluster(success, f"Unable to fetch secret {secret_name}")
        assert_cluster(secret is not None, f"Secret {secret_name} not found")

        data = secret.get("data") or {}
        assert_cluster(key in data, f"Key {key} not found in secret {secret_name}")
        try:
            return base64.b64decode(data[key]).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as err:
            raise ClusterError(
                f"Unable to decode key {key} of secret {secret_name}"
            ) from err
