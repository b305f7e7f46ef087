"""
The local provider runs the database as a single container inside the cluster,
backed by a PersistentVolumeClaim. It never polls a cloud API and has no
cluster support.
"""

# Standard
from typing import Optional
import threading

# First Party
import alog

# Local
from .. import config, constants
from ..deploy_manager import DeployManagerBase
from ..exceptions import ClusterError, ProviderError, assert_cluster
from ..resources import Database, DBCluster
from .base import DatabaseProvider
from .service import KubeServiceAccessor

log = alog.use_channel("LOCAL")

PGDATA_PATH = "/var/lib/postgresql/data"
PROJECT_REPOSITORY = "https://github.com/sorenmat/k8s-rds"
SIZE_UNIT = "Gi"


## Manifests ###################################################################


def image_name(db: Database, repository: str = "") -> str:
    """The container image for a database: [<repository>/]<engine>:<version>"""
    image = f"{db.engine}:{db.version or 'latest'}"
    return f"{repository}/{image}" if repository else image


def pvc_manifest(db: Database) -> dict:
    """The claim holding the database files"""
    return {
        "apiVersion": "v1",
        "kind": "PersistentVolumeClaim",
        "metadata": {
            "name": db.name,
            "namespace": db.namespace,
            "labels": {"app": db.name},
            "annotations": {"repository": PROJECT_REPOSITORY},
        },
        "spec": {
            "accessModes": ["ReadWriteOnce"],
            "storageClassName": config.local.storage_class,
            "resources": {"requests": {"storage": f"{db.size or 0}{SIZE_UNIT}"}},
        },
    }


def deployment_manifest(db: Database, repository: str = "") -> dict:
    """The single replica deployment running the database container"""
    volume_name = f"{db.name}-data"
    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {
            "name": db.name,
            "namespace": db.namespace,
            "labels": {"db": "true"},
        },
        "spec": {
            "replicas": 1,
            "selector": {"matchLabels": {"db": db.name}},
            "template": {
                "metadata": {"labels": {"db": db.name}},
                "spec": {
                    "containers": [
                        {
                            "name": db.name,
                            "image": image_name(db, repository),
                            "env": [
                                {
                                    "name": "POSTGRES_PASSWORD",
                                    "valueFrom": {
                                        "secretKeyRef": {
                                            "name": db.password.name,
                                            "key": db.password.key,
                                        }
                                    },
                                },
                                {"name": "POSTGRES_USER", "value": db.username},
                                {"name": "POSTGRES_DB", "value": db.db_name},
                                {"name": "PGDATA", "value": f"{PGDATA_PATH}/pgdata"},
                            ],
                            "volumeMounts": [
                                {"name": volume_name, "mountPath": PGDATA_PATH}
                            ],
                            "ports": [
                                {
                                    "name": constants.DATABASE_PORT_NAME,
                                    "protocol": "TCP",
                                    "containerPort": constants.DATABASE_PORT,
                                }
                            ],
                        }
                    ],
                    "volumes": [
                        {
                            "name": volume_name,
                            "persistentVolumeClaim": {"claimName": db.name},
                        }
                    ],
                },
            },
        },
    }


def cluster_ip_service(namespace: str, name: str) -> dict:
    """The Service selecting the database pod"""
    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": {
            "name": name,
            "namespace": namespace,
            "annotations": {
                constants.SERVICE_ORIGIN_ANNOTATION: constants.LOCAL_SERVICE_ORIGIN
            },
        },
        "spec": {
            "type": "ClusterIP",
            "selector": {"db": name},
            "ports": [
                {
                    "name": constants.DATABASE_PORT_NAME,
                    "port": constants.DATABASE_PORT,
                    "targetPort": constants.DATABASE_PORT,
                }
            ],
        },
    }


## Provider ####################################################################


class LocalProvider(DatabaseProvider):
    """DatabaseProvider backed by an in-cluster container"""

    def __init__(
        self,
        deploy_manager: DeployManagerBase,
        repository: Optional[str] = None,
        shutdown: Optional[threading.Event] = None,
    ):
        """
        Args:
            deploy_manager:  DeployManagerBase
                The deploy manager used for every cluster operation
            repository:  Optional[str]
                Image repository override. Defaults to config.repository.
            shutdown:  Optional[threading.Event]
                Event that interrupts the volume bind wait
        """
        self.deploy_manager = deploy_manager
        self.repository = config.repository if repository is None else repository
        self.shutdown = shutdown or threading.Event()
        self._services = KubeServiceAccessor(deploy_manager)

    ## Database ################################################################

    def create_database(self, db: Database) -> str:
        log.info("Creating local database [%s/%s]", db.namespace, db.name)
        self._apply(pvc_manifest(db), "pvc")
        if config.local.wait_for_volume:
            self._wait_for_volume(db)
        self._apply(deployment_manifest(db, self.repository), "deployment")
        return db.name

    def update_database(self, db: Database):
        log.info("Updating local database [%s/%s]", db.namespace, db.name)
        self.create_database(db)

    def delete_database(self, db: Database):
        log.info("Deleting local database [%s/%s]", db.namespace, db.name)
        to_delete = [_object_ref(deployment_manifest(db))]
        if db.delete_protection:
            log.warning(
                "Keeping the volume of delete protected database [%s/%s]",
                db.namespace,
                db.name,
            )
        else:
            to_delete.append(_object_ref(pvc_manifest(db)))

        for attempt in range(1, config.local.delete_attempts + 1):
            success, _ = self.deploy_manager.disable(to_delete)
            if success:
                return
            log.warning(
                "Delete attempt %d for [%s/%s] failed", attempt, db.namespace, db.name
            )
        raise ClusterError(
            f"The number of attempts to delete db {db.name} has been exceeded"
        )

    ## DBCluster ###############################################################

    def create_db_cluster(self, cluster: DBCluster) -> str:
        raise ProviderError("The local provider does not support DBCluster")

    def update_db_cluster(self, cluster: DBCluster):
        raise ProviderError("The local provider does not support DBCluster")

    def delete_db_cluster(self, cluster: DBCluster):
        raise ProviderError("The local provider does not support DBCluster")

    ## Service #################################################################

    def create_service(self, namespace: str, hostname: str, name: str):
        log.info("Publishing local service [%s/%s]", namespace, name)
        success, _ = self.deploy_manager.deploy([cluster_ip_service(namespace, name)])
        assert_cluster(success, f"Failed to create service {name} in {namespace}")

    def delete_service(self, namespace: str, name: str):
        self._services.delete_service(namespace, name)

    def get_secret(self, namespace: str, secret_name: str, key: str) -> str:
        return self._services.get_secret(namespace, secret_name, key)

    ## Implementation ##########################################################

    def _apply(self, manifest: dict, description: str):
        success, changed = self.deploy_manager.deploy([manifest])
        assert_cluster(
            success,
            f"Failed to apply {description} {manifest['metadata']['name']}",
        )
        log.debug2(
            "Applied %s %s (changed: %s)",
            description,
            manifest["metadata"]["name"],
            changed,
        )

    def _wait_for_volume(self, db: Database):
        """Wait until the claim and its volume are both bound"""
        for _ in range(config.local.volume_poll_attempts):
            success, pvc = self.deploy_manager.get_object_current_state(
                kind="PersistentVolumeClaim",
                name=db.name,
                namespace=db.namespace,
                api_version="v1",
            )
            assert_cluster(success, f"Problem getting pvc {db.name}")
            pvc = pvc or {}
            if (pvc.get("status") or {}).get("phase") == "Bound":
                volume_name = (pvc.get("spec") or {}).get("volumeName")
                success, volume = self.deploy_manager.get_object_current_state(
                    kind="PersistentVolume", name=volume_name, api_version="v1"
                )
                assert_cluster(success, f"Problem getting pv {volume_name}")
                if ((volume or {}).get("status") or {}).get("phase") == "Bound":
                    log.info("pvc %s is ready (bound)", db.name)
                    return

            if self.shutdown.wait(config.local.volume_poll_interval_seconds):
                break
        raise ClusterError(
            f"Max amount of wait iterations for pvc {db.name} being bound is expired"
        )


def _object_ref(manifest: dict) -> dict:
    """Reduce a manifest to the identifiers needed to delete it"""
    return {
        "apiVersion": manifest["apiVersion"],
        "kind": manifest["kind"],
        "metadata": {
            "name": manifest["metadata"]["name"],
            "namespace": manifest["metadata"]["namespace"],
        },
    }
