"""
Typed views over Database and DBCluster custom resource manifests.

Spec keys are looked up case-insensitively so that "MultiAZ", "multiaz" and
"multiAz" all land on the same field. A few historic aliases are also accepted
(publicaccess/publiclyaccessible and encrypted/storageencrypted).
"""

# Standard
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional, Type, TypeVar
import copy

# First Party
import alog

# Local
from . import config, constants
from .config.validation import get_invalid_values, parse_validation_config
from .exceptions import ConfigError
from .status import ResourceState, get_message, get_state

log = alog.use_channel("RSRCS")

ResourceT = TypeVar("ResourceT", bound="ResourceBase")

## Validation ##################################################################

_NAME_PATTERN = r"^[A-Za-z]\w+$"
_STORAGE_TYPES = ["gp2", "gp3", "io1", "standard"]

_COMMON_VALIDATION = {
    "backup_retention_period": {"type": "int", "min": 0, "max": 35, "optional": True},
    "iops": {"type": "int", "min": 1000, "max": 80000, "optional": True},
    "storage_type": {"type": "enum", "values": _STORAGE_TYPES, "optional": True},
}

_DATABASE_VALIDATORS = parse_validation_config(
    {
        **_COMMON_VALIDATION,
        "username": {
            "type": "pattern",
            "regex": _NAME_PATTERN,
            "min_len": 1,
            "max_len": 16,
            "optional": True,
        },
        "db_name": {
            "type": "pattern",
            "regex": _NAME_PATTERN,
            "min_len": 1,
            "max_len": 63,
            "optional": True,
        },
        "size": {"type": "int", "min": 20, "max": 64000, "optional": True},
        "max_allocated_size": {"type": "int", "min": 20, "max": 64000, "optional": True},
    }
)

_DBCLUSTER_VALIDATORS = parse_validation_config(
    {
        **_COMMON_VALIDATION,
        "master_username": {
            "type": "pattern",
            "regex": _NAME_PATTERN,
            "min_len": 1,
            "max_len": 16,
            "optional": True,
        },
        "db_name": {
            "type": "pattern",
            "regex": _NAME_PATTERN,
            "min_len": 1,
            "max_len": 63,
            "optional": True,
        },
        "port": {"type": "int", "min": 1150, "max": 65535, "optional": True},
        "scaling": {
            "min_capacity": {"type": "number", "min": 0.5, "max": 128, "optional": True},
            "max_capacity": {"type": "number", "min": 0.5, "max": 128, "optional": True},
        },
    }
)

## Helpers #####################################################################


def _lower_keys(spec: Optional[dict]) -> dict:
    """Make a copy of a spec dict with every key lowercased"""
    return {str(key).lower(): val for key, val in (spec or {}).items()}


def _lookup(spec: dict, *keys: str, default: Any = None) -> Any:
    """Get the first present key from a lowercased spec"""
    for key in keys:
        if spec.get(key) is not None:
            return spec[key]
    return default


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1")
    return bool(value)


def _as_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as err:
        raise ConfigError(f"Expected an integer but got [{value}]") from err


def _as_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError) as err:
        raise ConfigError(f"Expected a number but got [{value}]") from err


def _as_str(value: Any) -> str:
    return "" if value is None else str(value)


## Shared Types ################################################################


@dataclass
class SecretRef:
    """Reference to a key inside a kubernetes Secret"""

    name: str = ""
    key: str = ""

    @classmethod
    def from_spec(cls, ref: Optional[dict]) -> "SecretRef":
        ref = _lower_keys(ref)
        return cls(name=_as_str(ref.get("name")), key=_as_str(ref.get("key")))


@dataclass
class ScalingConfig:
    """Serverless v2 capacity bounds for a DBCluster"""

    min_capacity: Optional[float] = None
    max_capacity: Optional[float] = None

    @classmethod
    def from_spec(cls, scaling: Optional[dict]) -> Optional["ScalingConfig"]:
        if not scaling:
            return None
        scaling = _lower_keys(scaling)
        return cls(
            min_capacity=_as_float(scaling.get("mincapacity")),
            max_capacity=_as_float(scaling.get("maxcapacity")),
        )


@dataclass
class ResourceBase:
    """Identity and status shared by both resource kinds"""

    # Class attributes describing the kind
    kind = None
    tracked_fields = []
    validators = {}

    name: str = ""
    namespace: str = ""
    resource_version: Optional[str] = None
    uid: Optional[str] = None
    labels: Dict[str, str] = field(default_factory=dict)
    annotations: Dict[str, str] = field(default_factory=dict)
    state: ResourceState = ResourceState.UNSET
    message: str = ""
    manifest: dict = field(default_factory=dict, repr=False, compare=False)

    @staticmethod
    def _identity(manifest: dict) -> dict:
        metadata = manifest.get("metadata") or {}
        return {
            "name": metadata.get("name", ""),
            "namespace": metadata.get("namespace", ""),
            "resource_version": metadata.get("resourceVersion"),
            "uid": metadata.get("uid"),
            "labels": dict(metadata.get("labels") or {}),
            "annotations": dict(metadata.get("annotations") or {}),
            "state": get_state(manifest),
            "message": get_message(manifest),
            "manifest": copy.deepcopy(manifest),
        }

    @classmethod
    def from_manifest(cls: Type[ResourceT], manifest: dict) -> ResourceT:
        """Build the typed view from a raw manifest dict"""
        raise NotImplementedError

    @property
    def default_identifier(self) -> str:
        """The deterministic backend identifier derived from the resource
        name and namespace
        """
        return f"{self.name}-{self.namespace}"

    def changed_fields(self, previous: "ResourceBase") -> List[str]:
        """Get the names of the tracked fields whose values differ from the
        previous version of this resource
        """
        return [
            field_name
            for field_name in self.tracked_fields
            if getattr(self, field_name) != getattr(previous, field_name)
        ]

    def validate(self):
        """Validate the spec fields of this resource

        Raises:
            ConfigError: If any field violates its allowed pattern or range
        """
        values = {
            spec_field.name: getattr(self, spec_field.name) for spec_field in fields(self)
        }
        # Empty strings stand for unset values
        values = {
            key: (None if val == "" else val)
            for key, val in values.items()
        }
        if values.get("scaling") is not None:
            values["scaling"] = {
                "min_capacity": self.scaling.min_capacity,
                "max_capacity": self.scaling.max_capacity,
            }
        invalid = get_invalid_values(values, self.validators)
        if invalid:
            raise ConfigError(
                f"Invalid {self.kind} spec for [{self.namespace}/{self.name}]: "
                + ", ".join(sorted(invalid))
            )


## Database ####################################################################


@dataclass
class Database(ResourceBase):  # pylint: disable=too-many-instance-attributes
    """A standalone RDS instance, or a member instance of a DBCluster"""

    kind = constants.DATABASE_KIND
    tracked_fields = ["apply_immediately", "instance_class", "size", "max_allocated_size"]
    validators = _DATABASE_VALIDATORS

    username: str = ""
    password: SecretRef = field(default_factory=SecretRef)
    db_name: str = ""
    engine: str = ""
    version: str = ""
    instance_class: str = ""
    size: Optional[int] = None
    max_allocated_size: Optional[int] = None
    multi_az: bool = False
    publicly_accessible: bool = False
    storage_encrypted: bool = False
    storage_type: str = ""
    iops: Optional[int] = None
    backup_retention_period: Optional[int] = None
    delete_protection: bool = False
    tags: str = ""
    provider: str = ""
    skip_final_snapshot: bool = False
    apply_immediately: bool = False
    snapshot_identifier: str = ""
    db_cluster_identifier: str = ""
    db_instance_identifier: str = ""

    @classmethod
    def from_manifest(cls, manifest: dict) -> "Database":
        spec = _lower_keys(manifest.get("spec"))
        return cls(
            **cls._identity(manifest),
            username=_as_str(spec.get("username")),
            password=SecretRef.from_spec(spec.get("password")),
            db_name=_as_str(spec.get("dbname")),
            engine=_as_str(spec.get("engine")),
            version=_as_str(spec.get("version")),
            instance_class=_as_str(spec.get("class")),
            size=_as_int(spec.get("size")),
            max_allocated_size=_as_int(spec.get("maxallocatedsize")),
            multi_az=_as_bool(spec.get("multiaz")),
            publicly_accessible=_as_bool(
                _lookup(spec, "publicaccess", "publiclyaccessible", default=False)
            ),
            storage_encrypted=_as_bool(
                _lookup(spec, "encrypted", "storageencrypted", default=False)
            ),
            storage_type=_as_str(spec.get("storagetype")),
            iops=_as_int(spec.get("iops")),
            backup_retention_period=_as_int(spec.get("backupretentionperiod")),
            delete_protection=_as_bool(spec.get("deleteprotection")),
            tags=_as_str(spec.get("tags")),
            provider=_as_str(spec.get("provider")),
            skip_final_snapshot=_as_bool(spec.get("skipfinalsnapshot")),
            apply_immediately=_as_bool(spec.get("applyimmediately")),
            snapshot_identifier=_as_str(spec.get("snapshotidentifier")),
            db_cluster_identifier=_as_str(spec.get("dbclusteridentifier")),
            db_instance_identifier=_as_str(spec.get("dbinstanceidentifier")),
        )

    @property
    def instance_identifier(self) -> str:
        """The backend instance identifier. An explicit override wins over the
        name-namespace default.
        """
        return self.db_instance_identifier or self.default_identifier

    @property
    def is_cluster_member(self) -> bool:
        """Whether this instance belongs to a DBCluster"""
        return bool(self.db_cluster_identifier)


## DBCluster ###################################################################


@dataclass
class DBCluster(ResourceBase):  # pylint: disable=too-many-instance-attributes
    """An RDS (Aurora) cluster"""

    kind = constants.DBCLUSTER_KIND
    tracked_fields = [
        "apply_immediately",
        "instance_class",
        "allocated_storage",
        "port",
        "deletion_protection",
        "scaling",
    ]
    validators = _DBCLUSTER_VALIDATORS

    db_name: str = ""
    master_username: str = ""
    master_user_password: SecretRef = field(default_factory=SecretRef)
    db_cluster_identifier: str = ""
    engine: str = ""
    engine_version: str = ""
    allocated_storage: Optional[int] = None
    backup_retention_period: Optional[int] = None
    instance_class: str = ""
    deletion_protection: bool = False
    iops: Optional[int] = None
    port: Optional[int] = None
    storage_type: str = ""
    provider: str = ""
    tags: str = ""
    storage_encrypted: bool = False
    scaling: Optional[ScalingConfig] = None
    multi_az: bool = False
    skip_final_snapshot: bool = False
    publicly_accessible: Optional[bool] = None
    apply_immediately: bool = False
    snapshot_identifier: str = ""

    @classmethod
    def from_manifest(cls, manifest: dict) -> "DBCluster":
        spec = _lower_keys(manifest.get("spec"))
        publicly_accessible = _lookup(spec, "publiclyaccessible", "publicaccess")
        return cls(
            **cls._identity(manifest),
            db_name=_as_str(spec.get("dbname")),
            master_username=_as_str(spec.get("masterusername")),
            master_user_password=SecretRef.from_spec(spec.get("masteruserpassword")),
            db_cluster_identifier=_as_str(spec.get("dbclusteridentifier")),
            engine=_as_str(spec.get("engine")),
            engine_version=_as_str(spec.get("engineversion")),
            allocated_storage=_as_int(spec.get("allocatedstorage")),
            backup_retention_period=_as_int(spec.get("backupretentionperiod")),
            instance_class=_as_str(spec.get("dbclusterinstanceclass")),
            deletion_protection=_as_bool(spec.get("deletionprotection")),
            iops=_as_int(spec.get("iops")),
            port=_as_int(spec.get("port")),
            storage_type=_as_str(spec.get("storagetype")),
            provider=_as_str(spec.get("provider")),
            tags=_as_str(spec.get("tags")),
            storage_encrypted=_as_bool(
                _lookup(spec, "storageencrypted", "encrypted", default=False)
            ),
            scaling=ScalingConfig.from_spec(
                spec.get("serverlessv2scalingconfiguration")
            ),
            multi_az=_as_bool(spec.get("multiaz")),
            skip_final_snapshot=_as_bool(spec.get("skipfinalsnapshot")),
            publicly_accessible=(
                None if publicly_accessible is None else _as_bool(publicly_accessible)
            ),
            apply_immediately=_as_bool(spec.get("applyimmediately")),
            snapshot_identifier=_as_str(spec.get("snapshotidentifier")),
        )

    @property
    def cluster_identifier(self) -> str:
        """The backend cluster identifier. An explicit DBClusterIdentifier wins
        over the name-namespace default.
        """
        return self.db_cluster_identifier or self.default_identifier

    @property
    def delete_protection(self) -> bool:
        """Common name for the deletion protection flag"""
        return self.deletion_protection


## Public ######################################################################


def validate_spec(resource: ResourceBase):
    """Validate a parsed resource, raising ConfigError on any violation"""
    log.debug2("Validating %s [%s/%s]", resource.kind, resource.namespace, resource.name)
    resource.validate()


def resource_class_for_kind(kind: str) -> Type[ResourceBase]:
    """Get the typed view class for a kind name"""
    classes = {cls.kind: cls for cls in (Database, DBCluster)}
    if kind not in classes:
        raise ConfigError(f"Unknown resource kind [{kind}]")
    return classes[kind]


def get_provider_name(resource: ResourceBase) -> str:
    """The provider selected for a resource, falling back to the process
    default
    """
    return (resource.provider or config.provider or "").lower()
