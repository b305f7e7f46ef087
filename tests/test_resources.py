"""
Tests for the typed Database and DBCluster views
"""

# Third Party
import pytest

# Local
from k8s_rds import constants
from k8s_rds.exceptions import ConfigError
from k8s_rds.resources import (
    Database,
    DBCluster,
    ScalingConfig,
    SecretRef,
    get_provider_name,
    resource_class_for_kind,
    validate_spec,
)
from k8s_rds.status import ResourceState
from k8s_rds.test_helpers.helpers import (
    TEST_NAME,
    TEST_NAMESPACE,
    library_config,
    make_database,
    make_dbcluster,
)

## Database ####################################################################


def test_database_from_manifest():
    """Make sure all spec fields are parsed"""
    db = Database.from_manifest(
        make_database(
            status="Created",
            resource_version="42",
            labels={"team": "a"},
            multiaz=True,
            publicaccess=True,
            encrypted=True,
            iops=1000,
            deleteprotection=True,
            tags="env=prod",
            skipfinalsnapshot=True,
            applyimmediately=True,
            snapshotidentifier="snap",
            MaxAllocatedSize=100,
        )
    )
    assert db.name == TEST_NAME
    assert db.namespace == TEST_NAMESPACE
    assert db.resource_version == "42"
    assert db.labels == {"team": "a"}
    assert db.state == ResourceState.CREATED
    assert db.username == "postgres"
    assert db.password == SecretRef(name="mydb-secret", key="password")
    assert db.db_name == "mydb"
    assert db.engine == "postgres"
    assert db.version == "14.7"
    assert db.instance_class == "db.t3.micro"
    assert db.size == 20
    assert db.max_allocated_size == 100
    assert db.multi_az
    assert db.publicly_accessible
    assert db.storage_encrypted
    assert db.storage_type == "gp2"
    assert db.iops == 1000
    assert db.backup_retention_period == 7
    assert db.delete_protection
    assert db.tags == "env=prod"
    assert db.provider == "aws"
    assert db.skip_final_snapshot
    assert db.apply_immediately
    assert db.snapshot_identifier == "snap"


def test_database_keys_case_insensitive():
    """Spec keys match regardless of case"""
    manifest = make_database()
    manifest["spec"]["MultiAZ"] = True
    manifest["spec"]["DBClusterIdentifier"] = "mycluster"
    db = Database.from_manifest(manifest)
    assert db.multi_az
    assert db.db_cluster_identifier == "mycluster"
    assert db.is_cluster_member


def test_database_publicly_accessible_alias():
    """The long name of the public access flag is accepted"""
    db = Database.from_manifest(make_database(publiclyaccessible="true"))
    assert db.publicly_accessible is True


def test_database_defaults():
    """Missing optional fields take empty defaults"""
    db = Database.from_manifest(
        {
            "kind": "Database",
            "metadata": {"name": "x", "namespace": "y"},
            "spec": {"engine": "postgres"},
        }
    )
    assert db.size is None
    assert db.backup_retention_period is None
    assert not db.multi_az
    assert db.password == SecretRef()
    assert db.state == ResourceState.UNSET
    assert not db.is_cluster_member


def test_database_bad_integer():
    """A non-numeric integer field is a config error"""
    with pytest.raises(ConfigError):
        Database.from_manifest(make_database(size="big"))


def test_database_string_integer():
    """Numeric strings are accepted for integer fields"""
    assert Database.from_manifest(make_database(size="30")).size == 30


def test_instance_identifier():
    """The identifier is name-namespace unless explicitly set"""
    assert Database.from_manifest(make_database()).instance_identifier == "mydb-test"
    db = Database.from_manifest(make_database(dbinstanceidentifier="explicit"))
    assert db.instance_identifier == "explicit"


def test_database_changed_fields():
    """Only the tracked fields are reported as changed"""
    old = Database.from_manifest(make_database())
    new = Database.from_manifest(
        make_database(size=40, engine="mysql", status="Created", resource_version="2")
    )
    assert new.changed_fields(old) == ["size"]

    new = Database.from_manifest(
        make_database(**{"class": "db.m5.large", "applyimmediately": True})
    )
    assert sorted(new.changed_fields(old)) == ["apply_immediately", "instance_class"]


## DBCluster ###################################################################


def test_dbcluster_from_manifest():
    """Make sure all cluster spec fields are parsed"""
    cluster = DBCluster.from_manifest(
        make_dbcluster(
            DBClusterIdentifier="my-aurora",
            AllocatedStorage=100,
            DBClusterInstanceClass="db.r6g.large",
            DeletionProtection=True,
            Iops=3000,
            storagetype="io1",
            tags="a=b",
            encrypted=True,
            ServerlessV2ScalingConfiguration={"MinCapacity": 0.5, "MaxCapacity": 4},
            MultiAZ=True,
            SkipFinalSnapshot=True,
            PubliclyAccessible=False,
            ApplyImmediately=True,
            SnapshotIdentifier="snap",
        )
    )
    assert cluster.db_name == "mydb"
    assert cluster.master_username == "postgres"
    assert cluster.master_user_password == SecretRef("mycluster-secret", "password")
    assert cluster.cluster_identifier == "my-aurora"
    assert cluster.engine == "aurora-postgresql"
    assert cluster.engine_version == "15.3"
    assert cluster.allocated_storage == 100
    assert cluster.backup_retention_period == 7
    assert cluster.instance_class == "db.r6g.large"
    assert cluster.deletion_protection
    assert cluster.delete_protection
    assert cluster.iops == 3000
    assert cluster.port == 5432
    assert cluster.storage_type == "io1"
    assert cluster.tags == "a=b"
    assert cluster.storage_encrypted
    assert cluster.scaling == ScalingConfig(min_capacity=0.5, max_capacity=4.0)
    assert cluster.multi_az
    assert cluster.skip_final_snapshot
    assert cluster.publicly_accessible is False
    assert cluster.apply_immediately
    assert cluster.snapshot_identifier == "snap"


def test_dbcluster_defaults():
    """Unset optional cluster fields"""
    cluster = DBCluster.from_manifest(make_dbcluster())
    assert cluster.cluster_identifier == "mycluster-test"
    assert cluster.scaling is None
    assert cluster.publicly_accessible is None
    assert cluster.allocated_storage is None


def test_dbcluster_changed_fields():
    """Changes to scaling and port are tracked for clusters"""
    old = DBCluster.from_manifest(make_dbcluster())
    new = DBCluster.from_manifest(
        make_dbcluster(
            Port=5433,
            ServerlessV2ScalingConfiguration={"MinCapacity": 1, "MaxCapacity": 2},
        )
    )
    assert sorted(new.changed_fields(old)) == ["port", "scaling"]
    assert DBCluster.from_manifest(make_dbcluster()).changed_fields(old) == []


## Validation ##################################################################


def test_validate_valid_database():
    """The default manifest is valid"""
    validate_spec(Database.from_manifest(make_database()))


@pytest.mark.parametrize(
    "overrides",
    [
        {"username": "1postgres"},
        {"username": "a" * 17},
        {"dbname": "my-db"},
        {"dbname": "mydb\n"},
        {"username": "pg\n"},
        {"size": 10},
        {"size": 70000},
        {"backupretentionperiod": 36},
        {"iops": 500},
        {"storagetype": "ssd"},
    ],
)
def test_validate_invalid_database(overrides):
    """Out of range or malformed fields are rejected"""
    with pytest.raises(ConfigError):
        validate_spec(Database.from_manifest(make_database(**overrides)))


def test_validate_empty_optional_fields():
    """Empty optional fields are not validated"""
    validate_spec(Database.from_manifest(make_database(storagetype="", size=None)))


def test_validate_valid_dbcluster():
    """The default cluster manifest is valid"""
    validate_spec(DBCluster.from_manifest(make_dbcluster()))


@pytest.mark.parametrize(
    "overrides",
    [
        {"Port": 80},
        {"MasterUsername": "_admin"},
        {"ServerlessV2ScalingConfiguration": {"MinCapacity": 0.1, "MaxCapacity": 1}},
        {"ServerlessV2ScalingConfiguration": {"MinCapacity": 1, "MaxCapacity": 256}},
    ],
)
def test_validate_invalid_dbcluster(overrides):
    """Out of range cluster fields are rejected"""
    with pytest.raises(ConfigError):
        validate_spec(DBCluster.from_manifest(make_dbcluster(**overrides)))


## Helpers #####################################################################


def test_resource_class_for_kind():
    """Kind names map onto the typed views"""
    assert resource_class_for_kind(constants.DATABASE_KIND) is Database
    assert resource_class_for_kind(constants.DBCLUSTER_KIND) is DBCluster
    with pytest.raises(ConfigError):
        resource_class_for_kind("Widget")


def test_get_provider_name():
    """The resource provider wins over the configured default"""
    assert get_provider_name(Database.from_manifest(make_database())) == "aws"
    assert (
        get_provider_name(Database.from_manifest(make_database(provider="Local")))
        == "local"
    )
    with library_config(provider="local"):
        assert (
            get_provider_name(Database.from_manifest(make_database(provider="")))
            == "local"
        )
