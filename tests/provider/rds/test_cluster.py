"""
Tests for the DB cluster lifecycle
"""

# Standard
from unittest import mock

# Third Party
import pytest

# Local
from k8s_rds.exceptions import ProvisioningError
from k8s_rds.provider.rds.cluster import (
    create_cluster,
    create_cluster_input,
    delete_cluster,
    delete_cluster_input,
    modify_cluster_input,
    restore_cluster_input,
    update_cluster,
)
from k8s_rds.provider.rds.discovery import NetworkEnvironment
from k8s_rds.resources import DBCluster
from k8s_rds.test_helpers.aws import (
    FakeRDSClient,
    client_error,
    make_cluster,
    make_instance,
)
from k8s_rds.test_helpers.helpers import (
    FAST_AVAILABILITY,
    TEST_PASSWORD,
    TEST_VPC_ID,
    library_config,
    make_dbcluster,
)

## Helpers #####################################################################

ENV = NetworkEnvironment(
    vpc_id=TEST_VPC_ID,
    subnet_ids=["subnet-1"],
    security_group_ids=["sg-1"],
)
GROUP_NAME = f"db-subnetgroup-{TEST_VPC_ID}"
IDENTIFIER = "mycluster-test"


def make_cl(**overrides) -> DBCluster:
    return DBCluster.from_manifest(make_dbcluster(**overrides))


@pytest.fixture(autouse=True)
def fast_availability():
    with library_config(availability=FAST_AVAILABILITY):
        yield


## Inputs ######################################################################


def test_create_cluster_input():
    """All set fields are sent and MultiAZ never is"""
    params = create_cluster_input(
        make_cl(MultiAZ=True, AllocatedStorage=100),
        GROUP_NAME,
        ["sg-1"],
        TEST_PASSWORD,
    )
    assert params == {
        "DBClusterIdentifier": IDENTIFIER,
        "Engine": "aurora-postgresql",
        "MasterUsername": "postgres",
        "MasterUserPassword": TEST_PASSWORD,
        "DBSubnetGroupName": GROUP_NAME,
        "VpcSecurityGroupIds": ["sg-1"],
        "StorageEncrypted": False,
        "DeletionProtection": False,
        "Tags": [],
        "AllocatedStorage": 100,
        "BackupRetentionPeriod": 7,
        "EngineVersion": "15.3",
        "DatabaseName": "mydb",
        "Port": 5432,
    }


def test_create_cluster_input_scaling_and_public():
    """Scaling is sent when both bounds are set and public access only when
    set at all
    """
    params = create_cluster_input(
        make_cl(
            ServerlessV2ScalingConfiguration={"MinCapacity": 0.5, "MaxCapacity": 2},
            PubliclyAccessible=True,
        ),
        GROUP_NAME,
        [],
        TEST_PASSWORD,
    )
    assert params["ServerlessV2ScalingConfiguration"] == {
        "MinCapacity": 0.5,
        "MaxCapacity": 2.0,
    }
    assert params["PubliclyAccessible"] is True

    params = create_cluster_input(
        make_cl(ServerlessV2ScalingConfiguration={"MinCapacity": 0.5}),
        GROUP_NAME,
        [],
        TEST_PASSWORD,
    )
    assert "ServerlessV2ScalingConfiguration" not in params
    assert "PubliclyAccessible" not in params


def test_restore_cluster_input():
    """Restores carry the snapshot and no credentials"""
    params = restore_cluster_input(
        make_cl(SnapshotIdentifier="csnap"), GROUP_NAME, ["sg-1"]
    )
    assert params["SnapshotIdentifier"] == "csnap"
    assert params["Engine"] == "aurora-postgresql"
    assert params["DBSubnetGroupName"] == GROUP_NAME
    assert "MasterUserPassword" not in params


def test_modify_cluster_input():
    """Modifications always carry the apply and protection flags"""
    params = modify_cluster_input(make_cl(Port=5433, ApplyImmediately=True))
    assert params["DBClusterIdentifier"] == IDENTIFIER
    assert params["ApplyImmediately"] is True
    assert params["DeletionProtection"] is False
    assert params["Port"] == 5433
    assert "AllocatedStorage" not in params
    assert "MasterUserPassword" not in params


def test_delete_cluster_input():
    """A final snapshot is requested unless skipped"""
    assert delete_cluster_input(make_cl(), timestamp=5) == {
        "DBClusterIdentifier": IDENTIFIER,
        "SkipFinalSnapshot": False,
        "FinalDBSnapshotIdentifier": "mycluster-test-5",
    }
    assert delete_cluster_input(make_cl(SkipFinalSnapshot=True)) == {
        "DBClusterIdentifier": IDENTIFIER,
        "SkipFinalSnapshot": True,
    }


def test_explicit_cluster_identifier():
    """An explicit DBClusterIdentifier names the backend cluster"""
    params = modify_cluster_input(make_cl(DBClusterIdentifier="aurora-1"))
    assert params["DBClusterIdentifier"] == "aurora-1"


## Create ######################################################################


def test_create_new():
    """A missing cluster is created and its endpoint returned"""
    rds = FakeRDSClient()
    get_secret = mock.Mock(return_value=TEST_PASSWORD)
    hostname = create_cluster(rds, ENV, make_cl(), get_secret)
    assert hostname == f"{IDENTIFIER}.cluster.rds.example.com"
    get_secret.assert_called_once_with("test", "mycluster-secret", "password")
    rds.create_db_subnet_group.assert_called_once()
    rds.create_db_cluster.assert_called_once()
    assert rds.create_db_cluster.call_args.kwargs["MasterUserPassword"] == TEST_PASSWORD


def test_create_existing():
    """An existing cluster is not created again"""
    rds = FakeRDSClient(
        clusters={IDENTIFIER: make_cluster(IDENTIFIER)}, subnet_groups=[GROUP_NAME]
    )
    create_cluster(rds, ENV, make_cl(), mock.Mock())
    rds.create_db_cluster.assert_not_called()


def test_create_from_snapshot():
    """An existing cluster snapshot is restored"""
    rds = FakeRDSClient(cluster_snapshots=["csnap"])
    get_secret = mock.Mock()
    create_cluster(rds, ENV, make_cl(SnapshotIdentifier="csnap"), get_secret)
    rds.restore_db_cluster_from_snapshot.assert_called_once()
    rds.create_db_cluster.assert_not_called()
    get_secret.assert_not_called()


def test_create_snapshot_missing():
    """A missing cluster snapshot falls back to a fresh create"""
    rds = FakeRDSClient()
    create_cluster(
        rds,
        ENV,
        make_cl(SnapshotIdentifier="csnap"),
        mock.Mock(return_value=TEST_PASSWORD),
    )
    rds.restore_db_cluster_from_snapshot.assert_not_called()
    rds.create_db_cluster.assert_called_once()


def test_create_secret_failure():
    """A secret lookup failure stops before any create call"""
    rds = FakeRDSClient()
    get_secret = mock.Mock(side_effect=ProvisioningError("no secret"))
    with pytest.raises(ProvisioningError):
        create_cluster(rds, ENV, make_cl(), get_secret)
    rds.create_db_cluster.assert_not_called()


## Update ######################################################################


def test_update():
    """Updates modify the cluster between two waits"""
    rds = FakeRDSClient(clusters={IDENTIFIER: make_cluster(IDENTIFIER)})
    update_cluster(rds, make_cl(Port=5433))
    rds.modify_db_cluster.assert_called_once()
    assert rds.modify_db_cluster.call_args.kwargs["Port"] == 5433
    assert rds.describe_db_clusters.call_count == 2


## Delete ######################################################################


def test_delete_cascades_members():
    """Members are deleted without snapshots before the cluster itself"""
    members = ["member-a", "member-b"]
    rds = FakeRDSClient(
        clusters={IDENTIFIER: make_cluster(IDENTIFIER, members=members)},
        instances={member: make_instance(member) for member in members},
        subnet_groups=[GROUP_NAME],
    )
    calls = mock.Mock()
    calls.attach_mock(rds.delete_db_instance, "delete_db_instance")
    calls.attach_mock(rds.delete_db_cluster, "delete_db_cluster")

    delete_cluster(rds, ENV, make_cl(), timestamp=7)

    assert calls.mock_calls == [
        mock.call.delete_db_instance(
            DBInstanceIdentifier="member-a", SkipFinalSnapshot=True
        ),
        mock.call.delete_db_instance(
            DBInstanceIdentifier="member-b", SkipFinalSnapshot=True
        ),
        mock.call.delete_db_cluster(
            DBClusterIdentifier=IDENTIFIER,
            SkipFinalSnapshot=False,
            FinalDBSnapshotIdentifier="mycluster-test-7",
        ),
    ]
    assert not rds.instances
    assert not rds.clusters
    assert not rds.subnet_groups


def test_delete_skips_gone_members():
    """Members that are missing or already deleting are skipped"""
    rds = FakeRDSClient(
        clusters={
            IDENTIFIER: make_cluster(IDENTIFIER, members=["gone", "going", "here"])
        },
        instances={
            "going": make_instance("going", status="deleting"),
            "here": make_instance("here"),
        },
    )
    delete_cluster(rds, ENV, make_cl(SkipFinalSnapshot=True))
    rds.delete_db_instance.assert_called_once_with(
        DBInstanceIdentifier="here", SkipFinalSnapshot=True
    )
    rds.delete_db_cluster.assert_called_once_with(
        DBClusterIdentifier=IDENTIFIER, SkipFinalSnapshot=True
    )


def test_delete_member_failure_continues():
    """A member that fails to delete does not stop the cluster delete"""
    rds = FakeRDSClient(
        clusters={IDENTIFIER: make_cluster(IDENTIFIER, members=["member-a"])},
        instances={"member-a": make_instance("member-a")},
        errors={
            "delete_db_instance": client_error(
                "InvalidDBInstanceState", "DeleteDBInstance"
            )
        },
    )
    delete_cluster(rds, ENV, make_cl())
    rds.delete_db_cluster.assert_called_once()
    assert IDENTIFIER not in rds.clusters


def test_delete_protected():
    """Delete protected clusters are left alone"""
    rds = FakeRDSClient(clusters={IDENTIFIER: make_cluster(IDENTIFIER)})
    delete_cluster(rds, ENV, make_cl(DeletionProtection=True))
    rds.describe_db_clusters.assert_not_called()
    rds.delete_db_cluster.assert_not_called()


def test_delete_missing():
    """Deleting a missing cluster is a no-op"""
    rds = FakeRDSClient()
    delete_cluster(rds, ENV, make_cl())
    rds.delete_db_cluster.assert_not_called()
    rds.delete_db_subnet_group.assert_not_called()


def test_delete_already_deleting():
    """A cluster that is already being deleted is left alone"""
    rds = FakeRDSClient(
        clusters={IDENTIFIER: make_cluster(IDENTIFIER, status="deleting")}
    )
    delete_cluster(rds, ENV, make_cl())
    rds.delete_db_cluster.assert_not_called()


def test_delete_cluster_error():
    """A failing cluster delete is raised"""
    rds = FakeRDSClient(
        clusters={IDENTIFIER: make_cluster(IDENTIFIER)},
        errors={
            "delete_db_cluster": client_error(
                "InvalidDBClusterStateFault", "DeleteDBCluster"
            )
        },
    )
    with pytest.raises(ProvisioningError, match="DeleteDBCluster"):
        delete_cluster(rds, ENV, make_cl())
