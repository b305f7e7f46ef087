"""
Shared module to hold constant values for the operator
"""

# API group/version shared by both custom resource kinds
GROUP = "cloudnatix.com"
VERSION = "v1"
API_VERSION = f"{GROUP}/{VERSION}"

# Custom resource kinds
DATABASE_KIND = "Database"
DATABASE_PLURAL = "databases"
DBCLUSTER_KIND = "DBCluster"
DBCLUSTER_PLURAL = "dbclusters"
DBCLUSTER_SHORT_NAME = "cls"

# Provider names
AWS_PROVIDER = "aws"
LOCAL_PROVIDER = "local"

# Published Service settings
SERVICE_ORIGIN_ANNOTATION = "origin"
RDS_SERVICE_ORIGIN = "rds"
LOCAL_SERVICE_ORIGIN = "k8s-rds"
DATABASE_PORT_NAME = "pgsql"
DATABASE_PORT = 5432

# Tag limits for provider resources
MAX_TAG_LENGTH = 255
RESERVED_TAG_KEY_PATTERN = r"^kube.*$"

# Advisory tag put on every subnet group this operator creates
SUBNET_GROUP_TAG_KEY = "Warning"
SUBNET_GROUP_TAG_VALUE = "Managed by k8s-rds."

# Node labels carrying the cloud region
REGION_NODE_LABELS = [
    "topology.kubernetes.io/region",
    "failure-domain.beta.kubernetes.io/region",
]

# Delimiter used for nested dict keys
NESTED_DICT_DELIM = "."
