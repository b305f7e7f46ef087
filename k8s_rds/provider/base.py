"""
The provider interfaces the controllers depend on. A DatabaseProvider owns the
backend lifecycle of both resource kinds and is also a ServiceProvider, which
publishes the resulting endpoint into the cluster and resolves credentials.
"""

# Standard
import abc

# Local
from ..resources import Database, DBCluster


class ServiceProvider(abc.ABC):
    """Service and Secret plumbing inside the kubernetes cluster"""

    @abc.abstractmethod
    def create_service(self, namespace: str, hostname: str, name: str):
        """Create or update the Service that exposes a database endpoint

        Args:
            namespace:  str
                The namespace of the custom resource
            hostname:  str
                The network endpoint returned by the create call
            name:  str
                The name of the Service (the custom resource name)
        """

    @abc.abstractmethod
    def delete_service(self, namespace: str, name: str):
        """Delete the Service published for a resource"""

    @abc.abstractmethod
    def get_secret(self, namespace: str, secret_name: str, key: str) -> str:
        """Resolve a key of a Secret to its plaintext value

        Args:
            namespace:  str
                The namespace holding the secret
            secret_name:  str
                The name of the secret
            key:  str
                The key inside the secret's data

        Returns:
            value:  str
                The decoded value
        """


class DatabaseProvider(ServiceProvider):
    """Lifecycle operations for Database and DBCluster backends. Create calls
    return the hostname of the endpoint to publish.
    """

    @abc.abstractmethod
    def create_database(self, db: Database) -> str:
        """Create (or find) the backend instance for a Database"""

    @abc.abstractmethod
    def update_database(self, db: Database):
        """Apply the mutable fields of a Database to its backend instance"""

    @abc.abstractmethod
    def delete_database(self, db: Database):
        """Delete the backend instance of a Database"""

    @abc.abstractmethod
    def create_db_cluster(self, cluster: DBCluster) -> str:
        """Create (or find) the backend cluster for a DBCluster"""

    @abc.abstractmethod
    def update_db_cluster(self, cluster: DBCluster):
        """Apply the mutable fields of a DBCluster to its backend cluster"""

    @abc.abstractmethod
    def delete_db_cluster(self, cluster: DBCluster):
        """Delete the backend cluster of a DBCluster"""
