"""
This module implements custom exceptions
"""

# Standard
from typing import Optional

## Base Error ##################################################################


class K8sRdsError(Exception):
    """Base class for all k8s_rds exceptions"""

    def __init__(self, message: str, is_fatal_error: bool):
        """Construct with a flag indicating whether this is a fatal error. This
        will be a static property of all children.
        """
        super().__init__(message)
        self._is_fatal_error = is_fatal_error

    @property
    def is_fatal_error(self):
        """Property indicating whether or not this error ends the current
        reconcile with a Failed status
        """
        return self._is_fatal_error


## Fatal Errors ################################################################


class K8sRdsFatalError(K8sRdsError):
    """A K8sRdsFatalError ends the current reconcile. The error text is written
    to the resource status and nothing is retried until the resource changes.
    """

    def __init__(self, message: str = ""):
        super().__init__(message=message, is_fatal_error=True)


class ConfigError(K8sRdsFatalError):
    """Exception caused by invalid operator config or an invalid resource spec"""


class ClusterError(K8sRdsFatalError):
    """Exception caused when a kubernetes cluster operation fails in an
    unexpected way
    """


class DiscoveryError(K8sRdsFatalError):
    """Exception caused when the network environment (nodes, VPC, subnets,
    security groups) cannot be resolved
    """


class ProviderError(K8sRdsFatalError):
    """Exception caused when a provider cannot perform the requested
    operation at all
    """


class ProvisioningError(K8sRdsFatalError):
    """Exception caused when a backend API call fails. It carries the operation
    name and the identifier of the resource it was called for.
    """

    def __init__(
        self,
        message: str = "",
        operation: Optional[str] = None,
        identifier: Optional[str] = None,
    ):
        self.operation = operation
        self.identifier = identifier
        prefix = ""
        if operation:
            prefix = f"{operation} [{identifier}]: " if identifier else f"{operation}: "
        super().__init__(prefix + message)


class AvailabilityTimeoutError(ProvisioningError):
    """Exception raised when a resource does not become available before the
    polling deadline
    """


## Expected Errors #############################################################


class K8sRdsExpectedError(K8sRdsError):
    """A K8sRdsExpectedError is an expected failure that should resolve on a
    later event without user action
    """

    def __init__(self, message: str = ""):
        super().__init__(message=message, is_fatal_error=False)


class StatusUpdateError(K8sRdsExpectedError):
    """Exception raised when a status write could not be persisted, including
    when every conflict retry was used up
    """


## Assertions ##################################################################


def assert_config(condition: bool, message: str = ""):
    """Replacement for assert() which will throw a ConfigError. This should be
    used when validating operator config or a resource spec.
    """
    if not condition:
        raise ConfigError(message)


def assert_cluster(condition: bool, message: str = ""):
    """Replacement for assert() which will throw a ClusterError. This should
    be used when an operation in the cluster (such as fetching a secret) must
    succeed.
    """
    if not condition:
        raise ClusterError(message)


def assert_discovery(condition: bool, message: str = ""):
    """Replacement for assert() which will throw a DiscoveryError"""
    if not condition:
        raise DiscoveryError(message)
