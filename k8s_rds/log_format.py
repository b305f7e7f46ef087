"""
JSON log format that adds the identity of the custom resource being reconciled
"""

# First Party
from alog import AlogJsonFormatter


class K8sRdsJsonFormatter(AlogJsonFormatter):
    """Extends AlogJsonFormatter with thread details and the kind, apiVersion,
    name, namespace and resourceVersion of the resource a log line is about.
    The resource is taken from the "resource" extra of the log call.
    """

    _FIELDS_TO_PRINT = AlogJsonFormatter._FIELDS_TO_PRINT + [
        "process",
        "thread",
        "threadName",
        "kind",
        "apiVersion",
        "resourceName",
        "resourceNamespace",
        "resourceVersion",
    ]

    def format(self, record):
        if resource := getattr(record, "resource", None):
            record.kind = resource.get("kind")
            record.apiVersion = resource.get("apiVersion")

            metadata = resource.get("metadata") or {}
            record.resourceName = metadata.get("name")
            record.resourceNamespace = metadata.get("namespace")
            record.resourceVersion = metadata.get("resourceVersion")

        return super().format(record)
