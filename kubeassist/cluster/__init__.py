"""Read-only access to the Kubernetes cluster."""

from kubeassist.cluster.base import (
    GVR,
    ClusterClient,
    ClusterConnectionError,
    ClusterError,
    QueryError,
    ResourceNotFoundError,
)
from kubeassist.cluster.kubectl import KubectlClient

__all__ = [
    "GVR",
    "ClusterClient",
    "ClusterConnectionError",
    "ClusterError",
    "QueryError",
    "ResourceNotFoundError",
    "KubectlClient",
]
