"""Cluster access interface used by the AI tools.

This module defines the read-only operations the tool bridge needs from a
Kubernetes cluster, the GVR identifier they take, and the error hierarchy
implementations raise.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional


class ClusterError(Exception):
    """Base exception for cluster operations."""

    pass


class ClusterConnectionError(ClusterError):
    """Raised when the cluster cannot be reached (or kubectl is missing)."""

    pass


class ResourceNotFoundError(ClusterError):
    """Raised when the requested resource does not exist."""

    pass


class QueryError(ClusterError):
    """Raised when a request is malformed or its response cannot be parsed."""

    pass


@dataclass(frozen=True)
class GVR:
    """Group/version/resource identifier for a resource type.

    Attributes:
        group: API group ("" for the core group)
        version: API version ("" when not specified)
        resource: Plural resource name, e.g. "pods"
    """

    group: str
    version: str
    resource: str

    @classmethod
    def parse(cls, value: str) -> "GVR":
        """Parse "v1/pods", "apps/v1/deployments" or a bare "pods".

        Raises:
            QueryError: If the identifier is empty or has too many parts
        """
        parts = [part for part in (value or "").strip().strip("/").split("/") if part]
        if len(parts) == 1:
            return cls(group="", version="", resource=parts[0].lower())
        if len(parts) == 2:
            return cls(group="", version=parts[0], resource=parts[1].lower())
        if len(parts) == 3:
            return cls(group=parts[0], version=parts[1], resource=parts[2].lower())
        raise QueryError(f"invalid GVR {value!r}: expected [group/]version/resource")

    @property
    def kubectl_resource(self) -> str:
        """Resource argument understood by kubectl, e.g. "deployments.v1.apps"."""
        if self.group:
            return f"{self.resource}.{self.version}.{self.group}"
        return self.resource

    def __str__(self) -> str:
        return "/".join(part for part in (self.group, self.version, self.resource) if part)


class ClusterClient(ABC):
    """Abstract read-only access to a Kubernetes cluster.

    Implementations must never mutate cluster state. Objects are returned as
    plain dictionaries in the API server's JSON shape; callers must not keep
    references to them beyond a single call.

    An empty ``namespace`` means "all namespaces" for list-style operations
    and "cluster scoped" for single-object operations.
    """

    @abstractmethod
    def get(self, gvr: GVR, name: str, namespace: str = "") -> Dict[str, Any]:
        """Fetch a single object.

        Raises:
            ResourceNotFoundError: If the object does not exist
            ClusterError: On any other failure
        """

    @abstractmethod
    def list(
        self, gvr: GVR, namespace: str = "", label_selector: str = ""
    ) -> List[Dict[str, Any]]:
        """List objects of a type, optionally filtered by label selector."""

    @abstractmethod
    def describe(self, gvr: GVR, name: str, namespace: str = "") -> str:
        """Return the human-readable description of an object."""

    @abstractmethod
    def logs(
        self,
        pod: str,
        namespace: str,
        container: str = "",
        tail_lines: int = 100,
        previous: bool = False,
        limit_bytes: Optional[int] = None,
    ) -> bytes:
        """Return raw container logs, at most ``limit_bytes`` when given."""

    @abstractmethod
    def events(self, namespace: str = "") -> List[Dict[str, Any]]:
        """List events in a namespace (all namespaces when empty)."""

    @abstractmethod
    def nodes(self) -> List[Dict[str, Any]]:
        """List cluster nodes."""

    @abstractmethod
    def pods(self, namespace: str = "") -> List[Dict[str, Any]]:
        """List pods in a namespace (all namespaces when empty)."""

    @abstractmethod
    def server_version(self) -> str:
        """Return the API server version, e.g. "v1.31.2"."""

    @abstractmethod
    def can_i(self, namespace: str, verb: str, resource: str) -> bool:
        """Return True if the current user may perform ``verb`` on ``resource``."""

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"
