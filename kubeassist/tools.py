"""Kubernetes tools exposed to the agent runtime.

Each tool is a name, a description, a pydantic parameter model (its JSON
schema is what the agent sees) and a handler making exactly one kind of
read against the cluster. Handlers return a dict or a string, or raise
ToolError; they never return partial data together with an error.
"""

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Type

import structlog
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from kubeassist.cluster.base import GVR, ClusterClient, ClusterError
from kubeassist.errors import ToolError

logger = structlog.get_logger(__name__)

# Hard ceiling on log bytes returned by a single get_logs call.
MAX_LOG_BYTES = 256 * 1024

DEFAULT_TAIL_LINES = 100
DEFAULT_LIST_LIMIT = 50
DEFAULT_EVENT_LIMIT = 30


class ToolParams(BaseModel):
    """Base class for tool parameters: camelCase on the wire, unknown keys ignored."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


@dataclass(frozen=True)
class ToolSpec:
    """A tool the agent can call.

    Attributes:
        name: Tool name seen by the agent
        description: What the tool does, shown to the agent
        params: Parameter model; validated before the handler runs
        handler: Callable taking a validated params instance
    """

    name: str
    description: str
    params: Type[ToolParams]
    handler: Callable[[Any], Any]

    def parameters_schema(self) -> Dict[str, Any]:
        """JSON schema of the parameters, using the wire (alias) names."""
        schema = self.params.model_json_schema(by_alias=True)
        schema.pop("title", None)
        return schema

    def invoke(self, arguments: Optional[Dict[str, Any]] = None) -> Any:
        """Validate ``arguments`` and run the handler.

        Raises:
            ToolError: If the arguments are invalid or the handler fails
        """
        try:
            params = self.params.model_validate(arguments or {})
        except ValidationError as e:
            raise ToolError(f"invalid arguments for {self.name}: {e}") from e
        return self.handler(params)


# --- parameter models ---


class GetResourceParams(ToolParams):
    gvr: str = Field(description="Group/Version/Resource identifier, e.g. v1/pods, apps/v1/deployments")
    name: str = Field(description="Resource name")
    namespace: str = Field(default="", description="Kubernetes namespace (empty for cluster-scoped)")


class ListResourcesParams(ToolParams):
    gvr: str = Field(description="Group/Version/Resource identifier, e.g. v1/pods, apps/v1/deployments")
    namespace: str = Field(default="", description="Kubernetes namespace (empty for all namespaces)")
    label_selector: str = Field(
        default="", alias="labelSelector", description="Label selector to filter resources, e.g. app=web"
    )
    limit: int = Field(
        default=0, description=f"Maximum number of resources to return (default {DEFAULT_LIST_LIMIT})"
    )


class DescribeResourceParams(ToolParams):
    gvr: str = Field(description="Group/Version/Resource identifier")
    name: str = Field(description="Resource name")
    namespace: str = Field(default="", description="Kubernetes namespace")


class GetLogsParams(ToolParams):
    pod_name: str = Field(alias="podName", description="Pod name")
    namespace: str = Field(description="Pod namespace")
    container: str = Field(default="", description="Container name (empty for all containers)")
    tail_lines: int = Field(
        default=0, alias="tailLines", description=f"Number of lines from the end (default {DEFAULT_TAIL_LINES})"
    )
    previous: bool = Field(
        default=False, description="If true, return previous container logs (useful for crash analysis)"
    )


class GetEventsParams(ToolParams):
    namespace: str = Field(default="", description="Namespace to filter events (empty for all)")
    resource_name: str = Field(
        default="", alias="resourceName", description="Filter events by involved object name"
    )
    event_type: str = Field(
        default="", alias="eventType", description="Filter by event type: Normal or Warning"
    )
    limit: int = Field(
        default=0, description=f"Maximum number of events to return (default {DEFAULT_EVENT_LIMIT})"
    )


class GetClusterHealthParams(ToolParams):
    pass


class GetPodDiagnosticsParams(ToolParams):
    pod_name: str = Field(alias="podName", description="Pod name")
    namespace: str = Field(description="Pod namespace")


class CheckRBACParams(ToolParams):
    namespace: str = Field(default="", description="Namespace to check (empty for cluster scope)")
    verb: str = Field(description="Action verb: get, list, create, update, delete, watch")
    resource: str = Field(description="Resource type, e.g. pods, deployments, secrets")


# --- helpers ---


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def to_age(timestamp: Optional[str], now: Optional[datetime] = None) -> str:
    """Render a creation timestamp as a compact age, e.g. "3d4h" or "12m"."""
    created = _parse_time(timestamp)
    if created is None:
        return "<unknown>"
    seconds = int(((now or datetime.now(timezone.utc)) - created).total_seconds())
    if seconds < 0:
        seconds = 0
    days, rem = divmod(seconds, 86400)
    hours, rem = divmod(rem, 3600)
    minutes, seconds = divmod(rem, 60)
    if days:
        return f"{days}d{hours}h" if hours and days < 10 else f"{days}d"
    if hours:
        return f"{hours}h{minutes}m" if minutes else f"{hours}h"
    if minutes:
        return f"{minutes}m"
    return f"{seconds}s"


def _qualified_path(name: str, namespace: str) -> str:
    return f"{namespace}/{name}" if namespace else name


def _parse_gvr(value: str) -> GVR:
    try:
        return GVR.parse(value)
    except ClusterError as e:
        raise ToolError(str(e)) from e


def strip_managed_fields(obj: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy of ``obj`` without metadata.managedFields."""
    cleaned = dict(obj)
    metadata = cleaned.get("metadata")
    if isinstance(metadata, dict) and "managedFields" in metadata:
        cleaned["metadata"] = {k: v for k, v in metadata.items() if k != "managedFields"}
    return cleaned


def _event_time(event: Dict[str, Any]) -> datetime:
    for key in ("lastTimestamp", "eventTime", "firstTimestamp"):
        parsed = _parse_time(event.get(key))
        if parsed is not None:
            return parsed
    parsed = _parse_time((event.get("metadata") or {}).get("creationTimestamp"))
    return parsed or datetime.min.replace(tzinfo=timezone.utc)


def _pod_status_label(pod: Dict[str, Any]) -> str:
    """Phase of a pod, overridden by the first waiting/terminated container reason."""
    status = pod.get("status") or {}
    label = status.get("phase") or "Unknown"
    for cs in status.get("containerStatuses") or []:
        state = cs.get("state") or {}
        waiting = state.get("waiting") or {}
        if waiting.get("reason"):
            return waiting["reason"]
        terminated = state.get("terminated") or {}
        if terminated.get("reason"):
            return terminated["reason"]
    return label


def _node_ready(node: Dict[str, Any]) -> bool:
    for cond in (node.get("status") or {}).get("conditions") or []:
        if cond.get("type") == "Ready" and cond.get("status") == "True":
            return True
    return False


class ToolFactory:
    """Builds the Kubernetes tools on top of a ClusterClient."""

    def __init__(
        self,
        cluster: ClusterClient,
        max_log_bytes: int = MAX_LOG_BYTES,
        max_tail_lines: Optional[int] = None,
    ):
        """Initialize the factory.

        Args:
            cluster: Read-only cluster access shared by all tools
            max_log_bytes: Ceiling on bytes returned by get_logs
            max_tail_lines: Upper bound for the tailLines argument (None = no bound)
        """
        self.cluster = cluster
        self.max_log_bytes = max_log_bytes
        self.max_tail_lines = max_tail_lines

    def build_tools(self) -> List[ToolSpec]:
        """Return all tools, in a stable order."""
        return [
            ToolSpec(
                name="get_resource",
                description="Fetch a specific Kubernetes resource by GVR, name, and namespace. Returns the resource as YAML.",
                params=GetResourceParams,
                handler=self.get_resource,
            ),
            ToolSpec(
                name="list_resources",
                description="List Kubernetes resources of a given type. Returns a summary with key fields (name, namespace, status, age).",
                params=ListResourcesParams,
                handler=self.list_resources,
            ),
            ToolSpec(
                name="describe_resource",
                description="Get the full kubectl-style description of a Kubernetes resource, including events and conditions.",
                params=DescribeResourceParams,
                handler=self.describe_resource,
            ),
            ToolSpec(
                name="get_logs",
                description="Fetch container logs for a pod. Essential for diagnosing CrashLoopBackOff, application errors, and runtime issues.",
                params=GetLogsParams,
                handler=self.get_logs,
            ),
            ToolSpec(
                name="get_events",
                description="Fetch Kubernetes events, optionally filtered by namespace, resource, or type. Events reveal scheduling failures, image pulls, OOM kills, and more.",
                params=GetEventsParams,
                handler=self.get_events,
            ),
            ToolSpec(
                name="get_cluster_health",
                description="Get a high-level cluster health overview: node count, pod counts by status, server version.",
                params=GetClusterHealthParams,
                handler=self.get_cluster_health,
            ),
            ToolSpec(
                name="get_pod_diagnostics",
                description="Get comprehensive diagnostics for a specific pod: phase, container states, restart counts, exit codes, resource requests/limits, and probe status.",
                params=GetPodDiagnosticsParams,
                handler=self.get_pod_diagnostics,
            ),
            ToolSpec(
                name="check_rbac",
                description="Check if the current user has permission to perform a specific action on a resource in a namespace.",
                params=CheckRBACParams,
                handler=self.check_rbac,
            ),
        ]

    def get_resource(self, params: GetResourceParams) -> str:
        """Fetch one object as YAML, without managed-field bookkeeping."""
        gvr = _parse_gvr(params.gvr)
        path = _qualified_path(params.name, params.namespace)
        logger.debug("tool_get_resource", gvr=str(gvr), path=path)
        try:
            obj = self.cluster.get(gvr, params.name, params.namespace)
        except ClusterError as e:
            raise ToolError(f"failed to get {params.gvr} {path}: {e}") from e
        return yaml.safe_dump(strip_managed_fields(obj), default_flow_style=False, sort_keys=False)

    def list_resources(self, params: ListResourcesParams) -> Dict[str, Any]:
        """List objects of a type, capped to ``limit`` with the true total reported."""
        gvr = _parse_gvr(params.gvr)
        logger.debug("tool_list_resources", gvr=str(gvr), namespace=params.namespace)
        try:
            objs = self.cluster.list(gvr, params.namespace, params.label_selector)
        except ClusterError as e:
            scope = params.namespace or "all namespaces"
            raise ToolError(f"failed to list {params.gvr} in {scope}: {e}") from e

        limit = params.limit if params.limit > 0 else DEFAULT_LIST_LIMIT
        resources = []
        for obj in objs[:limit]:
            metadata = obj.get("metadata") or {}
            item = {
                "name": metadata.get("name", ""),
                "namespace": metadata.get("namespace", ""),
            }
            phase = (obj.get("status") or {}).get("phase")
            if isinstance(phase, str) and phase:
                item["status"] = phase
            if metadata.get("creationTimestamp"):
                item["age"] = to_age(metadata["creationTimestamp"])
            resources.append(item)

        summary = f"Found {len(objs)} {params.gvr} resources"
        if len(objs) > limit:
            summary += f" (showing first {limit})"

        return {
            "summary": summary,
            "total": len(objs),
            "returned": len(resources),
            "resources": resources,
        }

    def describe_resource(self, params: DescribeResourceParams) -> str:
        """Return the kubectl-style description of one object."""
        gvr = _parse_gvr(params.gvr)
        path = _qualified_path(params.name, params.namespace)
        try:
            return self.cluster.describe(gvr, params.name, params.namespace)
        except ClusterError as e:
            raise ToolError(f"failed to describe {params.gvr} {path}: {e}") from e

    def get_logs(self, params: GetLogsParams) -> str:
        """Fetch container logs, never more than ``max_log_bytes``."""
        tail_lines = params.tail_lines if params.tail_lines > 0 else DEFAULT_TAIL_LINES
        if self.max_tail_lines:
            tail_lines = min(tail_lines, self.max_tail_lines)

        try:
            raw = self.cluster.logs(
                params.pod_name,
                params.namespace,
                container=params.container,
                tail_lines=tail_lines,
                previous=params.previous,
                limit_bytes=self.max_log_bytes,
            )
        except ClusterError as e:
            raise ToolError(
                f"failed to stream logs for {params.namespace}/{params.pod_name}: {e}"
            ) from e

        # A multi-byte character cut at the ceiling is dropped, not replaced,
        # so the decoded text stays within the byte budget.
        return raw[: self.max_log_bytes].decode("utf-8", errors="ignore")

    def get_events(self, params: GetEventsParams) -> Dict[str, Any]:
        """List events most-recent-first, filtered client-side."""
        try:
            events = self.cluster.events(params.namespace)
        except ClusterError as e:
            raise ToolError(f"failed to list events: {e}") from e

        limit = params.limit if params.limit > 0 else DEFAULT_EVENT_LIMIT
        ordered = sorted(
            enumerate(events), key=lambda pair: (_event_time(pair[1]), pair[0]), reverse=True
        )

        results = []
        for _, event in ordered:
            if len(results) >= limit:
                break
            involved = event.get("involvedObject") or {}
            if params.resource_name and involved.get("name") != params.resource_name:
                continue
            if params.event_type and event.get("type") != params.event_type:
                continue
            results.append(
                {
                    "type": event.get("type", ""),
                    "reason": event.get("reason", ""),
                    "message": event.get("message", ""),
                    "object": f"{involved.get('kind', '')}/{involved.get('name', '')}",
                    "count": str(event.get("count") or 0),
                    "firstSeen": event.get("firstTimestamp") or "",
                    "lastSeen": event.get("lastTimestamp") or event.get("eventTime") or "",
                }
            )

        return {
            "total": len(events),
            "returned": len(results),
            "events": results,
        }

    def get_cluster_health(self, params: GetClusterHealthParams) -> Dict[str, Any]:
        """Summarize node readiness and pod status across the cluster."""
        try:
            nodes = self.cluster.nodes()
        except ClusterError as e:
            raise ToolError(f"failed to list nodes: {e}") from e
        try:
            pods = self.cluster.pods("")
        except ClusterError as e:
            raise ToolError(f"failed to list pods: {e}") from e

        status_counts: Dict[str, int] = {}
        for pod in pods:
            label = _pod_status_label(pod)
            status_counts[label] = status_counts.get(label, 0) + 1

        result: Dict[str, Any] = {
            "nodes": {
                "total": len(nodes),
                "ready": sum(1 for node in nodes if _node_ready(node)),
            },
            "pods": {
                "total": len(pods),
                "statusSummary": status_counts,
            },
        }

        try:
            result["serverVersion"] = self.cluster.server_version()
        except ClusterError as e:
            logger.debug("server_version_unavailable", error=str(e))

        return result

    def get_pod_diagnostics(self, params: GetPodDiagnosticsParams) -> Dict[str, Any]:
        """Merge pod status and container specs into one diagnostic record."""
        try:
            pod = self.cluster.get(GVR("", "v1", "pods"), params.pod_name, params.namespace)
        except ClusterError as e:
            raise ToolError(
                f"failed to get pod {params.namespace}/{params.pod_name}: {e}"
            ) from e

        metadata = pod.get("metadata") or {}
        spec = pod.get("spec") or {}
        status = pod.get("status") or {}

        diag: Dict[str, Any] = {
            "name": metadata.get("name", params.pod_name),
            "namespace": metadata.get("namespace", params.namespace),
            "phase": status.get("phase", "Unknown"),
            "node": spec.get("nodeName", ""),
            "qos": status.get("qosClass", ""),
            "age": to_age(metadata.get("creationTimestamp")),
        }
        if metadata.get("deletionTimestamp"):
            diag["phase"] = "Terminating"

        containers = []
        for cs in status.get("containerStatuses") or []:
            container: Dict[str, Any] = {
                "name": cs.get("name", ""),
                "ready": bool(cs.get("ready")),
                "restartCount": cs.get("restartCount", 0),
                "image": cs.get("image", ""),
            }
            state = cs.get("state") or {}
            if "running" in state:
                container["state"] = "Running"
                container["startedAt"] = (state["running"] or {}).get("startedAt", "")
            elif "waiting" in state:
                waiting = state["waiting"] or {}
                container["state"] = "Waiting"
                container["reason"] = waiting.get("reason", "")
                container["message"] = waiting.get("message", "")
            elif "terminated" in state:
                terminated = state["terminated"] or {}
                container["state"] = "Terminated"
                container["reason"] = terminated.get("reason", "")
                container["exitCode"] = terminated.get("exitCode")
                container["signal"] = terminated.get("signal", 0)
                container["message"] = terminated.get("message", "")

            last = (cs.get("lastState") or {}).get("terminated")
            if last:
                container["lastTermination"] = {
                    "reason": last.get("reason", ""),
                    "exitCode": last.get("exitCode"),
                    "signal": last.get("signal", 0),
                    "message": last.get("message", ""),
                    "finishedAt": last.get("finishedAt", ""),
                }
            containers.append(container)

        by_name = {c["name"]: c for c in containers}
        for spec_container in spec.get("containers") or []:
            container = by_name.get(spec_container.get("name"))
            if container is None:
                continue
            resources = spec_container.get("resources") or {}
            if resources.get("requests"):
                container["resourceRequests"] = dict(resources["requests"])
            if resources.get("limits"):
                container["resourceLimits"] = dict(resources["limits"])
            for probe in ("livenessProbe", "readinessProbe", "startupProbe"):
                if spec_container.get(probe):
                    container[probe] = "configured"

        diag["containers"] = containers
        diag["conditions"] = [
            {
                "type": cond.get("type", ""),
                "status": cond.get("status", ""),
                "reason": cond.get("reason", ""),
                "message": cond.get("message", ""),
            }
            for cond in status.get("conditions") or []
        ]
        return diag

    def check_rbac(self, params: CheckRBACParams) -> Dict[str, Any]:
        """Ask the API server whether the current user may perform an action."""
        resource = _parse_gvr(params.resource).kubectl_resource
        try:
            allowed = self.cluster.can_i(params.namespace, params.verb, resource)
        except ClusterError as e:
            raise ToolError(f"RBAC check failed: {e}") from e
        return {
            "allowed": allowed,
            "namespace": params.namespace,
            "verb": params.verb,
            "resource": params.resource,
        }


def format_result(result: Any) -> str:
    """Serialize a tool result for the agent: strings as-is, the rest as JSON."""
    if isinstance(result, str):
        return result
    return json.dumps(result, indent=2, default=str)


_TOOL_LABELS = {
    "get_resource": "Fetching resource...",
    "list_resources": "Listing resources...",
    "describe_resource": "Describing resource...",
    "get_logs": "Fetching logs...",
    "get_events": "Checking events...",
    "get_cluster_health": "Checking cluster health...",
    "get_pod_diagnostics": "Running pod diagnostics...",
    "check_rbac": "Checking RBAC permissions...",
    "report_intent": "Planning action...",
}


def tool_display_name(name: str) -> str:
    """User-facing activity label for a tool call."""
    return _TOOL_LABELS.get(name, f"Running {name}...")
