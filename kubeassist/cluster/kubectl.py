"""Cluster access through kubectl.

Delegates authentication to ~/.kube/config and supports context selection.
Every call is a single read-only kubectl invocation; structured data is
requested with ``-o json``.
"""

import json
import subprocess
from typing import Any, Dict, List, Optional

import structlog

from kubeassist.cluster.base import (
    GVR,
    ClusterClient,
    ClusterConnectionError,
    ClusterError,
    QueryError,
    ResourceNotFoundError,
)
from kubeassist.utils.command import run_command

logger = structlog.get_logger(__name__)


class KubectlClient(ClusterClient):
    """ClusterClient implementation backed by the kubectl binary."""

    def __init__(self, context: Optional[str] = None, timeout: float = 30, kubectl: str = "kubectl"):
        """Initialize the client.

        Args:
            context: kubeconfig context to use (current context when None)
            timeout: Timeout in seconds for each kubectl call
            kubectl: kubectl executable
        """
        self.context = context
        self.timeout = timeout
        self.kubectl = kubectl

    def _base_command(self, namespace: Optional[str] = None, all_namespaces: bool = False) -> List[str]:
        cmd = [self.kubectl]
        if self.context:
            cmd.extend(["--context", self.context])
        if all_namespaces:
            cmd.append("--all-namespaces")
        elif namespace:
            cmd.extend(["--namespace", namespace])
        return cmd

    def _run(self, cmd: List[str], text: bool = True) -> subprocess.CompletedProcess:
        """Run kubectl and translate failures into ClusterError subclasses."""
        logger.debug("kubectl", command=" ".join(cmd))
        try:
            result = run_command(cmd, capture_output=True, text=text, check=False, timeout=self.timeout)
        except FileNotFoundError as e:
            raise ClusterConnectionError(f"kubectl not found: {e}") from e
        except subprocess.TimeoutExpired as e:
            raise ClusterConnectionError(
                f"kubectl command timed out after {self.timeout} seconds"
            ) from e
        except OSError as e:
            raise ClusterConnectionError(f"OS error when launching kubectl: {e}") from e

        if result.returncode != 0:
            stderr = result.stderr if text else result.stderr.decode("utf-8", errors="replace")
            message = (stderr or "").strip() or f"exit code {result.returncode}"
            if "NotFound" in message or "not found" in message:
                raise ResourceNotFoundError(message)
            if "Unable to connect" in message or "connection refused" in message:
                raise ClusterConnectionError(message)
            raise ClusterError(f"{' '.join(cmd[1:])} failed: {message}")
        return result

    def _run_json(self, cmd: List[str]) -> Dict[str, Any]:
        output = self._run(cmd).stdout
        try:
            data = json.loads(output)
        except (json.JSONDecodeError, TypeError) as e:
            raise QueryError(f"unexpected kubectl output: {e}") from e
        if not isinstance(data, dict):
            raise QueryError("unexpected kubectl output: not a JSON object")
        return data

    def _list_items(self, cmd: List[str]) -> List[Dict[str, Any]]:
        return list(self._run_json(cmd).get("items") or [])

    def get(self, gvr: GVR, name: str, namespace: str = "") -> Dict[str, Any]:
        cmd = self._base_command(namespace)
        cmd.extend(["get", gvr.kubectl_resource, name, "-o", "json"])
        return self._run_json(cmd)

    def list(
        self, gvr: GVR, namespace: str = "", label_selector: str = ""
    ) -> List[Dict[str, Any]]:
        cmd = self._base_command(namespace, all_namespaces=not namespace)
        cmd.extend(["get", gvr.kubectl_resource, "-o", "json"])
        if label_selector:
            cmd.extend(["--selector", label_selector])
        return self._list_items(cmd)

    def describe(self, gvr: GVR, name: str, namespace: str = "") -> str:
        cmd = self._base_command(namespace)
        cmd.extend(["describe", gvr.kubectl_resource, name])
        return self._run(cmd).stdout

    def logs(
        self,
        pod: str,
        namespace: str,
        container: str = "",
        tail_lines: int = 100,
        previous: bool = False,
        limit_bytes: Optional[int] = None,
    ) -> bytes:
        cmd = self._base_command(namespace)
        cmd.extend(["logs", pod, "--tail", str(tail_lines)])
        if container:
            cmd.extend(["--container", container])
        else:
            cmd.append("--all-containers")
        if previous:
            cmd.append("--previous")
        if limit_bytes:
            cmd.append(f"--limit-bytes={limit_bytes}")
        output = self._run(cmd, text=False).stdout or b""
        if limit_bytes:
            output = output[:limit_bytes]
        return output

    def events(self, namespace: str = "") -> List[Dict[str, Any]]:
        cmd = self._base_command(namespace, all_namespaces=not namespace)
        cmd.extend(["get", "events", "-o", "json"])
        return self._list_items(cmd)

    def nodes(self) -> List[Dict[str, Any]]:
        cmd = self._base_command()
        cmd.extend(["get", "nodes", "-o", "json"])
        return self._list_items(cmd)

    def pods(self, namespace: str = "") -> List[Dict[str, Any]]:
        cmd = self._base_command(namespace, all_namespaces=not namespace)
        cmd.extend(["get", "pods", "-o", "json"])
        return self._list_items(cmd)

    def server_version(self) -> str:
        cmd = self._base_command()
        cmd.extend(["version", "-o", "json"])
        data = self._run_json(cmd)
        version = (data.get("serverVersion") or {}).get("gitVersion")
        if not version:
            raise QueryError("server version not reported")
        return version

    def can_i(self, namespace: str, verb: str, resource: str) -> bool:
        cmd = self._base_command(namespace, all_namespaces=not namespace)
        cmd.extend(["auth", "can-i", verb, resource])
        logger.debug("kubectl", command=" ".join(cmd))
        try:
            # can-i exits 1 with "no" when the action is denied
            result = run_command(cmd, capture_output=True, text=True, check=False, timeout=self.timeout)
        except FileNotFoundError as e:
            raise ClusterConnectionError(f"kubectl not found: {e}") from e
        except subprocess.TimeoutExpired as e:
            raise ClusterConnectionError(
                f"kubectl command timed out after {self.timeout} seconds"
            ) from e

        answer = (result.stdout or "").strip().lower()
        if answer.startswith("yes"):
            return True
        if answer.startswith("no"):
            return False
        raise ClusterError(f"auth can-i failed: {(result.stderr or '').strip() or answer}")

    def __repr__(self) -> str:
        return f"KubectlClient(context={self.context!r})"
