"""Unit tests for the kubectl-backed cluster client."""

import json
import subprocess
from unittest.mock import patch

import pytest

from kubeassist.cluster import (
    GVR,
    ClusterConnectionError,
    ClusterError,
    KubectlClient,
    QueryError,
    ResourceNotFoundError,
)


def completed(stdout="", stderr="", returncode=0):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


class TestGVR:
    """Test GVR parsing."""

    def test_parse_forms(self):
        assert GVR.parse("pods") == GVR("", "", "pods")
        assert GVR.parse("v1/pods") == GVR("", "v1", "pods")
        assert GVR.parse("apps/v1/deployments") == GVR("apps", "v1", "deployments")

    def test_kubectl_resource(self):
        assert GVR.parse("apps/v1/deployments").kubectl_resource == "deployments.v1.apps"
        assert GVR.parse("v1/pods").kubectl_resource == "pods"

    def test_parse_invalid(self):
        with pytest.raises(QueryError):
            GVR.parse("")
        with pytest.raises(QueryError):
            GVR.parse("a/b/c/d")


class TestKubectlClient:
    """Test suite for KubectlClient."""

    def test_get_builds_command(self):
        client = KubectlClient(context="prod-eu", timeout=10)
        with patch("kubeassist.cluster.kubectl.run_command", return_value=completed('{"kind": "Deployment"}')) as run:
            result = client.get(GVR.parse("apps/v1/deployments"), "api", "prod")

        assert result == {"kind": "Deployment"}
        cmd = run.call_args[0][0]
        assert cmd == [
            "kubectl", "--context", "prod-eu", "--namespace", "prod",
            "get", "deployments.v1.apps", "api", "-o", "json",
        ]
        assert run.call_args[1]["timeout"] == 10

    def test_list_all_namespaces_with_selector(self):
        client = KubectlClient()
        output = json.dumps({"items": [{"metadata": {"name": "a"}}, {"metadata": {"name": "b"}}]})
        with patch("kubeassist.cluster.kubectl.run_command", return_value=completed(output)) as run:
            items = client.list(GVR.parse("v1/pods"), label_selector="app=web")

        assert [item["metadata"]["name"] for item in items] == ["a", "b"]
        cmd = run.call_args[0][0]
        assert "--all-namespaces" in cmd
        assert cmd[-2:] == ["--selector", "app=web"]

    def test_not_found(self):
        client = KubectlClient()
        result = completed(stderr='Error from server (NotFound): pods "x" not found', returncode=1)
        with patch("kubeassist.cluster.kubectl.run_command", return_value=result):
            with pytest.raises(ResourceNotFoundError):
                client.get(GVR.parse("v1/pods"), "x", "default")

    def test_other_failure(self):
        client = KubectlClient()
        result = completed(stderr="Error from server (Forbidden): forbidden", returncode=1)
        with patch("kubeassist.cluster.kubectl.run_command", return_value=result):
            with pytest.raises(ClusterError, match="Forbidden"):
                client.describe(GVR.parse("v1/secrets"), "s", "default")

    def test_kubectl_missing(self):
        client = KubectlClient()
        with patch("kubeassist.cluster.kubectl.run_command", side_effect=FileNotFoundError("kubectl")):
            with pytest.raises(ClusterConnectionError, match="kubectl not found"):
                client.nodes()

    def test_timeout(self):
        client = KubectlClient(timeout=5)
        with patch(
            "kubeassist.cluster.kubectl.run_command",
            side_effect=subprocess.TimeoutExpired(cmd="kubectl", timeout=5),
        ):
            with pytest.raises(ClusterConnectionError, match="timed out after 5 seconds"):
                client.pods("default")

    def test_invalid_json(self):
        client = KubectlClient()
        with patch("kubeassist.cluster.kubectl.run_command", return_value=completed("not json")):
            with pytest.raises(QueryError):
                client.events("default")

    def test_logs_binary_and_limited(self):
        client = KubectlClient()
        result = completed(stdout=b"0123456789", stderr=b"")
        with patch("kubeassist.cluster.kubectl.run_command", return_value=result) as run:
            output = client.logs("web", "default", tail_lines=50, previous=True, limit_bytes=4)

        assert output == b"0123"
        cmd = run.call_args[0][0]
        assert cmd[cmd.index("--tail") + 1] == "50"
        assert "--all-containers" in cmd
        assert "--previous" in cmd
        assert "--limit-bytes=4" in cmd
        assert run.call_args[1]["text"] is False

    def test_logs_container(self):
        client = KubectlClient()
        with patch("kubeassist.cluster.kubectl.run_command", return_value=completed(stdout=b"")) as run:
            client.logs("web", "default", container="sidecar")

        cmd = run.call_args[0][0]
        assert cmd[cmd.index("--container") + 1] == "sidecar"
        assert "--all-containers" not in cmd

    def test_server_version(self):
        client = KubectlClient()
        output = json.dumps({"serverVersion": {"gitVersion": "v1.30.1"}})
        with patch("kubeassist.cluster.kubectl.run_command", return_value=completed(output)):
            assert client.server_version() == "v1.30.1"

    def test_can_i(self):
        client = KubectlClient()
        with patch("kubeassist.cluster.kubectl.run_command", return_value=completed("yes\n")):
            assert client.can_i("prod", "get", "pods") is True
        with patch("kubeassist.cluster.kubectl.run_command", return_value=completed("no\n", returncode=1)):
            assert client.can_i("prod", "delete", "pods") is False
        with patch(
            "kubeassist.cluster.kubectl.run_command",
            return_value=completed("", stderr="error: the server doesn't have a resource type", returncode=1),
        ):
            with pytest.raises(ClusterError):
                client.can_i("prod", "get", "widgets")
