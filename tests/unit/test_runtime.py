"""Unit tests for locating and installing the Copilot CLI."""

import io
import os
import stat
import tarfile
from unittest.mock import MagicMock, patch

import pytest
import requests

from kubeassist import runtime
from kubeassist.errors import RuntimeUnavailableError, UnsupportedPlatformError


def make_tarball(files):
    """Build an in-memory npm-style .tgz from {path: bytes}."""
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as archive:
        for name, content in files.items():
            info = tarfile.TarInfo(name)
            info.size = len(content)
            archive.addfile(info, io.BytesIO(content))
    buffer.seek(0)
    return buffer


class TestPlatform:
    """Test platform detection."""

    def test_normalizes_arch(self):
        assert runtime.current_platform("Linux", "x86_64") == "linux/amd64"
        assert runtime.current_platform("Darwin", "arm64") == "darwin/arm64"
        assert runtime.current_platform("Linux", "aarch64") == "linux/arm64"
        assert runtime.current_platform("Windows", "AMD64") == "windows/amd64"

    def test_platform_packages(self):
        assert runtime.platform_package("darwin/amd64") == "darwin-x64"
        assert runtime.platform_package("windows/arm64") == "win32-arm64"

    def test_unsupported_platform(self):
        with pytest.raises(UnsupportedPlatformError, match="freebsd/amd64"):
            runtime.platform_package("freebsd/amd64")

    def test_binary_name(self):
        assert runtime.binary_name("windows/amd64") == "copilot.exe"
        assert runtime.binary_name("linux/arm64") == "copilot"

    def test_cache_dir_is_versioned(self, tmp_path):
        directory = runtime.cache_dir(tmp_path)
        assert directory == tmp_path / "kubeassist-ai" / "cli" / runtime.COPILOT_VERSION
        assert directory.is_dir()


class TestExtractBinary:
    """Test extraction from npm tarballs."""

    def test_extracts_binary_only(self, tmp_path):
        tarball = make_tarball(
            {
                "package/package.json": b"{}",
                "package/README.md": b"# copilot",
                "package/copilot": b"\x7fELF binary",
            }
        )
        dest = tmp_path / "copilot"

        result = runtime.extract_binary(tarball, dest, "linux-x64")

        assert result == dest
        assert dest.read_bytes() == b"\x7fELF binary"
        assert stat.S_IMODE(os.stat(dest).st_mode) == 0o755
        assert sorted(p.name for p in tmp_path.iterdir()) == ["copilot"]

    def test_platform_named_binary(self, tmp_path):
        tarball = make_tarball({"package/copilot-linux-arm64": b"bin"})
        dest = tmp_path / "copilot"

        runtime.extract_binary(tarball, dest, "linux-arm64")

        assert dest.read_bytes() == b"bin"

    def test_missing_binary(self, tmp_path):
        tarball = make_tarball({"package/copilot.d.ts": b"types", "package/LICENSE": b"MIT"})

        with pytest.raises(RuntimeUnavailableError, match="not found in archive"):
            runtime.extract_binary(tarball, tmp_path / "copilot", "linux-x64")

    def test_corrupt_archive(self, tmp_path):
        with pytest.raises(RuntimeUnavailableError, match="extracting"):
            runtime.extract_binary(io.BytesIO(b"not a tarball"), tmp_path / "copilot")
        assert list(tmp_path.iterdir()) == []


class TestResolveTarballURL:
    """Test the npm registry lookup."""

    def test_reads_dist_tarball(self):
        response = MagicMock(status_code=200)
        response.json.return_value = {"dist": {"tarball": "https://registry.npmjs.org/x.tgz"}}
        with patch("kubeassist.runtime.requests.get", return_value=response) as get:
            url = runtime.resolve_tarball_url("linux-x64")

        assert url == "https://registry.npmjs.org/x.tgz"
        get.assert_called_once_with(
            f"https://registry.npmjs.org/@github/copilot-linux-x64/{runtime.COPILOT_VERSION}",
            timeout=15,
        )

    def test_registry_error(self):
        with patch("kubeassist.runtime.requests.get", return_value=MagicMock(status_code=404)):
            with pytest.raises(RuntimeUnavailableError, match="returned 404"):
                runtime.resolve_tarball_url("linux-x64")

    def test_missing_tarball(self):
        response = MagicMock(status_code=200)
        response.json.return_value = {"dist": {}}
        with patch("kubeassist.runtime.requests.get", return_value=response):
            with pytest.raises(RuntimeUnavailableError, match="no tarball URL"):
                runtime.resolve_tarball_url("linux-x64")


class TestDownload:
    """Test downloading the CLI."""

    def test_unsupported_platform_makes_no_network_call(self, tmp_path):
        with patch("kubeassist.runtime.requests.get") as get:
            with pytest.raises(UnsupportedPlatformError):
                runtime.download_cli(tmp_path, platform_key="plan9/mips")
        get.assert_not_called()

    def test_download_and_extract(self, tmp_path):
        download = MagicMock(status_code=200)
        download.raw = make_tarball({"package/copilot": b"binary"})
        download.__enter__.return_value = download

        with patch("kubeassist.runtime.resolve_tarball_url", return_value="https://example/x.tgz"), patch(
            "kubeassist.runtime.requests.get", return_value=download
        ) as get:
            path = runtime.download_cli(tmp_path, platform_key="linux/amd64")

        assert path == tmp_path / "copilot"
        assert path.read_bytes() == b"binary"
        get.assert_called_once_with("https://example/x.tgz", stream=True, timeout=120)

    def test_download_http_error(self, tmp_path):
        download = MagicMock(status_code=503)
        download.__enter__.return_value = download

        with patch("kubeassist.runtime.resolve_tarball_url", return_value="https://example/x.tgz"), patch(
            "kubeassist.runtime.requests.get", return_value=download
        ):
            with pytest.raises(RuntimeUnavailableError, match="503"):
                runtime.download_cli(tmp_path, platform_key="linux/amd64")

    def test_lookup_connection_error_wrapped(self, tmp_path):
        with patch(
            "kubeassist.runtime.resolve_tarball_url", side_effect=requests.ConnectionError("offline")
        ):
            with pytest.raises(RuntimeUnavailableError, match="offline"):
                runtime.download_cli(tmp_path, platform_key="linux/amd64")


class TestResolveCliPath:
    """Test the resolution order."""

    def test_env_override_wins(self, tmp_path, monkeypatch):
        binary = tmp_path / "my-copilot"
        binary.write_bytes(b"")
        monkeypatch.setenv("COPILOT_CLI_PATH", str(binary))

        with patch("kubeassist.runtime.shutil.which", return_value="/usr/bin/copilot"):
            assert runtime.resolve_cli_path() == str(binary)

    def test_missing_env_path_falls_through_to_path(self, tmp_path, monkeypatch):
        monkeypatch.setenv("COPILOT_CLI_PATH", str(tmp_path / "missing"))

        with patch("kubeassist.runtime.shutil.which", return_value="/usr/bin/copilot"):
            assert runtime.resolve_cli_path() == "/usr/bin/copilot"

    def test_cached_binary(self, tmp_path, monkeypatch):
        monkeypatch.delenv("COPILOT_CLI_PATH", raising=False)
        cached = tmp_path / "copilot"
        cached.write_bytes(b"bin")
        cached.chmod(0o755)

        with patch("kubeassist.runtime.shutil.which", return_value=None), patch(
            "kubeassist.runtime.cache_dir", return_value=tmp_path
        ), patch("kubeassist.runtime.binary_name", return_value="copilot"), patch(
            "kubeassist.runtime.download_cli"
        ) as download:
            assert runtime.resolve_cli_path() == str(cached)
        download.assert_not_called()

    def test_downloads_when_nothing_found(self, tmp_path, monkeypatch):
        monkeypatch.delenv("COPILOT_CLI_PATH", raising=False)

        with patch("kubeassist.runtime.shutil.which", return_value=None), patch(
            "kubeassist.runtime.cache_dir", return_value=tmp_path
        ), patch("kubeassist.runtime.download_cli", return_value=tmp_path / "copilot") as download:
            assert runtime.resolve_cli_path() == str(tmp_path / "copilot")
        download.assert_called_once_with(tmp_path)

    def test_download_failure_returns_none(self, tmp_path, monkeypatch):
        monkeypatch.delenv("COPILOT_CLI_PATH", raising=False)

        with patch("kubeassist.runtime.shutil.which", return_value=None), patch(
            "kubeassist.runtime.cache_dir", return_value=tmp_path
        ), patch(
            "kubeassist.runtime.download_cli", side_effect=UnsupportedPlatformError("unsupported platform")
        ):
            assert runtime.resolve_cli_path() is None
