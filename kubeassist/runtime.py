"""
Locate or install the Copilot CLI that backs the agent runtime.

Resolution order (first match wins):
1. COPILOT_CLI_PATH environment variable, if the file exists
2. ``copilot`` on PATH
3. A binary previously downloaded into the user cache
4. Download of the pinned, platform-specific npm package
"""

import os
import platform
import shutil
import stat
import tarfile
import tempfile
from pathlib import Path
from typing import BinaryIO, Optional

import requests
import structlog

from kubeassist.errors import RuntimeUnavailableError, UnsupportedPlatformError
from kubeassist.utils.retry import retry_with_backoff

logger = structlog.get_logger(__name__)

# Pinned to the protocol version the SDK speaks.
COPILOT_VERSION = "0.0.420"

NPM_REGISTRY_URL = "https://registry.npmjs.org"
NPM_SCOPE = "@github"

CACHE_DIR_NAME = "kubeassist-ai"

CLI_PATH_ENV = "COPILOT_CLI_PATH"

LOOKUP_TIMEOUT = 15
DOWNLOAD_TIMEOUT = 120

MANUAL_INSTALL_HINT = "Install manually: npm install -g @github/copilot"

# "<os>/<arch>" -> npm package suffix
PLATFORM_PACKAGES = {
    "darwin/arm64": "darwin-arm64",
    "darwin/amd64": "darwin-x64",
    "linux/amd64": "linux-x64",
    "linux/arm64": "linux-arm64",
    "windows/amd64": "win32-x64",
    "windows/arm64": "win32-arm64",
}

_ARCH_ALIASES = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "x64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "armv8": "arm64",
}


def current_platform(system: Optional[str] = None, machine: Optional[str] = None) -> str:
    """Return the normalized "<os>/<arch>" of this machine, e.g. "linux/amd64"."""
    system = (system or platform.system()).lower()
    machine = (machine or platform.machine()).lower()
    return f"{system}/{_ARCH_ALIASES.get(machine, machine)}"


def platform_package(platform_key: Optional[str] = None) -> str:
    """Return the npm package suffix for a platform.

    Raises:
        UnsupportedPlatformError: If no package is published for the platform
    """
    platform_key = platform_key or current_platform()
    suffix = PLATFORM_PACKAGES.get(platform_key)
    if not suffix:
        raise UnsupportedPlatformError(f"unsupported platform: {platform_key}")
    return suffix


def binary_name(platform_key: Optional[str] = None) -> str:
    platform_key = platform_key or current_platform()
    return "copilot.exe" if platform_key.startswith("windows/") else "copilot"


def user_cache_dir() -> Path:
    """Per-user cache root for the current OS."""
    system = platform.system().lower()
    if system == "windows":
        base = os.environ.get("LOCALAPPDATA")
        if base:
            return Path(base)
    elif system == "darwin":
        return Path.home() / "Library" / "Caches"
    else:
        base = os.environ.get("XDG_CACHE_HOME")
        if base:
            return Path(base)
        return Path.home() / ".cache"
    return Path(tempfile.gettempdir())


def cache_dir(base: Optional[Path] = None) -> Path:
    """Versioned cache directory for the CLI binary, created on demand."""
    directory = (base or user_cache_dir()) / CACHE_DIR_NAME / "cli" / COPILOT_VERSION
    directory.mkdir(parents=True, exist_ok=True)
    return directory


@retry_with_backoff(retries=2, delays=(1, 2), exceptions=(requests.ConnectionError,))
def resolve_tarball_url(suffix: str) -> str:
    """Look up the tarball URL of the pinned package version in the npm registry.

    Raises:
        RuntimeUnavailableError: If the registry answers without a usable URL
    """
    package = f"copilot-{suffix}"
    url = f"{NPM_REGISTRY_URL}/{NPM_SCOPE}/{package}/{COPILOT_VERSION}"
    response = requests.get(url, timeout=LOOKUP_TIMEOUT)
    if response.status_code != 200:
        raise RuntimeUnavailableError(
            f"npm registry returned {response.status_code} for {NPM_SCOPE}/{package}@{COPILOT_VERSION}"
        )
    try:
        metadata = response.json()
    except ValueError as e:
        raise RuntimeUnavailableError(f"parsing npm metadata: {e}") from e

    tarball = (metadata.get("dist") or {}).get("tarball")
    if not tarball:
        raise RuntimeUnavailableError("no tarball URL in npm metadata")
    return tarball


def extract_binary(stream: BinaryIO, dest: Path, suffix: str = "") -> Path:
    """Extract the CLI binary from a gzip'd npm tarball stream into ``dest``.

    npm tarballs keep their files under "package/". Only the executable is
    written; it lands via a temporary file so a partial download never
    looks like a cached binary.
    """
    accepted = {"copilot", "copilot.exe"}
    if suffix:
        accepted.add(f"copilot-{suffix}")

    dest = Path(dest)
    try:
        with tarfile.open(fileobj=stream, mode="r|gz") as archive:
            for member in archive:
                if not member.isfile() or Path(member.name).name not in accepted:
                    continue
                source = archive.extractfile(member)
                if source is None:
                    continue
                fd, tmp_name = tempfile.mkstemp(dir=dest.parent, prefix=".copilot-")
                try:
                    with os.fdopen(fd, "wb") as tmp:
                        shutil.copyfileobj(source, tmp)
                    os.chmod(tmp_name, 0o755)
                    os.replace(tmp_name, dest)
                except BaseException:
                    Path(tmp_name).unlink(missing_ok=True)
                    raise
                return dest
    except (tarfile.TarError, OSError, EOFError) as e:
        raise RuntimeUnavailableError(f"extracting copilot CLI: {e}") from e

    raise RuntimeUnavailableError("copilot binary not found in archive")


def download_cli(directory: Optional[Path] = None, platform_key: Optional[str] = None) -> Path:
    """Download the pinned CLI for this platform into the cache.

    Raises:
        UnsupportedPlatformError: Before any network access on unknown platforms
        RuntimeUnavailableError: If the lookup, download or extraction fails
    """
    platform_key = platform_key or current_platform()
    suffix = platform_package(platform_key)
    directory = directory or cache_dir()

    try:
        url = resolve_tarball_url(suffix)
    except requests.RequestException as e:
        raise RuntimeUnavailableError(f"resolving download URL: {e}") from e
    logger.info("Downloading copilot CLI", url=url)

    dest = directory / binary_name(platform_key)
    try:
        with requests.get(url, stream=True, timeout=DOWNLOAD_TIMEOUT) as response:
            if response.status_code != 200:
                raise RuntimeUnavailableError(f"download returned {response.status_code}")
            extract_binary(response.raw, dest, suffix)
    except requests.RequestException as e:
        raise RuntimeUnavailableError(f"downloading copilot CLI: {e}") from e

    logger.info("Copilot CLI installed", path=str(dest))
    return dest


def _is_executable_file(path: Path) -> bool:
    try:
        return path.is_file() and bool(path.stat().st_mode & stat.S_IXUSR)
    except OSError:
        return False


def resolve_cli_path() -> Optional[str]:
    """Return a path to a usable CLI binary, or None to use the SDK's default.

    Never raises: failures are logged together with a manual install hint.
    """
    env_path = os.environ.get(CLI_PATH_ENV)
    if env_path and Path(env_path).exists():
        return env_path

    on_path = shutil.which("copilot")
    if on_path:
        return on_path

    try:
        directory = cache_dir()
    except OSError as e:
        logger.warning("Cannot determine cache dir for copilot CLI", error=str(e))
        return None

    cached = directory / binary_name()
    if _is_executable_file(cached) or (cached.is_file() and cached.suffix == ".exe"):
        logger.info("Using cached copilot CLI", path=str(cached))
        return str(cached)

    logger.info("Copilot CLI not found, downloading...")
    try:
        return str(download_cli(directory))
    except RuntimeUnavailableError as e:
        logger.error("Failed to download copilot CLI", error=str(e))
        logger.info(MANUAL_INSTALL_HINT)
        return None
