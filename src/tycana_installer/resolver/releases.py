"""Release index queries and installed-binary discovery.

The release index is treated as an ordered list: the first record is the
latest release. Tags are never compared or sorted here.
"""

import json
import logging
import shutil
import subprocess
import urllib.error
import urllib.request
from pathlib import Path

from tycana_installer.config import USER_AGENT, InstallerConfig
from tycana_installer.domain import NotInstalled, ReleaseVersion, VersionResolutionFailed

logger = logging.getLogger(__name__)

UNKNOWN_VERSION = "unknown"


def releases_url(config: InstallerConfig) -> str:
    return f"{config.api_url.rstrip('/')}/{config.repo}/releases"


def _fetch_release_index(url: str, timeout: float) -> object:
    req = urllib.request.Request(
        url,
        headers={
            "User-Agent": USER_AGENT,
            "Accept": "application/vnd.github+json",
        },
    )
    with urllib.request.urlopen(req, timeout=timeout) as response:
        return json.loads(response.read().decode("utf-8"))


def resolve_latest_version(config: InstallerConfig) -> ReleaseVersion:
    """Return the tag of the first release listed by the release index.

    Raises:
        VersionResolutionFailed: If the index is unreachable or has no usable tag.
    """
    url = releases_url(config)
    logger.debug("Querying release index %s", url)

    try:
        payload = _fetch_release_index(url, config.index_timeout)
    except urllib.error.HTTPError as e:
        raise VersionResolutionFailed(url, f"HTTP {e.code}") from e
    except (urllib.error.URLError, OSError) as e:
        raise VersionResolutionFailed(url, str(e)) from e
    except ValueError as e:
        raise VersionResolutionFailed(url, f"invalid JSON: {e}") from e

    if not isinstance(payload, list) or not payload:
        raise VersionResolutionFailed(url, "no releases listed")

    first = payload[0]
    tag = first.get("tag_name") if isinstance(first, dict) else None
    if not isinstance(tag, str) or not tag.strip():
        raise VersionResolutionFailed(url, "first release has no tag_name")

    return ReleaseVersion(tag=tag.strip())


def find_current_installation(binary_name: str) -> Path:
    """Locate the installed binary on PATH, following symlinks.

    Raises:
        NotInstalled: If the binary is not on PATH.
    """
    found = shutil.which(binary_name)
    if not found:
        raise NotInstalled(binary_name)
    return Path(found).resolve()


def parse_version_output(output: str) -> str | None:
    """Extract the version from `<binary> version` output.

    The first line's second whitespace-delimited token is the version,
    e.g. ``tycana 0.3.0 (abc123)``.
    """
    lines = output.splitlines()
    if not lines:
        return None
    tokens = lines[0].split()
    if len(tokens) < 2:
        return None
    return tokens[1]


def get_installed_version(binary_path: Path, timeout: float = 30.0) -> str:
    """Ask a binary for its version, returning "unknown" on any failure."""
    try:
        proc = subprocess.run(
            [str(binary_path), "version"],
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug("Failed to run %s version: %s: %s", binary_path, type(e).__name__, e)
        return UNKNOWN_VERSION

    if proc.returncode != 0:
        logger.debug("%s version exited with %d", binary_path, proc.returncode)
        return UNKNOWN_VERSION

    version = parse_version_output(proc.stdout)
    if version is None:
        logger.warning("Could not determine version of %s", binary_path)
        return UNKNOWN_VERSION
    return version
