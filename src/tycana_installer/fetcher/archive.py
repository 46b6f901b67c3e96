"""Archive extraction and executable sanity checks."""

import logging
import os
import shutil
import stat
import subprocess
import tarfile
from pathlib import Path

from tycana_installer.domain import (
    ExecutableNotFound,
    ExtractedExecutable,
    ExtractionFailed,
    OperatingSystem,
    PlatformTarget,
)

logger = logging.getLogger(__name__)


def _safe_extractall(tf: tarfile.TarFile, dest_dir: Path) -> None:
    """Extract refusing members that would land outside ``dest_dir``."""
    if hasattr(tarfile, "data_filter"):
        tf.extractall(dest_dir, filter="data")
        return

    root = dest_dir.resolve()
    for member in tf.getmembers():
        target = (dest_dir / member.name).resolve()
        if target != root and root not in target.parents:
            raise ExtractionFailed(Path(tf.name or ""), f"path traversal in member {member.name!r}")
    tf.extractall(dest_dir)


def make_executable(path: Path) -> None:
    mode = path.stat().st_mode
    path.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


def check_binary_format(path: Path) -> bool:
    """Best-effort check that the platform recognizes ``path`` as an executable.

    Returns False (and logs a warning) when the check fails or the `file`
    tool is unavailable.
    """
    file_tool = shutil.which("file")
    if file_tool is None:
        logger.warning("Could not verify binary format (file command not available)")
        return False

    try:
        proc = subprocess.run([file_tool, str(path)], capture_output=True, text=True, timeout=10)
    except (OSError, subprocess.SubprocessError) as e:
        logger.warning("Could not verify binary format (%s)", e)
        return False

    if proc.returncode != 0 or "executable" not in proc.stdout:
        logger.warning("Could not verify binary format of %s", path.name)
        return False
    return True


def extract(archive_path: Path, destination_dir: Path, binary_name: str = "tycana") -> ExtractedExecutable:
    """Unpack a tar.gz artifact and locate the binary at its root.

    The archive is removed once extraction succeeds.

    Raises:
        ExtractionFailed: If the archive cannot be read or unpacked.
        ExecutableNotFound: If ``binary_name`` is not directly under ``destination_dir``.
    """
    try:
        with tarfile.open(archive_path, "r:gz") as tf:
            _safe_extractall(tf, destination_dir)
    except (tarfile.TarError, OSError) as e:
        raise ExtractionFailed(archive_path, str(e)) from e

    archive_path.unlink(missing_ok=True)

    binary_path = destination_dir / binary_name
    if not binary_path.is_file():
        raise ExecutableNotFound(binary_path)

    if not os.access(binary_path, os.X_OK):
        logger.debug("Setting missing executable bit on %s", binary_path)
        make_executable(binary_path)

    check_binary_format(binary_path)
    logger.info("Binary extracted and verified: %s", binary_path.name)
    return ExtractedExecutable(path=binary_path, executable=os.access(binary_path, os.X_OK))


def clear_quarantine(path: Path, target: PlatformTarget) -> None:
    """Drop the macOS quarantine attribute so Gatekeeper does not block the binary."""
    if target.os != OperatingSystem.DARWIN:
        return
    xattr = shutil.which("xattr")
    if xattr is None:
        return

    logger.info("Removing macOS quarantine attributes...")
    try:
        subprocess.run(
            [xattr, "-dr", "com.apple.quarantine", str(path)],
            capture_output=True,
            timeout=10,
        )
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug("Failed to clear quarantine on %s: %s", path, e)
