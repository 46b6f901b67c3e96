"""Per-run temporary working directory."""

import contextlib
import logging
import os
import shutil
import subprocess
import tempfile
from collections.abc import Iterator
from pathlib import Path

from tycana_installer.domain import WorkspaceUnusable

logger = logging.getLogger(__name__)

_PROBE_SCRIPT = "#!/bin/sh\nexit 0\n"


def workspace_base(runtime_dir: Path | None = None, home: Path | None = None) -> Path:
    """Pick a base directory likely to allow executing files.

    Prefers the runtime dir, then ~/.cache (falling back to ~), then the
    system temp dir.
    """
    if runtime_dir is not None and runtime_dir.is_dir():
        return runtime_dir

    home = home if home is not None else Path.home()
    if home.is_dir():
        cache = home / ".cache"
        try:
            cache.mkdir(parents=True, exist_ok=True)
            return cache
        except OSError:
            return home

    return Path(tempfile.gettempdir())


def check_executable_dir(directory: Path) -> None:
    """Fail early if files in ``directory`` cannot be executed (e.g. noexec mounts)."""
    probe = directory / "probe.sh"
    try:
        probe.write_text(_PROBE_SCRIPT)
        probe.chmod(0o700)
        proc = subprocess.run([str(probe)], capture_output=True, timeout=10)
    except (OSError, subprocess.SubprocessError) as e:
        raise WorkspaceUnusable(directory, str(e)) from e
    finally:
        probe.unlink(missing_ok=True)

    if proc.returncode != 0:
        raise WorkspaceUnusable(directory, "possibly mounted with noexec")


@contextlib.contextmanager
def deployment_workspace(mode: str, runtime_dir: Path | None = None) -> Iterator[Path]:
    """Create a scoped temp directory, removed on every exit path.

    Args:
        mode: Short label used in the directory name ("install", "upgrade").
        runtime_dir: Preferred base directory.

    Raises:
        WorkspaceUnusable: If the directory cannot be created or cannot run executables.
    """
    base = workspace_base(runtime_dir)
    try:
        workdir = Path(tempfile.mkdtemp(prefix=f"tycana-{mode}.", dir=base))
    except OSError as e:
        raise WorkspaceUnusable(base, str(e)) from e

    logger.debug("Using workspace %s", workdir)
    try:
        if os.name == "posix":
            check_executable_dir(workdir)
        yield workdir
    finally:
        shutil.rmtree(workdir, ignore_errors=True)
