"""Privilege elevation decisions and filesystem operations.

Elevation is requested at most once per broker and the outcome, grant or
denial, is remembered. Callers receive an explicit ElevationHandle and
thread it through the privileged operations instead of re-checking an
ambient flag.
"""

import errno
import logging
import os
import shutil
import subprocess
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from tycana_installer.domain import ElevationUnavailable, PrivilegedCommandFailed
from tycana_installer.fetcher.archive import make_executable

logger = logging.getLogger(__name__)

DEFAULT_SUDO = Path("/usr/bin/sudo")

Runner = Callable[..., subprocess.CompletedProcess]


@dataclass(frozen=True)
class ElevationHandle:
    """A granted ability to run commands with elevated privileges."""

    prefix: tuple[str, ...] = ()
    runner: Runner = field(default=subprocess.run, compare=False, repr=False)

    def run(self, command: list[str]) -> None:
        """Run ``command`` elevated, raising on a non-zero exit."""
        full = [*self.prefix, *command]
        logger.debug("Running elevated: %s", " ".join(full))
        try:
            proc = self.runner(full, capture_output=True, text=True)
        except OSError as e:
            raise PrivilegedCommandFailed(full, str(e)) from e
        if proc.returncode != 0:
            reason = (proc.stderr or "").strip() or f"exit code {proc.returncode}"
            raise PrivilegedCommandFailed(full, reason)


class FileOps(Protocol):
    """Filesystem mutations used by the deployment engine."""

    elevated: bool

    def make_dirs(self, path: Path) -> None: ...

    def move(self, src: Path, dst: Path) -> None: ...

    def copy(self, src: Path, dst: Path) -> None: ...

    def make_executable(self, path: Path) -> None: ...

    def remove(self, path: Path) -> None: ...


class DirectFileOps:
    """File operations performed as the current user."""

    elevated = False

    def make_dirs(self, path: Path) -> None:
        path.mkdir(parents=True, exist_ok=True)

    def move(self, src: Path, dst: Path) -> None:
        """Rename ``src`` to ``dst``.

        Across filesystems the file is first copied next to ``dst`` and then
        renamed, so ``dst`` never holds a partially written file.
        """
        try:
            os.rename(src, dst)
        except OSError as e:
            if e.errno != errno.EXDEV:
                raise
            staged = dst.with_name(f".{dst.name}.incoming-{os.getpid()}")
            try:
                shutil.copy2(src, staged)
                os.replace(staged, dst)
            finally:
                staged.unlink(missing_ok=True)
            src.unlink()

    def copy(self, src: Path, dst: Path) -> None:
        staged = dst.with_name(f".{dst.name}.incoming-{os.getpid()}")
        try:
            shutil.copy2(src, staged)
            os.replace(staged, dst)
        finally:
            staged.unlink(missing_ok=True)

    def make_executable(self, path: Path) -> None:
        make_executable(path)

    def remove(self, path: Path) -> None:
        path.unlink(missing_ok=True)


class ElevatedFileOps:
    """File operations run through an elevation handle."""

    elevated = True

    def __init__(self, handle: ElevationHandle):
        self.handle = handle

    def make_dirs(self, path: Path) -> None:
        self.handle.run(["/bin/mkdir", "-p", str(path)])

    def move(self, src: Path, dst: Path) -> None:
        self.handle.run(["mv", str(src), str(dst)])

    def copy(self, src: Path, dst: Path) -> None:
        self.handle.run(["/bin/cp", str(src), str(dst)])

    def make_executable(self, path: Path) -> None:
        self.handle.run(["chmod", "755", str(path)])

    def remove(self, path: Path) -> None:
        self.handle.run(["rm", "-f", str(path)])


def can_write_to(path: Path) -> bool:
    """Check whether ``path`` can be written without elevation.

    For a path that does not exist yet, the nearest existing ancestor decides.
    """
    probe = path
    while not probe.exists():
        if probe.parent == probe:
            return False
        probe = probe.parent
    return os.access(probe, os.W_OK)


class PrivilegeBroker:
    """Decides when elevation is needed and obtains it at most once."""

    def __init__(
        self,
        non_interactive: bool = False,
        askpass: str | None = None,
        sudo_path: Path = DEFAULT_SUDO,
        runner: Runner = subprocess.run,
    ):
        self.non_interactive = non_interactive
        self.askpass = askpass
        self.sudo_path = sudo_path
        self._runner = runner
        self._handle: ElevationHandle | None = None
        self._denial: ElevationUnavailable | None = None

    @staticmethod
    def can_write_to(path: Path) -> bool:
        return can_write_to(path)

    def _sudo_prefix(self) -> list[str]:
        prefix = [str(self.sudo_path)]
        if self.askpass:
            prefix.append("-A")
        elif self.non_interactive:
            prefix.append("-n")
        return prefix

    def _probe(self, args: list[str]) -> bool:
        try:
            proc = self._runner([*self._sudo_prefix(), *args], capture_output=True)
        except OSError as e:
            logger.debug("sudo probe %s failed: %s", args, e)
            return False
        return proc.returncode == 0

    def _request(self) -> ElevationHandle:
        if hasattr(os, "geteuid") and os.geteuid() == 0:
            return ElevationHandle(prefix=(), runner=self._runner)

        if not (self.sudo_path.is_file() and os.access(self.sudo_path, os.X_OK)):
            raise ElevationUnavailable(f"{self.sudo_path} not found")

        # Non-interactive runs must never sit on a password prompt
        if not self.non_interactive and not self.askpass and not self._probe(["-v"]):
            raise ElevationUnavailable("sudo authentication failed")
        if not self._probe(["-l", "/bin/mkdir"]):
            if self.non_interactive:
                raise ElevationUnavailable("sudo requires a password in non-interactive mode")
            raise ElevationUnavailable("sudo access denied")

        return ElevationHandle(prefix=tuple(self._sudo_prefix()), runner=self._runner)

    def ensure_elevated_access(self) -> ElevationHandle:
        """Obtain elevated access, reusing the first outcome on later calls.

        Raises:
            ElevationUnavailable: If elevation was, or now is, refused.
        """
        if self._handle is not None:
            return self._handle
        if self._denial is not None:
            raise self._denial

        try:
            self._handle = self._request()
        except ElevationUnavailable as e:
            self._denial = e
            raise
        logger.debug("Elevated access granted")
        return self._handle

    def file_ops_for(self, directory: Path) -> FileOps:
        """Choose direct or elevated operations for writing into ``directory``.

        Elevation is only requested when direct writing is not possible.
        """
        if self.can_write_to(directory):
            return DirectFileOps()

        logger.info("Elevated permissions required for %s", directory)
        try:
            handle = self.ensure_elevated_access()
        except ElevationUnavailable as e:
            raise ElevationUnavailable(e.reason, target=directory) from e
        return ElevatedFileOps(handle)
