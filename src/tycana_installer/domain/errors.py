"""Installer error taxonomy.

Every failure surfaced to the user is an InstallerError naming the stage
that failed. Errors raised once the upgrade has started mutating the
install path carry ``rolled_back`` so callers can tell a restored system
from an untouched one.
"""

from pathlib import Path


class InstallerError(Exception):
    """Base class for all installer failures."""

    stage = "install"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class UnsupportedPlatform(InstallerError):
    """Raised when the kernel name is not a supported OS."""

    stage = "platform detection"

    def __init__(self, system: str):
        self.system = system
        super().__init__(f"Unsupported platform: {system}")


class UnsupportedArchitecture(InstallerError):
    """Raised when the CPU name is not a supported architecture."""

    stage = "platform detection"

    def __init__(self, machine: str):
        self.machine = machine
        super().__init__(f"Unsupported architecture: {machine}")


class VersionResolutionFailed(InstallerError):
    """Raised when the release index yields no usable tag."""

    stage = "version resolution"

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Failed to get latest version from {url}: {reason}")


class NotInstalled(InstallerError):
    """Raised when upgrading but no installed binary can be found."""

    stage = "installation lookup"

    def __init__(self, binary_name: str):
        self.binary_name = binary_name
        super().__init__(
            f"{binary_name} not found on PATH. Install it first with: tycana-installer install"
        )


class DownloadFailed(InstallerError):
    """Raised when every download attempt failed."""

    stage = "download"

    def __init__(self, url: str, attempts: int, last_cause: BaseException | None):
        self.url = url
        self.attempts = attempts
        self.last_cause = last_cause
        super().__init__(self._describe())

    def _describe(self) -> str:
        return f"Failed to download {self.url} after {self.attempts} attempts: {self.last_cause}"


class ArtifactNotFound(DownloadFailed):
    """Raised when the release server reports the artifact does not exist."""

    def _describe(self) -> str:
        return (
            f"Release artifact not found (HTTP 404): {self.url}. "
            "Check that the version exists for this platform."
        )


class EmptyArtifact(InstallerError):
    """Raised when a download completed but produced zero bytes."""

    stage = "download"

    def __init__(self, path: Path):
        self.path = path
        super().__init__(f"Downloaded file is empty or corrupted: {path}")


class ExtractionFailed(InstallerError):
    """Raised when the archive cannot be unpacked."""

    stage = "extraction"

    def __init__(self, archive_path: Path, reason: str):
        self.archive_path = archive_path
        self.reason = reason
        super().__init__(f"Failed to extract {archive_path}: {reason}")


class ExecutableNotFound(InstallerError):
    """Raised when the archive did not contain the binary at its root."""

    stage = "extraction"

    def __init__(self, expected_path: Path):
        self.expected_path = expected_path
        super().__init__(f"Binary not found in downloaded archive: {expected_path}")


class WorkspaceUnusable(InstallerError):
    """Raised when the temporary working directory cannot hold executables."""

    stage = "workspace setup"

    def __init__(self, directory: Path, reason: str):
        self.directory = directory
        self.reason = reason
        super().__init__(
            f"Cannot execute in temporary directory {directory} ({reason}). "
            "Try setting XDG_RUNTIME_DIR or HOME to a writable location."
        )


class ElevationUnavailable(InstallerError):
    """Raised when elevated access is required but cannot be obtained."""

    stage = "privilege elevation"

    def __init__(self, reason: str, target: Path | None = None):
        self.reason = reason
        self.target = target
        message = f"Elevated permissions unavailable: {reason}"
        if target is not None:
            message += (
                f". Cannot write to {target}; create it manually or set "
                "TYCANA_INSTALL_DIR to a writable location"
            )
        super().__init__(message)


class PrivilegedCommandFailed(InstallerError):
    """Raised when a command run through the elevation handle fails."""

    stage = "privileged operation"

    def __init__(self, command: list[str], reason: str):
        self.command = command
        self.reason = reason
        super().__init__(f"Failed during: {' '.join(command)}: {reason}")


class BackupFailed(InstallerError):
    """Raised when the current binary could not be moved aside."""

    stage = "backup"

    def __init__(self, final_path: Path, backup_path: Path, reason: str):
        self.final_path = final_path
        self.backup_path = backup_path
        self.reason = reason
        super().__init__(f"Failed to backup current binary to {backup_path}: {reason}")


class InstallFailed(InstallerError):
    """Raised when the new binary could not be placed; original restored."""

    stage = "install"

    def __init__(self, final_path: Path, reason: str, rolled_back: bool = True):
        self.final_path = final_path
        self.reason = reason
        self.rolled_back = rolled_back
        suffix = " - original binary restored" if rolled_back else ""
        super().__init__(f"Failed to install new binary at {final_path}: {reason}{suffix}")


class VerificationFailed(InstallerError):
    """Raised when the deployed binary fails its self-check."""

    stage = "verification"

    def __init__(self, final_path: Path, reason: str, rolled_back: bool = False):
        self.final_path = final_path
        self.reason = reason
        self.rolled_back = rolled_back
        suffix = " - original binary restored" if rolled_back else ""
        super().__init__(f"New binary verification failed for {final_path}: {reason}{suffix}")


class CriticalRestoreFailure(InstallerError):
    """Raised when rollback itself failed; no binary is at the install path."""

    stage = "rollback"

    def __init__(self, final_path: Path, backup_path: Path, reason: str):
        self.final_path = final_path
        self.backup_path = backup_path
        self.reason = reason
        super().__init__(
            f"CRITICAL: Failed to restore backup to {final_path}: {reason}. "
            f"Original binary at: {backup_path}"
        )
