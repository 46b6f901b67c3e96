"""Deployment engine: fresh installs and crash-safe upgrades.

An upgrade replaces a binary the OS may still be executing. Overwriting it
in place can fail with "text file busy", so the engine never writes into
the install path. Instead:

1. Vacate: rename the current binary to a timestamped backup. An open
   reference to the old inode stays valid.
2. Install: rename the new binary into place. On failure, rename the
   backup back.
3. Verify: run ``<binary> version``. On failure, rename the backup back.
4. Commit: delete the backup.

At every point the install path holds the old binary, nothing (with the
backup present), or the new binary, never a partially written file. If a
rollback rename itself fails the backup is left where it is and its path
is reported.
"""

import logging
import os
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path

from tycana_installer.config import InstallerConfig, resolve_install_dir
from tycana_installer.deploy.workspace import deployment_workspace
from tycana_installer.domain import (
    ArtifactDescriptor,
    BackupFailed,
    BackupHandle,
    CriticalRestoreFailure,
    DeploymentResult,
    DeploymentState,
    DeploymentStatus,
    ExtractedExecutable,
    InstallationTarget,
    InstallFailed,
    PlatformTarget,
    PrivilegedCommandFailed,
    ReleaseVersion,
    VerificationFailed,
)
from tycana_installer.fetcher import RetryPolicy, TransferLimits, clear_quarantine, extract, fetch
from tycana_installer.privilege import FileOps, PrivilegeBroker
from tycana_installer.resolver import (
    UNKNOWN_VERSION,
    find_current_installation,
    get_installed_version,
    parse_version_output,
    resolve_latest_version,
    resolve_platform,
)

logger = logging.getLogger(__name__)

# Errors a filesystem step can raise, direct or elevated
_STEP_ERRORS = (OSError, PrivilegedCommandFailed)


@dataclass
class UpdateCheck:
    """Installed version compared with the latest release."""

    final_path: Path
    current_version: str
    latest: ReleaseVersion

    @property
    def update_available(self) -> bool:
        if self.current_version == UNKNOWN_VERSION:
            return True
        return self.latest.normalize() != ReleaseVersion(tag=self.current_version).normalize()


class DeploymentEngine:
    """Installs or upgrades the binary using the resolver, fetcher and broker."""

    def __init__(
        self,
        config: InstallerConfig | None = None,
        broker: PrivilegeBroker | None = None,
        retry_policy: RetryPolicy | None = None,
    ):
        self.config = config or InstallerConfig()
        self.broker = broker or PrivilegeBroker(
            non_interactive=self.config.non_interactive,
            askpass=self.config.sudo_askpass,
        )
        self.retry_policy = retry_policy or RetryPolicy(
            max_attempts=self.config.max_attempts,
            delay=self.config.retry_delay,
        )
        self.limits = TransferLimits(
            connect_timeout=self.config.connect_timeout,
            transfer_timeout=self.config.transfer_timeout,
            min_size=self.config.min_artifact_size,
        )
        self.state = DeploymentState.IDLE

    def _transition(self, state: DeploymentState) -> None:
        logger.debug("Deployment state: %s -> %s", self.state.value, state.value)
        self.state = state

    def _descriptor(self, target: PlatformTarget, release: ReleaseVersion) -> ArtifactDescriptor:
        return ArtifactDescriptor(
            repo=self.config.repo,
            version=release,
            target=target,
            binary_name=self.config.binary_name,
            releases_host=self.config.releases_host,
        )

    def _prepare_executable(self, descriptor: ArtifactDescriptor, workdir: Path) -> ExtractedExecutable:
        artifact = fetch(descriptor, workdir, self.retry_policy, self.limits)
        self._transition(DeploymentState.ARTIFACT_READY)

        executable = extract(artifact.path, workdir, self.config.binary_name)
        clear_quarantine(executable.path, descriptor.target)
        self._transition(DeploymentState.EXECUTABLE_READY)
        return executable

    def self_check(self, binary_path: Path) -> str:
        """Run ``<binary> version`` and return the reported version.

        Raises:
            VerificationFailed: If the binary cannot run or exits non-zero.
        """
        try:
            proc = subprocess.run(
                [str(binary_path), "version"],
                capture_output=True,
                text=True,
                timeout=self.config.verify_timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise VerificationFailed(binary_path, f"timed out after {e.timeout}s") from e
        except OSError as e:
            raise VerificationFailed(binary_path, str(e)) from e

        if proc.returncode != 0:
            raise VerificationFailed(binary_path, f"`version` exited with code {proc.returncode}")
        return parse_version_output(proc.stdout) or UNKNOWN_VERSION

    # -------------------------------------------------------------------------
    # Fresh install
    # -------------------------------------------------------------------------

    def install(self, version: str | None = None) -> DeploymentResult:
        """Download and place the binary in the resolved install directory.

        Args:
            version: Release tag to install; the latest release when None.
        """
        target = resolve_platform()
        release = ReleaseVersion(tag=version) if version else resolve_latest_version(self.config)
        self._transition(DeploymentState.RESOLVED)

        installation = InstallationTarget(
            directory=resolve_install_dir(self.config),
            binary_name=self.config.binary_name,
        )
        final_path = installation.final_path
        logger.info("Installing %s %s for %s", self.config.binary_name, release, target)
        logger.info("Install directory: %s", installation.directory)

        # Decided once, before anything is downloaded or created
        ops = self.broker.file_ops_for(installation.directory)
        descriptor = self._descriptor(target, release)

        with deployment_workspace("install", self.config.runtime_dir) as workdir:
            executable = self._prepare_executable(descriptor, workdir)
            self._transition(DeploymentState.FRESH_INSTALL)
            self._place(executable.path, installation, ops)

        installed_version = self.verify_installation(final_path)
        self._transition(DeploymentState.VERIFIED)
        self._transition(DeploymentState.DONE)

        return DeploymentResult(
            status=DeploymentStatus.INSTALLED,
            final_path=final_path,
            installed_version=installed_version,
            release_tag=release.tag,
            release_notes_url=descriptor.release_notes_url,
        )

    def _place(self, source: Path, installation: InstallationTarget, ops: FileOps) -> None:
        final_path = installation.final_path
        try:
            if not installation.directory.is_dir():
                logger.warning("Creating directory: %s", installation.directory)
                ops.make_dirs(installation.directory)
            ops.copy(source, final_path)
            ops.make_executable(final_path)
        except _STEP_ERRORS as e:
            raise InstallFailed(final_path, str(e), rolled_back=False) from e
        logger.info("Binary installed to %s", final_path)

    def verify_installation(self, final_path: Path) -> str:
        """Check the placed binary and warn about PATH problems.

        Returns:
            The version the binary reports.
        """
        if not final_path.is_file():
            raise VerificationFailed(final_path, "binary not found at expected location")
        if not os.access(final_path, os.X_OK):
            raise VerificationFailed(final_path, "binary is not executable")

        reported = self.self_check(final_path)

        on_path = shutil.which(self.config.binary_name)
        if on_path is None:
            logger.warning(
                "Installation completed, but '%s' was not found in PATH (add %s to PATH)",
                self.config.binary_name,
                final_path.parent,
            )
        elif Path(on_path).resolve() != final_path.resolve():
            logger.warning("Found different %s binary in PATH: %s", self.config.binary_name, on_path)
            logger.warning("Just installed: %s", final_path)

        return reported

    # -------------------------------------------------------------------------
    # Upgrade
    # -------------------------------------------------------------------------

    def check(self, binary_path: Path | None = None) -> UpdateCheck:
        """Compare the installed version with the latest release. No mutation."""
        final_path = binary_path or find_current_installation(self.config.binary_name)
        current = get_installed_version(final_path, timeout=self.config.verify_timeout)
        latest = resolve_latest_version(self.config)
        return UpdateCheck(final_path=final_path, current_version=current, latest=latest)

    def upgrade(self, binary_path: Path | None = None) -> DeploymentResult:
        """Replace the installed binary with the latest release.

        Performs no filesystem mutation when the installed version already
        matches the latest release.

        Args:
            binary_path: Installed binary; located on PATH when None.
        """
        target = resolve_platform()
        status = self.check(binary_path)
        self._transition(DeploymentState.RESOLVED)

        logger.info("Found current installation: %s", status.final_path)
        logger.info("Current version: %s", status.current_version)
        logger.info("Latest version: %s", status.latest)

        descriptor = self._descriptor(target, status.latest)
        if not status.update_available:
            self._transition(DeploymentState.DONE)
            return DeploymentResult(
                status=DeploymentStatus.ALREADY_CURRENT,
                final_path=status.final_path,
                previous_version=status.current_version,
                installed_version=status.current_version,
                release_tag=status.latest.tag,
                release_notes_url=descriptor.release_notes_url,
            )

        logger.info("Upgrading from %s to %s", status.current_version, status.latest.normalize())

        # Elevation is decided once for the whole replace sequence
        ops = self.broker.file_ops_for(status.final_path.parent)

        with deployment_workspace("upgrade", self.config.runtime_dir) as workdir:
            executable = self._prepare_executable(descriptor, workdir)
            reported = self.replace_binary(status.final_path, executable.path, ops)

        if reported != status.latest.normalize():
            logger.warning("Upgraded binary reports version %s, expected %s", reported, status.latest.normalize())

        return DeploymentResult(
            status=DeploymentStatus.UPGRADED,
            final_path=status.final_path,
            previous_version=status.current_version,
            installed_version=reported,
            release_tag=status.latest.tag,
            release_notes_url=descriptor.release_notes_url,
        )

    def replace_binary(self, final_path: Path, new_binary: Path, ops: FileOps) -> str:
        """Swap ``new_binary`` into ``final_path`` with automatic rollback.

        Returns:
            The version reported by the new binary.

        Raises:
            BackupFailed: If the current binary could not be vacated; nothing changed.
            InstallFailed: If the new binary could not be placed; original restored.
            VerificationFailed: If the new binary failed its self-check; original restored.
            CriticalRestoreFailure: If restoring the original failed.
        """
        backup = BackupHandle.allocate(final_path)
        backup_path = backup.backup_path
        self._transition(DeploymentState.UPGRADE_IN_PROGRESS)
        logger.info("Replacing binary at: %s", final_path)

        try:
            ops.move(final_path, backup_path)
        except _STEP_ERRORS as e:
            raise BackupFailed(final_path, backup_path, str(e)) from e

        try:
            ops.move(new_binary, final_path)
        except _STEP_ERRORS as e:
            logger.warning("Failed to install new binary, rolling back...")
            self._restore(final_path, backup_path, ops)
            raise InstallFailed(final_path, str(e)) from e

        try:
            reported = self.self_check(final_path)
        except VerificationFailed as e:
            logger.warning("New binary failed verification, rolling back...")
            self._restore(final_path, backup_path, ops)
            raise VerificationFailed(final_path, e.reason, rolled_back=True) from e
        self._transition(DeploymentState.VERIFIED)

        try:
            ops.remove(backup_path)
        except _STEP_ERRORS as e:
            logger.warning("Could not remove backup %s: %s", backup_path, e)

        self._transition(DeploymentState.DONE)
        logger.info("Binary successfully replaced")
        return reported

    def _restore(self, final_path: Path, backup_path: Path, ops: FileOps) -> None:
        try:
            ops.move(backup_path, final_path)
        except _STEP_ERRORS as e:
            raise CriticalRestoreFailure(final_path, backup_path, str(e)) from e
        self._transition(DeploymentState.ROLLED_BACK)
