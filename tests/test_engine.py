"""Tests for the deployment engine."""

import os
import subprocess
from pathlib import Path
from unittest.mock import Mock, patch

import pytest

from tycana_installer.deploy import DeploymentEngine, UpdateCheck
from tycana_installer.domain import (
    Architecture,
    BackupFailed,
    CriticalRestoreFailure,
    DeploymentState,
    DeploymentStatus,
    ElevationUnavailable,
    InstallFailed,
    OperatingSystem,
    PlatformTarget,
    ReleaseVersion,
    VerificationFailed,
)
from tycana_installer.privilege import DirectFileOps, PrivilegeBroker

ENGINE = "tycana_installer.deploy.engine"
LINUX_X86 = PlatformTarget(os=OperatingSystem.LINUX, arch=Architecture.X86_64)


class FlakyFileOps(DirectFileOps):
    """DirectFileOps whose n-th move calls raise ``error``."""

    def __init__(self, fail_moves: set[int], error: BaseException | None = None):
        self.fail_moves = fail_moves
        self.error = error or OSError("Text file busy")
        self.moves = 0

    def move(self, src: Path, dst: Path) -> None:
        self.moves += 1
        if self.moves in self.fail_moves:
            raise self.error
        super().move(src, dst)


def _backups(directory: Path) -> list[Path]:
    return sorted(directory.glob("tycana.backup-*"))


@pytest.fixture
def sources(tmp_path: Path, make_release, serve_archive):
    """Patch platform, release index and download; yield the fetch mock."""
    archive = make_release(tmp_path / "release" / "tycana.tar.gz", version="0.4.0")
    fake_fetch = Mock(side_effect=serve_archive(archive))

    with patch(f"{ENGINE}.resolve_platform", return_value=LINUX_X86), patch(
        f"{ENGINE}.resolve_latest_version", return_value=ReleaseVersion(tag="v0.4.0")
    ) as latest, patch(f"{ENGINE}.fetch", fake_fetch):
        yield {"fetch": fake_fetch, "latest": latest}


@pytest.fixture
def installed(tmp_path: Path, make_binary) -> Path:
    """An existing 0.3.0 installation."""
    return make_binary(tmp_path / "bin" / "tycana", version="0.3.0")


class TestUpgrade:
    """Tests for DeploymentEngine.upgrade()."""

    def test_already_current_mutates_nothing(self, config, sources, make_binary, tmp_path: Path):
        """An up-to-date install is left untouched: no download, no elevation."""
        binary = make_binary(tmp_path / "bin" / "tycana", version="0.4.0")
        before = binary.read_bytes()
        broker = Mock(spec=PrivilegeBroker)

        result = DeploymentEngine(config, broker=broker).upgrade(binary)

        assert result.status == DeploymentStatus.ALREADY_CURRENT
        assert result.installed_version == "0.4.0"
        sources["fetch"].assert_not_called()
        broker.file_ops_for.assert_not_called()
        assert binary.read_bytes() == before
        assert [p.name for p in binary.parent.iterdir()] == ["tycana"]
        assert list(config.runtime_dir.iterdir()) == []

    def test_upgrades_and_removes_backup(self, config, sources, installed: Path):
        engine = DeploymentEngine(config)

        result = engine.upgrade(installed)

        assert result.status == DeploymentStatus.UPGRADED
        assert result.previous_version == "0.3.0"
        assert result.installed_version == "0.4.0"
        assert result.release_tag == "v0.4.0"
        assert result.release_notes_url == "https://github.com/tycana/releases/releases/tag/v0.4.0"
        assert "tycana 0.4.0" in installed.read_text()
        assert os.access(installed, os.X_OK)
        assert _backups(installed.parent) == []
        assert engine.state == DeploymentState.DONE

    def test_workspace_removed_after_upgrade(self, config, sources, installed: Path):
        DeploymentEngine(config).upgrade(installed)
        assert list(config.runtime_dir.iterdir()) == []

    def test_elevation_decided_once(self, config, sources, installed: Path):
        """The broker is consulted once, for the binary's directory."""
        broker = Mock(spec=PrivilegeBroker)
        broker.file_ops_for.return_value = DirectFileOps()

        DeploymentEngine(config, broker=broker).upgrade(installed)

        broker.file_ops_for.assert_called_once_with(installed.parent)

    def test_failed_new_binary_is_rolled_back(self, config, installed: Path, make_release, serve_archive, tmp_path):
        """A release whose binary fails `version` leaves the old one in place."""
        archive = make_release(tmp_path / "release" / "bad.tar.gz", version="0.4.0", exit_code=1)
        engine = DeploymentEngine(config)

        with patch(f"{ENGINE}.resolve_platform", return_value=LINUX_X86), patch(
            f"{ENGINE}.resolve_latest_version", return_value=ReleaseVersion(tag="v0.4.0")
        ), patch(f"{ENGINE}.fetch", side_effect=serve_archive(archive)), pytest.raises(VerificationFailed) as exc_info:
            engine.upgrade(installed)

        assert exc_info.value.rolled_back is True
        assert "tycana 0.3.0" in installed.read_text()
        assert _backups(installed.parent) == []
        assert engine.state == DeploymentState.ROLLED_BACK

    def test_unknown_current_version_upgrades(self, config, sources, make_binary, tmp_path: Path):
        """A binary that cannot report its version is treated as outdated."""
        binary = make_binary(tmp_path / "bin" / "tycana", version="0.3.0", exit_code=1)

        result = DeploymentEngine(config).upgrade(binary)

        assert result.previous_version == "unknown"
        assert result.installed_version == "0.4.0"

    def test_elevation_refused_before_download(self, config, sources, installed: Path):
        broker = Mock(spec=PrivilegeBroker)
        broker.file_ops_for.side_effect = ElevationUnavailable("sudo access denied", target=installed.parent)

        with pytest.raises(ElevationUnavailable):
            DeploymentEngine(config, broker=broker).upgrade(installed)

        sources["fetch"].assert_not_called()
        assert "tycana 0.3.0" in installed.read_text()


class TestReplaceBinary:
    """Tests for the backup/install/verify/commit sequence."""

    @pytest.fixture
    def new_binary(self, tmp_path: Path, make_binary) -> Path:
        return make_binary(tmp_path / "work" / "tycana", version="0.4.0")

    def test_backup_failure_changes_nothing(self, config, installed: Path, new_binary: Path):
        ops = FlakyFileOps(fail_moves={1})

        with pytest.raises(BackupFailed):
            DeploymentEngine(config).replace_binary(installed, new_binary, ops)

        assert "tycana 0.3.0" in installed.read_text()
        assert _backups(installed.parent) == []

    def test_install_failure_restores_original(self, config, installed: Path, new_binary: Path):
        ops = FlakyFileOps(fail_moves={2})
        engine = DeploymentEngine(config)

        with pytest.raises(InstallFailed) as exc_info:
            engine.replace_binary(installed, new_binary, ops)

        assert exc_info.value.rolled_back is True
        assert "tycana 0.3.0" in installed.read_text()
        assert _backups(installed.parent) == []
        assert engine.state == DeploymentState.ROLLED_BACK

    def test_failed_restore_keeps_backup(self, config, installed: Path, new_binary: Path):
        """When rollback fails the backup is left and its path reported."""
        ops = FlakyFileOps(fail_moves={2, 3}, error=OSError("Read-only file system"))

        with pytest.raises(CriticalRestoreFailure) as exc_info:
            DeploymentEngine(config).replace_binary(installed, new_binary, ops)

        backups = _backups(installed.parent)
        assert len(backups) == 1
        assert exc_info.value.backup_path == backups[0]
        assert "tycana 0.3.0" in backups[0].read_text()
        assert not installed.exists()

    def test_commit_failure_only_warns(self, config, installed: Path, new_binary: Path, caplog):
        ops = DirectFileOps()
        ops.remove = Mock(side_effect=OSError("Permission denied"))

        reported = DeploymentEngine(config).replace_binary(installed, new_binary, ops)

        assert reported == "0.4.0"
        assert "tycana 0.4.0" in installed.read_text()
        assert "Could not remove backup" in caplog.text

    def test_existing_backup_is_preserved(self, config, installed: Path, new_binary: Path):
        """A leftover backup with the same timestamp is not overwritten."""
        leftover = installed.parent / "tycana.backup-1700000000"
        leftover.write_text("leftover from an earlier run")

        with patch("time.time", return_value=1700000000):
            reported = DeploymentEngine(config).replace_binary(installed, new_binary, DirectFileOps())

        assert reported == "0.4.0"
        assert leftover.read_text() == "leftover from an earlier run"
        assert _backups(installed.parent) == [leftover]

    def test_interrupt_leaves_one_binary(self, config, installed: Path, new_binary: Path):
        """An interrupt mid-sequence never leaves a partial binary behind."""
        ops = FlakyFileOps(fail_moves={2}, error=KeyboardInterrupt())

        with pytest.raises(KeyboardInterrupt):
            DeploymentEngine(config).replace_binary(installed, new_binary, ops)

        survivors = [p for p in [installed, *_backups(installed.parent)] if p.exists()]
        assert len(survivors) == 1
        assert "tycana 0.3.0" in survivors[0].read_text()
        assert os.access(survivors[0], os.X_OK)


class TestInstall:
    """Tests for DeploymentEngine.install()."""

    def test_fresh_install_creates_directory(self, config, sources):
        result = DeploymentEngine(config).install()

        final = config.install_dir / "tycana"
        assert result.status == DeploymentStatus.INSTALLED
        assert result.final_path == final
        assert result.installed_version == "0.4.0"
        assert os.access(final, os.X_OK)
        assert list(config.runtime_dir.iterdir()) == []

    def test_pinned_version_skips_index(self, config, sources):
        result = DeploymentEngine(config).install("v0.2.0")

        sources["latest"].assert_not_called()
        assert result.release_tag == "v0.2.0"
        descriptor = sources["fetch"].call_args[0][0]
        assert descriptor.archive_name == "tycana_0.2.0_linux_x86_64.tar.gz"

    def test_refused_elevation_touches_nothing(self, config, sources, tmp_path: Path):
        """Without usable sudo nothing is downloaded or created."""
        sudo = tmp_path / "sudo"
        sudo.write_text("#!/bin/sh\nexit 1\n")
        sudo.chmod(0o755)
        runner = Mock(return_value=subprocess.CompletedProcess([], 1))
        broker = PrivilegeBroker(non_interactive=True, sudo_path=sudo, runner=runner)

        with patch("os.geteuid", return_value=1000), patch.object(
            PrivilegeBroker, "can_write_to", return_value=False
        ), pytest.raises(ElevationUnavailable) as exc_info:
            DeploymentEngine(config, broker=broker).install()

        assert exc_info.value.target == config.install_dir
        sources["fetch"].assert_not_called()
        assert not config.install_dir.exists()
        assert list(config.runtime_dir.iterdir()) == []

    def test_verify_installation_requires_executable(self, config, tmp_path: Path):
        binary = tmp_path / "tycana"
        binary.write_text("not a program")
        binary.chmod(0o644)

        with patch("os.access", return_value=False), pytest.raises(VerificationFailed, match="not executable"):
            DeploymentEngine(config).verify_installation(binary)


class TestUpdateCheck:
    """Tests for UpdateCheck.update_available."""

    @pytest.mark.parametrize(
        ("current", "expected"),
        [("unknown", True), ("0.3.0", True), ("0.4.0", False), ("v0.4.0", False)],
    )
    def test_update_available(self, tmp_path: Path, current: str, expected: bool):
        check = UpdateCheck(final_path=tmp_path / "tycana", current_version=current, latest=ReleaseVersion(tag="v0.4.0"))
        assert check.update_available is expected
