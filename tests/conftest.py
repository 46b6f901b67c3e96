"""Pytest configuration and fixtures."""

import io
import shutil
import tarfile
from collections.abc import Callable
from pathlib import Path

import pytest

from tycana_installer.config import InstallerConfig
from tycana_installer.domain import ArtifactDescriptor, DownloadedArtifact


def binary_script(version: str, exit_code: int = 0) -> str:
    """Shell script standing in for the tycana binary."""
    return (
        "#!/bin/sh\n"
        'if [ "$1" = "version" ]; then\n'
        f'  echo "tycana {version} (test build)"\n'
        f"  exit {exit_code}\n"
        "fi\n"
        "exit 0\n"
    )


@pytest.fixture
def make_binary() -> Callable[..., Path]:
    """Write a fake tycana executable at a path."""

    def _make(path: Path, version: str = "0.3.0", exit_code: int = 0) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(binary_script(version, exit_code))
        path.chmod(0o755)
        return path

    return _make


@pytest.fixture
def make_archive() -> Callable[..., Path]:
    """Build a tar.gz release archive from a name -> (content, mode) mapping."""

    def _make(archive_path: Path, members: dict[str, tuple[str, int]]) -> Path:
        archive_path.parent.mkdir(parents=True, exist_ok=True)
        with tarfile.open(archive_path, "w:gz") as tf:
            for name, (content, mode) in members.items():
                data = content.encode()
                info = tarfile.TarInfo(name)
                info.size = len(data)
                info.mode = mode
                tf.addfile(info, io.BytesIO(data))
        return archive_path

    return _make


@pytest.fixture
def make_release(make_archive) -> Callable[..., Path]:
    """Build a release archive whose binary reports ``version``."""

    def _make(archive_path: Path, version: str = "0.4.0", exit_code: int = 0) -> Path:
        return make_archive(archive_path, {"tycana": (binary_script(version, exit_code), 0o755)})

    return _make


@pytest.fixture
def config(tmp_path: Path) -> InstallerConfig:
    """Config isolated to the test's tmp directory."""
    runtime = tmp_path / "runtime"
    runtime.mkdir()
    return InstallerConfig(
        install_dir=tmp_path / "bin",
        runtime_dir=runtime,
        retry_delay=0,
        non_interactive=True,
        verify_timeout=10,
    )


@pytest.fixture
def serve_archive() -> Callable[[Path], Callable[..., DownloadedArtifact]]:
    """Replacement for fetch() that copies a prepared archive into the workspace."""

    def _factory(source: Path) -> Callable[..., DownloadedArtifact]:
        def _fetch(descriptor: ArtifactDescriptor, destination_dir: Path, policy=None, limits=None):
            dest = destination_dir / descriptor.archive_name
            shutil.copy(source, dest)
            return DownloadedArtifact(path=dest, size=dest.stat().st_size)

        return _fetch

    return _factory
