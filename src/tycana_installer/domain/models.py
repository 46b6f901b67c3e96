"""Value types passed between the installer stages.

Each stage produces one of these and hands it to the next:
- PlatformTarget and ReleaseVersion from the resolvers
- ArtifactDescriptor -> DownloadedArtifact from the fetcher
- ExtractedExecutable from the archive extractor
- InstallationTarget and BackupHandle owned by the deployment engine
"""

import os
import time
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from tycana_installer.domain.enums import Architecture, DeploymentStatus, OperatingSystem

ARCHIVE_EXTENSION = "tar.gz"


class ReleaseVersion(BaseModel):
    """A release tag as published by the release index.

    Versions are only ever compared for equality after normalization;
    there is no ordering.
    """

    model_config = ConfigDict(frozen=True)

    tag: str

    def normalize(self) -> str:
        """Return the tag with a single leading non-numeric marker removed."""
        if self.tag and not self.tag[0].isdigit():
            return self.tag[1:]
        return self.tag

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ReleaseVersion):
            return self.normalize() == other.normalize()
        if isinstance(other, str):
            return self.normalize() == ReleaseVersion(tag=other).normalize()
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.normalize())

    def __str__(self) -> str:
        return self.tag


class PlatformTarget(BaseModel):
    """The (os, arch) pair used in artifact names."""

    model_config = ConfigDict(frozen=True)

    os: OperatingSystem
    arch: Architecture

    def __str__(self) -> str:
        return f"{self.os.value}-{self.arch.value}"


class ArtifactDescriptor(BaseModel):
    """Everything needed to name and locate one release archive."""

    model_config = ConfigDict(frozen=True)

    repo: str
    version: ReleaseVersion
    target: PlatformTarget
    binary_name: str = "tycana"
    releases_host: str = "https://github.com"

    @property
    def archive_name(self) -> str:
        # The filename uses the bare version, the tag path segment keeps the marker
        return (
            f"{self.binary_name}_{self.version.normalize()}_"
            f"{self.target.os.value}_{self.target.arch.value}.{ARCHIVE_EXTENSION}"
        )

    @property
    def download_url(self) -> str:
        host = self.releases_host.rstrip("/")
        return f"{host}/{self.repo}/releases/download/{self.version.tag}/{self.archive_name}"

    @property
    def release_notes_url(self) -> str:
        host = self.releases_host.rstrip("/")
        return f"{host}/{self.repo}/releases/tag/{self.version.tag}"


class DownloadedArtifact(BaseModel):
    """An archive written to local disk."""

    model_config = ConfigDict(frozen=True)

    path: Path
    size: int = Field(gt=0)


class ExtractedExecutable(BaseModel):
    """The binary payload unpacked from an artifact."""

    model_config = ConfigDict(frozen=True)

    path: Path
    executable: bool = True


class InstallationTarget(BaseModel):
    """Where the binary lives once deployed."""

    model_config = ConfigDict(frozen=True)

    directory: Path
    binary_name: str = "tycana"

    @property
    def final_path(self) -> Path:
        return self.directory / self.binary_name


class BackupHandle(BaseModel):
    """The vacated copy of the previous binary during an upgrade."""

    model_config = ConfigDict(frozen=True)

    final_path: Path
    timestamp: int = Field(default_factory=lambda: int(time.time()))
    # Disambiguates backups created within the same second
    suffix: int = Field(default=0, ge=0)

    @property
    def backup_path(self) -> Path:
        name = f"{self.final_path.name}.backup-{self.timestamp}"
        if self.suffix:
            name = f"{name}.{self.suffix}"
        return self.final_path.with_name(name)

    @classmethod
    def allocate(cls, final_path: Path) -> "BackupHandle":
        """Return a handle whose backup path does not exist yet.

        Renaming onto an existing path would silently replace it, so a
        leftover backup from an earlier run is never reused.
        """
        handle = cls(final_path=final_path)
        while os.path.lexists(handle.backup_path):
            handle = cls(final_path=final_path, timestamp=handle.timestamp, suffix=handle.suffix + 1)
        return handle


class DeploymentResult(BaseModel):
    """What a deployment run did."""

    status: DeploymentStatus
    final_path: Path
    previous_version: str | None = None
    installed_version: str | None = None
    release_tag: str | None = None
    release_notes_url: str | None = None
