"""Domain models, enums and errors for the installer."""

from tycana_installer.domain.enums import (
    Architecture,
    DeploymentState,
    DeploymentStatus,
    OperatingSystem,
)
from tycana_installer.domain.errors import (
    ArtifactNotFound,
    BackupFailed,
    CriticalRestoreFailure,
    DownloadFailed,
    ElevationUnavailable,
    EmptyArtifact,
    ExecutableNotFound,
    ExtractionFailed,
    InstallerError,
    InstallFailed,
    NotInstalled,
    PrivilegedCommandFailed,
    UnsupportedArchitecture,
    UnsupportedPlatform,
    VerificationFailed,
    VersionResolutionFailed,
    WorkspaceUnusable,
)
from tycana_installer.domain.models import (
    ArtifactDescriptor,
    BackupHandle,
    DeploymentResult,
    DownloadedArtifact,
    ExtractedExecutable,
    InstallationTarget,
    PlatformTarget,
    ReleaseVersion,
)

__all__ = [
    # Enums
    "Architecture",
    "DeploymentState",
    "DeploymentStatus",
    "OperatingSystem",
    # Models
    "ArtifactDescriptor",
    "BackupHandle",
    "DeploymentResult",
    "DownloadedArtifact",
    "ExtractedExecutable",
    "InstallationTarget",
    "PlatformTarget",
    "ReleaseVersion",
    # Errors
    "ArtifactNotFound",
    "BackupFailed",
    "CriticalRestoreFailure",
    "DownloadFailed",
    "ElevationUnavailable",
    "EmptyArtifact",
    "ExecutableNotFound",
    "ExtractionFailed",
    "InstallFailed",
    "InstallerError",
    "NotInstalled",
    "PrivilegedCommandFailed",
    "UnsupportedArchitecture",
    "UnsupportedPlatform",
    "VerificationFailed",
    "VersionResolutionFailed",
    "WorkspaceUnusable",
]
