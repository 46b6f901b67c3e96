"""Enumerations for domain models."""

from enum import Enum


class OperatingSystem(str, Enum):
    """Operating system component of a release artifact name."""

    DARWIN = "darwin"
    LINUX = "linux"
    WINDOWS = "windows"  # Artifact naming only, never resolved on this host


class Architecture(str, Enum):
    """CPU architecture component of a release artifact name."""

    X86_64 = "x86_64"
    ARM64 = "arm64"


class DeploymentState(str, Enum):
    """Deployment engine lifecycle states."""

    IDLE = "idle"
    RESOLVED = "resolved"
    ARTIFACT_READY = "artifact_ready"
    EXECUTABLE_READY = "executable_ready"
    FRESH_INSTALL = "fresh_install"
    UPGRADE_IN_PROGRESS = "upgrade_in_progress"
    VERIFIED = "verified"
    DONE = "done"
    ROLLED_BACK = "rolled_back"  # Terminal, reachable only from UPGRADE_IN_PROGRESS


class DeploymentStatus(str, Enum):
    """Outcome of a completed deployment."""

    INSTALLED = "installed"
    UPGRADED = "upgraded"
    ALREADY_CURRENT = "already_current"
