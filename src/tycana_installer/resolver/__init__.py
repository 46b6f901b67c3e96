"""Platform and release version resolution."""

from tycana_installer.resolver.platforms import resolve_arch, resolve_os, resolve_platform
from tycana_installer.resolver.releases import (
    UNKNOWN_VERSION,
    find_current_installation,
    get_installed_version,
    parse_version_output,
    resolve_latest_version,
)

__all__ = [
    "UNKNOWN_VERSION",
    "find_current_installation",
    "get_installed_version",
    "parse_version_output",
    "resolve_arch",
    "resolve_latest_version",
    "resolve_os",
    "resolve_platform",
]
