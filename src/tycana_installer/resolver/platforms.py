"""Host platform detection for artifact selection."""

import platform

from tycana_installer.domain import (
    Architecture,
    OperatingSystem,
    PlatformTarget,
    UnsupportedArchitecture,
    UnsupportedPlatform,
)

# Kernel name prefixes as reported by uname -s
_KERNEL_PREFIXES: dict[str, OperatingSystem] = {
    "Darwin": OperatingSystem.DARWIN,
    "Linux": OperatingSystem.LINUX,
}

# CPU names as reported by uname -m
_MACHINES: dict[str, Architecture] = {
    "x86_64": Architecture.X86_64,
    "arm64": Architecture.ARM64,
    "aarch64": Architecture.ARM64,
}


def resolve_os(system: str) -> OperatingSystem:
    for prefix, os_name in _KERNEL_PREFIXES.items():
        if system.startswith(prefix):
            return os_name
    raise UnsupportedPlatform(system)


def resolve_arch(machine: str) -> Architecture:
    try:
        return _MACHINES[machine]
    except KeyError:
        raise UnsupportedArchitecture(machine) from None


def resolve_platform(system: str | None = None, machine: str | None = None) -> PlatformTarget:
    """Map the running OS and CPU to the identifiers used in artifact names.

    Args:
        system: Kernel name; defaults to ``platform.system()``.
        machine: CPU name; defaults to ``platform.machine()``.

    Raises:
        UnsupportedPlatform: If the kernel is not recognized.
        UnsupportedArchitecture: If the CPU is not recognized.
    """
    if system is None:
        system = platform.system()
    if machine is None:
        machine = platform.machine()

    return PlatformTarget(os=resolve_os(system), arch=resolve_arch(machine))
