"""Installer configuration.

Defaults describe the public Tycana release channel. Environment values are
read once by ``InstallerConfig.from_env`` and never consulted again during a
run, so the install target cannot change mid-operation.
"""

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Final

logger = logging.getLogger(__name__)

DEFAULT_REPO: Final = "tycana/releases"
DEFAULT_BINARY_NAME: Final = "tycana"
GITHUB_API_URL: Final = "https://api.github.com/repos"
GITHUB_RELEASES_HOST: Final = "https://github.com"
USER_AGENT: Final = "tycana-installer/0.2"

SYSTEM_BIN_DIR: Final = Path("/usr/local/bin")

# Anything smaller is suspicious but legitimate small builds exist
MIN_ARTIFACT_SIZE: Final = 1024 * 1024

INSTALL_DIR_ENV: Final = "TYCANA_INSTALL_DIR"
NONINTERACTIVE_ENV: Final = "NONINTERACTIVE"
ASKPASS_ENV: Final = "SUDO_ASKPASS"
RUNTIME_DIR_ENV: Final = "XDG_RUNTIME_DIR"


@dataclass
class InstallerConfig:
    """Settings for one installer run."""

    repo: str = DEFAULT_REPO
    binary_name: str = DEFAULT_BINARY_NAME
    api_url: str = GITHUB_API_URL
    releases_host: str = GITHUB_RELEASES_HOST

    # Explicit install directory; None means resolve from well-known locations
    install_dir: Path | None = None

    # Never block on a credential prompt
    non_interactive: bool = False
    sudo_askpass: str | None = None

    # Base for the per-run workspace; None means pick automatically
    runtime_dir: Path | None = None

    # Network limits, per download attempt
    connect_timeout: float = 10.0
    transfer_timeout: float = 300.0
    index_timeout: float = 30.0

    max_attempts: int = 3
    retry_delay: float = 2.0
    min_artifact_size: int = MIN_ARTIFACT_SIZE

    # Seconds allowed for `<binary> version`
    verify_timeout: float = 30.0

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **overrides) -> "InstallerConfig":
        """Build a config from environment variables.

        Keyword overrides win over the environment, which wins over defaults.
        Overrides that are None are ignored.
        """
        env = os.environ if environ is None else environ

        values: dict = {}
        if env.get(INSTALL_DIR_ENV):
            values["install_dir"] = Path(env[INSTALL_DIR_ENV]).expanduser()
        if env.get(NONINTERACTIVE_ENV):
            values["non_interactive"] = True
        if env.get(ASKPASS_ENV):
            values["sudo_askpass"] = env[ASKPASS_ENV]
        if env.get(RUNTIME_DIR_ENV):
            values["runtime_dir"] = Path(env[RUNTIME_DIR_ENV])

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


def resolve_install_dir(config: InstallerConfig, home: Path | None = None) -> Path:
    """Pick the directory the binary is installed into.

    Order: explicit setting, writable system bin dir, ~/.local/bin if it
    exists, ~/bin if it exists, then the system bin dir again (elevation
    will be needed there).
    """
    if config.install_dir is not None:
        return config.install_dir

    if SYSTEM_BIN_DIR.is_dir() and os.access(SYSTEM_BIN_DIR, os.W_OK):
        return SYSTEM_BIN_DIR

    home = home or Path.home()
    for candidate in (home / ".local" / "bin", home / "bin"):
        if candidate.is_dir():
            return candidate

    logger.debug("No user bin directory found, falling back to %s", SYSTEM_BIN_DIR)
    return SYSTEM_BIN_DIR
