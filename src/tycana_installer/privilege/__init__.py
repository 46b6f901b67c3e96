"""Privilege elevation and filesystem operations."""

from tycana_installer.privilege.broker import (
    DirectFileOps,
    ElevatedFileOps,
    ElevationHandle,
    FileOps,
    PrivilegeBroker,
    can_write_to,
)

__all__ = [
    "DirectFileOps",
    "ElevatedFileOps",
    "ElevationHandle",
    "FileOps",
    "PrivilegeBroker",
    "can_write_to",
]
