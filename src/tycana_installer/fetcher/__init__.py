"""Artifact download and extraction."""

from tycana_installer.fetcher.archive import (
    check_binary_format,
    clear_quarantine,
    extract,
    make_executable,
)
from tycana_installer.fetcher.download import RetryPolicy, TransferLimits, fetch, format_bytes

__all__ = [
    "RetryPolicy",
    "TransferLimits",
    "check_binary_format",
    "clear_quarantine",
    "extract",
    "fetch",
    "format_bytes",
    "make_executable",
]
