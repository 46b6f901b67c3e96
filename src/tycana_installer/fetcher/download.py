"""Release artifact download with bounded retries.

Failures are assumed to be transient network blips, so retries use a fixed
delay with no jitter or growth. The downloaded archive is left on disk for
the caller to extract and clean up.
"""

import http.client
import logging
import time
import urllib.error
import urllib.request
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from tycana_installer.config import MIN_ARTIFACT_SIZE, USER_AGENT
from tycana_installer.domain import (
    ArtifactDescriptor,
    ArtifactNotFound,
    DownloadedArtifact,
    DownloadFailed,
    EmptyArtifact,
)

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to try and how long to wait in between."""

    max_attempts: int = 3
    delay: float = 2.0
    sleep: Callable[[float], None] = field(default=time.sleep, compare=False, repr=False)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def wait(self) -> None:
        if self.delay > 0:
            self.sleep(self.delay)


@dataclass(frozen=True)
class TransferLimits:
    """Per-attempt network limits."""

    connect_timeout: float = 10.0
    transfer_timeout: float = 300.0
    min_size: int = MIN_ARTIFACT_SIZE


def format_bytes(size: int) -> str:
    if size < 1024:
        return f"{size}B"
    if size < 1024 * 1024:
        return f"{size // 1024}KB"
    return f"{size // (1024 * 1024)}MB"


def _download_once(url: str, dest: Path, limits: TransferLimits) -> int:
    """Stream one attempt to disk, returning the byte count.

    The connect timeout bounds each socket operation; the transfer timeout
    bounds the whole attempt. A body shorter than its Content-Length is a
    failed attempt.
    """
    deadline = time.monotonic() + limits.transfer_timeout
    req = urllib.request.Request(url, headers={"User-Agent": USER_AGENT})

    written = 0
    with urllib.request.urlopen(req, timeout=limits.connect_timeout) as response, dest.open("wb") as fh:
        expected = _content_length(response)
        while True:
            if time.monotonic() > deadline:
                raise TimeoutError(f"transfer exceeded {limits.transfer_timeout:.0f}s")
            chunk = response.read(CHUNK_SIZE)
            if not chunk:
                break
            fh.write(chunk)
            written += len(chunk)

    # read() returns b"" on early EOF when the length is known
    if expected is not None and written != expected:
        raise ConnectionError(f"incomplete transfer: got {written} of {expected} bytes")
    return written


def _content_length(response) -> int | None:
    value = response.headers.get("Content-Length")
    if value is None or not str(value).strip().isdigit():
        return None
    return int(value)


def fetch(
    descriptor: ArtifactDescriptor,
    destination_dir: Path,
    policy: RetryPolicy | None = None,
    limits: TransferLimits | None = None,
) -> DownloadedArtifact:
    """Download the archive named by ``descriptor`` into ``destination_dir``.

    Args:
        descriptor: Which release artifact to fetch.
        destination_dir: Directory the archive is written into.
        policy: Retry policy; defaults to 3 attempts, 2 seconds apart.
        limits: Timeouts and the minimum plausible size.

    Returns:
        DownloadedArtifact for the written archive.

    Raises:
        ArtifactNotFound: If the server reported 404 on any attempt.
        DownloadFailed: If every attempt failed for other reasons.
        EmptyArtifact: If the download produced zero bytes.
    """
    policy = policy or RetryPolicy()
    limits = limits or TransferLimits()

    url = descriptor.download_url
    dest = destination_dir / descriptor.archive_name
    logger.info("Downloading from: %s", url)

    not_found = False
    last_cause: BaseException | None = None

    for attempt in range(1, policy.max_attempts + 1):
        try:
            _download_once(url, dest, limits)
            break
        except (urllib.error.URLError, OSError, http.client.HTTPException) as e:
            # HTTPError is a URLError; a body cut mid-chunk raises IncompleteRead
            last_cause = e
            if isinstance(e, urllib.error.HTTPError) and e.code == 404:
                not_found = True
            dest.unlink(missing_ok=True)

            if attempt == policy.max_attempts:
                if not_found:
                    raise ArtifactNotFound(url, attempt, e) from e
                raise DownloadFailed(url, attempt, e) from e

            logger.warning("Download attempt %d failed (%s), retrying...", attempt, e)
            policy.wait()

    size = dest.stat().st_size
    if size == 0:
        raise EmptyArtifact(dest)
    if size < limits.min_size:
        logger.warning("Downloaded file seems unusually small (%d bytes)", size)

    logger.info("Download complete (%s)", format_bytes(size))
    return DownloadedArtifact(path=dest, size=size)
