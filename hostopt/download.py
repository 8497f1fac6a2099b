"""Bounded, checksum-verified downloads of third-party binaries."""

import hashlib
import logging
import os
import tempfile
import time
from typing import Callable, Optional, Tuple

import requests
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    TextColumn,
    TimeRemainingColumn,
)

from hostopt.errors import ChecksumMismatch, DownloadError
from hostopt.ui import console

logger = logging.getLogger(__name__)

TIMEOUT: Tuple[float, float] = (10, 60)  # (connect, read)
RETRIES = 3
BACKOFF = 2.0
CHUNK_SIZE = 64 * 1024


def _with_retries(
    what: str,
    func: Callable[[], object],
    retries: int,
    backoff: float,
    sleep: Callable[[float], None],
):
    last_error: Optional[Exception] = None
    for attempt in range(1, retries + 1):
        try:
            return func()
        except requests.RequestException as e:
            last_error = e
            logger.warning(f"{what} failed (attempt {attempt}/{retries}): {e}")
            if attempt < retries:
                sleep(backoff * attempt)
    raise DownloadError(f"{what} failed after {retries} attempts: {last_error}")


def fetch_text(
    url: str,
    timeout: Tuple[float, float] = TIMEOUT,
    retries: int = RETRIES,
    backoff: float = BACKOFF,
    sleep: Callable[[float], None] = time.sleep,
) -> str:
    def _get() -> str:
        response = requests.get(url, timeout=timeout)
        response.raise_for_status()
        return response.text

    return _with_retries(f"GET {url}", _get, retries, backoff, sleep)


def sha256sum(path: str) -> str:
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def download_file(
    url: str,
    destination: str,
    sha256: Optional[str] = None,
    timeout: Tuple[float, float] = TIMEOUT,
    retries: int = RETRIES,
    backoff: float = BACKOFF,
    sleep: Callable[[float], None] = time.sleep,
) -> str:
    """
    Stream ``url`` to ``destination``, verifying its SHA-256 when given.

    The payload lands in a temp file first, so a failed or corrupted download
    never replaces an existing destination. Network errors are retried up to
    ``retries`` times; a checksum mismatch is not retried.
    """
    directory = os.path.dirname(os.path.abspath(destination))
    os.makedirs(directory, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(prefix=".download.", dir=directory)
    os.close(fd)

    def _get() -> None:
        with requests.get(url, stream=True, timeout=timeout) as response:
            response.raise_for_status()
            total = int(response.headers.get("content-length", 0)) or None
            with open(tmp_path, "wb") as out, Progress(
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                DownloadColumn(),
                TimeRemainingColumn(),
                console=console,
                transient=True,
            ) as progress:
                task = progress.add_task(os.path.basename(destination), total=total)
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    if chunk:
                        out.write(chunk)
                        progress.update(task, advance=len(chunk))

    try:
        logger.info(f"Downloading {url}")
        _with_retries(f"Download of {url}", _get, retries, backoff, sleep)
        if sha256:
            actual = sha256sum(tmp_path)
            if actual.lower() != sha256.strip().lower():
                raise ChecksumMismatch(destination, sha256.strip().lower(), actual)
            logger.info(f"Checksum verified for {os.path.basename(destination)}")
        os.replace(tmp_path, destination)
    finally:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
    return destination
