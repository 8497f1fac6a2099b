import logging
import os
import shutil
import tarfile
import tempfile
from typing import Optional

from hostopt.download import download_file, fetch_text
from hostopt.errors import StepSkipped
from hostopt.logs import SUCCESS
from hostopt.tasks import Context
from hostopt.tasks.docker import deb_arch

logger = logging.getLogger(__name__)

GO_ROOT = "/usr/local/go"
VERSION_URL = "https://go.dev/VERSION?m=text"
DOWNLOAD_BASE = "https://dl.google.com/go"
GO_ARCHES = ("amd64", "arm64", "armv6l", "386")


def latest_version() -> str:
    # The first line is the version, e.g. "go1.23.2"; a timestamp follows.
    return fetch_text(VERSION_URL).splitlines()[0].strip()


def normalize_version(version: str) -> str:
    version = version.strip()
    return version if version.startswith("go") else f"go{version}"


def installed_version(ctx: Context) -> Optional[str]:
    try:
        with open(ctx.path(os.path.join(GO_ROOT, "VERSION")), encoding="utf-8") as f:
            return f.readline().strip() or None
    except FileNotFoundError:
        return None


def go_arch(ctx: Context) -> str:
    arch = deb_arch(ctx)
    if arch == "armhf":
        return "armv6l"
    if arch == "i386":
        return "386"
    return arch


def extract(archive: str, destination: str) -> None:
    with tarfile.open(archive, "r:gz") as tar:
        if hasattr(tarfile, "data_filter"):
            tar.extractall(destination, filter="data")
        else:
            tar.extractall(destination)


def golang(ctx: Context) -> None:
    """Install the Go toolchain from the official, checksum-verified tarball."""
    if ctx.dry_run and not ctx.config.go_version:
        logger.info(f"[dry-run] would install the latest Go release into {GO_ROOT}")
        return
    version = normalize_version(ctx.config.go_version or latest_version())
    current = installed_version(ctx)
    if current == version:
        ctx.render("golang.sh", "/etc/profile.d/golang.sh")
        raise StepSkipped(f"{version} already installed")

    arch = go_arch(ctx)
    if arch not in GO_ARCHES:
        raise StepSkipped(f"no Go release for architecture {arch}")
    name = f"{version}.linux-{arch}.tar.gz"
    if ctx.dry_run:
        logger.info(f"[dry-run] would install {name} into {GO_ROOT}")
        return

    checksum = fetch_text(f"{DOWNLOAD_BASE}/{name}.sha256").split()[0]
    with tempfile.TemporaryDirectory(prefix="hostopt-go.") as tmp:
        archive = download_file(
            f"{DOWNLOAD_BASE}/{name}", os.path.join(tmp, name), sha256=checksum
        )
        root = ctx.path(GO_ROOT)
        if os.path.isdir(root):
            logger.info(f"Replacing {current or 'existing'} Go installation")
            shutil.rmtree(root)
        extract(archive, os.path.dirname(root))

    ctx.render("golang.sh", "/etc/profile.d/golang.sh")
    logger.log(SUCCESS, f"Installed {version} to {GO_ROOT}")
