import logging
import os

from hostopt.errors import RunAborted
from hostopt.logs import SUCCESS
from hostopt.sysinfo import (
    cpu_arch,
    is_supported_family,
    is_tested_version,
    is_wsl,
    read_os_info,
)
from hostopt.tasks import Context

logger = logging.getLogger(__name__)


def check_root(ctx: Context) -> None:
    if os.geteuid() == 0:
        return
    if ctx.dry_run:
        logger.warning("Not running as root; continuing because this is a dry run.")
        return
    raise RunAborted("This program must be run as root (use sudo).")


def detect_os(ctx: Context) -> None:
    info = read_os_info(ctx.path("/etc/os-release"))
    if info is None:
        raise RunAborted("Cannot detect OS version: /etc/os-release not found.")
    logger.info(f"Detected OS: {info.pretty} on {cpu_arch()}")
    if not is_supported_family(info):
        raise RunAborted(f"Only Debian and Ubuntu are supported. Detected: {info.id}")
    if not is_tested_version(info):
        logger.warning(
            f"{info.pretty} is outside the tested releases (Debian 11-13, Ubuntu 20.04+); "
            "some steps may not work correctly."
        )
    ctx.os_info = info


def check_wsl(ctx: Context) -> None:
    if ctx.config.profile != "wsl2" or is_wsl():
        return
    logger.warning("The wsl2 profile is meant for WSL2 guests, but this host is not one.")
    if not ctx.selector.ask("Continue anyway?", default_yes=False):
        raise RunAborted("Declined to run the wsl2 profile outside WSL2.")


def preflight(ctx: Context) -> None:
    """Root, OS family and environment checks; any failure stops the run."""
    check_root(ctx)
    detect_os(ctx)
    check_wsl(ctx)
    logger.log(SUCCESS, "Pre-flight checks passed.")
