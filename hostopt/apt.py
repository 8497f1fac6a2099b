"""
APT helpers: availability checks, the dpkg lock wait and the idempotent
batch installer.
"""

import fcntl
import logging
import os
import time
from dataclasses import dataclass, field
from typing import Callable, Iterable, List

from hostopt.command import run_command
from hostopt.errors import CommandError, PackageLockTimeout
from hostopt.logs import SUCCESS

logger = logging.getLogger(__name__)

APT_ENV = {"DEBIAN_FRONTEND": "noninteractive", "LC_ALL": "C"}
DPKG_LOCKS = [
    "/var/lib/dpkg/lock-frontend",
    "/var/lib/dpkg/lock",
    "/var/cache/apt/archives/lock",
]
LOCK_TIMEOUT = 300
LOCK_POLL_INTERVAL = 2.0


@dataclass
class InstallReport:
    installed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)


def _lock_held(path: str) -> bool:
    """Probe a lock file the way apt does, without keeping the lock."""
    try:
        fd = os.open(path, os.O_RDWR)
    except FileNotFoundError:
        return False
    except PermissionError:
        # Only root can take the dpkg locks; treat them as free and let apt decide.
        return False
    try:
        fcntl.lockf(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
    except OSError:
        return True
    else:
        fcntl.lockf(fd, fcntl.LOCK_UN)
        return False
    finally:
        os.close(fd)


def held_locks(paths: Iterable[str] = DPKG_LOCKS) -> List[str]:
    return [p for p in paths if _lock_held(p)]


def wait_for_dpkg_lock(
    timeout: float = LOCK_TIMEOUT,
    interval: float = LOCK_POLL_INTERVAL,
    probe: Callable[[], List[str]] = held_locks,
    sleep: Callable[[float], None] = time.sleep,
) -> float:
    """
    Block until no other process holds the dpkg/apt locks.

    Returns the number of seconds spent waiting. Raises PackageLockTimeout
    once ``timeout`` seconds have passed with a lock still held.
    """
    waited = 0.0
    while True:
        holders = probe()
        if not holders:
            if waited:
                logger.info(f"Package manager lock released after {waited:.0f}s.")
            return waited
        if waited >= timeout:
            raise PackageLockTimeout(
                f"Timed out after {timeout:.0f}s waiting for {', '.join(holders)}"
            )
        if not waited:
            logger.info("Waiting for other package managers to finish...")
        sleep(interval)
        waited += interval


def refresh_index(dry_run: bool = False) -> bool:
    """Run ``apt-get update``; a failure is only worth a warning."""
    try:
        run_command(["apt-get", "update"], env=APT_ENV, dry_run=dry_run)
        return True
    except CommandError as e:
        logger.warning(f"Failed to update package list: {e}")
        return False


def package_available(name: str) -> bool:
    """Return True if the package index has an install candidate for ``name``."""
    proc = run_command(["apt-cache", "policy", name], check=False, env=APT_ENV)
    if proc.returncode != 0:
        return False
    for line in proc.stdout.splitlines():
        line = line.strip()
        if line.startswith("Candidate:"):
            return line.split(":", 1)[1].strip() not in ("", "(none)")
    return False


def is_installed(name: str) -> bool:
    proc = run_command(
        ["dpkg-query", "-W", "-f=${Status}", name], check=False, env=APT_ENV
    )
    return proc.returncode == 0 and "install ok installed" in proc.stdout


def install_packages(
    names: Iterable[str],
    refresh: bool = True,
    dry_run: bool = False,
    lock_timeout: float = LOCK_TIMEOUT,
) -> InstallReport:
    """
    Install every available package in ``names`` with a single apt call.

    Names without an install candidate are reported in ``skipped`` and never
    block the rest. A failing batch install raises CommandError.
    """
    requested = list(dict.fromkeys(n.strip() for n in names if n and n.strip()))
    report = InstallReport()
    if not requested:
        return report

    if not dry_run:
        wait_for_dpkg_lock(timeout=lock_timeout)
    if refresh:
        refresh_index(dry_run=dry_run)

    for name in requested:
        if package_available(name):
            report.installed.append(name)
        else:
            report.skipped.append(name)

    if report.skipped:
        logger.warning(f"Skipping unavailable packages: {' '.join(report.skipped)}")
    if not report.installed:
        logger.warning("No packages available for installation.")
        return report

    argv = ["apt-get", "install", "-y", *report.installed]
    logger.info(f"Installing available packages: {' '.join(report.installed)}")
    if not dry_run:
        # apt-daily may have taken the lock during the candidate checks.
        wait_for_dpkg_lock(timeout=lock_timeout)
    run_command(argv, env=APT_ENV, dry_run=dry_run)
    logger.log(SUCCESS, f"Installed {len(report.installed)} package(s).")
    return report


def upgrade_system(dry_run: bool = False, lock_timeout: float = LOCK_TIMEOUT) -> None:
    if not dry_run:
        wait_for_dpkg_lock(timeout=lock_timeout)
    run_command(["apt-get", "update"], env=APT_ENV, dry_run=dry_run)
    argv = [
        "apt-get",
        "-o",
        "Dpkg::Options::=--force-confold",
        "upgrade",
        "-y",
    ]
    if not dry_run:
        wait_for_dpkg_lock(timeout=lock_timeout)
    run_command(argv, env=APT_ENV, dry_run=dry_run)
