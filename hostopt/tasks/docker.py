import logging
import os
from typing import Optional

from hostopt.command import command_exists
from hostopt.download import download_file
from hostopt.errors import ProvisionError
from hostopt.logs import SUCCESS
from hostopt.sysinfo import OsInfo, cpu_arch, has_systemd, read_os_info
from hostopt.tasks import Context
from hostopt.tasks.users import user_exists

logger = logging.getLogger(__name__)

KEYRING = "/etc/apt/keyrings/docker.asc"
SOURCES_LIST = "/etc/apt/sources.list.d/docker.list"
DOCKER_PACKAGES = [
    "docker-ce",
    "docker-ce-cli",
    "containerd.io",
    "docker-buildx-plugin",
    "docker-compose-plugin",
]
ARCH_ALIASES = {"x86_64": "amd64", "aarch64": "arm64", "armv7l": "armhf"}


def docker_probe() -> Optional[str]:
    if command_exists("docker"):
        return "Docker is already installed."
    return None


def deb_arch(ctx: Context) -> str:
    """Debian architecture name, e.g. ``amd64``."""
    proc = ctx.query(["dpkg", "--print-architecture"])
    if proc.returncode == 0 and proc.stdout.strip():
        return proc.stdout.strip()
    machine = cpu_arch()
    return ARCH_ALIASES.get(machine, machine)


def os_info(ctx: Context) -> OsInfo:
    info = ctx.os_info or read_os_info(ctx.path("/etc/os-release"))
    if info is None:
        raise ProvisionError("Cannot determine the distribution for the Docker repository")
    return info


def add_repository(ctx: Context, info: OsInfo) -> None:
    keyring = ctx.path(KEYRING)
    if os.path.isfile(keyring):
        logger.debug(f"{keyring} already present")
    elif ctx.dry_run:
        logger.info(f"[dry-run] would download the Docker signing key to {keyring}")
    else:
        download_file(f"https://download.docker.com/linux/{info.id}/gpg", keyring)
        os.chmod(keyring, 0o644)
    ctx.render(
        "docker.list",
        SOURCES_LIST,
        {"arch": deb_arch(ctx), "distro": info.id, "codename": info.codename},
    )


def add_to_docker_group(ctx: Context, username: str) -> None:
    if not user_exists(username):
        logger.warning(f"User {username} does not exist; not adding to the docker group")
        return
    groups = ctx.query(["id", "-nG", username]).stdout.split()
    if "docker" in groups:
        return
    ctx.run(["usermod", "-aG", "docker", username])
    logger.info(f"Added {username} to the docker group (effective after re-login)")


def docker(ctx: Context) -> None:
    info = os_info(ctx)
    ctx.install(["ca-certificates", "curl", "gnupg"])
    add_repository(ctx, info)

    report = ctx.install(DOCKER_PACKAGES)
    if "docker-ce" in report.skipped and not ctx.dry_run:
        raise ProvisionError("docker-ce is not available from the Docker repository")

    result = ctx.render("daemon.json", "/etc/docker/daemon.json")
    if has_systemd():
        ctx.run(["systemctl", "enable", "docker"])
        if result.changed or report.installed:
            ctx.run(["systemctl", "restart", "docker"])
    else:
        logger.warning("systemd is not running; start Docker manually.")

    if ctx.config.username:
        add_to_docker_group(ctx, ctx.config.username)
    logger.log(SUCCESS, "Docker Engine installed and configured.")
