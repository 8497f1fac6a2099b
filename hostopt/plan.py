"""
The provisioning plan: every task in run order, its config flag, and the
question that toggles it.
"""

import functools
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from hostopt.prompt import StepOption
from hostopt.sequencer import Step
from hostopt.tasks import Context
from hostopt.tasks.docker import docker, docker_probe
from hostopt.tasks.golang import golang
from hostopt.tasks.locale import locales, locales_probe, time_and_host
from hostopt.tasks.packages import base_packages, system_update
from hostopt.tasks.preflight import preflight
from hostopt.tasks.security import (
    auto_updates,
    auto_updates_probe,
    disable_services,
    fail2ban,
    firewall,
    ssh_hardening,
)
from hostopt.tasks.shell import zsh
from hostopt.tasks.tuning import (
    io_scheduler,
    journald,
    kernel_tuning,
    limits,
    ssd_trim,
    swap,
    tmpfs,
)
from hostopt.tasks.users import user_account
from hostopt.tasks.wsl import wsl_conf

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlannedTask:
    name: str
    action: Callable[[Context], Optional[bool]]
    description: str
    # ProvisionConfig field enabling the task; None means always on.
    flag: Optional[str] = None
    critical: bool = False
    interactive: bool = False


TASKS = [
    PlannedTask("preflight", preflight, "Pre-flight checks", critical=True, interactive=True),
    PlannedTask("wsl_conf", wsl_conf, "Configure /etc/wsl.conf", "configure_wsl"),
    PlannedTask("system_update", system_update, "Update and upgrade the system", "update_system"),
    PlannedTask("base_packages", base_packages, "Install essential packages", "install_base_packages"),
    PlannedTask("user_account", user_account, "Create the admin user", "create_user"),
    PlannedTask("locales", locales, "Configure locales", "configure_locales"),
    PlannedTask("time_and_host", time_and_host, "Set hostname, timezone and NTP", "configure_time"),
    PlannedTask("zsh", zsh, "Install zsh with plugins and starship", "install_zsh"),
    PlannedTask("docker", docker, "Install Docker Engine", "install_docker"),
    PlannedTask("golang", golang, "Install the Go toolchain", "install_go"),
    PlannedTask("kernel_tuning", kernel_tuning, "Tune kernel parameters", "kernel_tuning"),
    PlannedTask("swap", swap, "Configure a swap file", "configure_swap"),
    PlannedTask("limits", limits, "Raise open file and process limits", "configure_limits"),
    PlannedTask("journald", journald, "Limit journal size", "limit_journal"),
    PlannedTask("tmpfs", tmpfs, "Mount /tmp and /var/tmp as tmpfs", "configure_tmpfs"),
    PlannedTask("firewall", firewall, "Configure the UFW firewall", "configure_firewall"),
    PlannedTask("fail2ban", fail2ban, "Configure fail2ban", "configure_fail2ban"),
    PlannedTask("auto_updates", auto_updates, "Enable automatic security updates", "auto_updates"),
    PlannedTask("ssh_hardening", ssh_hardening, "Harden the SSH server", "harden_ssh", critical=True),
    PlannedTask("disable_services", disable_services, "Disable unneeded services", "disable_services"),
    PlannedTask("ssd_trim", ssd_trim, "Enable periodic SSD TRIM", "ssd_trim"),
    PlannedTask("io_scheduler", io_scheduler, "Set SSD/NVMe I/O schedulers", "io_scheduler"),
]


def step_options(ctx: Context) -> List[StepOption]:
    cfg = ctx.config
    probes = {
        "configure_locales": lambda: locales_probe(cfg.locales),
        "install_docker": docker_probe,
        "auto_updates": lambda: auto_updates_probe(ctx),
    }
    return [
        StepOption(task.flag, f"{task.description}?", probes.get(task.flag))
        for task in TASKS
        if task.flag
    ]


def ask_identity(ctx: Context) -> None:
    """Ask for the admin account details the enabled steps need."""
    cfg = ctx.config
    if not (cfg.create_user or cfg.harden_ssh or cfg.configure_wsl):
        return
    if not cfg.username:
        cfg.username = ctx.selector.ask_text("Admin username (blank to skip)")
    if cfg.username and not cfg.ssh_public_key and (cfg.create_user or cfg.harden_ssh):
        cfg.ssh_public_key = ctx.selector.ask_text(f"SSH public key for {cfg.username}")


def select_steps(ctx: Context) -> None:
    ctx.selector.select_all(ctx.config, step_options(ctx))
    ask_identity(ctx)


def build_steps(ctx: Context) -> List[Step]:
    steps = []
    for task in TASKS:
        enabled = True if task.flag is None else bool(getattr(ctx.config, task.flag))
        steps.append(
            Step(
                name=task.name,
                action=functools.partial(task.action, ctx),
                description=task.description,
                enabled=enabled,
                critical=task.critical,
                interactive=task.interactive,
            )
        )
    logger.debug(f"Planned {sum(s.enabled for s in steps)} of {len(steps)} steps")
    return steps
