"""
Host security: firewall, fail2ban, unattended upgrades and SSH hardening.
"""

import logging
import os
from typing import Optional

from hostopt.apt import is_installed
from hostopt.errors import ProvisionError, RunAborted, StepSkipped
from hostopt.logs import SUCCESS
from hostopt.materialize import rollback
from hostopt.tasks import Context
from hostopt.tasks.users import has_authorized_key

logger = logging.getLogger(__name__)

SSHD_DROP_IN = "/etc/ssh/sshd_config.d/99-hostopt.conf"
SSH_SERVICE = "ssh"
UNWANTED_SERVICES = ("bluetooth", "cups", "avahi-daemon")


def restart_service(ctx: Context, service: str) -> None:
    ctx.run(["systemctl", "enable", service])
    ctx.run(["systemctl", "restart", service])
    logger.info(f"Restarted {service}")


def firewall(ctx: Context) -> None:
    cfg = ctx.config
    ctx.install(["ufw"])
    ctx.run(["ufw", "default", "deny", "incoming"])
    ctx.run(["ufw", "default", "allow", "outgoing"])
    ports = [cfg.ssh_port] + [p for p in cfg.allowed_ports if p != cfg.ssh_port]
    for port in ports:
        ctx.run(["ufw", "allow", f"{port}/tcp"])
    ctx.run(["ufw", "--force", "enable"])
    logger.log(SUCCESS, f"Firewall enabled; open TCP ports: {', '.join(map(str, ports))}")


def fail2ban(ctx: Context) -> None:
    ctx.install(["fail2ban"])
    result = ctx.render(
        "jail.local", "/etc/fail2ban/jail.local", {"ssh_port": ctx.config.ssh_port}
    )
    if result.changed:
        restart_service(ctx, "fail2ban")
    else:
        logger.info("fail2ban jail already configured")


def auto_updates_probe(ctx: Context) -> Optional[str]:
    if not is_installed("unattended-upgrades"):
        return None
    try:
        with open(ctx.path("/etc/apt/apt.conf.d/20auto-upgrades"), encoding="utf-8") as f:
            enabled = 'APT::Periodic::Unattended-Upgrade "1";' in f.read()
    except FileNotFoundError:
        return None
    return "Automatic security updates are already enabled." if enabled else None


def auto_updates(ctx: Context) -> None:
    ctx.install(["unattended-upgrades", "apt-listchanges"])
    results = [
        ctx.render("50unattended-upgrades", "/etc/apt/apt.conf.d/50unattended-upgrades"),
        ctx.render("20auto-upgrades", "/etc/apt/apt.conf.d/20auto-upgrades"),
    ]
    if any(r.changed for r in results):
        ctx.try_run(
            ["systemctl", "enable", "--now", "unattended-upgrades"],
            "Could not enable the unattended-upgrades service",
        )
    logger.log(SUCCESS, "Automatic security updates configured.")


def sshd_includes_drop_ins(ctx: Context) -> bool:
    try:
        with open(ctx.path("/etc/ssh/sshd_config"), encoding="utf-8") as f:
            return any(
                line.strip().startswith("Include") and "sshd_config.d" in line
                for line in f
            )
    except FileNotFoundError:
        return False


def ssh_hardening(ctx: Context) -> None:
    """
    Install the sshd drop-in, validate it with ``sshd -t`` and restart sshd.

    A config that fails validation is rolled back and the run is aborted
    without touching the running daemon.
    """
    cfg = ctx.config
    if not (cfg.username and cfg.ssh_public_key):
        raise StepSkipped("no admin user with an SSH key; leaving password login enabled")
    if not has_authorized_key(ctx, cfg.username, cfg.ssh_public_key):
        if not ctx.dry_run:
            raise RunAborted(
                f"{cfg.username} does not exist or lacks the configured SSH key; "
                "refusing to disable password and root login.",
                step="ssh_hardening",
            )
        logger.warning(f"{cfg.username} has no authorized key yet; a real run would abort here.")
    if not sshd_includes_drop_ins(ctx):
        logger.warning("sshd_config has no Include for sshd_config.d; the drop-in may be ignored.")

    result = ctx.render(
        "sshd_hardening.conf",
        SSHD_DROP_IN,
        {"ssh_port": cfg.ssh_port, "allow_users": f"AllowUsers {cfg.username}"},
        mode=0o644,
    )
    if not ctx.dry_run:
        # sshd -t refuses to run without its privilege separation directory.
        os.makedirs(ctx.path("/run/sshd"), mode=0o755, exist_ok=True)
    check = ctx.run(["sshd", "-t"], check=False)
    if check.returncode != 0:
        rollback(result)
        detail = (check.stderr or check.stdout or "").strip()
        raise RunAborted(
            f"sshd rejected the hardened configuration; restored previous state. {detail}".strip(),
            step="ssh_hardening",
        )

    if not result.changed:
        logger.info("SSH hardening already in place; not restarting sshd")
        return
    try:
        restart_service(ctx, SSH_SERVICE)
    except ProvisionError as exc:
        rollback(result)
        ctx.try_run(["systemctl", "restart", SSH_SERVICE], "Could not restart sshd after rollback")
        raise RunAborted(f"sshd failed to restart with the new configuration: {exc}", step="ssh_hardening")
    logger.log(
        SUCCESS,
        f"SSH hardened: port {cfg.ssh_port}, key-only login for {cfg.username}. "
        "Test a new session before closing this one.",
    )


def service_enabled(ctx: Context, service: str) -> bool:
    return ctx.query(["systemctl", "is-enabled", service]).returncode == 0


def disable_services(ctx: Context) -> None:
    for service in UNWANTED_SERVICES:
        if not service_enabled(ctx, service):
            logger.debug(f"{service} not enabled")
            continue
        if ctx.try_run(["systemctl", "disable", "--now", service], f"Could not disable {service}"):
            logger.info(f"Disabled {service}")
