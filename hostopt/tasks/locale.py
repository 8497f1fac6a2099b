import logging
import os
import socket
from typing import List, Optional

from hostopt.command import run_command
from hostopt.errors import ProvisionError
from hostopt.tasks import Context

logger = logging.getLogger(__name__)


def locale_gen_line(locale: str) -> str:
    """``en_US.UTF-8`` -> ``en_US.UTF-8 UTF-8`` as listed in /etc/locale.gen."""
    charset = locale.split(".", 1)[1] if "." in locale else "ISO-8859-1"
    return f"{locale} {charset}"


def normalize_locale(locale: str) -> str:
    """Normalize the way ``locale -a`` prints names: ``en_US.utf8``."""
    name, _, charset = locale.partition(".")
    charset = charset.lower().replace("-", "")
    return f"{name}.{charset}" if charset else name


def generated_locales() -> List[str]:
    proc = run_command(["locale", "-a"], check=False)
    if proc.returncode != 0:
        return []
    return [line.strip() for line in proc.stdout.splitlines() if line.strip()]


def missing_locales(locales: List[str]) -> List[str]:
    available = {normalize_locale(n) for n in generated_locales()}
    return [loc for loc in locales if normalize_locale(loc) not in available]


def locales_probe(locales: List[str]) -> Optional[str]:
    if locales and not missing_locales(locales):
        return f"Locales already generated: {', '.join(locales)}"
    return None


def locales(ctx: Context) -> None:
    cfg = ctx.config
    wanted = list(dict.fromkeys(cfg.locales + [cfg.default_locale]))
    ctx.install(["locales"])
    lines = [locale_gen_line(loc) for loc in wanted]
    ctx.ensure_lines(
        "/etc/locale.gen",
        lines,
        replace={f"# {line}": line for line in lines},
    )
    if missing_locales(wanted) or ctx.dry_run:
        ctx.run(["locale-gen"])
    ctx.run(
        [
            "update-locale",
            f"LANG={cfg.default_locale}",
            f"LC_ALL={cfg.default_locale}",
        ]
    )
    logger.info(f"Default locale set to {cfg.default_locale} (active after re-login).")


def set_hostname(ctx: Context, hostname: str) -> None:
    current = socket.gethostname()
    if hostname == current:
        logger.info(f"Hostname already {hostname}")
        return
    ctx.run(["hostnamectl", "set-hostname", hostname])
    ctx.ensure_lines("/etc/hosts", [f"127.0.1.1\t{hostname}"])
    logger.info(f"Hostname changed: {current} -> {hostname}")


def set_timezone(ctx: Context, timezone: str) -> None:
    if not os.path.isfile(ctx.path(f"/usr/share/zoneinfo/{timezone}")):
        raise ProvisionError(f"Unknown timezone: {timezone}")
    ctx.run(["timedatectl", "set-timezone", timezone])
    logger.info(f"Timezone set to {timezone}")


def time_and_host(ctx: Context) -> None:
    cfg = ctx.config
    if cfg.hostname:
        set_hostname(ctx, cfg.hostname)
    if cfg.timezone:
        set_timezone(ctx, cfg.timezone)
    ctx.try_run(["timedatectl", "set-ntp", "true"], "Could not enable NTP synchronization")
