import logging
import os
from typing import List

from hostopt.errors import ProvisionError, StepSkipped
from hostopt.logs import SUCCESS
from hostopt.sysinfo import SwapPlan, has_systemd, is_wsl, swap_plan, total_ram_kb
from hostopt.tasks import Context

logger = logging.getLogger(__name__)

SWAP_FILE = "/swapfile"
SYSCTL_DROP_IN = "/etc/sysctl.d/99-hostopt.conf"
NOFILE_LIMIT = 65535
NPROC_LIMIT = 65535
JOURNAL_MAX_USE = "500M"
TMPFS_MOUNTS = [
    "tmpfs /tmp tmpfs defaults,noatime,nosuid,nodev,noexec,mode=1777,size=1G 0 0",
    "tmpfs /var/tmp tmpfs defaults,noatime,nosuid,nodev,noexec,mode=1777,size=512M 0 0",
]


def current_swap_plan(ctx: Context) -> SwapPlan:
    return swap_plan(total_ram_kb(ctx.path("/proc/meminfo")))


def active_swaps(ctx: Context) -> List[str]:
    """Swap devices and files listed in /proc/swaps."""
    try:
        with open(ctx.path("/proc/swaps"), encoding="utf-8") as f:
            lines = f.read().splitlines()[1:]
    except FileNotFoundError:
        return []
    return [line.split()[0] for line in lines if line.strip()]


def kernel_tuning(ctx: Context) -> None:
    plan = current_swap_plan(ctx)
    result = ctx.render("sysctl.conf", SYSCTL_DROP_IN, {"swappiness": plan.swappiness})
    if result.changed:
        # Some keys are read-only in containers and under WSL.
        ctx.try_run(["sysctl", "-p", SYSCTL_DROP_IN], "Some kernel parameters could not be applied")
    logger.log(SUCCESS, f"Kernel parameters tuned (vm.swappiness={plan.swappiness}).")


def format_swap_file(ctx: Context) -> None:
    ctx.run(["chmod", "600", SWAP_FILE])
    ctx.run(["mkswap", SWAP_FILE])


def create_swap_file(ctx: Context, size_gb: int) -> None:
    if not ctx.try_run(
        ["fallocate", "-l", f"{size_gb}G", SWAP_FILE],
        "fallocate failed; falling back to dd",
    ):
        ctx.run(
            ["dd", "if=/dev/zero", f"of={SWAP_FILE}", "bs=1M", f"count={size_gb * 1024}"]
        )
    try:
        format_swap_file(ctx)
    except ProvisionError:
        if os.path.exists(ctx.path(SWAP_FILE)):
            os.remove(ctx.path(SWAP_FILE))
            logger.warning(f"Removed unusable {SWAP_FILE}")
        raise


def swap(ctx: Context) -> None:
    if is_wsl():
        raise StepSkipped("WSL2 manages swap from the Windows host")
    active = active_swaps(ctx)
    if active:
        raise StepSkipped(f"swap already active: {', '.join(active)}")

    plan = current_swap_plan(ctx)
    if os.path.exists(ctx.path(SWAP_FILE)):
        logger.info(f"{SWAP_FILE} exists but is not active; reformatting it")
        format_swap_file(ctx)
    else:
        logger.info(f"Creating a {plan.size_gb}G swap file")
        create_swap_file(ctx, plan.size_gb)
    ctx.run(["swapon", SWAP_FILE])
    ctx.ensure_lines("/etc/fstab", [f"{SWAP_FILE} none swap sw 0 0"])
    logger.log(SUCCESS, f"Swap enabled: {plan.size_gb}G at {SWAP_FILE}")


def limits(ctx: Context) -> None:
    ctx.render(
        "limits.conf",
        "/etc/security/limits.d/99-hostopt.conf",
        {"nofile": NOFILE_LIMIT, "nproc": NPROC_LIMIT},
    )


def journald(ctx: Context) -> None:
    result = ctx.render(
        "journald.conf",
        "/etc/systemd/journald.conf.d/99-hostopt.conf",
        {"system_max_use": JOURNAL_MAX_USE},
    )
    if result.changed and has_systemd():
        ctx.try_run(
            ["systemctl", "restart", "systemd-journald"], "Could not restart systemd-journald"
        )


def fstab_mount_points(ctx: Context) -> List[str]:
    try:
        with open(ctx.path("/etc/fstab"), encoding="utf-8") as f:
            entries = [line.split() for line in f if not line.lstrip().startswith("#")]
    except FileNotFoundError:
        return []
    return [fields[1] for fields in entries if len(fields) > 1]


def tmpfs(ctx: Context) -> None:
    """Mount /tmp and /var/tmp as tmpfs from the next boot on."""
    if is_wsl():
        raise StepSkipped("WSL2 mounts /tmp itself")
    mounted = fstab_mount_points(ctx)
    wanted = [line for line in TMPFS_MOUNTS if line.split()[1] not in mounted]
    if not wanted:
        logger.info("/tmp and /var/tmp already have fstab entries")
        return
    ctx.ensure_lines("/etc/fstab", wanted)
    logger.info("tmpfs entries added to /etc/fstab; they take effect after a reboot")


def ssd_trim(ctx: Context) -> None:
    if is_wsl():
        raise StepSkipped("block devices are managed by the WSL2 host")
    if not has_systemd():
        raise StepSkipped("fstrim.timer needs systemd")
    if ctx.query(["systemctl", "is-enabled", "fstrim.timer"]).returncode == 0:
        logger.info("Periodic TRIM already enabled")
        return
    ctx.run(["systemctl", "enable", "--now", "fstrim.timer"])
    logger.log(SUCCESS, "Periodic TRIM enabled (fstrim.timer).")


def io_scheduler(ctx: Context) -> None:
    if is_wsl():
        raise StepSkipped("block devices are managed by the WSL2 host")
    result = ctx.render("60-ioschedulers.rules", "/etc/udev/rules.d/60-ioschedulers.rules")
    if result.changed:
        ctx.try_run(["udevadm", "control", "--reload-rules"], "Could not reload udev rules")
        ctx.try_run(["udevadm", "trigger"], "Could not trigger udev")
