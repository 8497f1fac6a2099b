"""Host facts used by the preflight checks and the tuning steps."""

import os
import platform
from dataclasses import dataclass
from typing import Dict, Optional

SUPPORTED_DEBIAN = ("11", "12", "13")
MIN_UBUNTU = (20, 4)


@dataclass(frozen=True)
class OsInfo:
    id: str
    name: str
    version_id: str
    codename: str

    @property
    def pretty(self) -> str:
        suffix = f" ({self.codename})" if self.codename else ""
        return f"{self.name} {self.version_id}{suffix}".strip()


@dataclass(frozen=True)
class SwapPlan:
    size_gb: int
    swappiness: int


def parse_os_release(text: str) -> Dict[str, str]:
    values: Dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        values[key.strip()] = value.strip().strip('"').strip("'")
    return values


def read_os_info(path: str = "/etc/os-release") -> Optional[OsInfo]:
    if not os.path.isfile(path):
        return None
    with open(path, encoding="utf-8") as f:
        values = parse_os_release(f.read())
    return OsInfo(
        id=values.get("ID", "").lower(),
        name=values.get("NAME", values.get("ID", "unknown")),
        version_id=values.get("VERSION_ID", ""),
        codename=values.get("VERSION_CODENAME", ""),
    )


def is_supported_family(info: OsInfo) -> bool:
    return info.id in ("debian", "ubuntu")


def is_tested_version(info: OsInfo) -> bool:
    """Debian 11-13 and Ubuntu 20.04+ are the versions the steps target."""
    if info.id == "debian":
        return info.version_id in SUPPORTED_DEBIAN
    if info.id == "ubuntu":
        try:
            major, minor = (int(p) for p in info.version_id.split(".")[:2])
        except ValueError:
            return False
        return (major, minor) >= MIN_UBUNTU
    return False


def is_wsl(proc_version: str = "/proc/version") -> bool:
    if os.environ.get("WSL_DISTRO_NAME"):
        return True
    try:
        with open(proc_version, encoding="utf-8") as f:
            return "microsoft" in f.read().lower()
    except OSError:
        return False


def has_systemd(run_dir: str = "/run/systemd/system") -> bool:
    return os.path.isdir(run_dir)


def cpu_arch() -> str:
    return platform.machine()


def total_ram_kb(meminfo: str = "/proc/meminfo") -> int:
    with open(meminfo, encoding="utf-8") as f:
        for line in f:
            if line.startswith("MemTotal:"):
                return int(line.split()[1])
    raise ValueError(f"MemTotal not found in {meminfo}")


def swap_plan(ram_kb: int) -> SwapPlan:
    """
    Size swap from physical memory.

    Below 3 GB of RAM the swap is twice the RAM with swappiness 60; otherwise
    it is half the RAM with swappiness 10. Never less than 1 GB.
    """
    ram_gb = ram_kb / 1024 / 1024
    if ram_gb < 3:
        return SwapPlan(size_gb=max(1, int(ram_gb * 2)), swappiness=60)
    return SwapPlan(size_gb=max(1, int(ram_gb / 2)), swappiness=10)
