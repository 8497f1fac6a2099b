"""
Provisioning configuration.

One explicit ``ProvisionConfig`` object replaces scattered global flags.
Precedence, lowest first: field defaults, profile table, JSON config file,
command line flags, interactive answers.
"""

import dataclasses
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from hostopt.errors import ConfigError
from hostopt.logs import DEFAULT_LOG_FILE

PROFILES = ("vps", "wsl2", "mini-pc")

BASE_PACKAGES = [
    "curl",
    "wget",
    "git",
    "htop",
    "iotop",
    "sysstat",
    "net-tools",
    "ncdu",
    "tree",
    "vim",
    "tmux",
    "zip",
    "unzip",
    "jq",
    "gnupg",
    "ca-certificates",
    "lsb-release",
    "bash-completion",
]

PROFILE_PACKAGES: Dict[str, List[str]] = {
    "vps": ["ufw", "fail2ban", "unattended-upgrades", "apt-listchanges", "needrestart"],
    "wsl2": ["build-essential", "unattended-upgrades", "wslu"],
    "mini-pc": [
        "ufw",
        "fail2ban",
        "unattended-upgrades",
        "lm-sensors",
        "smartmontools",
        "linux-cpupower",
    ],
}


@dataclass
class ProvisionConfig:
    profile: str = "vps"
    non_interactive: bool = False
    dry_run: bool = False
    log_file: str = DEFAULT_LOG_FILE

    username: str = ""
    ssh_public_key: str = ""
    hostname: str = ""
    timezone: str = ""
    locales: List[str] = field(default_factory=lambda: ["en_US.UTF-8"])
    default_locale: str = "en_US.UTF-8"
    ssh_port: int = 22
    allowed_ports: List[int] = field(default_factory=lambda: [80, 443])
    extra_packages: List[str] = field(default_factory=list)
    go_version: str = ""
    lock_timeout: int = 300

    update_system: bool = True
    install_base_packages: bool = True
    create_user: bool = True
    configure_wsl: bool = False
    configure_locales: bool = True
    configure_time: bool = True
    install_zsh: bool = True
    install_docker: bool = True
    install_go: bool = False
    kernel_tuning: bool = True
    configure_swap: bool = True
    configure_limits: bool = True
    limit_journal: bool = True
    configure_tmpfs: bool = True
    configure_firewall: bool = True
    configure_fail2ban: bool = True
    auto_updates: bool = True
    harden_ssh: bool = True
    disable_services: bool = True
    ssd_trim: bool = True
    io_scheduler: bool = True
    offer_reboot: bool = True

    @property
    def packages(self) -> List[str]:
        return BASE_PACKAGES + PROFILE_PACKAGES.get(self.profile, []) + list(
            self.extra_packages
        )


# WSL2 guests share the Windows host's network stack and kernel: no swap file,
# firewall, SSH daemon, block devices or reboots to manage.
PROFILE_DEFAULTS: Dict[str, Dict[str, Any]] = {
    "vps": {},
    "mini-pc": {},
    "wsl2": {
        "create_user": False,
        "configure_wsl": True,
        "configure_time": False,
        "configure_swap": False,
        "configure_firewall": False,
        "configure_fail2ban": False,
        "harden_ssh": False,
        "disable_services": False,
        "configure_tmpfs": False,
        "ssd_trim": False,
        "io_scheduler": False,
        "offer_reboot": False,
    },
}

FIELD_TYPES = {f.name: f.type for f in dataclasses.fields(ProvisionConfig)}


def _check_type(key: str, value: Any) -> Any:
    expected = FIELD_TYPES[key]
    if expected in (bool, "bool"):
        if not isinstance(value, bool):
            raise ConfigError(f"{key}: expected true/false, got {value!r}")
    elif expected in (int, "int"):
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigError(f"{key}: expected an integer, got {value!r}")
    elif expected in (str, "str"):
        if not isinstance(value, str):
            raise ConfigError(f"{key}: expected a string, got {value!r}")
    elif not isinstance(value, list):
        raise ConfigError(f"{key}: expected a list, got {value!r}")
    return value


def apply_overrides(config: ProvisionConfig, overrides: Mapping[str, Any]) -> ProvisionConfig:
    unknown = sorted(set(overrides) - set(FIELD_TYPES))
    if unknown:
        raise ConfigError(f"Unknown configuration key(s): {', '.join(unknown)}")
    for key, value in overrides.items():
        setattr(config, key, _check_type(key, value))
    if config.profile not in PROFILES:
        raise ConfigError(
            f"Unknown profile {config.profile!r}; choose one of {', '.join(PROFILES)}"
        )
    if not 0 < config.ssh_port < 65536:
        raise ConfigError(f"ssh_port out of range: {config.ssh_port}")
    return config


def read_config_file(path: str) -> Dict[str, Any]:
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: top level must be a JSON object")
    return data


def load_config(
    profile: Optional[str] = None,
    path: Optional[str] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> ProvisionConfig:
    """Build the effective configuration for a run."""
    file_values = read_config_file(path) if path else {}
    chosen = profile or file_values.get("profile") or "vps"
    if chosen not in PROFILES:
        raise ConfigError(f"Unknown profile {chosen!r}; choose one of {', '.join(PROFILES)}")

    config = ProvisionConfig(profile=chosen)
    apply_overrides(config, PROFILE_DEFAULTS[chosen])
    apply_overrides(config, {k: v for k, v in file_values.items() if k != "profile"})
    apply_overrides(config, overrides or {})
    return config
