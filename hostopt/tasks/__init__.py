"""
Provisioning tasks.

Every task is a plain function taking a ``Context``. It raises to fail its
step, raises StepSkipped when there is nothing to do, and logs a warning for
best-effort sub-actions that are allowed to fail.
"""

import logging
import os
import subprocess
from dataclasses import dataclass
from typing import Iterable, Mapping, Optional, Sequence

from hostopt.apt import InstallReport, install_packages
from hostopt.command import run_command
from hostopt.config import ProvisionConfig
from hostopt.materialize import MaterializeResult, ensure_lines, load_template, render
from hostopt.prompt import StepSelector
from hostopt.sysinfo import OsInfo

logger = logging.getLogger(__name__)


@dataclass
class Context:
    config: ProvisionConfig
    selector: StepSelector
    # Filesystem root the materialized files are written under.
    root: str = "/"
    os_info: Optional[OsInfo] = None

    @property
    def dry_run(self) -> bool:
        return self.config.dry_run

    def path(self, path: str) -> str:
        if self.root in ("", "/"):
            return path
        return os.path.join(self.root, path.lstrip("/"))

    def run(
        self, argv: Sequence[str], check: bool = True, **kwargs
    ) -> subprocess.CompletedProcess:
        """Run a command that changes the host; a no-op under --dry-run."""
        return run_command(argv, check=check, dry_run=self.dry_run, **kwargs)

    def query(self, argv: Sequence[str], **kwargs) -> subprocess.CompletedProcess:
        """Run a read-only command, even under --dry-run, never raising on failure."""
        return run_command(argv, check=False, **kwargs)

    def try_run(self, argv: Sequence[str], warning: str, **kwargs) -> bool:
        """Best-effort command: a failure is logged as a warning and ignored."""
        proc = self.run(argv, check=False, **kwargs)
        if proc.returncode != 0:
            detail = (proc.stderr or proc.stdout or "").strip()
            logger.warning(f"{warning}{': ' + detail if detail else ''}")
            return False
        return True

    def install(self, names: Iterable[str]) -> InstallReport:
        return install_packages(
            names, dry_run=self.dry_run, lock_timeout=self.config.lock_timeout
        )

    def render(
        self,
        template_name: str,
        destination: str,
        substitutions: Optional[Mapping[str, object]] = None,
        mode: Optional[int] = None,
        owner: Optional[str] = None,
    ) -> MaterializeResult:
        return render(
            load_template(template_name),
            substitutions or {},
            self.path(destination),
            mode=mode,
            owner=owner,
            dry_run=self.dry_run,
        )

    def ensure_lines(self, destination: str, lines: Iterable[str], **kwargs) -> MaterializeResult:
        return ensure_lines(self.path(destination), lines, dry_run=self.dry_run, **kwargs)
