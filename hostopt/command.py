"""Process execution primitives: run a command, capture its exit status."""

import logging
import os
import shlex
import shutil
import subprocess
from typing import List, Mapping, Optional, Sequence

from hostopt.errors import CommandError

logger = logging.getLogger(__name__)


def format_argv(argv: Sequence[str]) -> str:
    return " ".join(shlex.quote(str(a)) for a in argv)


def run_command(
    argv: Sequence[str],
    check: bool = True,
    env: Optional[Mapping[str, str]] = None,
    input_text: Optional[str] = None,
    timeout: Optional[float] = None,
    dry_run: bool = False,
) -> subprocess.CompletedProcess:
    """
    Execute a command and capture its output.

    :param argv: Command and arguments (never passed through a shell).
    :param check: Raise CommandError on a non-zero exit status.
    :param env: Extra environment variables layered over os.environ.
    :param input_text: Text fed to the command's stdin.
    :param timeout: Seconds before the command is killed.
    :param dry_run: Log the command without executing it.
    :return: CompletedProcess with text stdout/stderr.
    """
    argv_list: List[str] = [str(a) for a in argv]
    cmd_str = format_argv(argv_list)
    if dry_run:
        logger.info(f"[dry-run] {cmd_str}")
        return subprocess.CompletedProcess(argv_list, 0, stdout="", stderr="")

    logger.debug(f"Executing: {cmd_str}")
    try:
        proc = subprocess.run(
            argv_list,
            input=input_text,
            text=True,
            capture_output=True,
            env=dict(os.environ, **(env or {})),
            timeout=timeout,
        )
    except FileNotFoundError as e:
        # Same status a shell reports for a missing executable.
        proc = subprocess.CompletedProcess(argv_list, 127, stdout="", stderr=str(e))
    except subprocess.TimeoutExpired as e:
        raise CommandError(argv_list, -1, "", f"timed out after {e.timeout}s") from e
    if proc.stdout:
        logger.debug(f"stdout: {proc.stdout.strip()}")
    if proc.stderr:
        logger.debug(f"stderr: {proc.stderr.strip()}")
    if check and proc.returncode != 0:
        raise CommandError(argv_list, proc.returncode, proc.stdout, proc.stderr)
    return proc


def command_exists(cmd: str) -> bool:
    """Check if a command exists in the system's PATH."""
    return shutil.which(cmd) is not None
