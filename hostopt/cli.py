"""
hostopt command line.

Loads the configuration, asks which steps to run, runs them in order and
prints a summary. Exit codes: 0 clean run, 1 aborted (critical failure or bad
configuration), 2 completed with failed steps, 128+N on signal N.
"""

import logging
import signal
import sys
from typing import Any, Dict, Optional

import click
from rich.markup import escape

from hostopt import APP_NAME, VERSION
from hostopt.config import PROFILES, load_config
from hostopt.errors import ConfigError
from hostopt.logs import setup_logging
from hostopt.plan import build_steps, select_steps
from hostopt.prompt import StepSelector
from hostopt.sequencer import StepSequencer, print_summary
from hostopt.tasks import Context
from hostopt.tasks.reboot import offer_reboot
from hostopt.ui import console, print_header, print_section

logger = logging.getLogger(__name__)

_active: Optional[StepSequencer] = None


def signal_handler(signum: int, frame: Optional[Any]) -> None:
    try:
        sig_name = signal.Signals(signum).name
    except ValueError:
        sig_name = f"signal {signum}"
    console.print()
    logger.error(f"Interrupted by {sig_name}. Exiting.")
    if _active is not None:
        print_summary(_active.summary)
    sys.exit(128 + signum)


def install_signal_handlers() -> Dict[int, Any]:
    previous = {}
    for sig in (signal.SIGINT, signal.SIGTERM):
        previous[sig] = signal.getsignal(sig)
        signal.signal(sig, signal_handler)
    return previous


def restore_signal_handlers(previous: Dict[int, Any]) -> None:
    for sig, handler in previous.items():
        signal.signal(sig, handler)


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("--profile", type=click.Choice(PROFILES), help="Machine profile (default: vps).")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    help="JSON file overriding the profile defaults.",
)
@click.option(
    "-y",
    "--non-interactive",
    is_flag=True,
    help="Never prompt; use the configured defaults.",
)
@click.option("--dry-run", is_flag=True, help="Log what would change without changing it.")
@click.option("--log-file", type=click.Path(dir_okay=False), help="Log file path.")
@click.option("-v", "--verbose", is_flag=True, help="Show debug output on the console.")
@click.version_option(VERSION, prog_name=APP_NAME)
def main(
    profile: Optional[str],
    config_path: Optional[str],
    non_interactive: bool,
    dry_run: bool,
    log_file: Optional[str],
    verbose: bool,
) -> None:
    """Provision and tune a Debian or Ubuntu host."""
    global _active

    overrides: Dict[str, Any] = {}
    if non_interactive:
        overrides["non_interactive"] = True
    if dry_run:
        overrides["dry_run"] = True
    if log_file:
        overrides["log_file"] = log_file
    try:
        config = load_config(profile, config_path, overrides)
    except ConfigError as e:
        console.print(f"[bold nord11]Configuration error:[/] {escape(str(e))}")
        sys.exit(1)

    log_path = setup_logging(config.log_file, verbose=verbose)
    print_header(APP_NAME)
    logger.info(
        f"{APP_NAME} {VERSION}: profile {config.profile}"
        f"{' (dry run)' if config.dry_run else ''}, log file {log_path}"
    )

    selector = StepSelector(interactive=False if config.non_interactive else None)
    ctx = Context(config=config, selector=selector)
    previous = install_signal_handlers()
    try:
        print_section("Step selection")
        select_steps(ctx)
        print_section("Provisioning")
        _active = StepSequencer(build_steps(ctx))
        summary = _active.run()
        print_section("Summary")
        print_summary(summary)
        offer_reboot(ctx, summary)
    finally:
        _active = None
        restore_signal_handlers(previous)
    logger.info(f"Finished with exit code {summary.exit_code}. Full log: {log_path}")
    sys.exit(summary.exit_code)
