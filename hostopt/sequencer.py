"""
Step sequencer.

Runs an ordered list of steps exactly once each. A disabled step is skipped;
a failed step is logged and the run moves on, unless the step is critical or
raised RunAborted, in which case every later step stays pending.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Sequence

from rich.markup import escape
from rich.table import Table

from hostopt.errors import RunAborted, StepSkipped
from hostopt.logs import SUCCESS
from hostopt.ui import console

logger = logging.getLogger(__name__)


class StepState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"
    FAILED = "failed"


STATE_ICONS = {
    StepState.SUCCEEDED: ("✓", "nord14"),
    StepState.FAILED: ("✗", "nord11"),
    StepState.SKIPPED: ("⏭", "nord3"),
    StepState.PENDING: ("?", "nord13"),
    StepState.RUNNING: ("⋯", "nord9"),
}


@dataclass
class Step:
    name: str
    action: Callable[[], Optional[bool]]
    description: str = ""
    enabled: bool = True
    critical: bool = False
    # May prompt the user; runs without the status spinner.
    interactive: bool = False

    @property
    def title(self) -> str:
        return self.description or self.name


@dataclass
class StepResult:
    name: str
    description: str
    critical: bool
    state: StepState = StepState.PENDING
    message: str = ""
    duration: float = 0.0


@dataclass
class RunSummary:
    results: List[StepResult] = field(default_factory=list)
    aborted: bool = False

    def by_state(self, state: StepState) -> List[str]:
        return [r.name for r in self.results if r.state is state]

    @property
    def succeeded(self) -> List[str]:
        return self.by_state(StepState.SUCCEEDED)

    @property
    def skipped(self) -> List[str]:
        return self.by_state(StepState.SKIPPED)

    @property
    def failed(self) -> List[str]:
        return self.by_state(StepState.FAILED)

    @property
    def exit_code(self) -> int:
        """0 clean run, 1 aborted by a run-fatal failure, 2 completed with failures."""
        if self.aborted:
            return 1
        if self.failed:
            return 2
        return 0


class StepSequencer:
    def __init__(self, steps: Sequence[Step], show_status: bool = True) -> None:
        self.steps = list(steps)
        self.show_status = show_status
        self.summary = RunSummary(
            results=[StepResult(s.name, s.title, s.critical) for s in self.steps]
        )

    def _execute(self, step: Step) -> Optional[bool]:
        if not self.show_status or step.interactive:
            return step.action()
        with console.status(f"[bold nord8]{step.title}...[/]"):
            return step.action()

    def run(self) -> RunSummary:
        total = len(self.steps)
        for index, (step, result) in enumerate(
            zip(self.steps, self.summary.results), start=1
        ):
            if not step.enabled:
                result.state = StepState.SKIPPED
                result.message = "disabled"
                logger.info(f"[{index}/{total}] Skipping {step.title} (disabled)")
                continue

            result.state = StepState.RUNNING
            logger.info(f"[{index}/{total}] {step.title}...")
            start = time.monotonic()
            abort_reason: Optional[str] = None
            try:
                outcome = self._execute(step)
            except StepSkipped as e:
                result.state = StepState.SKIPPED
                result.message = str(e)
                logger.info(f"{step.title} skipped: {e}")
            except RunAborted as e:
                result.state = StepState.FAILED
                result.message = str(e)
                abort_reason = str(e)
            except Exception as e:
                result.state = StepState.FAILED
                result.message = str(e) or type(e).__name__
                logger.debug(f"{step.name} raised", exc_info=True)
            else:
                if outcome is False:
                    result.state = StepState.FAILED
                    result.message = "reported failure"
                else:
                    result.state = StepState.SUCCEEDED
            result.duration = time.monotonic() - start

            if result.state is StepState.SUCCEEDED:
                logger.log(SUCCESS, f"{step.title} completed in {result.duration:.2f}s")
            elif result.state is StepState.FAILED:
                if step.critical and abort_reason is None:
                    abort_reason = f"critical step {step.name} failed: {result.message}"
                if abort_reason is not None:
                    logger.error(f"{step.title} failed: {result.message}")
                    logger.error(f"Aborting run: {abort_reason}")
                    self.summary.aborted = True
                    break
                logger.warning(f"{step.title} failed: {result.message}; continuing.")
        return self.summary


def render_summary(summary: RunSummary) -> Table:
    table = Table(title="Provisioning Summary", title_style="bold nord8")
    table.add_column("Step", style="nord9")
    table.add_column("Status")
    table.add_column("Time", justify="right")
    table.add_column("Details", style="nord3", overflow="fold")
    for r in summary.results:
        icon, color = STATE_ICONS[r.state]
        label = r.state.value.upper()
        if r.critical:
            label = f"{label} (critical)"
        duration = f"{r.duration:.1f}s" if r.duration else ""
        table.add_row(
            escape(r.description), f"[{color}]{icon} {label}[/]", duration, escape(r.message)
        )
    return table


def print_summary(summary: RunSummary) -> None:
    console.print(render_summary(summary))
    if summary.aborted:
        console.print("[bold nord11]Run aborted; remaining steps were not executed.[/]")
    elif summary.failed:
        console.print(
            f"[bold nord13]Completed with {len(summary.failed)} failed step(s).[/]"
        )
    else:
        console.print("[bold nord14]All selected steps completed.[/]")
