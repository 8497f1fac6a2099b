"""
Interactive step selection.

Prompts never block an unattended run: without a terminal on stdin (or with
``--non-interactive``) every question resolves to its default immediately.
"""

import logging
import sys
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional

from rich.console import Console
from rich.markup import escape
from rich.prompt import Confirm, InvalidResponse, Prompt

from hostopt.logs import SUCCESS
from hostopt.ui import console as default_console

logger = logging.getLogger(__name__)


class YesNoPrompt(Confirm):
    """Confirm prompt that also accepts the long forms ``yes`` and ``no``."""

    validate_error_message = "[prompt.invalid]Please answer y/yes or n/no"

    def process_response(self, value: str) -> bool:
        answer = value.strip().lower()
        if answer in ("y", "yes"):
            return True
        if answer in ("n", "no"):
            return False
        raise InvalidResponse(self.validate_error_message)


@dataclass(frozen=True)
class StepOption:
    """A yes/no question toggling one boolean field of the config."""

    field: str
    prompt: str
    # Returns a message when the end state already exists on this host.
    probe: Optional[Callable[[], Optional[str]]] = None


class StepSelector:
    def __init__(
        self,
        interactive: Optional[bool] = None,
        console: Optional[Console] = None,
    ) -> None:
        if interactive is None:
            interactive = sys.stdin is not None and sys.stdin.isatty()
        self.interactive = interactive
        self.console = console or default_console

    def ask(self, prompt: str, default_yes: bool = True) -> bool:
        if not self.interactive:
            logger.debug(f"{prompt}: using default ({'yes' if default_yes else 'no'})")
            return default_yes
        hint = escape("[Y/n]" if default_yes else "[y/N]")
        return YesNoPrompt.ask(
            f"[bold nord15] - {escape(prompt)} {hint}[/]",
            console=self.console,
            default=default_yes,
            show_default=False,
            show_choices=False,
        )

    def ask_text(self, prompt: str, default: str = "") -> str:
        if not self.interactive:
            return default
        answer = Prompt.ask(
            f"[bold nord15]{escape(prompt)}[/]",
            console=self.console,
            default=default,
            show_default=bool(default),
        )
        return answer.strip()

    def select(self, config: Any, option: StepOption) -> bool:
        """Resolve one option against ``config`` and store the answer on it."""
        if option.probe is not None:
            satisfied = option.probe()
            if satisfied:
                logger.log(SUCCESS, f"{satisfied} (skipping: {option.prompt.lower()})")
                setattr(config, option.field, False)
                return False
        value = self.ask(option.prompt, bool(getattr(config, option.field)))
        setattr(config, option.field, value)
        return value

    def select_all(self, config: Any, options: Iterable[StepOption]) -> None:
        for option in options:
            self.select(config, option)
