"""
Nord-themed console helpers.

Every user-facing print goes through the shared ``console`` so the logging
handler, the status spinner and the prompts all render on the same stream.
"""

import shutil

import pyfiglet
from rich.console import Console
from rich.panel import Panel
from rich.theme import Theme


class NordColors:
    """Nord theme color palette."""

    NORD0 = "#2E3440"
    NORD1 = "#3B4252"
    NORD3 = "#4C566A"
    NORD4 = "#D8DEE9"
    NORD8 = "#88C0D0"
    NORD9 = "#81A1C1"
    NORD10 = "#5E81AC"
    NORD11 = "#BF616A"  # errors
    NORD13 = "#EBCB8B"  # warnings
    NORD14 = "#A3BE8C"  # success
    NORD15 = "#B48EAD"  # prompts


theme = Theme(
    {
        "nord3": NordColors.NORD3,
        "nord8": NordColors.NORD8,
        "nord9": NordColors.NORD9,
        "nord10": NordColors.NORD10,
        "nord11": NordColors.NORD11,
        "nord13": NordColors.NORD13,
        "nord14": NordColors.NORD14,
        "nord15": NordColors.NORD15,
        "logging.level.success": f"bold {NordColors.NORD14}",
    }
)
console = Console(theme=theme)


def print_header(text: str) -> None:
    """Print a striking ASCII art header using pyfiglet."""
    ascii_art = pyfiglet.figlet_format(text, font="slant")
    console.print(ascii_art, style=f"bold {NordColors.NORD8}")


def print_section(title: str) -> None:
    width = min(shutil.get_terminal_size().columns, 80)
    border = "═" * width
    console.print(f"\n[bold nord8]{border}[/]")
    console.print(f"[bold nord8]  {title}[/]")
    console.print(f"[bold nord8]{border}[/]\n")


def print_notice(title: str, body: str) -> None:
    """Show a boxed notice the operator should read before continuing."""
    console.print(Panel(body, title=title, border_style="nord13", expand=False))
