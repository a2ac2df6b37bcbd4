"""Rich console setup, review progress callbacks and console confirmations."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

if TYPE_CHECKING:
    from .models import PendingConfirmation, SectionState

console = Console()

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


def setup_logging(*, verbose: bool = False, quiet: bool = False) -> None:
    """Configure root logger with Rich handler."""
    level = logging.DEBUG if verbose else (logging.ERROR if quiet else logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=verbose)],
        force=True,
    )


logger = logging.getLogger("paper_planner")


# ---------------------------------------------------------------------------
# Review callbacks protocol
# ---------------------------------------------------------------------------


class ReviewCallbacks(Protocol):
    """Protocol for review/import progress reporting."""

    def on_stage_start(self, stage: str, description: str) -> None: ...
    def on_stage_end(self, stage: str, success: bool) -> None: ...
    def on_warning(self, message: str) -> None: ...
    def on_error(self, message: str) -> None: ...


class RichCallbacks:
    """Rich-based implementation of ReviewCallbacks."""

    def on_stage_start(self, stage: str, description: str) -> None:
        console.rule(f"[bold blue]{stage}[/] — {description}")

    def on_stage_end(self, stage: str, success: bool) -> None:
        status = "[green]OK[/]" if success else "[red]FAILED[/]"
        console.print(f"  Stage {stage}: {status}")

    def on_warning(self, message: str) -> None:
        console.print(f"  [yellow]WARNING:[/] {message}")

    def on_error(self, message: str) -> None:
        console.print(f"  [red]ERROR:[/] {message}")


class NullCallbacks:
    """Silent callbacks for library use."""

    def on_stage_start(self, stage: str, description: str) -> None:
        pass

    def on_stage_end(self, stage: str, success: bool) -> None:
        pass

    def on_warning(self, message: str) -> None:
        logger.warning(message)

    def on_error(self, message: str) -> None:
        logger.error(message)


# ---------------------------------------------------------------------------
# Console presentation for the confirmation bridge
# ---------------------------------------------------------------------------


class RichConfirmationPresenter:
    """Answers confirmation requests on the console.

    ``auto_answer`` skips the prompt entirely (``yes=true`` on the CLI).
    """

    def __init__(self, *, auto_answer: bool | None = None) -> None:
        self.auto_answer = auto_answer

    def __call__(self, pending: PendingConfirmation) -> bool:
        if self.auto_answer is not None:
            return self.auto_answer

        console.print()
        console.print(f"[bold yellow]{pending.prompt_text}[/]")
        while True:
            try:
                choice = console.input("[bold]\\[y]es / \\[n]o:[/] ").strip().lower()
            except (EOFError, KeyboardInterrupt):
                # Closing the prompt counts as "no".
                return False
            if choice in ("y", "yes"):
                return True
            if choice in ("n", "no", ""):
                return False
            console.print("[yellow]Please enter 'y' or 'n'.[/]")


def print_section_table(states: list[SectionState], current_section_id: str | None) -> None:
    """Render section progression as a Rich table."""
    table = Table(title="Research Plan Sections", show_lines=False)
    table.add_column("#", style="dim", width=4)
    table.add_column("Section ID", style="cyan")
    table.add_column("Title")
    table.add_column("Status")
    table.add_column("Words", justify="right")

    colors = {"locked": "dim", "empty": "yellow", "in_progress": "blue", "complete": "green"}
    for i, state in enumerate(states, 1):
        marker = " *" if state.section_id == current_section_id else ""
        color = colors.get(state.status.value, "white")
        table.add_row(
            str(i),
            f"{state.section_id}{marker}",
            state.title,
            f"[{color}]{state.status.value}[/]",
            str(state.word_count),
        )
    console.print(table)


def create_progress() -> Progress:
    """Create a Rich spinner for long-running generation calls."""
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    )
