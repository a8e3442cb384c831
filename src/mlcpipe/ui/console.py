"""Console output formatting utilities for mlcpipe."""

from __future__ import annotations

import sys
from typing import Optional

import click


_LEVEL_COLORS = {
    "INFO": "blue",
    "TEST": "blue",
    "SUCCESS": "green",
    "WARNING": "yellow",
    "ERROR": "red",
}

_STATUS_DISPLAY = {
    "success": "SUCCESS",
    "failure": "FAILED",
    "skipped": "SKIPPED",
    "cancelled": "CANCELLED",
}

# "run": the gate passed and the job is about to execute
_PLAN_MARKS = {
    "run": "▶",
    "success": "✓",
    "skipped": "⏭",
}


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False, color: Optional[bool] = None):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
            color: Force ANSI colors on/off (None lets click decide per stream)
        """
        self.debug = debug
        self.color = color

    # ------------------------------------------------------------------
    # Leveled messages
    # ------------------------------------------------------------------

    def _emit(self, level: str, message: str, err: bool = False) -> None:
        label = click.style(f"[{level}]", fg=_LEVEL_COLORS[level])
        click.echo(f"{label} {message}", err=err, color=self.color)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        self._emit("INFO", message)

    def print_success(self, message: str) -> None:
        self._emit("SUCCESS", message)

    def print_warning(self, message: str) -> None:
        self._emit("WARNING", message, err=True)

    def print_test(self, message: str) -> None:
        self._emit("TEST", message)

    def print_plain(self, message: str = "") -> None:
        click.echo(message, color=self.color)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            click.echo(f"[DEBUG] {message}", err=True, color=self.color)

    # ------------------------------------------------------------------
    # Errors
    # ------------------------------------------------------------------

    def print_error(
        self,
        title: str,
        message: str = "",
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        self._emit("ERROR", title, err=True)
        if message:
            click.echo(message, err=True, color=self.color)
        if details:
            for detail in details:
                click.echo(f"  {detail}", err=True, color=self.color)
        if suggestion:
            click.echo(f"\n{suggestion}", err=True, color=self.color)

    def print_exception(self, exc: BaseException) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exception(type(exc), exc, exc.__traceback__, file=sys.stderr)
        else:
            self._emit("ERROR", str(exc), err=True)

    # ------------------------------------------------------------------
    # Pipeline output
    # ------------------------------------------------------------------

    def print_header(self, title: str) -> None:
        """Print a section header."""
        self.print_plain(f"\n{title}")
        self.print_plain("-" * len(title))

    def print_run_started(self, workflow: str, ref: str, job_count: int) -> None:
        """Print run start information."""
        self.print_plain("\nRUN STARTED")
        self.print_plain(f"Workflow: {workflow}")
        self.print_plain(f"Ref: {ref}")
        self.print_plain(f"Jobs: {job_count}")
        self.print_plain()

    def print_job_start(self, name: str) -> None:
        self.print_plain(f"\nJOB STARTED: {name}")

    def print_step(self, job: str, name: str) -> None:
        self.print_plain(f"[{job}] STEP: {name}")

    def print_job_failed(self, name: str, reason: str, hint: Optional[str] = None) -> None:
        self._emit("ERROR", f"JOB FAILED: {name}", err=True)
        if self.debug:
            click.echo(f"Error details: {reason}", err=True, color=self.color)
        else:
            first = reason.split("\n")[0] if reason else "Unknown error"
            click.echo(f"Error: {first}", err=True, color=self.color)
        if hint:
            click.echo(f"Hint: {hint}", err=True, color=self.color)

    def print_plan_job(self, name: str, result: str, reason: str) -> None:
        """Print one line of a gating plan."""
        mark = _PLAN_MARKS.get(result, "✗")
        self.print_plain(f"  {mark} {name}: {result} ({reason})")

    def print_results(self, results: dict[str, str]) -> None:
        """Print final results summary."""
        self.print_plain("\n" + "=" * 40)
        self.print_plain("RESULTS")
        self.print_plain("=" * 40)
        for job, status in results.items():
            self.print_plain(f"  {job}: {_STATUS_DISPLAY.get(status, status.upper())}")


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
