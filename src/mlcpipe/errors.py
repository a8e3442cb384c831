# errors.py
from __future__ import annotations

from dataclasses import dataclass, field


TOOL_HINTS = {
    "cmake": "Install CMake 3.24 or newer (e.g., conda install -c conda-forge 'cmake>=3.24').",
    "git": "Install Git or fix PATH.",
    "python": "Install Python 3 or fix PATH (python).",
    "rustc": "Install Rust via rustup (https://rustup.rs).",
    "pytest": "Install pytest (e.g., pip install pytest).",
    "black": "Install black (e.g., pip install black).",
    "flake8": "Install flake8 (e.g., pip install flake8).",
    "isort": "Install isort (e.g., pip install isort).",
    "mypy": "Install mypy (e.g., pip install mypy).",
    "docker": "Install Docker and ensure the daemon is running.",
    "gh": "Install the GitHub CLI (gh) and authenticate with `gh auth login`.",
}


@dataclass
class CIError(Exception):
    """
    Structured CI error with enough context for:
      - clean CLI output
      - debugging without full tracebacks
    """
    kind: str
    job: str
    step: str | None
    message: str
    details: dict = field(default_factory=dict)

    def __str__(self) -> str:
        lines = [f"{self.kind}: {self.message}"]
        if self.job:
            lines.append(f"job={self.job}")
        if self.step:
            lines.append(f"step={self.step}")
        for k, v in self.details.items():
            lines.append(f"{k}={v}")
        return "\n".join(lines)


class ToolError(CIError):
    """A required external tool is missing or too old."""

    def __init__(self, message: str, *, tools: list[str], hint: str | None = None, **details):
        info = {"tools": ", ".join(tools)}
        if hint:
            info["hint"] = hint
        info.update(details)
        super().__init__(kind="tool_unavailable", job="", step=None, message=message, details=info)
        self.tools = tools


class BuildError(CIError):
    """A build phase (configure / compile / install) failed."""

    def __init__(self, phase: str, message: str, exit_code: int | None = None):
        details = {"phase": phase}
        if exit_code is not None:
            details["exit_code"] = exit_code
        super().__init__(kind="build_failed", job="", step=phase, message=message, details=details)
        self.phase = phase
        self.exit_code = exit_code


@dataclass
class StepFailure(Exception):
    job: str
    step: str
    cmd: str
    exit_code: int
    output: str = ""

    def __str__(self) -> str:
        msg = f"[{self.job}] step '{self.step}' failed (exit={self.exit_code}): {self.cmd}"
        if self.output:
            msg += "\n" + self.output
        return msg
