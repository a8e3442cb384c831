# step_workflows/lint.py
from __future__ import annotations

import os
import shlex
import subprocess
from pathlib import Path
from typing import Dict, List, Optional

from ..errors import TOOL_HINTS, CIError, StepFailure
from ..model import Job, Step
from ..ui.console import get_console


# ---------------------------------------------------------------------
# Lint step helper
# ---------------------------------------------------------------------

def lint_step(
    name: str,
    tool: str,
    args: str | None = None,
    *,
    cwd: str | None = None,
    files: List[str] | None = None,
    only_if_exists: str | None = None,
) -> Step:
    """
    Create a lint step that runs a linting tool.

    only_if_exists: path (relative to the step cwd) that must exist for the
    tool to run; otherwise the step is a no-op.
    """
    cmd = tool
    if args:
        cmd = f"{tool} {args}"
    if files:
        cmd = f"{cmd} {' '.join(files)}"

    data = {
        "tool": tool,
        "args": args,
        "files": list(files) if files else None,
        "only_if_exists": only_if_exists,
    }
    return Step(name=name, run=cmd, cwd=cwd, kind="lint", data=data)


# ---------------------------------------------------------------------
# Lint step execution
# ---------------------------------------------------------------------

def check_tool_available(tool: str) -> None:
    """Check if a linting tool is available, raise helpful error if not."""
    try:
        subprocess.run(
            [tool, "--version"],
            capture_output=True,
            check=True,
        )
    except (subprocess.CalledProcessError, FileNotFoundError):
        hint = TOOL_HINTS.get(tool, f"Install {tool} or fix PATH.")
        raise CIError(
            kind="tool_unavailable",
            job="",
            step=None,
            message=f"{tool} is not available",
            details={"hint": hint, "tool": tool},
        )


def lint_command(tool: str, args: str | None, files: List[str] | None, target: str = ".") -> List[str]:
    cmd_parts = [tool]
    if args:
        cmd_parts.extend(shlex.split(args))
    if files:
        cmd_parts.extend(files)
    else:
        cmd_parts.append(target)
    return cmd_parts


def run_lint_tool(
    tool: str,
    args: str | None,
    files: List[str] | None,
    cwd: Path,
    env: Optional[Dict[str, str]] = None,
) -> subprocess.CompletedProcess:
    """Check availability, then run one linter. Returns the completed process."""
    check_tool_available(tool)
    return subprocess.run(
        lint_command(tool, args, files),
        shell=False,
        cwd=str(cwd),
        env=env if env is not None else os.environ.copy(),
        text=True,
        capture_output=True,
    )


def run_step(job: Job, step: Step, repo_root: Path) -> None:
    """Run a lint step."""
    data = step.data or {}
    tool = data.get("tool")
    if not tool:
        raise ValueError(f"[{job.name}] step '{step.name}' has no lint tool")

    cwd = (repo_root / (step.cwd or ".")).resolve()
    if not cwd.exists():
        raise FileNotFoundError(f"[{job.name}] step '{step.name}' cwd not found: {cwd}")

    guard = data.get("only_if_exists")
    if guard and not (cwd / guard).exists():
        get_console().print_info(f"[{job.name}] {step.name}: no {guard}, nothing to lint")
        return

    env = os.environ.copy()
    env.update(getattr(job, "env", {}) or {})

    try:
        proc = run_lint_tool(tool, data.get("args"), data.get("files"), cwd, env)
    except CIError as e:
        e.job = job.name
        e.step = step.name
        raise

    if proc.returncode != 0:
        raise StepFailure(
            job=job.name,
            step=step.name,
            cmd=" ".join(lint_command(tool, data.get("args"), data.get("files"))),
            exit_code=proc.returncode,
            output=((proc.stdout or "") + (proc.stderr or ""))[-4000:],
        )
