# entrypoint.py
"""
Container entrypoint: one argument selects one operation.

Known names are looked up in COMMANDS. Anything else is the passthrough
variant: the arguments run verbatim as a command and its exit code is
returned unchanged.
"""
from __future__ import annotations

import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional

from . import settings
from .build import PYTHON, BuildConfig, run_build
from .errors import CIError
from .step_workflows.lint import run_lint_tool
from .testsuite import SuiteConfig, run_tests
from .ui.console import get_console

HELP_TEXT = """\
MLC-LLM Docker Container
Usage: docker run [OPTIONS] mlc-llm-image [COMMAND]

Commands:
  bash                    Start interactive bash shell (development mode)
  build                   Build MLC-LLM from source
  test                    Run test suite
  lint                    Run linting checks
  format                  Format code
  package                 Build Python wheel packages
  serve [OPTIONS]         Start MLC-LLM server
  chat [OPTIONS]          Start MLC-LLM chat interface
  help                    Show this help message

Any other command is executed as-is inside the container.

Environment Variables:
  MLC_LLM_SOURCE_DIR      Path to MLC-LLM source (default: /workspace)
  PYTHONPATH              Python path including MLC-LLM modules
"""

DEFAULT_COMMAND = "bash"


@dataclass(frozen=True)
class Context:
    source_dir: str
    env: Dict[str, str]

    @property
    def source(self) -> Path:
        return Path(self.source_dir)

    @classmethod
    def from_env(cls, source_dir: Optional[str] = None) -> "Context":
        source = source_dir or settings.source_dir(settings.CONTAINER_SOURCE_DIR)
        return cls(source_dir=source, env=settings.source_env(source))


Handler = Callable[[List[str], Context], int]


def _exec(cmd: List[str], ctx: Context, cwd: Optional[Path] = None) -> int:
    """Run a command to completion and hand back its exit code (127 if not found)."""
    try:
        return subprocess.run(cmd, cwd=str(cwd) if cwd else None, env=ctx.env).returncode
    except FileNotFoundError:
        get_console().print_error(f"{cmd[0]}: command not found")
        return 127
    except PermissionError:
        get_console().print_error(f"{cmd[0]}: permission denied")
        return 126


# ----------------------------------------------------------------------
# Handlers
# ----------------------------------------------------------------------

def show_help(args: List[str], ctx: Context) -> int:
    get_console().print_plain(HELP_TEXT)
    return 0


def start_shell(args: List[str], ctx: Context) -> int:
    get_console().print_info("Starting interactive bash shell...")
    return _exec(["/bin/bash", *args], ctx)


def build_mlc(args: List[str], ctx: Context) -> int:
    get_console().print_info("Building MLC-LLM from source...")
    # in-container build: toolchain is baked into the image, cmake picks its own options
    config = BuildConfig(source_dir=ctx.source_dir, skip_deps=True, skip_tests=True, cmake_options=[])
    run_build(config)
    return 0


def run_test_suite(args: List[str], ctx: Context) -> int:
    console = get_console()
    console.print_info("Running MLC-LLM test suite...")
    config = SuiteConfig(source_dir=ctx.source_dir, coverage=True, verbose=True)
    if config.test_dir.is_dir():
        tally = run_tests("pytest", config)
    else:
        console.print_info("No tests directory found, running basic import test...")
        tally = run_tests("import", config)
    return 0 if tally.ok else 1


LINTERS = (
    ("black", "--check"),
    ("flake8", None),
    ("mypy", None),
)


def run_lint(args: List[str], ctx: Context) -> int:
    """Lint python/ with black, flake8 and mypy. Findings are reported, never fatal."""
    console = get_console()
    console.print_info("Running linting checks...")
    python_dir = ctx.source / "python"
    if not python_dir.is_dir():
        console.print_warning(f"No python/ directory under {ctx.source_dir}, nothing to lint")
        return 0

    for tool, tool_args in LINTERS:
        console.print_info(f"Running {tool}...")
        try:
            proc = run_lint_tool(tool, tool_args, ["python/"], ctx.source, ctx.env)
        except CIError as e:
            console.print_warning(str(e).split("\n")[0])
            continue
        output = ((proc.stdout or "") + (proc.stderr or "")).strip()
        if output:
            console.print_plain(output)
        if proc.returncode != 0:
            console.print_warning(f"{tool} reported issues (exit {proc.returncode})")
    return 0


def format_code(args: List[str], ctx: Context) -> int:
    console = get_console()
    console.print_info("Formatting code...")
    if not (ctx.source / "python").is_dir():
        console.print_warning("No python/ directory, nothing to format")
        return 0
    rc = _exec(["black", "python/"], ctx, cwd=ctx.source)
    if rc == 0:
        console.print_success("Code formatting completed!")
    return rc


def build_packages(args: List[str], ctx: Context) -> int:
    console = get_console()
    console.print_info("Building Python wheel packages...")
    rc = _exec([PYTHON, "-m", "build", "--wheel", "--outdir", "dist/"], ctx, cwd=ctx.source)
    if rc != 0:
        return rc
    console.print_success("Packages built successfully!")
    for wheel in sorted((ctx.source / "dist").glob("*")):
        console.print_plain(f"  {wheel.name}  {wheel.stat().st_size} bytes")
    return 0


def serve(args: List[str], ctx: Context) -> int:
    get_console().print_info("Starting MLC-LLM server...")
    return _exec([PYTHON, "-m", "mlc_llm.cli.serve", *args], ctx)


def chat(args: List[str], ctx: Context) -> int:
    get_console().print_info("Starting MLC-LLM chat...")
    return _exec([PYTHON, "-m", "mlc_llm.cli.chat", *args], ctx)


def passthrough(argv: List[str], ctx: Context) -> int:
    """Fallback: run argv verbatim."""
    return _exec(argv, ctx)


COMMANDS: Dict[str, Handler] = {
    "help": show_help,
    "--help": show_help,
    "-h": show_help,
    "bash": start_shell,
    "shell": start_shell,
    "build": build_mlc,
    "test": run_test_suite,
    "lint": run_lint,
    "format": format_code,
    "package": build_packages,
    "serve": serve,
    "chat": chat,
}


def dispatch(argv: List[str], ctx: Optional[Context] = None) -> int:
    """Run exactly one operation for argv and return its exit code."""
    argv = list(argv) or [DEFAULT_COMMAND]
    name, rest = argv[0], argv[1:]
    handler = COMMANDS.get(name)
    if handler is show_help:
        # help must not depend on any environment state
        return show_help(rest, ctx or Context(source_dir="", env={}))

    ctx = ctx or Context.from_env()
    if handler is None:
        console = get_console()
        console.print_info(f"Unknown command: {name}")
        console.print_info("Use 'help' to see available commands.")
        return passthrough(argv, ctx)
    return handler(rest, ctx)
