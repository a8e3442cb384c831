# tools.py
from __future__ import annotations

import re
import shutil
import subprocess
from typing import Dict, Iterable, Optional, Tuple

from .errors import TOOL_HINTS, ToolError

# display name -> executable
REQUIRED_TOOLS: Dict[str, str] = {
    "cmake": "cmake",
    "git": "git",
    "python": "python",
    "rust": "rustc",
}

MIN_VERSIONS: Dict[str, str] = {
    "cmake": "3.24.0",
}

_VERSION_RE = re.compile(r"(\d+)\.(\d+)(?:\.(\d+))?")


def which(tool: str) -> Optional[str]:
    return shutil.which(tool)


def tool_version_line(tool: str, timeout: float = 30) -> Optional[str]:
    """First line of `<tool> --version`, or None if it cannot be run."""
    try:
        proc = subprocess.run(
            [tool, "--version"],
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except (OSError, subprocess.TimeoutExpired):
        return None
    out = (proc.stdout or proc.stderr or "").strip()
    return out.splitlines()[0] if out else None


def parse_version(text: str) -> Optional[Tuple[int, int, int]]:
    """First X.Y[.Z] in text as a tuple; missing patch is 0."""
    m = _VERSION_RE.search(text or "")
    if not m:
        return None
    return int(m.group(1)), int(m.group(2)), int(m.group(3) or 0)


def tool_version(tool: str) -> Optional[Tuple[int, int, int]]:
    line = tool_version_line(tool)
    return parse_version(line) if line else None


def version_at_least(found: Tuple[int, int, int], required: str) -> bool:
    req = parse_version(required)
    if req is None:
        raise ValueError(f"Unparseable version requirement: {required!r}")
    return found >= req


def missing_tools(tools: Dict[str, str]) -> list[str]:
    return [name for name, exe in tools.items() if which(exe) is None]


def check_required(
    tools: Dict[str, str] | None = None,
    min_versions: Dict[str, str] | None = None,
) -> None:
    """
    Pre-flight check: every tool on PATH and at or above its minimum version.

    Raises ToolError naming every missing tool, or the first under-versioned
    one together with the minimum it needs.
    """
    tools = REQUIRED_TOOLS if tools is None else tools
    min_versions = MIN_VERSIONS if min_versions is None else min_versions

    missing = missing_tools(tools)
    if missing:
        hints = "; ".join(TOOL_HINTS.get(tools[m], f"Install {m} or fix PATH.") for m in missing)
        raise ToolError(
            f"Missing dependencies: {' '.join(missing)}",
            tools=missing,
            hint=hints,
        )

    for name, required in min_versions.items():
        if name not in tools:
            continue
        found = tool_version(tools[name])
        if found is None:
            raise ToolError(
                f"Could not determine {name} version. Required: {required} or higher.",
                tools=[name],
                required=required,
            )
        if not version_at_least(found, required):
            shown = ".".join(str(p) for p in found)
            raise ToolError(
                f"{name} version {shown} is too old. Required: {required} or higher.",
                tools=[name],
                hint=TOOL_HINTS.get(tools[name]),
                required=required,
                found=shown,
            )


def require_on_path(tools: Iterable[str]) -> None:
    """Job-level `requires`: fail fast if any tool is not on PATH."""
    tools = list(tools)
    missing = [t for t in tools if which(t) is None]
    if missing:
        raise ToolError(
            f"Required tools not found: {' '.join(missing)}",
            tools=missing,
            hint="; ".join(TOOL_HINTS.get(t, f"Install {t} or fix PATH.") for t in missing),
        )
