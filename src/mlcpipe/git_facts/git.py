# git.py
# Small, focused wrapper around the Git CLI.
# This module centralizes all Git interactions so the rest of the codebase
# never needs to call subprocess("git ...") directly.

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Optional


def _git(args: list[str], cwd: Optional[str] = None) -> str:
    """
    Execute a git command and return its stdout as a clean string.

    This is the single low-level entry point for all Git operations in this
    file. A non-zero exit raises subprocess.CalledProcessError.

    Args:
        args: List of git arguments (e.g. ["status", "--porcelain"])
        cwd: Optional working directory in which to run the git command.

    Returns:
        Stdout from the git command with surrounding whitespace removed.
    """
    out = subprocess.check_output(
        ["git", *args],
        cwd=cwd,
        text=True,
        stderr=subprocess.DEVNULL,
    )
    return out.strip()


def head_sha(cwd: Optional[str] = None) -> str:
    """Return the full SHA hash of the current HEAD commit."""
    return _git(["rev-parse", "HEAD"], cwd=cwd)


def get_current_ref(cwd: Optional[str] = None) -> str:
    """
    Return the fully qualified ref HEAD corresponds to.

    Resolution order:
      - refs/tags/<tag> if HEAD is exactly at a tag
      - refs/heads/<branch> if HEAD is on a branch
      - the bare commit SHA (detached HEAD)
    """
    try:
        tag = _git(["describe", "--tags", "--exact-match"], cwd=cwd)
        if tag:
            return f"refs/tags/{tag}"
    except subprocess.CalledProcessError:
        pass

    try:
        return _git(["symbolic-ref", "-q", "HEAD"], cwd=cwd)
    except subprocess.CalledProcessError:
        return head_sha(cwd=cwd)


def has_submodules(source_dir: str | Path) -> bool:
    return (Path(source_dir) / ".gitmodules").is_file()
