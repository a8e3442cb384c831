# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional


class JobResult:
    """Outcome of one job, as seen by downstream gates."""
    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"
    CANCELLED = "cancelled"

    ALL = (SUCCESS, FAILURE, SKIPPED, CANCELLED)


@dataclass(frozen=True)
class Step:
    """A single command (step) inside a CI job."""
    name: str
    run: str
    cwd: str | None = None
    # executor selector: "shell" | "docker" | "docker-build" | "lint"
    kind: str = "shell"
    data: Optional[Dict[str, Any]] = None
    timeout: float | None = None


@dataclass
class Job:
    """
    A CI job: steps + dependencies + the predicate deciding whether it runs.

    `needs` may name individual jobs or matrix groups.
    `gate` is called as gate(needs_results, trigger); None means every
    predecessor must have succeeded.
    """
    name: str
    steps: list[Step]

    needs: list[str] = field(default_factory=list)
    gate: Optional[Callable[..., bool]] = None

    env: Dict[str, str] = field(default_factory=dict)
    requires: list[str] = field(default_factory=list)

    # Matrix fan-out
    group: Optional[str] = None
    runs_on: Optional[str] = None              # "linux" | "windows" | "darwin"
