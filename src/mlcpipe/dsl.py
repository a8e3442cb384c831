# src/mlcpipe/dsl.py
from __future__ import annotations

from dataclasses import replace
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from .model import Step, Job


# ---------------------------------------------------------------------
# Step helper
# ---------------------------------------------------------------------

def sh(name: str, cmd: str, *, cwd: str | None = None, timeout: float | None = None) -> Step:
    """Create a shell step."""
    return Step(name=name, run=cmd, cwd=cwd, timeout=timeout)


# ---------------------------------------------------------------------
# Functional Job helper
# ---------------------------------------------------------------------

def job(
    name: str,
    *steps: Step,  # allow: job("x", sh(...), sh(...))
    steps_list: Optional[List[Step]] = None,  # allow: job("x", steps_list=[...])
    needs: Optional[List[str]] = None,
    gate: Optional[Callable[..., bool]] = None,
    env: Optional[Dict[str, str]] = None,
    requires: Optional[List[str]] = None,
    runs_on: Optional[str] = None,
    cwd: str | None = None,  # default cwd applied to steps missing cwd
) -> Job:
    steps_final: List[Step] = []
    if steps_list:
        steps_final.extend(list(steps_list))
    steps_final.extend(list(steps))

    if not steps_final:
        raise ValueError(f"job({name!r}) must have at least one step")

    if cwd is not None:
        steps_final = [s if s.cwd is not None else replace(s, cwd=cwd) for s in steps_final]

    return Job(
        name=name,
        steps=steps_final,
        needs=list(needs or []),
        gate=gate,
        env={k: str(v) for k, v in (env or {}).items()},
        requires=list(requires or []),
        runs_on=runs_on,
    )


# ---------------------------------------------------------------------
# Matrix
# ---------------------------------------------------------------------

def _label(value: Any) -> str:
    if isinstance(value, dict):
        return "-".join(str(v) for v in value.values())
    return str(value)


class Matrix:
    """
    Minimal matrix expander.

    Example:
        matrix("test-type", ["basic", "import"]).jobs(
            lambda v: job("test-docker-image", sh(...))
        )

    yields jobs "test-docker-image (basic)" and "test-docker-image (import)",
    both in group "test-docker-image". Downstream jobs may `needs` the group.
    """
    def __init__(self, key: str, values: Iterable[Any]):
        self.key = key
        self.values = list(values)
        if not self.values:
            raise ValueError(f"matrix({key!r}) needs at least one value")

    def jobs(self, builder: Callable[[Any], Job]) -> List[Job]:
        out: List[Job] = []
        for v in self.values:
            j = builder(v)
            group = j.group or j.name
            out.append(replace(j, name=f"{group} ({_label(v)})", group=group))
        return out


def matrix(key: str, values: Iterable[Any]) -> Matrix:
    return Matrix(key, values)


# ---------------------------------------------------------------------
# Workflow helper (single-file story)
# ---------------------------------------------------------------------

def wf(*jobs: Union[Job, List[Job]]) -> List[Job]:
    """
    Workflow definition helper. Matrix results (lists) are flattened.

        from mlcpipe.dsl import wf, job, sh

        def workflow(trigger):
            return wf(
                job(...),
                matrix(...).jobs(...),
            )
    """
    out: List[Job] = []
    for j in jobs:
        if isinstance(j, list):
            out.extend(j)
        else:
            out.append(j)
    return out
