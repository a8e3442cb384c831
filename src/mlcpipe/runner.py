# runner.py
from __future__ import annotations

import inspect
import os
import runpy
import subprocess
import sys
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional, Tuple

from .dag import build_dag, group_members, topo_levels
from .errors import StepFailure
from .gating import aggregate, describe, needs_succeeded
from .model import Job, JobResult, Step
from .step_workflows import docker as docker_steps
from .step_workflows import lint as lint_steps
from .tools import require_on_path
from .trigger import Trigger
from .ui.console import get_console

Executor = Callable[[Job, Path], None]

# step.kind -> executor
STEP_EXECUTORS: Dict[str, Callable[[Job, Step, Path], None]] = {
    "docker": docker_steps.run_step,
    "docker-build": docker_steps.run_step,
    "lint": lint_steps.run_step,
}


# ----------------------------------------------------------------------
# Workflow loading (local file/module)
# ----------------------------------------------------------------------

def load_workflow(path: str | Path, trigger: Optional[Trigger] = None) -> List[Job]:
    """
    Load a workflow from a python file path.

    The file must define either:
      - workflow() -> List[Job], or workflow(trigger) -> List[Job]
      - JOBS = [Job, ...]
    """
    wf_path = Path(path).expanduser().resolve()
    if not wf_path.exists():
        raise FileNotFoundError(f"Workflow file not found: {wf_path}")
    if wf_path.suffix != ".py":
        raise ValueError(f"Workflow must be a .py file, got: {wf_path.name}")

    module_name = f"mlcpipe_workflow_{wf_path.stem}"
    globals_dict = runpy.run_path(str(wf_path), run_name=module_name)

    jobs = None
    fn = globals_dict.get("workflow")
    if callable(fn):
        if inspect.signature(fn).parameters:
            if trigger is None:
                trigger = Trigger.from_env()
            jobs = fn(trigger)
        else:
            jobs = fn()
    elif "JOBS" in globals_dict:
        jobs = globals_dict["JOBS"]

    if not isinstance(jobs, list) or not all(isinstance(j, Job) for j in jobs):
        raise TypeError(
            "Workflow must return/define a List[Job]. "
            "Define workflow() -> List[Job], workflow(trigger) -> List[Job] or JOBS = [Job, ...]."
        )

    return jobs


# ----------------------------------------------------------------------
# Execution primitives
# ----------------------------------------------------------------------

def _run_shell_step(job: Job, step: Step, repo_root: Path) -> None:
    cwd = (repo_root / (step.cwd or ".")).resolve()
    if not cwd.exists():
        raise FileNotFoundError(f"[{job.name}] step '{step.name}' cwd not found: {cwd}")

    env = os.environ.copy()
    env.update(getattr(job, "env", {}) or {})

    try:
        proc = subprocess.run(
            step.run,
            shell=True,
            cwd=str(cwd),
            env=env,
            text=True,
            capture_output=True,   # so you can show output on failure
            timeout=step.timeout,
        )
    except subprocess.TimeoutExpired:
        raise StepFailure(job=job.name, step=step.name, cmd=step.run, exit_code=124,
                          output=f"timed out after {step.timeout}s")

    if proc.returncode != 0:
        raise StepFailure(
            job=job.name,
            step=step.name,
            cmd=step.run,
            exit_code=proc.returncode,
            output=((proc.stdout or "") + (proc.stderr or ""))[-4000:],
        )


def run_step(job: Job, step: Step, repo_root: Path) -> None:
    executor = STEP_EXECUTORS.get(step.kind)
    if executor is not None:
        executor(job, step, repo_root)
    elif step.kind == "shell":
        _run_shell_step(job, step, repo_root)
    else:
        raise ValueError(f"[{job.name}] step '{step.name}' has unknown kind {step.kind!r}")


def run_job(job: Job, repo_root: Path) -> None:
    """Run every step of a job in order. Raises on the first failure."""
    console = get_console()
    if job.requires:
        require_on_path(job.requires)
    for step in job.steps:
        console.print_step(job.name, step.name)
        run_step(job, step, repo_root)


# ----------------------------------------------------------------------
# Gate evaluation
# ----------------------------------------------------------------------

def needs_view(job: Job, results: Mapping[str, str], groups: Mapping[str, List[str]]) -> Dict[str, str]:
    """Predecessor name (job or group) -> result, as the job's gate sees it."""
    view: Dict[str, str] = {}
    for need in job.needs:
        if need in groups and need not in results:
            view[need] = aggregate(results[m] for m in groups[need])
        else:
            view[need] = results[need]
    return view


def host_platform() -> str:
    if sys.platform.startswith("win"):
        return "windows"
    if sys.platform == "darwin":
        return "darwin"
    return "linux"


def decide(
    job: Job,
    results: Mapping[str, str],
    groups: Mapping[str, List[str]],
    trigger: Trigger,
    *,
    failed: bool = False,
    fail_fast: bool = False,
    platform: Optional[str] = None,
) -> Tuple[bool, str, str]:
    """
    Decide whether a job executes.

    Returns (run, result_if_not_run, reason).
    """
    gate = job.gate or needs_succeeded
    if not gate(needs_view(job, results, groups), trigger):
        return False, JobResult.SKIPPED, f"gate {describe(job.gate)} is false"
    if job.runs_on and job.runs_on != (platform or host_platform()):
        return False, JobResult.SKIPPED, f"runs on {job.runs_on}"
    if fail_fast and failed:
        return False, JobResult.CANCELLED, "cancelled after earlier failure"
    return True, JobResult.SUCCESS, "gate passed"


# ----------------------------------------------------------------------
# Public API
# ----------------------------------------------------------------------

def plan_pipeline(
    jobs: List[Job],
    trigger: Trigger,
    *,
    assume: Optional[Mapping[str, str]] = None,
    platform: Optional[str] = None,
    print_plan: bool = True,
) -> Dict[str, str]:
    """
    Dry run: evaluate every gate without executing anything.

    Jobs that would run take their result from `assume` (keyed by job name),
    defaulting to success.
    """
    assume = dict(assume or {})
    for name, result in assume.items():
        if result not in JobResult.ALL:
            raise ValueError(f"Unknown job result {result!r} for {name!r}; expected one of {JobResult.ALL}")

    def pretend(job: Job, repo_root: Path) -> None:
        result = assume.get(job.name, JobResult.SUCCESS)
        if result != JobResult.SUCCESS:
            raise _Assumed(result)

    return run_pipeline(
        jobs,
        trigger,
        execute=pretend,
        platform=platform,
        print_plan=print_plan,
        max_workers=1,
        quiet=True,
    )


class _Assumed(Exception):
    def __init__(self, result: str):
        super().__init__(result)
        self.result = result


def run_pipeline(
    jobs: List[Job],
    trigger: Trigger,
    *,
    repo_root: str | Path = ".",
    execute: Optional[Executor] = None,
    max_workers: int | None = None,
    fail_fast: bool = False,
    platform: Optional[str] = None,
    print_plan: bool = True,
    quiet: bool = False,
) -> Dict[str, str]:
    """
    Evaluate the job graph level by level.

    Each job's gate sees only its declared predecessors. Jobs in one level
    run concurrently and never observe each other. Returns job name -> result
    in topological order.
    """
    console = get_console()
    repo_root_p = Path(repo_root).resolve()
    execute = execute or run_job

    jobs = list(jobs)
    by_name = {j.name: j for j in jobs}
    adj, indeg = build_dag(jobs)
    levels = topo_levels(adj, indeg)
    groups = group_members(jobs)

    if max_workers is None:
        c = os.cpu_count() or 2
        max_workers = max(1, c - 1)

    results: Dict[str, str] = {}
    failed = False

    for level in levels:
        to_run: List[str] = []
        for name in level:
            job = by_name[name]
            run, result, reason = decide(
                job, results, groups, trigger,
                failed=failed, fail_fast=fail_fast, platform=platform,
            )
            if run:
                to_run.append(name)
                if print_plan and not quiet:
                    console.print_plan_job(name, "run", reason)
            else:
                results[name] = result
                if print_plan:
                    console.print_plan_job(name, result, reason)

        if not to_run:
            continue

        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            futures = {}
            for name in to_run:
                if not quiet:
                    console.print_job_start(name)
                futures[pool.submit(execute, by_name[name], repo_root_p)] = name

            for future in as_completed(futures):
                name = futures[future]
                try:
                    future.result()
                    results[name] = JobResult.SUCCESS
                except _Assumed as e:
                    results[name] = e.result
                except Exception as e:
                    results[name] = JobResult.FAILURE
                    console.print_job_failed(name, str(e), hint=_hint_of(e))
                if results[name] == JobResult.FAILURE:
                    failed = True
                if print_plan and quiet:
                    console.print_plan_job(name, results[name], "assumed")

    return {name: results[name] for level in levels for name in level}


def _hint_of(exc: Exception) -> Optional[str]:
    details = getattr(exc, "details", None)
    if isinstance(details, dict):
        return details.get("hint")
    return None
