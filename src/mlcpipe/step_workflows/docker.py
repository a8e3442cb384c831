# step_workflows/docker.py
from __future__ import annotations

import os
import shlex
import subprocess
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from ..errors import TOOL_HINTS, CIError, StepFailure
from ..model import Job, Step

CONTAINER_WORKDIR = "/workspace"


# ---------------------------------------------------------------------
# Docker step helpers
# ---------------------------------------------------------------------

def docker_step(
    name: str,
    cmd: Union[str, Sequence[str]],
    image: str,
    *,
    cwd: str | None = None,
    volumes: List[str] | None = None,
    env: Dict[str, str] | None = None,
    user: str | None = None,
    mount_repo: bool = True,
    timeout: float | None = None,
) -> Step:
    """
    Create a step that runs in a Docker container.

    A string `cmd` runs through `sh -c` inside the container. A list is
    passed as-is so the image's own ENTRYPOINT receives it.
    """
    run = cmd if isinstance(cmd, str) else " ".join(shlex.quote(c) for c in cmd)
    data: Dict = {
        "image": image,
        "argv": None if isinstance(cmd, str) else list(cmd),
        "volumes": list(volumes or []),
        "env": dict(env or {}),
        "user": user,
        "mount_repo": mount_repo,
    }
    return Step(name=name, run=run, cwd=cwd, kind="docker", data=data, timeout=timeout)


def docker_build_step(
    name: str,
    *,
    target: str,
    tags: List[str],
    push: bool = False,
    dockerfile: str = "Dockerfile",
    context: str = ".",
    platform: str = "linux/amd64",
    build_args: Dict[str, str] | None = None,
) -> Step:
    """Create a `docker buildx build` step for one Dockerfile stage."""
    if not tags:
        raise ValueError(f"docker_build_step({name!r}) needs at least one tag")
    data = {
        "target": target,
        "tags": list(tags),
        "push": push,
        "dockerfile": dockerfile,
        "context": context,
        "platform": platform,
        "build_args": dict(build_args or {}),
    }
    run = " ".join(shlex.quote(c) for c in build_command(data))
    return Step(name=name, run=run, kind="docker-build", data=data)


def build_command(data: Dict) -> List[str]:
    cmd = [
        "docker", "buildx", "build",
        "--file", data["dockerfile"],
        "--target", data["target"],
        "--platform", data["platform"],
    ]
    for tag in data["tags"]:
        cmd.extend(["--tag", tag])
    for key, value in sorted(data.get("build_args", {}).items()):
        cmd.extend(["--build-arg", f"{key}={value}"])
    cmd.append("--push" if data.get("push") else "--load")
    cmd.append(data["context"])
    return cmd


# ---------------------------------------------------------------------
# Docker step execution
# ---------------------------------------------------------------------

def check_docker_available() -> None:
    """Check if Docker is available, raise helpful error if not."""
    try:
        subprocess.run(
            ["docker", "--version"],
            capture_output=True,
            check=True,
        )
    except (subprocess.CalledProcessError, FileNotFoundError):
        hint = TOOL_HINTS.get("docker", "Install Docker and ensure the daemon is running.")
        raise CIError(
            kind="docker_unavailable",
            job="",
            step=None,
            message="Docker is not available",
            details={"hint": hint},
        )


def run_command(data: Dict, job: Job, step: Step, repo_root: Path) -> List[str]:
    cmd = ["docker", "run", "--rm"]

    if data.get("mount_repo", True):
        cmd.extend(["-v", f"{repo_root.resolve()}:{CONTAINER_WORKDIR}"])
        step_cwd = step.cwd or "."
        container_cwd = f"{CONTAINER_WORKDIR}/{step_cwd}".replace("//", "/").rstrip("/.")
        cmd.extend(["-w", container_cwd or CONTAINER_WORKDIR])

    for vol in data.get("volumes") or []:
        cmd.extend(["-v", vol])

    # Only job-level and step-level env cross into the container.
    env: Dict[str, str] = {}
    env.update(getattr(job, "env", {}) or {})
    env.update(data.get("env") or {})
    for key, value in env.items():
        cmd.extend(["-e", f"{key}={value}"])

    if data.get("user"):
        cmd.extend(["--user", data["user"]])

    cmd.append(data["image"])
    argv: Optional[List[str]] = data.get("argv")
    if argv is not None:
        cmd.extend(argv)
    else:
        cmd.extend(["sh", "-c", step.run])
    return cmd


def run_step(job: Job, step: Step, repo_root: Path) -> None:
    """Run a docker or docker-build step."""
    check_docker_available()

    data = step.data or {}
    if step.kind == "docker-build":
        cmd = build_command(data)
    else:
        cmd = run_command(data, job, step, repo_root)

    try:
        proc = subprocess.run(
            cmd,
            shell=False,
            cwd=str(repo_root),
            env=os.environ.copy(),
            text=True,
            capture_output=True,
            timeout=step.timeout,
        )
    except subprocess.TimeoutExpired:
        raise StepFailure(job=job.name, step=step.name, cmd=" ".join(cmd), exit_code=124,
                          output=f"timed out after {step.timeout}s")

    if proc.returncode != 0:
        raise StepFailure(
            job=job.name,
            step=step.name,
            cmd=" ".join(cmd),
            exit_code=proc.returncode,
            output=((proc.stdout or "") + (proc.stderr or ""))[-4000:],
        )
