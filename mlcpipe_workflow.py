# mlcpipe_workflow.py
# MLC-LLM pipeline: lint -> image -> image tests -> wheels -> production image / release
from __future__ import annotations

import os
import shlex

from mlcpipe import settings
from mlcpipe.dsl import wf, job, sh, matrix
from mlcpipe.gating import (
    all_of,
    needs_succeeded,
    on_primary_or_version_tag,
    on_version_tag,
    succeeded,
    succeeded_or_forced,
)
from mlcpipe.step_workflows.docker import docker_build_step, docker_step
from mlcpipe.step_workflows.lint import lint_step
from mlcpipe.tags import image_tags, production_tags, wheel_artifact_name
from mlcpipe.trigger import Trigger

IMAGE = f"{settings.REGISTRY}/{settings.IMAGE_NAME}"
SOURCE = os.environ.get(settings.SOURCE_DIR_ENV, "mlc-llm")
ARTIFACTS = ".mlcpipe/artifacts"
PUSH = os.environ.get("MLCPIPE_PUSH", "").lower() in ("1", "true", "yes")

WHEEL_TARGETS = [
    {"platform": "linux", "arch": "x64"},
    {"platform": "windows", "arch": "x64"},
]


def workflow(trigger: Trigger):
    dev_tags = image_tags(trigger, IMAGE) or [f"{IMAGE}:local"]
    test_image = dev_tags[0]

    return wf(
        job(
            "lint-and-format",
            lint_step("black", tool="black", args="--check", files=["python/"], only_if_exists="python"),
            lint_step("flake8", tool="flake8", args="--select=E9,F63,F7,F82", files=["python/"], only_if_exists="python"),
            lint_step("isort", tool="isort", args="--check-only", files=["python/"], only_if_exists="python"),
        ),

        job(
            "build-docker-image",
            docker_build_step(
                "Build development image",
                target="development",
                tags=dev_tags,
                push=PUSH,
                build_args={"BUILDKIT_INLINE_CACHE": "1"},
            ),
            needs=["lint-and-format"],
            gate=succeeded_or_forced("lint-and-format"),
        ),

        matrix("test-type", ["basic", "import"]).jobs(
            lambda kind: job(
                "test-docker-image",
                docker_step(
                    f"Test image ({kind})",
                    ["help"] if kind == "basic" else ["/bin/bash", "-c", "python --version"],
                    image=test_image,
                    mount_repo=False,
                    timeout=settings.SMOKE_TIMEOUT,
                ),
                needs=["build-docker-image"],
            )
        ),

        matrix("target", WHEEL_TARGETS).jobs(
            lambda t: job(
                "build-wheels",
                sh("Install build tooling", "python -m pip install --upgrade pip build wheel setuptools"),
                sh(
                    "Build wheel",
                    "python -m build --wheel --outdir "
                    + shlex.quote(f"{ARTIFACTS}/{wheel_artifact_name(t['platform'], t['arch'])}")
                    + " "
                    + shlex.quote(f"{SOURCE}/python"),
                ),
                needs=["lint-and-format", "test-docker-image"],
                gate=succeeded_or_forced("lint-and-format", "test-docker-image"),
                runs_on=t["platform"],
            )
        ),

        job(
            "build-production-image",
            docker_build_step(
                "Build production image",
                target="production",
                tags=production_tags(trigger, IMAGE) or [f"{IMAGE}:prod-local"],
                push=PUSH,
            ),
            needs=["build-wheels", "test-docker-image"],
            gate=all_of(needs_succeeded, on_primary_or_version_tag),
        ),

        job(
            "create-release",
            sh(
                "Prepare release assets",
                f"mkdir -p release-assets && find {ARTIFACTS} -name '*.whl' -exec cp {{}} release-assets/ \\; ; ls -la release-assets/",
            ),
            sh(
                "Create release",
                f"gh release create {shlex.quote(trigger.tag or '')} release-assets/* --generate-notes"
                + (" --prerelease" if trigger.is_prerelease else ""),
            ),
            needs=["build-wheels", "build-docker-image"],
            gate=all_of(on_version_tag, succeeded("build-wheels", "build-docker-image")),
            requires=["gh"],
        ),
    )
