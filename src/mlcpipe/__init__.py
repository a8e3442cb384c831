from .dsl import job, sh, matrix, wf
from .gating import (
    always,
    all_of,
    any_of,
    needs_succeeded,
    on_primary_or_version_tag,
    on_version_tag,
    succeeded,
    succeeded_or_forced,
)
from .model import Job, JobResult, Step
from .runner import plan_pipeline, run_pipeline
from .trigger import Trigger

__all__ = [
    "job", "sh", "matrix", "wf",
    "always", "all_of", "any_of", "needs_succeeded", "on_primary_or_version_tag",
    "on_version_tag", "succeeded", "succeeded_or_forced",
    "Job", "JobResult", "Step", "Trigger", "plan_pipeline", "run_pipeline",
]
