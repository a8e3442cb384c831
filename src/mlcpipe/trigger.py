# trigger.py
from __future__ import annotations

import os
import re
import subprocess
from typing import Mapping, Optional

from pydantic import BaseModel, Field, field_validator

from . import settings
from .git_facts.git import get_current_ref, head_sha

_TRUE = {"1", "true", "yes", "on"}
_PRERELEASE_MARKERS = ("alpha", "beta", "rc")
_PR_REF = re.compile(r"^refs/pull/(\d+)/(merge|head)$")


class Trigger(BaseModel):
    """The event that started a pipeline run: which ref, which event, overrides."""

    ref: str
    event: str = "push"
    sha: Optional[str] = None
    default_branch: str = Field(default_factory=lambda: settings.DEFAULT_BRANCH)
    force_build: bool = False

    @field_validator("ref")
    @classmethod
    def _ref_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("ref must not be empty")
        return v

    # ---- ref classification ----

    @property
    def branch(self) -> Optional[str]:
        if self.ref.startswith("refs/heads/"):
            return self.ref[len("refs/heads/"):]
        return None

    @property
    def tag(self) -> Optional[str]:
        if self.ref.startswith("refs/tags/"):
            return self.ref[len("refs/tags/"):]
        return None

    @property
    def pull_request(self) -> Optional[int]:
        m = _PR_REF.match(self.ref)
        return int(m.group(1)) if m else None

    @property
    def is_primary_branch(self) -> bool:
        return self.ref == f"refs/heads/{self.default_branch}"

    @property
    def is_version_tag(self) -> bool:
        # exact prefix match, as the runner's startsWith()
        return self.ref.startswith("refs/tags/v")

    @property
    def is_prerelease(self) -> bool:
        return any(marker in self.ref for marker in _PRERELEASE_MARKERS)

    @property
    def short_sha(self) -> Optional[str]:
        return self.sha[:7] if self.sha else None

    # ---- construction ----

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> "Trigger":
        """
        Build a Trigger from the runner environment.

        Reads GITHUB_REF, GITHUB_EVENT_NAME, GITHUB_SHA and MLCPIPE_FORCE_BUILD.
        Outside a runner, falls back to the local git checkout.
        """
        env = os.environ if environ is None else environ
        overrides = {k: v for k, v in overrides.items() if v is not None}
        data: dict = {
            "ref": env.get("GITHUB_REF", ""),
            "event": env.get("GITHUB_EVENT_NAME", "push"),
            "sha": env.get("GITHUB_SHA") or None,
            "force_build": env.get("MLCPIPE_FORCE_BUILD", "").strip().lower() in _TRUE,
        }
        if env.get("MLCPIPE_DEFAULT_BRANCH"):
            data["default_branch"] = env["MLCPIPE_DEFAULT_BRANCH"]

        if not data["ref"] and "ref" not in overrides:
            try:
                data["ref"] = get_current_ref()
                data["sha"] = data["sha"] or head_sha()
            except (subprocess.CalledProcessError, FileNotFoundError):
                data["ref"] = f"refs/heads/{data.get('default_branch', settings.DEFAULT_BRANCH)}"

        data.update(overrides)
        return cls(**data)
