# tags.py
"""Container image tags and artifact names for a pipeline run."""
from __future__ import annotations

import re
from typing import List, NamedTuple, Optional

from .trigger import Trigger

_SEMVER = re.compile(
    r"^v?(?P<major>0|[1-9]\d*)\.(?P<minor>0|[1-9]\d*)\.(?P<patch>0|[1-9]\d*)"
    r"(?:-(?P<pre>[0-9A-Za-z.-]+))?(?:\+(?P<build>[0-9A-Za-z.-]+))?$"
)
_UNSAFE = re.compile(r"[^A-Za-z0-9_.-]")


class SemVer(NamedTuple):
    major: int
    minor: int
    patch: int
    pre: Optional[str] = None

    @property
    def version(self) -> str:
        base = f"{self.major}.{self.minor}.{self.patch}"
        return f"{base}-{self.pre}" if self.pre else base


def parse_semver(tag: str) -> Optional[SemVer]:
    m = _SEMVER.match(tag or "")
    if not m:
        return None
    return SemVer(int(m["major"]), int(m["minor"]), int(m["patch"]), m["pre"])


def sanitize(ref_name: str) -> str:
    """Make a ref name usable as a docker tag (no slashes, max 128 chars)."""
    return _UNSAFE.sub("-", ref_name)[:128]


def _uniq(tags: List[str]) -> List[str]:
    seen = set()
    out = []
    for t in tags:
        if t not in seen:
            seen.add(t)
            out.append(t)
    return out


def image_tags(trigger: Trigger, image: str) -> List[str]:
    """
    Tags for the development image:
      branch name, pr-<n>, semver (X.Y.Z, X.Y, X), <branch>-<sha> on the
      default branch, commit-<sha> on tags, and `latest` on the default branch.
    """
    names: List[str] = []

    if trigger.branch:
        names.append(sanitize(trigger.branch))
    if trigger.pull_request is not None:
        names.append(f"pr-{trigger.pull_request}")

    ver = parse_semver(trigger.tag) if trigger.tag else None
    if ver:
        names.append(ver.version)
        if not ver.pre:
            names.append(f"{ver.major}.{ver.minor}")
            names.append(str(ver.major))

    if trigger.short_sha:
        if trigger.is_primary_branch:
            names.append(f"{sanitize(trigger.branch)}-{trigger.short_sha}")
        if trigger.tag:
            names.append(f"commit-{trigger.short_sha}")

    if trigger.is_primary_branch:
        names.append("latest")

    if not names and trigger.short_sha:
        names.append(f"sha-{trigger.short_sha}")

    return [f"{image}:{n}" for n in _uniq(names)]


def production_tags(trigger: Trigger, image: str) -> List[str]:
    """Tags for the production image: <branch>-prod, <version>-prod, and `prod` on the default branch."""
    names: List[str] = []
    if trigger.branch:
        names.append(f"{sanitize(trigger.branch)}-prod")
    ver = parse_semver(trigger.tag) if trigger.tag else None
    if ver:
        names.append(f"{ver.version}-prod")
    if trigger.is_primary_branch:
        names.append("prod")
    return [f"{image}:{n}" for n in _uniq(names)]


def wheel_artifact_name(platform: str, arch: str) -> str:
    return f"wheels-{platform}-{arch}"
