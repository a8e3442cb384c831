import pytest
from pydantic import ValidationError

from mlcpipe.tags import image_tags, parse_semver, production_tags, sanitize, wheel_artifact_name
from mlcpipe.trigger import Trigger

IMAGE = "ghcr.io/acme/mlc-llm"
SHA = "0123456789abcdef0123456789abcdef01234567"


def test_ref_classification(make_trigger):
    t = make_trigger("refs/heads/feature/x")
    assert t.branch == "feature/x"
    assert t.tag is None
    assert t.pull_request is None
    assert not t.is_primary_branch

    pr = make_trigger("refs/pull/42/merge")
    assert pr.pull_request == 42
    assert pr.branch is None

    tag = make_trigger("refs/tags/v1.2.0-rc1")
    assert tag.tag == "v1.2.0-rc1"
    assert tag.is_version_tag
    assert tag.is_prerelease


def test_blank_ref_rejected():
    with pytest.raises(ValidationError):
        Trigger(ref="   ")


def test_from_env_reads_runner_variables():
    env = {
        "GITHUB_REF": "refs/tags/v0.3.0",
        "GITHUB_EVENT_NAME": "push",
        "GITHUB_SHA": SHA,
        "MLCPIPE_FORCE_BUILD": "Yes",
    }
    t = Trigger.from_env(env)
    assert t.ref == "refs/tags/v0.3.0"
    assert t.sha == SHA
    assert t.short_sha == "0123456"
    assert t.force_build is True


def test_from_env_overrides_win_and_none_is_ignored():
    env = {"GITHUB_REF": "refs/heads/main", "MLCPIPE_FORCE_BUILD": "0"}
    t = Trigger.from_env(env, ref="refs/heads/develop", event=None, force_build=True)
    assert t.ref == "refs/heads/develop"
    assert t.event == "push"
    assert t.force_build is True


def test_from_env_falls_back_to_git(monkeypatch):
    import mlcpipe.trigger as trigger_mod

    monkeypatch.setattr(trigger_mod, "get_current_ref", lambda: "refs/heads/local-work")
    monkeypatch.setattr(trigger_mod, "head_sha", lambda: SHA)
    t = Trigger.from_env({})
    assert t.branch == "local-work"
    assert t.sha == SHA


def test_from_env_outside_a_checkout(monkeypatch):
    import mlcpipe.trigger as trigger_mod

    def boom():
        raise FileNotFoundError("git")

    monkeypatch.setattr(trigger_mod, "get_current_ref", boom)
    t = Trigger.from_env({"MLCPIPE_DEFAULT_BRANCH": "trunk"})
    assert t.ref == "refs/heads/trunk"
    assert t.is_primary_branch


# -------------------------------------------------------------------------
# Tags
# -------------------------------------------------------------------------

@pytest.mark.parametrize(
    "tag, expected",
    [
        ("v1.2.3", (1, 2, 3, None)),
        ("1.2.3", (1, 2, 3, None)),
        ("v2.0.0-beta.1", (2, 0, 0, "beta.1")),
        ("v1.2", None),
        ("release", None),
    ],
)
def test_parse_semver(tag, expected):
    ver = parse_semver(tag)
    assert (tuple(ver) if ver else None) == expected


def test_sanitize_replaces_slashes():
    assert sanitize("feature/new thing") == "feature-new-thing"


def test_image_tags_on_primary_branch(make_trigger):
    t = make_trigger("refs/heads/main", sha=SHA)
    assert image_tags(t, IMAGE) == [
        f"{IMAGE}:main",
        f"{IMAGE}:main-0123456",
        f"{IMAGE}:latest",
    ]


def test_image_tags_on_release_tag(make_trigger):
    t = make_trigger("refs/tags/v1.4.2", sha=SHA)
    assert image_tags(t, IMAGE) == [
        f"{IMAGE}:1.4.2",
        f"{IMAGE}:1.4",
        f"{IMAGE}:1",
        f"{IMAGE}:commit-0123456",
    ]


def test_image_tags_prerelease_has_no_short_versions(make_trigger):
    t = make_trigger("refs/tags/v1.4.2-rc1")
    assert image_tags(t, IMAGE) == [f"{IMAGE}:1.4.2-rc1"]


def test_image_tags_pull_request(make_trigger):
    t = make_trigger("refs/pull/7/merge", sha=SHA)
    assert image_tags(t, IMAGE) == [f"{IMAGE}:pr-7"]


def test_image_tags_feature_branch(make_trigger):
    assert image_tags(make_trigger("refs/heads/fix/x"), IMAGE) == [f"{IMAGE}:fix-x"]


def test_production_tags(make_trigger):
    assert production_tags(make_trigger("refs/heads/main"), IMAGE) == [
        f"{IMAGE}:main-prod",
        f"{IMAGE}:prod",
    ]
    assert production_tags(make_trigger("refs/tags/v1.0.0"), IMAGE) == [f"{IMAGE}:1.0.0-prod"]


def test_wheel_artifact_name():
    assert wheel_artifact_name("windows", "x64") == "wheels-windows-x64"
