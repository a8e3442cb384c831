"""Tests for gating predicates and matrix result aggregation."""

import pytest

from mlcpipe.gating import (
    aggregate,
    all_of,
    always,
    any_of,
    describe,
    needs_succeeded,
    on_primary_or_version_tag,
    on_version_tag,
    succeeded,
    succeeded_or_forced,
)
from mlcpipe.model import JobResult

S, F, K, C = JobResult.SUCCESS, JobResult.FAILURE, JobResult.SKIPPED, JobResult.CANCELLED


# -------------------------------------------------------------------------
# Two-predecessor gate with override
# -------------------------------------------------------------------------

@pytest.mark.parametrize(
    "a, b, force, expected",
    [
        (S, S, False, True),
        (S, F, False, False),
        (F, S, False, False),
        (S, K, False, False),
        (K, K, False, False),
        (C, S, False, False),
        (F, F, True, True),
        (S, K, True, True),
    ],
)
def test_succeeded_or_forced_two_predecessors(make_trigger, a, b, force, expected):
    gate = succeeded_or_forced("lint", "test")
    trigger = make_trigger(force_build=force)
    assert gate({"lint": a, "test": b}, trigger) is expected


def test_missing_predecessor_is_not_success(make_trigger):
    gate = succeeded("lint")
    assert gate({}, make_trigger()) is False


def test_default_gate_requires_every_need(make_trigger):
    assert needs_succeeded({"a": S, "b": S}, make_trigger())
    assert not needs_succeeded({"a": S, "b": K}, make_trigger())
    assert needs_succeeded({}, make_trigger())


def test_always_ignores_results(make_trigger):
    assert always({"a": F}, make_trigger())


# -------------------------------------------------------------------------
# Ref predicates
# -------------------------------------------------------------------------

@pytest.mark.parametrize(
    "ref, expected",
    [
        ("refs/heads/main", True),
        ("refs/heads/develop", False),
        ("refs/tags/v1.2.3", True),
        ("refs/tags/1.2.3", False),
        ("refs/tags/release-v1", False),
        ("refs/heads/v1.2.3", False),
        ("refs/pull/12/merge", False),
    ],
)
def test_on_primary_or_version_tag(make_trigger, ref, expected):
    assert on_primary_or_version_tag({}, make_trigger(ref)) is expected


def test_on_version_tag_is_exact_prefix(make_trigger):
    assert on_version_tag({}, make_trigger("refs/tags/v0.1.0"))
    assert not on_version_tag({}, make_trigger("refs/tags/V0.1.0"))
    assert not on_version_tag({}, make_trigger("refs/heads/main"))


def test_release_gate_needs_tag_and_both_upstreams(make_trigger):
    gate = all_of(on_version_tag, succeeded("build-wheels", "build-docker-image"))
    tag = make_trigger("refs/tags/v1.0.0")
    branch = make_trigger("refs/heads/main")

    assert gate({"build-wheels": S, "build-docker-image": S}, tag)
    assert not gate({"build-wheels": S, "build-docker-image": F}, tag)
    assert not gate({"build-wheels": S, "build-docker-image": S}, branch)


def test_force_flag_does_not_open_ref_gates(make_trigger):
    trigger = make_trigger("refs/heads/feature", force_build=True)
    assert not on_primary_or_version_tag({}, trigger)


def test_any_of(make_trigger):
    gate = any_of(on_version_tag, succeeded("a"))
    assert gate({"a": S}, make_trigger("refs/heads/x"))
    assert not gate({"a": F}, make_trigger("refs/heads/x"))


def test_describe_names_gates():
    assert describe(None) == "needs_succeeded"
    assert describe(succeeded_or_forced("lint")) == "succeeded_or_forced(lint)"
    assert "on_version_tag" in describe(all_of(on_version_tag, needs_succeeded))


# -------------------------------------------------------------------------
# Aggregation
# -------------------------------------------------------------------------

@pytest.mark.parametrize(
    "results, expected",
    [
        ([S, S], S),
        ([S, K], S),
        ([K, S, K], S),
        ([S, F], F),
        ([C, F], F),
        ([S, C], C),
        ([K, K], K),
    ],
)
def test_aggregate(results, expected):
    assert aggregate(results) == expected
