# gating.py
"""
Gating predicates: decide whether a job runs.

A gate is called as ``gate(needs, trigger)`` where ``needs`` maps every
declared predecessor (job or matrix group) to its result and ``trigger`` is
the :class:`~mlcpipe.trigger.Trigger` of the run. Gates are evaluated only
after every predecessor has finished, so a gate that ignores ``needs`` runs
regardless of upstream outcome.
"""
from __future__ import annotations

from typing import Callable, Dict, Iterable, List

from .model import JobResult
from .trigger import Trigger

Gate = Callable[[Dict[str, str], Trigger], bool]


def needs_succeeded(needs: Dict[str, str], trigger: Trigger) -> bool:
    """Default gate: every predecessor reported success."""
    return all(r == JobResult.SUCCESS for r in needs.values())


def always(needs: Dict[str, str], trigger: Trigger) -> bool:
    return True


def succeeded(*names: str) -> Gate:
    """All named predecessors succeeded. Skipped or cancelled count as non-success."""
    def gate(needs: Dict[str, str], trigger: Trigger) -> bool:
        return all(needs.get(n) == JobResult.SUCCESS for n in names)
    gate.__name__ = f"succeeded({', '.join(names)})"
    return gate


def succeeded_or_forced(*names: str) -> Gate:
    """All named predecessors succeeded, or the manual force-build override is set."""
    inner = succeeded(*names)

    def gate(needs: Dict[str, str], trigger: Trigger) -> bool:
        return trigger.force_build or inner(needs, trigger)
    gate.__name__ = f"succeeded_or_forced({', '.join(names)})"
    return gate


def on_primary_or_version_tag(needs: Dict[str, str], trigger: Trigger) -> bool:
    return trigger.is_primary_branch or trigger.is_version_tag


def on_version_tag(needs: Dict[str, str], trigger: Trigger) -> bool:
    return trigger.is_version_tag


def all_of(*gates: Gate) -> Gate:
    def gate(needs: Dict[str, str], trigger: Trigger) -> bool:
        return all(g(needs, trigger) for g in gates)
    gate.__name__ = "all_of(" + ", ".join(describe(g) for g in gates) + ")"
    return gate


def any_of(*gates: Gate) -> Gate:
    def gate(needs: Dict[str, str], trigger: Trigger) -> bool:
        return any(g(needs, trigger) for g in gates)
    gate.__name__ = "any_of(" + ", ".join(describe(g) for g in gates) + ")"
    return gate


def describe(gate: Gate | None) -> str:
    if gate is None:
        return needs_succeeded.__name__
    return getattr(gate, "__name__", repr(gate))


def aggregate(results: Iterable[str]) -> str:
    """
    Collapse matrix member results into one group result.

    failure > cancelled > success > skipped: any failed member fails the
    group; with no failure or cancellation, one success outweighs any number of
    skipped members, whatever the reason they were skipped.
    """
    results: List[str] = list(results)
    if JobResult.FAILURE in results:
        return JobResult.FAILURE
    if JobResult.CANCELLED in results:
        return JobResult.CANCELLED
    if JobResult.SUCCESS in results:
        return JobResult.SUCCESS
    return JobResult.SKIPPED
