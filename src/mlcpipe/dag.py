# dag.py
from __future__ import annotations

from collections import deque
from typing import Dict, List, Set, Tuple

from .model import Job


def group_members(jobs: List[Job]) -> Dict[str, List[str]]:
    """Matrix group name -> member job names (declaration order)."""
    groups: Dict[str, List[str]] = {}
    for job in jobs:
        if job.group:
            groups.setdefault(job.group, []).append(job.name)
    return groups


def resolve_needs(job: Job, name_set: Set[str], groups: Dict[str, List[str]]) -> List[str]:
    """Expand job.needs into concrete job names (groups expand to all members)."""
    out: List[str] = []
    for need in job.needs:
        if need in name_set:
            out.append(need)
        elif need in groups:
            out.extend(groups[need])
        else:
            raise ValueError(
                f"Job '{job.name}' needs missing job '{need}'. "
                f"Known jobs: {sorted(name_set | set(groups))}"
            )
    return out


def build_dag(jobs: List[Job]) -> Tuple[Dict[str, Set[str]], Dict[str, int]]:
    """
    Build a DAG from Job objects.

    Requires:
      - job.name: str (unique, and distinct from every matrix group name
        other than its own)
      - job.needs: names of jobs or matrix groups that must finish BEFORE this job
    """
    names = [j.name for j in jobs]
    if len(set(names)) != len(names):
        dupes = sorted({n for n in names if names.count(n) > 1})
        raise ValueError(f"Duplicate job names found: {dupes}")

    name_set = set(names)
    groups = group_members(jobs)
    clash = sorted(g for g in groups if g in name_set and groups[g] != [g])
    if clash:
        raise ValueError(f"Matrix group names collide with job names: {clash}")

    adj: Dict[str, Set[str]] = {n: set() for n in name_set}
    indeg: Dict[str, int] = {n: 0 for n in name_set}

    for job in jobs:
        for dep in resolve_needs(job, name_set, groups):
            # Edge dep -> job.name (dep must finish before job)
            if job.name not in adj[dep]:
                adj[dep].add(job.name)
                indeg[job.name] += 1

    return adj, indeg


def topo_levels(adj: Dict[str, Set[str]], indeg: Dict[str, int]) -> List[List[str]]:
    """
    Convert DAG into topological "levels" (stages).
    Jobs in one level never depend on each other.
    """
    indeg = dict(indeg)  # copy (we mutate it)
    q = deque(sorted([n for n, d in indeg.items() if d == 0]))

    levels: List[List[str]] = []
    processed = 0

    while q:
        level_size = len(q)
        level: List[str] = []

        for _ in range(level_size):
            node = q.popleft()
            level.append(node)
            processed += 1

            for child in sorted(adj.get(node, set())):
                indeg[child] -= 1
                if indeg[child] == 0:
                    q.append(child)

        levels.append(level)

    if processed != len(indeg):
        remaining = sorted([n for n, d in indeg.items() if d > 0])
        raise ValueError(f"DAG has a cycle (or unresolved needs). Stuck nodes: {remaining}")

    return levels
