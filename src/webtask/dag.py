# dag.py
from __future__ import annotations

from collections import deque
from typing import Dict, Iterable, List, Set

from .model import Task


class GraphError(ValueError):
    """Invalid task graph: duplicate, missing or cyclic dependencies."""


class TaskGraph:
    """
    Validated, immutable task dependency graph.

    Built once at startup by `build_graph`; runners take the graph and a
    root task name instead of consulting a global registry.
    """

    def __init__(self, tasks: Dict[str, Task], adj: Dict[str, Set[str]]):
        self._tasks = dict(tasks)
        self._adj = {k: frozenset(v) for k, v in adj.items()}  # need -> dependents

    def __contains__(self, name: str) -> bool:
        return name in self._tasks

    def __iter__(self):
        return iter(self._tasks)

    def task(self, name: str) -> Task:
        try:
            return self._tasks[name]
        except KeyError:
            raise GraphError(
                f"Unknown task '{name}'. Known tasks: {sorted(self._tasks)}"
            ) from None

    @property
    def names(self) -> List[str]:
        return list(self._tasks)

    def closure(self, name: str) -> Set[str]:
        """`name` plus every task it transitively needs."""
        seen: Set[str] = set()
        stack = [self.task(name).name]
        while stack:
            node = stack.pop()
            if node in seen:
                continue
            seen.add(node)
            stack.extend(self._tasks[node].needs)
        return seen

    def levels(self, name: str) -> List[List[str]]:
        """
        Topological levels of the closure of `name`.
        Each level only needs tasks from earlier levels, so a level can run in parallel.
        """
        nodes = self.closure(name)
        adj = {n: {c for c in self._adj[n] if c in nodes} for n in nodes}
        indeg = {n: sum(1 for d in self._tasks[n].needs if d in nodes) for n in nodes}
        return topo_levels(adj, indeg)


def build_graph(tasks: Iterable[Task]) -> TaskGraph:
    """
    Build and validate a DAG from Task objects.

    Requires:
      - task.name: str (unique)
      - task.needs: names of tasks that must run BEFORE this task
    """
    tasks = list(tasks)
    names = [t.name for t in tasks]
    if len(set(names)) != len(names):
        dupes = sorted({n for n in names if names.count(n) > 1})
        raise GraphError(f"Duplicate task names found: {dupes}")

    by_name = {t.name: t for t in tasks}
    adj: Dict[str, Set[str]] = {n: set() for n in by_name}
    indeg: Dict[str, int] = {n: 0 for n in by_name}

    for task in tasks:
        for need in task.needs:
            if need not in by_name:
                raise GraphError(
                    f"Task '{task.name}' needs missing task '{need}'. "
                    f"Known tasks: {sorted(by_name)}"
                )
            # Edge need -> task.name (need must run before task)
            if task.name not in adj[need]:
                adj[need].add(task.name)
                indeg[task.name] += 1

    # Fail fast on cycles before anything runs.
    topo_levels(adj, indeg)
    return TaskGraph(by_name, adj)


def topo_levels(adj: Dict[str, Set[str]], indeg: Dict[str, int]) -> List[List[str]]:
    """
    Convert DAG into topological "levels" (stages).
    Each stage can run in parallel.
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
        raise GraphError(f"Task graph has a cycle. Stuck tasks: {remaining}")

    return levels
