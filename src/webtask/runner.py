# runner.py
from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Dict

from .dag import TaskGraph
from .model import Task
from .ui.console import get_console


# ----------------------------------------------------------------------
# Errors
# ----------------------------------------------------------------------

@dataclass
class TaskFailure(Exception):
    """A task action raised; `cause` is the original exception."""
    task: str
    cause: BaseException

    def __str__(self) -> str:
        return f"[{self.task}] {self.cause}"


# ----------------------------------------------------------------------
# Execution primitives
# ----------------------------------------------------------------------

def _run_one(task: Task) -> float:
    console = get_console()
    console.print_task_start(task.name)
    started = time.monotonic()
    if task.action is not None:
        task.action()
    elapsed = time.monotonic() - started
    console.print_task_done(task.name, elapsed)
    return elapsed


# ----------------------------------------------------------------------
# Public API
# ----------------------------------------------------------------------

def run_task(
    graph: TaskGraph,
    name: str,
    max_workers: int | None = None,
) -> Dict[str, str]:
    """
    Run `name` after every task it transitively needs.

    - Each task of the closure runs exactly once per call.
    - Tasks of one topological level run in parallel.
    - On first failure, no further level is scheduled; the running level
      drains and TaskFailure is raised.
    """
    levels = graph.levels(name)
    results: Dict[str, str] = {}
    failure: TaskFailure | None = None

    for level in levels:
        if len(level) == 1:
            task_name = level[0]
            try:
                _run_one(graph.task(task_name))
            except TaskFailure:
                # nested run (e.g. default -> build) already names the task
                raise
            except Exception as e:
                raise TaskFailure(task=task_name, cause=e) from e
            results[task_name] = "ok"
            continue

        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            futures = {pool.submit(_run_one, graph.task(n)): n for n in level}

            for future in as_completed(futures):
                task_name = futures[future]
                try:
                    future.result()
                    results[task_name] = "ok"
                except Exception as e:
                    results[task_name] = "failed"
                    if failure is None:
                        failure = e if isinstance(e, TaskFailure) else TaskFailure(task=task_name, cause=e)

        if failure is not None:
            raise failure

    return results
