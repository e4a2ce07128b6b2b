# watch.py
#
# Polling file watcher. Each binding's patterns are expanded on every
# check and compared by (mtime, size) against the previous snapshot.

from __future__ import annotations

import time
from pathlib import Path
from typing import Callable, Dict, List, Sequence, Tuple

from .model import WatchBinding
from .stages.base import expand
from .ui.console import get_console

Snapshot = Dict[str, Tuple[int, int]]


def snapshot(root: Path, patterns: Sequence[str]) -> Snapshot:
    snap: Snapshot = {}
    for pattern in patterns:
        for p in expand(root, pattern):
            try:
                st = p.stat()
            except FileNotFoundError:
                continue
            snap[p.relative_to(root).as_posix()] = (st.st_mtime_ns, st.st_size)
    return snap


def changed_paths(prev: Snapshot, cur: Snapshot) -> List[str]:
    """Added, modified and removed paths, sorted."""
    keys = set(prev) | set(cur)
    return sorted(k for k in keys if prev.get(k) != cur.get(k))


class Watcher:
    """
    Dispatch file changes to watch bindings.

    `on_task(name)` re-runs a task; `on_change(path)` notifies reload
    clients. A failing task is reported and the watcher keeps going.
    """

    def __init__(
        self,
        bindings: Sequence[WatchBinding],
        root: Path,
        on_task: Callable[[str], object],
        on_change: Callable[[str], None],
    ):
        self.bindings = list(bindings)
        self.root = Path(root)
        self.on_task = on_task
        self.on_change = on_change
        self._snapshots: List[Snapshot] = [snapshot(self.root, b.patterns) for b in self.bindings]

    @property
    def patterns(self) -> List[str]:
        return [p for b in self.bindings for p in b.patterns]

    def check(self) -> List[str]:
        """One polling round; returns every changed path seen."""
        seen: List[str] = []
        for i, binding in enumerate(self.bindings):
            cur = snapshot(self.root, binding.patterns)
            changed = changed_paths(self._snapshots[i], cur)
            self._snapshots[i] = cur
            if not changed:
                continue
            seen.extend(changed)

            if binding.notifies:
                for path in changed:
                    get_console().print_changed(path)
                    self.on_change(path)
            else:
                self._run(binding.task)
        return seen

    def _run(self, task: str) -> None:
        console = get_console()
        try:
            self.on_task(task)
        except Exception as e:
            cause = getattr(e, "cause", e)
            console.print_failure(task, str(cause), hint=getattr(cause, "hint", None))
            console.print_debug(f"{task} failed while watching: {e!r}")

    def run_forever(self, interval: float = 0.3) -> None:
        get_console().print_watching(self.patterns)
        while True:
            time.sleep(interval)
            self.check()
