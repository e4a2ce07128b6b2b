# model.py
from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import PurePosixPath
from typing import Callable, Optional, Tuple


@dataclass(frozen=True)
class Task:
    """
    A named unit of build work.

    `needs` lists the tasks that must complete before `action` runs.
    A task without an action is an aggregation node: running it only
    forces its needs to complete.
    """
    name: str
    needs: Tuple[str, ...] = ()
    action: Optional[Callable[[], None]] = field(default=None, compare=False)
    description: str = ""


@dataclass(frozen=True)
class Asset:
    """A file flowing through transform stages, addressed relative to its base."""
    path: PurePosixPath
    content: bytes

    @classmethod
    def of(cls, path: str, content: bytes | str) -> Asset:
        if isinstance(content, str):
            content = content.encode("utf-8")
        return cls(path=PurePosixPath(path), content=content)

    @property
    def text(self) -> str:
        return self.content.decode("utf-8")

    def with_content(self, content: bytes | str) -> Asset:
        if isinstance(content, str):
            content = content.encode("utf-8")
        return replace(self, content=content)

    def with_path(self, path: str | PurePosixPath) -> Asset:
        return replace(self, path=PurePosixPath(path))


@dataclass(frozen=True)
class ProxyRoute:
    """A path prefix forwarded to `target` (proxy root + prefix)."""
    prefix: str
    target: str

    def matches(self, path: str) -> bool:
        return path == self.prefix or path.startswith(self.prefix.rstrip("/") + "/")


@dataclass(frozen=True)
class WatchBinding:
    """
    Glob patterns and the reaction to a change under them.

    `task` set: re-run that task. `task` None: notify reload clients.
    """
    patterns: Tuple[str, ...]
    task: Optional[str] = None

    @property
    def notifies(self) -> bool:
        return self.task is None
