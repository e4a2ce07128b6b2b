# stages/base.py
from __future__ import annotations

import functools
import os
import re
import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Callable, Iterable, List, Sequence

from ..model import Asset
from ..ui.console import get_console


# A transform stage maps input assets to output assets.
Stage = Callable[[List[Asset]], List[Asset]]


TOOL_HINTS = {
    "stylus": "Install Stylus and nib (e.g., npm install -g stylus nib).",
    "jshint": "Install JSHint (e.g., npm install -g jshint).",
    "node": "Install Node.js or fix PATH.",
}


@dataclass
class TransformError(Exception):
    """
    A stage could not produce its output.

    `details` carries tool output (file/line context) when available.
    """
    stage: str
    message: str
    details: str = ""
    kind: str = "transform_failed"
    hint: str | None = field(default=None)

    def __str__(self) -> str:
        lines = [f"{self.stage}: {self.message}"]
        if self.details:
            lines.append(self.details.rstrip())
        return "\n".join(lines)


# ---------------------------------------------------------------------
# Glob helpers
# ---------------------------------------------------------------------

_GLOB_CHARS = set("*?[{")


def _segment_to_regex(seg: str) -> str:
    out: List[str] = []
    i = 0
    while i < len(seg):
        c = seg[i]
        if c == "*":
            out.append("[^/]*")
        elif c == "?":
            out.append("[^/]")
        elif c == "[" and "]" in seg[i + 1:]:
            end = seg.index("]", i + 1)
            body = seg[i + 1:end]
            if body.startswith("!"):
                body = "^" + body[1:]
            out.append("[" + body.replace("\\", "\\\\") + "]")
            i = end
        elif c == "{" and "}" in seg[i + 1:]:
            end = seg.index("}", i + 1)
            options = seg[i + 1:end].split(",")
            out.append("(?:" + "|".join(_segment_to_regex(o) for o in options) + ")")
            i = end
        else:
            out.append(re.escape(c))
        i += 1
    return "".join(out)


@functools.lru_cache(maxsize=256)
def glob_to_regex(pattern: str) -> re.Pattern:
    """
    Translate a posix glob to a regex.

    `**` matches any number of path segments; `*` and `?` stay within one;
    `{a,b}` alternates.
    """
    parts: List[str] = []
    segments = pattern.split("/")
    for i, seg in enumerate(segments):
        last = i == len(segments) - 1
        if seg == "**":
            parts.append(".*" if last else "(?:[^/]*/)*")
            continue
        parts.append(_segment_to_regex(seg) + ("" if last else "/"))
    return re.compile("^" + "".join(parts) + "$")


def matches(path: str | PurePosixPath, pattern: str) -> bool:
    return glob_to_regex(pattern).match(str(path)) is not None


def static_prefix(pattern: str) -> str:
    """Leading path segments of `pattern` that contain no glob characters."""
    fixed: List[str] = []
    for seg in pattern.split("/")[:-1]:
        if _GLOB_CHARS & set(seg):
            break
        fixed.append(seg)
    return "/".join(fixed)


def expand(root: Path, pattern: str, dot: bool = False) -> List[Path]:
    """
    Files under `root` matching `pattern`, sorted by path.

    Dotfiles below the pattern's fixed prefix are skipped unless `dot`.
    """
    regex = glob_to_regex(pattern)
    prefix = static_prefix(pattern)
    start = root / prefix if prefix else root
    if not start.is_dir():
        return []

    out: List[Path] = []
    for dirpath, dirnames, filenames in os.walk(start):
        if not dot:
            dirnames[:] = [d for d in dirnames if not d.startswith(".")]
        dirnames.sort()
        for name in filenames:
            if not dot and name.startswith("."):
                continue
            p = Path(dirpath) / name
            if regex.match(p.relative_to(root).as_posix()):
                out.append(p)
    return sorted(out)


# ---------------------------------------------------------------------
# Sources / destinations
# ---------------------------------------------------------------------

def read_assets(
    base: Path,
    patterns: Sequence[str],
    *,
    root: Path | None = None,
    dot: bool = False,
) -> List[Asset]:
    """
    Read files matching `patterns` (relative to `root`, default `base`).

    Asset paths are relative to `base`. A pattern starting with `!`
    excludes matches.
    """
    root = root or base
    include = [p for p in patterns if not p.startswith("!")]
    exclude = [p[1:] for p in patterns if p.startswith("!")]

    seen: dict[Path, None] = {}
    for pattern in include:
        for p in expand(root, pattern, dot=dot):
            rel = p.relative_to(root).as_posix()
            if any(matches(rel, ex) for ex in exclude):
                continue
            seen.setdefault(p, None)

    return [Asset(path=PurePosixPath(p.relative_to(base).as_posix()), content=p.read_bytes()) for p in seen]


def write_assets(assets: Iterable[Asset], dest: Path) -> List[Path]:
    """
    Write every asset under `dest`. Callers write only after all stages succeeded.

    Nothing is written if any asset would land outside `dest`.
    """
    base = dest.resolve()
    targets = []
    for asset in assets:
        target = dest / Path(*asset.path.parts)
        if not target.resolve().is_relative_to(base):
            raise TransformError(stage="write", message=f"{asset.path} resolves outside {dest}")
        targets.append((target, asset))

    written: List[Path] = []
    for target, asset in targets:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(asset.content)
        written.append(target)
    return written


# ---------------------------------------------------------------------
# Composition
# ---------------------------------------------------------------------

def pipeline(*stages: Stage) -> Stage:
    """Compose stages left to right."""
    def run(assets: List[Asset]) -> List[Asset]:
        for stage in stages:
            assets = stage(list(assets))
        return assets
    return run


def only(pattern: str, stage: Stage) -> Stage:
    """
    Filter/restore: apply `stage` to assets matching `pattern` only.

    The matching partition is transformed on its own and recombined with
    the rest in the original relative order. If the stage changes the
    number of assets, its output takes the place of the first match.
    """
    def run(assets: List[Asset]) -> List[Asset]:
        picked = [i for i, a in enumerate(assets) if matches(a.path, pattern)]
        if not picked:
            return list(assets)
        transformed = stage([assets[i] for i in picked])

        if len(transformed) == len(picked):
            out = list(assets)
            for i, new in zip(picked, transformed):
                out[i] = new
            return out

        picked_set = set(picked)
        out = []
        for i, a in enumerate(assets):
            if i == picked[0]:
                out.extend(transformed)
            elif i not in picked_set:
                out.append(a)
        return out
    return run


def each(fn: Callable[[Asset], Asset]) -> Stage:
    """Lift a per-file transform into a stage."""
    def run(assets: List[Asset]) -> List[Asset]:
        return [fn(a) for a in assets]
    return run


def flatten() -> Stage:
    """Drop directories from asset paths."""
    return each(lambda a: a.with_path(a.path.name))


def size(title: str = "") -> Stage:
    """Report file count and total bytes; passes assets through."""
    def run(assets: List[Asset]) -> List[Asset]:
        get_console().print_size(title, len(assets), sum(len(a.content) for a in assets))
        return assets
    return run


# ---------------------------------------------------------------------
# External tools
# ---------------------------------------------------------------------

def check_tool_available(tool: str, stage: str) -> str:
    """Return the tool's executable path, raise a helpful error if missing."""
    exe = shutil.which(tool)
    if exe is None:
        hint = TOOL_HINTS.get(tool, f"Install {tool} or fix PATH.")
        raise TransformError(
            stage=stage,
            message=f"{tool} is not available",
            kind="tool_unavailable",
            hint=hint,
        )
    return exe


def run_tool(stage: str, cmd: List[str], cwd: Path | None = None) -> subprocess.CompletedProcess:
    """Run an external tool; non-zero exit raises TransformError with its output."""
    check_tool_available(cmd[0], stage)
    proc = subprocess.run(
        cmd,
        shell=False,
        cwd=str(cwd) if cwd else None,
        text=True,
        capture_output=True,
    )
    if proc.returncode != 0:
        output = "\n".join(s for s in (proc.stdout.strip(), proc.stderr.strip()) if s)
        raise TransformError(
            stage=stage,
            message=f"{cmd[0]} exited with code {proc.returncode}",
            details=output[-4000:],
        )
    return proc
