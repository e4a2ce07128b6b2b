# stages/html.py
#
# HTML stages: conditional preprocessing and build-block consolidation.
#
# A build block groups script or style references into one output file:
#
#   <!-- build:js scripts/main.js -->
#   <script src="scripts/a.js"></script>
#   <script src="scripts/b.js"></script>
#   <!-- endbuild -->
#
# `useref_assets` emits one bundle per block (concatenated, unminified)
# next to the HTML; `useref` rewrites the HTML to reference the bundles.
# Minifiers run in between, routed by type with `only(...)`.

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Dict, List, Mapping, Optional, Sequence

from ..model import Asset
from .base import Stage, TransformError


# ---------------------------------------------------------------------
# Preprocess
# ---------------------------------------------------------------------

_DIRECTIVE = re.compile(r"<!--\s*@(if|ifdef|ifndef|endif|echo)\b\s*(.*?)\s*-->", re.S)
_COMPARISON = re.compile(r"^(\w+)\s*(==|!=|=)\s*(['\"]?)(.*?)\3$")


def default_context() -> Dict[str, str]:
    context = dict(os.environ)
    context.setdefault("NODE_ENV", "development")
    return context


def _evaluate(expr: str, context: Mapping[str, str]) -> bool:
    expr = expr.strip()
    if "||" in expr:
        return any(_evaluate(part, context) for part in expr.split("||"))
    if "&&" in expr:
        return all(_evaluate(part, context) for part in expr.split("&&"))
    m = _COMPARISON.match(expr)
    if m:
        name, op, _quote, value = m.groups()
        equal = context.get(name) == value
        # a single `=` compares too
        return not equal if op == "!=" else equal
    if expr.startswith("!"):
        return not context.get(expr[1:].strip())
    return bool(context.get(expr))


def render_directives(text: str, context: Mapping[str, str], source: str = "<html>") -> str:
    """
    Apply `@if` / `@ifdef` / `@ifndef` / `@endif` / `@echo` comment directives.

    Conditions support `VAR`, `!VAR`, `VAR == 'x'` (or `VAR = 'x'`) and
    `VAR != 'x'`, joined with `&&` and `||` (`&&` binds tighter).
    """
    out: List[str] = []
    # stack of "is this branch emitting"
    stack: List[bool] = []
    pos = 0

    for m in _DIRECTIVE.finditer(text):
        emitting = all(stack)
        if emitting:
            out.append(text[pos:m.start()])
        pos = m.end()

        kind, arg = m.group(1), m.group(2)
        if kind == "if":
            stack.append(_evaluate(arg, context))
        elif kind == "ifdef":
            stack.append(arg.strip() in context)
        elif kind == "ifndef":
            stack.append(arg.strip() not in context)
        elif kind == "endif":
            if not stack:
                raise TransformError(stage="preprocess", message=f"{source}: @endif without @if")
            stack.pop()
        elif kind == "echo" and emitting:
            out.append(context.get(arg.strip(), ""))

    if stack:
        raise TransformError(stage="preprocess", message=f"{source}: unterminated @if")
    if all(stack):
        out.append(text[pos:])
    return "".join(out)


def preprocess(context: Optional[Mapping[str, str]] = None) -> Stage:
    def run(assets: List[Asset]) -> List[Asset]:
        ctx = default_context() if context is None else context
        return [a.with_content(render_directives(a.text, ctx, str(a.path))) for a in assets]
    return run


# ---------------------------------------------------------------------
# Build blocks
# ---------------------------------------------------------------------

_BLOCK = re.compile(
    r"(?P<indent>[ \t]*)<!--\s*build:(?P<type>\w+)(?:\((?P<alt>[^)]*)\))?\s+(?P<target>\S+)\s*-->"
    r"(?P<body>.*?)"
    r"<!--\s*endbuild\s*-->",
    re.S,
)
_SCRIPT_SRC = re.compile(r"<script\b[^>]*\bsrc=[\"']([^\"']+)[\"']", re.I)
_LINK_HREF = re.compile(r"<link\b[^>]*\bhref=[\"']([^\"']+)[\"']", re.I)


@dataclass(frozen=True)
class BuildBlock:
    kind: str
    target: str
    refs: List[str]
    search: Optional[str]
    start: int
    end: int
    indent: str

    @property
    def tag(self) -> str:
        if self.kind == "css":
            return f'{self.indent}<link rel="stylesheet" href="{self.target}">'
        return f'{self.indent}<script src="{self.target}"></script>'


def parse_blocks(html: str) -> List[BuildBlock]:
    blocks = []
    for m in _BLOCK.finditer(html):
        kind = m.group("type").lower()
        if kind == "remove":
            refs: List[str] = []
        elif kind == "css":
            refs = _LINK_HREF.findall(m.group("body"))
        elif kind == "js":
            refs = _SCRIPT_SRC.findall(m.group("body"))
        else:
            raise TransformError(stage="useref", message=f"unknown build block type {kind!r}")
        blocks.append(BuildBlock(
            kind=kind,
            target=m.group("target"),
            refs=refs,
            search=m.group("alt"),
            start=m.start(),
            end=m.end(),
            indent=m.group("indent"),
        ))
    return blocks


def _resolve(ref: str, html_dir: PurePosixPath, search_path: Sequence[Path]) -> Path:
    ref = ref.split("?", 1)[0].split("#", 1)[0]
    rel = PurePosixPath(ref.lstrip("/")) if ref.startswith("/") else html_dir / ref
    for root in search_path:
        candidate = root / Path(*rel.parts)
        if candidate.is_file():
            return candidate
    raise TransformError(
        stage="useref",
        message=f"could not find {ref}",
        details="searched: " + ", ".join(str(r) for r in search_path),
    )


def bundle_path(target: str, html_dir: PurePosixPath) -> PurePosixPath:
    """
    Output path of a block target, relative to the output root.

    `/scripts/app.js` is root-relative; anything else is relative to the
    HTML file's directory.
    """
    rel = PurePosixPath(target.lstrip("/")) if target.startswith("/") else html_dir / target
    parts = [p for p in rel.parts if p not in ("", ".")]
    if not parts or ".." in parts:
        raise TransformError(stage="useref", message=f"build target {target!r} leaves the output directory")
    return PurePosixPath(*parts)


def useref_assets(search_path: Sequence[Path], root: Optional[Path] = None) -> Stage:
    """
    Emit one concatenated asset per build block.

    References resolve against `search_path` in order (first hit wins),
    or the block's own `build:type(dir1,dir2)` search path, relative to
    `root`, when given.
    HTML assets pass through untouched so `useref` can rewrite them later.
    """
    def run(assets: List[Asset]) -> List[Asset]:
        out: List[Asset] = []
        bundles: Dict[PurePosixPath, Asset] = {}
        for asset in assets:
            out.append(asset)
            if asset.path.suffix.lower() not in (".html", ".htm"):
                continue
            html_dir = asset.path.parent
            for block in parse_blocks(asset.text):
                if block.kind == "remove":
                    continue
                roots = list(search_path)
                if block.search:
                    base = root or Path.cwd()
                    roots = [base / s.strip() for s in block.search.split(",")]
                parts = [_resolve(ref, html_dir, roots).read_bytes() for ref in block.refs]
                sep = b";\n" if block.kind == "js" else b"\n"
                path = bundle_path(block.target, html_dir)
                if path in bundles:
                    continue
                bundles[path] = Asset(path=path, content=sep.join(p.rstrip() for p in parts) + b"\n")
        return out + list(bundles.values())
    return run


def rewrite_html(html: str) -> str:
    """Replace each build block with a single reference to its target."""
    out: List[str] = []
    pos = 0
    for block in parse_blocks(html):
        out.append(html[pos:block.start])
        if block.kind != "remove":
            out.append(block.tag)
        pos = block.end
    out.append(html[pos:])
    return "".join(out)


def useref() -> Stage:
    def run(assets: List[Asset]) -> List[Asset]:
        return [
            a.with_content(rewrite_html(a.text)) if a.path.suffix.lower() in (".html", ".htm") else a
            for a in assets
        ]
    return run
