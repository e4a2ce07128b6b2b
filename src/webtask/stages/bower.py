# stages/bower.py
from __future__ import annotations

import json
from pathlib import Path
from typing import List

from ..model import Asset
from .base import TransformError, expand


def bower_directory(root: Path) -> Path:
    """Install directory from `.bowerrc`, default `bower_components`."""
    rc = root / ".bowerrc"
    directory = "bower_components"
    if rc.is_file():
        try:
            directory = json.loads(rc.read_text(encoding="utf-8")).get("directory", directory)
        except json.JSONDecodeError as e:
            raise TransformError(stage="bower", message=f"invalid .bowerrc: {e}") from e
    return root / directory


def _package_manifest(pkg: Path) -> dict:
    for name in ("bower.json", ".bower.json", "package.json"):
        manifest = pkg / name
        if manifest.is_file():
            try:
                return json.loads(manifest.read_text(encoding="utf-8"))
            except json.JSONDecodeError as e:
                raise TransformError(stage="bower", message=f"invalid {manifest}: {e}") from e
    return {}


def bower_files(root: Path) -> List[Asset]:
    """
    Main files of every installed bower package.

    `main` may be a path, a glob or a list of either. Asset paths are
    relative to the bower directory.
    """
    bower_dir = bower_directory(root)
    if not bower_dir.is_dir():
        return []

    out: List[Asset] = []
    seen = set()
    for pkg in sorted(p for p in bower_dir.iterdir() if p.is_dir()):
        main = _package_manifest(pkg).get("main") or []
        if isinstance(main, str):
            main = [main]
        for pattern in main:
            pattern = pattern[2:] if pattern.startswith("./") else pattern
            for path in expand(pkg, pattern, dot=True):
                if path in seen:
                    continue
                seen.add(path)
                out.append(Asset.of(path.relative_to(bower_dir).as_posix(), path.read_bytes()))
    return out
