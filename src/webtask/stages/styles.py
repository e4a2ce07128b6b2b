# stages/styles.py
from __future__ import annotations

from pathlib import Path
from typing import List, Sequence

from ..model import Asset
from .base import Stage, run_tool


def stylus(
    root: Path,
    *,
    plugins: Sequence[str] = ("nib",),
    compress: bool = True,
    includes: Sequence[str] = (),
) -> Stage:
    """
    Compile `.styl` assets to `.css` with the stylus CLI.

    Assets are resolved against `root` so `@import` works relative to the
    source file. One failing file fails the whole stage.
    """
    def run(assets: List[Asset]) -> List[Asset]:
        out: List[Asset] = []
        for asset in assets:
            source = root / Path(*asset.path.parts)
            cmd = ["stylus"]
            for plugin in plugins:
                cmd += ["--use", plugin]
            for inc in includes:
                cmd += ["--include", inc]
            if compress:
                cmd.append("--compress")
            cmd += ["--print", str(source)]

            proc = run_tool("stylus", cmd, cwd=root)
            out.append(Asset.of(asset.path.with_suffix(".css").as_posix(), proc.stdout))
        return out
    return run
