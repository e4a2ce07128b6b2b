# stages/lint.py
from __future__ import annotations

import shlex
from pathlib import Path
from typing import List

from ..model import Asset
from .base import Stage, run_tool


# ---------------------------------------------------------------------
# Lint stage
# ---------------------------------------------------------------------

def jshint(root: Path, args: str | None = None) -> Stage:
    """
    Lint script assets with the jshint CLI.

    Assets pass through unchanged; lint errors raise TransformError with
    the reporter output, which carries file/line/column per finding.
    """
    def run(assets: List[Asset]) -> List[Asset]:
        if not assets:
            return assets

        cmd_parts = ["jshint"]
        if args:
            # Split args string into list, handling quoted strings
            cmd_parts.extend(shlex.split(args))
        cmd_parts.extend(a.path.as_posix() for a in assets)

        run_tool("jshint", cmd_parts, cwd=root)
        return assets
    return run
