# stages/minify.py
from __future__ import annotations

import rcssmin
import rjsmin

from .base import Stage, TransformError, each


def uglify() -> Stage:
    """Minify JavaScript assets."""
    def run(asset):
        try:
            return asset.with_content(rjsmin.jsmin(asset.text))
        except UnicodeDecodeError as e:
            raise TransformError(stage="uglify", message=f"{asset.path} is not UTF-8: {e}") from e
    return each(run)


def csso() -> Stage:
    """Minify CSS assets."""
    def run(asset):
        try:
            return asset.with_content(rcssmin.cssmin(asset.text))
        except UnicodeDecodeError as e:
            raise TransformError(stage="csso", message=f"{asset.path} is not UTF-8: {e}") from e
    return each(run)
