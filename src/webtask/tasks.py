# tasks.py
#
# The project's task graph:
#
#   default -> clean, then build
#   build   -> html, fonts, extras
#   html    -> stylus, jshint
#   serve   -> watch -> stylus, connect
#
# Every file-producing task reads its sources, runs its stages in memory
# and writes only when all stages succeeded.

from __future__ import annotations

import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from .config import DEFAULT_CONFIG, Config
from .dag import TaskGraph, build_graph
from .model import Task
from .runner import run_task
from .server.app import DevServer
from .server.livereload import ReloadHub
from .stages.base import matches, only, pipeline, read_assets, size, write_assets, flatten
from .stages.bower import bower_files
from .stages.html import preprocess, useref, useref_assets
from .stages.lint import jshint
from .stages.minify import csso, uglify
from .stages.styles import stylus
from .ui.console import get_console
from .watch import Watcher


@dataclass
class BuildContext:
    """Everything task actions share for one process."""
    root: Path
    config: Config = DEFAULT_CONFIG
    debug: bool = False
    hub: ReloadHub = field(default_factory=ReloadHub)
    server: Optional[DevServer] = None
    watcher: Optional[Watcher] = None
    graph: Optional[TaskGraph] = None

    @property
    def app(self) -> Path:
        return self.root / self.config.app_dir

    @property
    def temp(self) -> Path:
        return self.root / self.config.paths.temp

    @property
    def dist(self) -> Path:
        return self.root / self.config.paths.dist

    def run(self, name: str):
        if self.graph is None:
            raise RuntimeError("BuildContext.graph is not set")
        return run_task(self.graph, name)


# ---------------------------------------------------------------------
# Build tasks
# ---------------------------------------------------------------------

def compile_styles(ctx: BuildContext) -> None:
    styles_dir = ctx.app / "styles"
    assets = read_assets(styles_dir, ctx.config.styles, root=ctx.root)
    out = pipeline(
        stylus(styles_dir),
        size("stylus"),
    )(assets)
    write_assets(out, ctx.temp / "styles")


def lint_scripts(ctx: BuildContext) -> None:
    assets = read_assets(ctx.root, [ctx.config.scripts])
    pipeline(
        jshint(ctx.root),
        size("jshint"),
    )(assets)


def build_html(ctx: BuildContext) -> None:
    assets = read_assets(ctx.app, ["*.html"])
    out = pipeline(
        preprocess(),
        useref_assets([ctx.temp, ctx.app], root=ctx.root),
        only("**/*.js", uglify()),
        only("**/*.css", csso()),
        useref(),
        size("html"),
    )(assets)
    write_assets(out, ctx.dist)


def copy_fonts(ctx: BuildContext) -> None:
    exts = ",".join(ctx.config.font_extensions)
    assets = [a for a in bower_files(ctx.root) if matches(a.path, f"**/*.{{{exts}}}")]
    out = pipeline(
        flatten(),
        size("fonts"),
    )(assets)
    write_assets(out, ctx.dist / "fonts")


def copy_extras(ctx: BuildContext) -> None:
    # Copy non-source, non-style files
    assets = read_assets(ctx.app, ["*.*", "!*.html"], dot=True)
    write_assets(assets, ctx.dist)


def clean(ctx: BuildContext) -> None:
    for path in (ctx.temp, ctx.dist):
        if path.is_dir():
            shutil.rmtree(path)
        elif path.exists():
            path.unlink()


# ---------------------------------------------------------------------
# Dev tasks
# ---------------------------------------------------------------------

def connect(ctx: BuildContext) -> None:
    ctx.server = DevServer(
        ctx.config,
        ctx.hub,
        ctx.root,
        log_level="debug" if ctx.debug else "warning",
    )
    ctx.server.start()


def watch(ctx: BuildContext) -> None:
    ctx.watcher = Watcher(
        ctx.config.watch_bindings(),
        ctx.root,
        on_task=ctx.run,
        on_change=ctx.hub.publish,
    )


def serve(ctx: BuildContext, interval: float = 0.3) -> None:
    if ctx.watcher is None:
        raise RuntimeError("serve needs the watch task")
    try:
        ctx.watcher.run_forever(interval)
    finally:
        if ctx.server is not None:
            ctx.server.stop()


def default(ctx: BuildContext) -> None:
    # build starts after clean finished, as its own run
    ctx.run("build")


# ---------------------------------------------------------------------
# Graph
# ---------------------------------------------------------------------

def build_tasks(ctx: BuildContext) -> List[Task]:
    return [
        Task("stylus", action=lambda: compile_styles(ctx), description="Compile styles into the temp dir"),
        Task("jshint", action=lambda: lint_scripts(ctx), description="Lint scripts"),
        Task("html", needs=("stylus", "jshint"), action=lambda: build_html(ctx),
             description="Bundle, minify and rewrite HTML into dist"),
        Task("fonts", action=lambda: copy_fonts(ctx), description="Place all bower fonts in dist/fonts"),
        Task("extras", action=lambda: copy_extras(ctx), description="Copy other top-level app files into dist"),
        Task("clean", action=lambda: clean(ctx), description="Remove temp and dist"),
        Task("connect", action=lambda: connect(ctx), description="Start the dev server"),
        Task("watch", needs=("stylus", "connect"), action=lambda: watch(ctx),
             description="Watch sources, rebuild and live-reload"),
        Task("serve", needs=("watch",), action=lambda: serve(ctx),
             description="Development: watch for changes, run dev server"),
        Task("build", needs=("html", "fonts", "extras"), description="Deploy: end-to-end build to dist"),
        Task("default", needs=("clean",), action=lambda: default(ctx), description="Clean, then build"),
    ]


def make_graph(ctx: BuildContext) -> TaskGraph:
    # invalid watch globs are a startup error
    ctx.config.watch_bindings()
    ctx.graph = build_graph(build_tasks(ctx))
    get_console().print_debug(f"task graph: {ctx.graph.names}")
    return ctx.graph
