from pathlib import Path

from webtask.config import Config
from webtask.model import WatchBinding
from webtask.stages.base import TransformError
from webtask.watch import Watcher, changed_paths


def _write(root: Path, rel: str, content: str = "") -> Path:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    return path


def test_changed_paths_reports_added_modified_removed():
    prev = {"a": (1, 1), "b": (1, 1), "c": (1, 1)}
    cur = {"a": (1, 1), "b": (2, 1), "d": (1, 1)}

    assert changed_paths(prev, cur) == ["b", "c", "d"]


def test_style_change_notifies_compiled_css_path(tmp_path: Path):
    styl = _write(tmp_path, "app/styles/main.styl", "body\n  color red\n")
    runs, notified = [], []

    def on_task(name):
        runs.append(name)
        if name == "stylus":
            _write(tmp_path, ".tmp/styles/main.css", "body{color:blue}")

    watcher = Watcher(Config().watch_bindings(), tmp_path, on_task=on_task, on_change=notified.append)

    styl.write_text("body\n  color blue\n")
    watcher.check()
    assert runs == ["stylus"]
    assert notified == []

    watcher.check()
    assert notified == [".tmp/styles/main.css"]
    assert runs == ["stylus"]


def test_script_change_lints_and_reloads(tmp_path: Path):
    script = _write(tmp_path, "app/scripts/main.js", "var a;")
    runs, notified = [], []
    watcher = Watcher(Config().watch_bindings(), tmp_path, on_task=runs.append, on_change=notified.append)

    script.write_text("var a = 1;")
    watcher.check()

    assert runs == ["jshint"]
    assert notified == ["app/scripts/main.js"]


def test_task_errors_do_not_stop_the_watcher(tmp_path: Path):
    styl = _write(tmp_path, "app/styles/main.styl", "body\n")
    attempts = []

    def on_task(name):
        attempts.append(name)
        raise TransformError(stage="stylus", message="stylus exited with code 1", details="main.styl:2:3")

    watcher = Watcher(
        [WatchBinding(patterns=("app/styles/**/*.styl",), task="stylus")],
        tmp_path,
        on_task=on_task,
        on_change=lambda path: None,
    )

    styl.write_text("body\n  color\n")
    assert watcher.check() == ["app/styles/main.styl"]
    styl.write_text("body\n  color red\n")
    assert watcher.check() == ["app/styles/main.styl"]

    assert attempts == ["stylus", "stylus"]


def test_no_changes_no_reactions(tmp_path: Path):
    _write(tmp_path, "app/index.html", "<html></html>")
    reactions = []
    watcher = Watcher(Config().watch_bindings(), tmp_path, on_task=reactions.append, on_change=reactions.append)

    assert watcher.check() == []
    assert reactions == []
