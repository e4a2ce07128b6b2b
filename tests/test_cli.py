from pathlib import Path

import pytest
from click.testing import CliRunner

from webtask import tasks
from webtask.cli import cli
from webtask.stages.base import TransformError


def _write(root: Path, rel: str, content: str = "") -> Path:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    return path


@pytest.fixture
def project(tmp_path: Path, monkeypatch):
    _write(tmp_path, "app/index.html", "<html><body><p>hi</p></body></html>")
    _write(tmp_path, "app/favicon.ico", "ico")
    monkeypatch.chdir(tmp_path)
    # stylus and jshint are external CLIs
    monkeypatch.setattr(tasks, "compile_styles", lambda ctx: None)
    monkeypatch.setattr(tasks, "lint_scripts", lambda ctx: None)
    return tmp_path


def test_build_writes_dist(project: Path):
    result = CliRunner().invoke(cli, ["build"])

    assert result.exit_code == 0, result.output
    assert (project / "dist/index.html").is_file()
    assert (project / "dist/favicon.ico").read_text() == "ico"
    assert "Finished 'build'" in result.output


def test_default_cleans_then_builds(project: Path):
    _write(project, "dist/stale.txt", "old")
    _write(project, ".tmp/styles/old.css", "old")

    result = CliRunner().invoke(cli, [])

    assert result.exit_code == 0, result.output
    assert not (project / "dist/stale.txt").exists()
    assert not (project / ".tmp").exists()
    assert (project / "dist/index.html").is_file()
    assert result.output.index("Finished 'clean'") < result.output.index("Starting 'html'")


def test_transform_failure_exits_non_zero_and_keeps_dist(project: Path, monkeypatch):
    _write(project, "dist/index.html", "previous build")

    def broken(ctx):
        raise TransformError(stage="stylus", message="stylus exited with code 1", details="main.styl:3:1 expected indent")

    monkeypatch.setattr(tasks, "compile_styles", broken)

    result = CliRunner().invoke(cli, ["build"])

    assert result.exit_code == 1
    assert "expected indent" in result.output
    assert (project / "dist/index.html").read_text() == "previous build"


def test_tasks_are_listed_as_commands(project: Path):
    result = CliRunner().invoke(cli, ["--help"])

    assert result.exit_code == 0
    for name in ("serve", "build", "default", "clean", "stylus"):
        assert name in result.output


def test_unknown_task(project: Path):
    result = CliRunner().invoke(cli, ["deploy"])

    assert result.exit_code != 0
