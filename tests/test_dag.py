import threading
from pathlib import Path

import pytest

from webtask.dag import GraphError, build_graph
from webtask.model import Task
from webtask.runner import TaskFailure, run_task
from webtask.tasks import BuildContext, build_tasks


def _recorder():
    calls = []
    lock = threading.Lock()

    def action(name):
        def run():
            with lock:
                calls.append(name)
        return run

    return calls, action


def test_run_executes_each_dependency_once_before_dependents():
    calls, action = _recorder()
    graph = build_graph([
        Task("a", action=action("a")),
        Task("b", needs=("a",), action=action("b")),
        Task("c", needs=("a",), action=action("c")),
        Task("d", needs=("b", "c"), action=action("d")),
        Task("unrelated", action=action("unrelated")),
    ])

    results = run_task(graph, "d")

    assert sorted(calls) == ["a", "b", "c", "d"]
    assert calls[0] == "a"
    assert calls[-1] == "d"
    assert set(results) == {"a", "b", "c", "d"}
    assert all(status == "ok" for status in results.values())


def test_aggregation_task_without_action_forces_needs():
    calls, action = _recorder()
    graph = build_graph([
        Task("x", action=action("x")),
        Task("y", action=action("y")),
        Task("all", needs=("x", "y")),
    ])

    run_task(graph, "all")

    assert sorted(calls) == ["x", "y"]


def test_cycle_fails_at_construction():
    with pytest.raises(GraphError, match="cycle"):
        build_graph([
            Task("x", needs=("z",)),
            Task("y", needs=("x",)),
            Task("z", needs=("y",)),
        ])


def test_self_dependency_is_a_cycle():
    with pytest.raises(GraphError, match="cycle"):
        build_graph([Task("x", needs=("x",))])


def test_missing_and_duplicate_tasks_are_rejected():
    with pytest.raises(GraphError, match="missing task 'nope'"):
        build_graph([Task("x", needs=("nope",))])
    with pytest.raises(GraphError, match="Duplicate"):
        build_graph([Task("x"), Task("x")])


def test_unknown_task_name():
    graph = build_graph([Task("x")])
    with pytest.raises(GraphError, match="Unknown task"):
        run_task(graph, "y")


def test_failure_stops_later_levels():
    calls, action = _recorder()

    def boom():
        raise RuntimeError("compile error on line 3")

    graph = build_graph([
        Task("bad", action=boom),
        Task("fine", action=action("fine")),
        Task("after", needs=("bad", "fine"), action=action("after")),
    ])

    with pytest.raises(TaskFailure) as info:
        run_task(graph, "after")

    assert info.value.task == "bad"
    assert "line 3" in str(info.value)
    # siblings in the same level drain; dependents never start
    assert calls == ["fine"]


def test_nested_failure_keeps_inner_task_name():
    def boom():
        raise RuntimeError("nope")

    inner = build_graph([Task("leaf", action=boom)])
    outer = build_graph([Task("wrapper", action=lambda: run_task(inner, "leaf"))])

    with pytest.raises(TaskFailure) as info:
        run_task(outer, "wrapper")

    assert info.value.task == "leaf"


def test_project_graph_shape(tmp_path: Path):
    graph = build_graph(build_tasks(BuildContext(root=tmp_path)))

    assert graph.closure("build") == {"build", "html", "fonts", "extras", "stylus", "jshint"}
    assert graph.closure("default") == {"default", "clean"}
    assert graph.levels("serve") == [["connect", "stylus"], ["watch"], ["serve"]]
    assert graph.levels("html") == [["jshint", "stylus"], ["html"]]
