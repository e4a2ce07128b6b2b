from __future__ import annotations

import logging
import sys
from pathlib import Path

import click

from webtask.config import DEFAULT_CONFIG, ConfigError
from webtask.dag import GraphError
from webtask.runner import TaskFailure, run_task
from webtask.server.app import ServerBindError
from webtask.stages.base import TransformError
from webtask.tasks import BuildContext, build_tasks, make_graph
from webtask.ui.console import Console, get_console, set_console


def _run(ctx: click.Context, name: str) -> None:
    """Run one task of the graph and map failures to exit codes."""
    console = get_console()
    build_ctx: BuildContext = ctx.obj["build"]

    try:
        make_graph(build_ctx)
        run_task(build_ctx.graph, name)

    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(130)
    except TaskFailure as e:
        cause = e.cause
        hint = cause.hint if isinstance(cause, TransformError) else None
        if isinstance(cause, ServerBindError):
            console.print_error(
                "Server failed to start",
                str(cause),
                suggestion=f"Stop the process using port {build_ctx.config.port} and retry.",
            )
        else:
            console.print_failure(e.task, str(cause), hint=hint)
        if ctx.obj.get("debug", False):
            console.print_exception(cause)
        sys.exit(1)
    except (GraphError, ConfigError) as e:
        console.print_error("Invalid configuration", str(e))
        sys.exit(1)
    except Exception as e:
        console.print_exception(e)
        sys.exit(1)


class TaskGroup(click.Group):
    """One subcommand per task, listed in graph order."""

    def list_commands(self, ctx):
        return [t.name for t in build_tasks(BuildContext(root=Path.cwd()))]

    def get_command(self, ctx, name):
        tasks = {t.name: t for t in build_tasks(BuildContext(root=Path.cwd()))}
        task = tasks.get(name)
        if task is None:
            return None

        @click.pass_context
        def callback(ctx):
            _run(ctx, task.name)

        return click.Command(name, callback=callback, help=task.description or None)


@click.group(cls=TaskGroup, invoke_without_command=True)
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and detailed output)",
)
@click.pass_context
def cli(ctx, debug):
    """webtask: front-end build and dev server. Runs `default` without a task."""
    # Initialize console with debug flag
    console = Console(debug=debug)
    set_console(console)
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug
    ctx.obj["build"] = BuildContext(root=Path.cwd(), config=DEFAULT_CONFIG, debug=debug)

    if ctx.invoked_subcommand is None:
        _run(ctx, "default")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
