"""Console output formatting utilities for webtask."""

from __future__ import annotations

import sys
import threading
from typing import Optional


def _human_size(num: int) -> str:
    size = float(num)
    for unit in ("B", "kB", "MB", "GB"):
        if size < 1024 or unit == "GB":
            return f"{size:.0f} {unit}" if unit == "B" else f"{size:.2f} {unit}"
        size /= 1024
    return f"{num} B"


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
        """
        self.debug = debug
        # tasks of one level print from worker threads
        self._lock = threading.Lock()

    def _out(self, line: str, err: bool = False) -> None:
        with self._lock:
            print(line, file=sys.stderr if err else sys.stdout, flush=True)

    def print_task_start(self, name: str) -> None:
        """Print task start message."""
        self._out(f"Starting '{name}'...")

    def print_task_done(self, name: str, elapsed: float) -> None:
        """Print task completion message."""
        if elapsed < 1:
            self._out(f"Finished '{name}' after {elapsed * 1000:.0f} ms")
        else:
            self._out(f"Finished '{name}' after {elapsed:.2f} s")

    def print_size(self, title: str, files: int, total_bytes: int) -> None:
        """Print the size summary of a stage's output."""
        label = f"'{title}' " if title else ""
        self._out(f"{label}all files {_human_size(total_bytes)} ({files} files)")

    def print_proxy_route(self, prefix: str, target: str) -> None:
        self._out(f"Proxy: {prefix} to {target}")

    def print_server_started(self, port: int) -> None:
        self._out(f"Started web server on http://localhost:{port}")

    def print_watching(self, patterns: list[str]) -> None:
        self._out(f"Watching {len(patterns)} pattern(s) for changes. Ctrl+C to stop.")

    def print_changed(self, path: str) -> None:
        self._out(f"{path} was reloaded.")

    def print_failure(
        self,
        name: str,
        reason: str,
        hint: Optional[str] = None,
    ) -> None:
        """
        Print task failure message.

        Args:
            name: Task name
            reason: Failure reason/error message
            hint: Optional hint for user
        """
        self._out(f"TASK FAILED: {name}", err=True)
        if hint:
            self._out(f"Hint: {hint}", err=True)
        if self.debug:
            self._out(f"Error details: {reason}", err=True)
        else:
            # Tool output carries file/line context; keep the head of it
            lines = reason.splitlines() if reason else ["Unknown error"]
            for line in lines[:20]:
                self._out(f"  {line}", err=True)
            if len(lines) > 20:
                self._out(f"  ... ({len(lines) - 20} more lines, use --debug)", err=True)

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        self._out(f"\nERROR: {title}", err=True)
        self._out(f"{message}", err=True)
        if details:
            for detail in details:
                self._out(f"  {detail}", err=True)
        if suggestion:
            self._out(f"\n{suggestion}", err=True)

    def print_exception(self, exc: BaseException) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exception(type(exc), exc, exc.__traceback__)
        else:
            self._out(f"Error: {exc}", err=True)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        self._out(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            self._out(f"[DEBUG] {message}", err=True)


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
