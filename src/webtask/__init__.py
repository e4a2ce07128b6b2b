from .config import Config, DEFAULT_CONFIG
from .dag import TaskGraph, build_graph
from .model import Asset, ProxyRoute, Task, WatchBinding
from .runner import TaskFailure, run_task

__all__ = [
    "Config",
    "DEFAULT_CONFIG",
    "TaskGraph",
    "build_graph",
    "Asset",
    "ProxyRoute",
    "Task",
    "WatchBinding",
    "TaskFailure",
    "run_task",
]
