# config.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Tuple

from .model import ProxyRoute, WatchBinding


class ConfigError(ValueError):
    """Raised at startup when the static configuration is unusable."""


@dataclass(frozen=True)
class Paths:
    """Output directories, relative to the project root."""
    temp: str = ".tmp"
    dist: str = "dist"


@dataclass(frozen=True)
class ProxyConfig:
    root: str = "http://localhost:8080"
    paths: Tuple[str, ...] = ("/aperture", "/rest")

    def routes(self) -> List[ProxyRoute]:
        """One route per prefix, in configuration order."""
        root = self.root.rstrip("/")
        return [ProxyRoute(prefix=p, target=root + p) for p in self.paths]


@dataclass(frozen=True)
class Config:
    # Port for development server
    port: int = 9000

    # Paths to use for file output
    paths: Paths = field(default_factory=Paths)

    # Proxy configuration
    proxy: ProxyConfig = field(default_factory=ProxyConfig)

    app_dir: str = "app"
    livereload_path: str = "/__livereload"
    styles: Tuple[str, ...] = ("app/styles/main.styl", "app/styles/development.styl")
    scripts: str = "app/scripts/**/*.js"
    font_extensions: Tuple[str, ...] = ("eot", "svg", "ttf", "woff")

    def watch_bindings(self) -> List[WatchBinding]:
        bindings = [
            # trigger browser reload of changed file
            WatchBinding(
                patterns=(
                    f"{self.app_dir}/*.html",
                    f"{self.paths.temp}/styles/**/*.css",
                    self.scripts,
                    f"{self.app_dir}/images/**/*",
                ),
            ),
            WatchBinding(patterns=(f"{self.app_dir}/styles/**/*.styl",), task="stylus"),
            WatchBinding(patterns=(self.scripts,), task="jshint"),
        ]
        for b in bindings:
            for pattern in b.patterns:
                validate_glob(pattern)
        return bindings


DEFAULT_CONFIG = Config()


def validate_glob(pattern: str) -> str:
    """
    Reject patterns the watcher cannot expand.

    Patterns are relative to the project root and use `**` only as a
    whole path segment.
    """
    if not pattern or not pattern.strip():
        raise ConfigError("Empty glob pattern")
    if pattern.startswith("/"):
        raise ConfigError(f"Glob pattern must be relative: {pattern!r}")
    for segment in pattern.split("/"):
        if not segment:
            raise ConfigError(f"Empty path segment in glob pattern: {pattern!r}")
        if "**" in segment and segment != "**":
            raise ConfigError(f"'**' must be a whole path segment: {pattern!r}")
    if pattern.count("[") != pattern.count("]"):
        raise ConfigError(f"Unbalanced character class in glob pattern: {pattern!r}")
    return pattern
