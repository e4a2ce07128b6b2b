import pytest

from webtask.config import DEFAULT_CONFIG, Config, ConfigError, ProxyConfig, validate_glob
from webtask.model import ProxyRoute


def test_defaults():
    assert DEFAULT_CONFIG.port == 9000
    assert DEFAULT_CONFIG.paths.temp == ".tmp"
    assert DEFAULT_CONFIG.paths.dist == "dist"


def test_proxy_routes_keep_configuration_order():
    routes = ProxyConfig(root="http://localhost:8080/", paths=("/aperture", "/rest")).routes()

    assert routes == [
        ProxyRoute(prefix="/aperture", target="http://localhost:8080/aperture"),
        ProxyRoute(prefix="/rest", target="http://localhost:8080/rest"),
    ]


def test_route_matches_whole_segments_only():
    route = ProxyRoute(prefix="/rest", target="http://localhost:8080/rest")

    assert route.matches("/rest")
    assert route.matches("/rest/items/1")
    assert not route.matches("/restful")
    assert not route.matches("/unmapped")


def test_watch_bindings():
    bindings = Config().watch_bindings()

    tasks = {b.task for b in bindings if not b.notifies}
    assert tasks == {"stylus", "jshint"}
    notify = next(b for b in bindings if b.notifies)
    assert ".tmp/styles/**/*.css" in notify.patterns
    assert "app/*.html" in notify.patterns


@pytest.mark.parametrize("pattern", ["", "/abs/*.js", "app/**.js", "app//x", "app/[ab.js"])
def test_invalid_globs(pattern):
    with pytest.raises(ConfigError):
        validate_glob(pattern)


def test_invalid_glob_in_config_fails_at_startup():
    config = Config(scripts="app/scripts/**.js")
    with pytest.raises(ConfigError, match="whole path segment"):
        config.watch_bindings()
