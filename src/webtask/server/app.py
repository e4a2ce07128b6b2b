# server/app.py
from __future__ import annotations

import logging
import socket
import threading
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import List, Optional

import httpx
import uvicorn
from fastapi import FastAPI, Request, WebSocket

from ..config import Config
from ..ui.console import get_console
from .handlers import Handler, build_handlers, dispatch
from .livereload import ReloadHub

logger = logging.getLogger(__name__)

METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


class ServerBindError(RuntimeError):
    """The dev server could not listen on its port."""


def create_app(
    config: Config,
    hub: ReloadHub,
    root: Path,
    client: Optional[httpx.AsyncClient] = None,
) -> FastAPI:
    """
    Dev server app: a live-reload websocket plus one catch-all route that
    runs every request through the handler list.
    """
    owns_client = client is None
    if client is None:
        client = httpx.AsyncClient(timeout=None, follow_redirects=False)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        if owns_client:
            await client.aclose()

    app = FastAPI(
        title="webtask dev server",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        lifespan=lifespan,
    )

    handlers: List[Handler] = build_handlers(
        app_dir=root / config.app_dir,
        temp_dir=root / config.paths.temp,
        routes=config.proxy.routes(),
        client=client,
        livereload_path=config.livereload_path,
    )
    app.state.handlers = handlers
    app.state.hub = hub

    @app.websocket(config.livereload_path)
    async def livereload(websocket: WebSocket):
        await hub.serve(websocket)

    @app.api_route("/{path:path}", methods=METHODS, include_in_schema=False)
    async def handle(request: Request, path: str):
        return await dispatch(handlers, request)

    return app


class DevServer:
    """
    One HTTP listener on `config.port`, served by uvicorn on a background
    thread so the caller can go on to start the watcher.
    """

    def __init__(
        self,
        config: Config,
        hub: ReloadHub,
        root: Path,
        host: str = "0.0.0.0",
        log_level: str = "warning",
    ):
        self.config = config
        self.hub = hub
        self.root = Path(root)
        self.host = host
        self.log_level = log_level
        self.app = create_app(config, hub, self.root)
        self._server: Optional[uvicorn.Server] = None
        self._thread: Optional[threading.Thread] = None

    def bind(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((self.host, self.config.port))
        except OSError as e:
            sock.close()
            raise ServerBindError(
                f"Port {self.config.port} is already in use or unavailable ({e.strerror})"
            ) from e
        sock.listen(128)
        sock.setblocking(False)
        return sock

    def start(self, timeout: float = 10.0) -> None:
        console = get_console()
        for route in self.config.proxy.routes():
            console.print_proxy_route(route.prefix, route.target)

        sock = self.bind()
        logger.debug("serving %s and %s on port %d", self.config.app_dir, self.config.paths.temp, self.config.port)
        server_config = uvicorn.Config(self.app, log_level=self.log_level, lifespan="on")
        self._server = uvicorn.Server(server_config)
        self._thread = threading.Thread(
            target=self._server.run,
            kwargs={"sockets": [sock]},
            name="webtask-server",
            daemon=True,
        )
        self._thread.start()

        deadline = time.monotonic() + timeout
        while not self._server.started:
            if not self._thread.is_alive() or time.monotonic() > deadline:
                raise ServerBindError(f"Web server on port {self.config.port} failed to start")
            time.sleep(0.05)

        console.print_server_started(self.config.port)

    def stop(self) -> None:
        if self._server is not None:
            self._server.should_exit = True
        if self._thread is not None:
            self._thread.join(timeout=5)
