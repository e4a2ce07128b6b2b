# server/livereload.py
from __future__ import annotations

import asyncio
import logging
from typing import List, Literal, Optional, Set

from fastapi import WebSocket, WebSocketDisconnect
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


# -------------------- Schemas --------------------

class HelloMessage(BaseModel):
    command: Literal["hello"] = "hello"
    protocols: List[str] = Field(
        default_factory=lambda: ["http://livereload.com/protocols/official-7"]
    )
    serverName: str = "webtask"


class ReloadMessage(BaseModel):
    command: Literal["reload"] = "reload"
    path: str
    liveCSS: bool = True


# -------------------- Browser client --------------------

CLIENT_MARKER = "__webtask_livereload__"

CLIENT_SNIPPET = """
<script id="__webtask_livereload__">
(() => {
  const url = (location.protocol === "https:" ? "wss://" : "ws://") + location.host + "%(path)s";
  const refreshCSS = (path) => {
    const name = path.split("/").pop();
    let hit = false;
    document.querySelectorAll('link[rel="stylesheet"]').forEach((link) => {
      const href = link.href.split("?")[0];
      if (href.endsWith("/" + name)) {
        link.href = href + "?livereload=" + Date.now();
        hit = true;
      }
    });
    return hit;
  };
  const connect = () => {
    const ws = new WebSocket(url);
    ws.onmessage = (event) => {
      const msg = JSON.parse(event.data);
      if (msg.command !== "reload") return;
      if (msg.liveCSS && msg.path.endsWith(".css") && refreshCSS(msg.path)) return;
      location.reload();
    };
    ws.onclose = () => setTimeout(connect, 1000);
  };
  connect();
})();
</script>
"""


def client_snippet(path: str) -> str:
    return CLIENT_SNIPPET % {"path": path}


def inject_client(html: bytes, path: str) -> bytes:
    """Insert the reload client before `</body>`, or append it. Idempotent."""
    if CLIENT_MARKER.encode() in html:
        return html
    snippet = client_snippet(path).encode("utf-8")
    idx = html.lower().rfind(b"</body>")
    if idx == -1:
        return html + snippet
    return html[:idx] + snippet + html[idx:]


# -------------------- Broadcast channel --------------------

class ReloadHub:
    """
    Broadcast channel to connected live-reload clients.

    Delivery is best-effort: a message goes to the clients connected at
    publish time, failed sends drop the client, nothing is queued for
    clients that are not connected and nothing is acknowledged.
    """

    def __init__(self) -> None:
        self._clients: Set[WebSocket] = set()
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def client_count(self) -> int:
        return len(self._clients)

    async def serve(self, websocket: WebSocket) -> None:
        """Hold one client connection open until it disconnects."""
        await websocket.accept()
        self._loop = asyncio.get_running_loop()
        self._clients.add(websocket)
        logger.debug("livereload client connected (%d total)", len(self._clients))
        try:
            await websocket.send_json(HelloMessage().model_dump())
            while True:
                # clients only ever send hello/info; drain and ignore
                await websocket.receive_text()
        except WebSocketDisconnect:
            pass
        finally:
            self._clients.discard(websocket)
            logger.debug("livereload client disconnected (%d left)", len(self._clients))

    async def broadcast(self, path: str) -> int:
        """Send a reload for `path` to every connected client; returns deliveries."""
        message = ReloadMessage(path=path).model_dump()
        delivered = 0
        for client in list(self._clients):
            try:
                await client.send_json(message)
                delivered += 1
            except Exception as e:  # closed mid-send
                logger.debug("dropping livereload client: %s", e)
                self._clients.discard(client)
        return delivered

    def publish(self, path: str) -> None:
        """
        Thread-safe, fire-and-forget `broadcast`.

        Returns immediately; a no-op when no client ever connected.
        """
        loop = self._loop
        if loop is None or loop.is_closed() or not self._clients:
            return
        asyncio.run_coroutine_threadsafe(self.broadcast(path), loop)
