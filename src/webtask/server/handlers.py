# server/handlers.py
#
# Request handlers for the dev server. Each handler either answers a
# request (`Handled`) or lets the next one try (`PASS`). `dispatch`
# walks the list in order; handlers before the one that answered may
# rewrite the response on its way out (`Handler.wrap`).

from __future__ import annotations

import html
import logging
import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Union
from urllib.parse import quote, unquote

import httpx
from fastapi import Request
from fastapi.responses import FileResponse, HTMLResponse, PlainTextResponse, RedirectResponse, Response, StreamingResponse
from starlette.background import BackgroundTask

from ..model import ProxyRoute
from .livereload import inject_client

logger = logging.getLogger(__name__)


# -------------------- Outcome --------------------

@dataclass(frozen=True)
class Handled:
    response: Response


class Pass:
    """Not answered here; try the next handler."""

    def __repr__(self) -> str:
        return "PASS"


PASS = Pass()

Outcome = Union[Handled, Pass]


class Handler:
    """Base handler: passes every request, leaves every response alone."""
    name = "handler"

    async def handle(self, request: Request) -> Outcome:
        return PASS

    async def wrap(self, request: Request, response: Response) -> Response:
        return response


async def dispatch(handlers: Sequence[Handler], request: Request) -> Response:
    """First handler to answer wins; earlier handlers wrap its response."""
    response: Response = PlainTextResponse("Not Found", status_code=404)
    answered = len(handlers)
    for i, handler in enumerate(handlers):
        outcome = await handler.handle(request)
        if isinstance(outcome, Handled):
            response = outcome.response
            answered = i
            logger.debug("%s %s -> %s", request.method, request.url.path, handler.name)
            break

    for handler in reversed(handlers[:answered]):
        response = await handler.wrap(request, response)
    return response


# -------------------- Live reload --------------------

class LiveReloadInjector(Handler):
    """Never answers; adds the reload client to HTML responses."""
    name = "livereload"

    def __init__(self, path: str):
        self.path = path

    async def wrap(self, request: Request, response: Response) -> Response:
        content_type = response.headers.get("content-type", "")
        if not content_type.startswith("text/html") or request.method == "HEAD":
            return response

        if isinstance(response, FileResponse):
            body = Path(response.path).read_bytes()
        elif isinstance(response, StreamingResponse):
            # proxied HTML streams through untouched
            return response
        else:
            body = response.body

        headers = {k: v for k, v in response.headers.items() if k.lower() not in ("content-length", "etag")}
        return Response(
            content=inject_client(body, self.path),
            status_code=response.status_code,
            headers=headers,
        )


# -------------------- Static files --------------------

def _safe_join(root: Path, url_path: str) -> Optional[Path]:
    """Map a URL path under `root`; None when it would escape."""
    parts = [p for p in unquote(url_path).split("/") if p not in ("", ".")]
    if any(p == ".." or "\\" in p or "\x00" in p for p in parts):
        return None
    return root.joinpath(*parts)


class StaticFiles(Handler):
    """Serve files under `root`; directories serve their index.html."""

    def __init__(self, root: Path, index: str = "index.html"):
        self.root = Path(root)
        self.index = index
        self.name = f"static({self.root})"

    async def handle(self, request: Request) -> Outcome:
        if request.method not in ("GET", "HEAD"):
            return PASS
        path = request.url.path
        target = _safe_join(self.root, path)
        if target is None:
            return Handled(PlainTextResponse("Forbidden", status_code=403))

        if target.is_dir():
            index = target / self.index
            if not index.is_file():
                return PASS
            if not path.endswith("/"):
                location = path + "/"
                if request.url.query:
                    location += "?" + request.url.query
                return Handled(RedirectResponse(location, status_code=301))
            target = index

        if not target.is_file():
            return PASS

        media_type, _ = mimetypes.guess_type(target.name)
        return Handled(FileResponse(target, media_type=media_type or "application/octet-stream"))


class DirectoryListing(Handler):
    """HTML index of a directory under `root`."""

    def __init__(self, root: Path):
        self.root = Path(root)
        self.name = f"directory({self.root})"

    async def handle(self, request: Request) -> Outcome:
        if request.method not in ("GET", "HEAD"):
            return PASS
        path = request.url.path
        target = _safe_join(self.root, path)
        if target is None or not target.is_dir():
            return PASS
        if not path.endswith("/"):
            return Handled(RedirectResponse(path + "/", status_code=301))

        entries = sorted(
            (p for p in target.iterdir() if not p.name.startswith(".")),
            key=lambda p: (not p.is_dir(), p.name.lower()),
        )
        title = html.escape(unquote(path))
        items = []
        if path != "/":
            items.append('<li><a href="../">..</a></li>')
        for entry in entries:
            name = entry.name + ("/" if entry.is_dir() else "")
            items.append(f'<li><a href="{quote(name)}">{html.escape(name)}</a></li>')
        body = (
            f"<!DOCTYPE html><html><head><title>listing directory {title}</title></head>"
            f"<body><h1>{title}</h1><ul>{''.join(items)}</ul></body></html>"
        )
        return Handled(HTMLResponse(body))


# -------------------- Reverse proxy --------------------

HOP_BY_HOP = frozenset({
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailer",
    "trailers",
    "transfer-encoding",
    "upgrade",
})


class ReverseProxy(Handler):
    """
    Forward requests under `route.prefix` to `route.target`.

    Method, remaining path (as sent, still percent-encoded), query,
    headers and body are forwarded; the
    upstream status, headers and body stream back as-is. Upstream
    connection failures answer 502. No retries.
    """

    def __init__(self, route: ProxyRoute, client: httpx.AsyncClient):
        self.route = route
        self.client = client
        self.name = f"proxy({route.prefix})"

    def upstream_url(self, request: Request) -> str:
        prefix = self.route.prefix.rstrip("/")
        # keep the client's percent-encoding (a%2Fb stays one segment)
        raw = request.scope.get("raw_path")
        path = raw.split(b"?", 1)[0].decode("latin-1") if raw else request.url.path
        if not path.startswith(prefix):
            path = request.url.path
        rest = path[len(prefix):]
        url = self.route.target.rstrip("/") + rest
        if request.url.query:
            url += "?" + request.url.query
        return url

    async def handle(self, request: Request) -> Outcome:
        if not self.route.matches(request.url.path):
            return PASS

        url = self.upstream_url(request)
        headers = [
            (k, v) for k, v in request.headers.items()
            if k.lower() not in HOP_BY_HOP and k.lower() != "host"
        ]
        body = await request.body()
        upstream_request = self.client.build_request(request.method, url, headers=headers, content=body)
        try:
            upstream = await self.client.send(upstream_request, stream=True)
        except httpx.RequestError as e:
            logger.warning("proxy %s %s failed: %s", request.method, url, e)
            return Handled(PlainTextResponse(f"Bad Gateway: {e}", status_code=502))

        response = StreamingResponse(
            upstream.aiter_raw(),
            status_code=upstream.status_code,
            background=BackgroundTask(upstream.aclose),
        )
        response.raw_headers = [
            (k, v) for k, v in upstream.headers.raw
            if k.decode("latin-1").lower() not in HOP_BY_HOP
        ]
        return Handled(response)


def build_handlers(
    app_dir: Path,
    temp_dir: Path,
    routes: List[ProxyRoute],
    client: httpx.AsyncClient,
    livereload_path: str,
) -> List[Handler]:
    """The dev server's handler order."""
    handlers: List[Handler] = [
        LiveReloadInjector(livereload_path),
        StaticFiles(app_dir),
        StaticFiles(temp_dir),
        DirectoryListing(app_dir),
    ]
    handlers.extend(ReverseProxy(route, client) for route in routes)
    return handlers
