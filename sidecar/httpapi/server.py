"""Routing, CORS handling and the threaded HTTP server for the API."""

from __future__ import annotations

import logging
import re
import sys
import threading
import traceback
from dataclasses import dataclass, field
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Callable, Iterable, Sequence
from urllib.parse import unquote

from sidecar.httpapi.config import ServerConfig
from sidecar.httpapi.endpoint import Endpoint, Handler, RequestContext, Response

_log = logging.getLogger(__name__)

_ROUTE_SEGMENT = re.compile(r"<(\w+)(?::([^>]+))?>|\*")

Dispatch = Callable[[str, str, Sequence[tuple[str, str]], bytes], Response]


def _compile(path: str) -> re.Pattern[str]:
    """Turn a route such as "/v1.0/state/<key>" into an anchored pattern."""
    parts: list[str] = []
    position = 0
    for match in _ROUTE_SEGMENT.finditer(path):
        parts.append(re.escape(path[position:match.start()]))
        if match.group(0) == "*":
            parts.append(".*")
        else:
            name, constraint = match.group(1), match.group(2)
            parts.append(f"(?P<{name}>{constraint or '[^/]*'})")
        position = match.end()
    parts.append(re.escape(path[position:]))
    return re.compile("^" + "".join(parts) + "$")


def _normalise_methods(methods: str | Iterable[str]) -> frozenset[str]:
    if isinstance(methods, str):
        methods = methods.split(",")
    return frozenset(m.strip().upper() for m in methods if m.strip())


@dataclass(frozen=True)
class _Route:
    methods: frozenset[str]
    pattern: re.Pattern[str]
    handler: Handler


class Router:
    """Matches requests against registered routes and runs their handlers."""

    def __init__(self) -> None:
        self._routes: list[_Route] = []

    def add(self, methods: str | Iterable[str], path: str, handler: Handler) -> None:
        """Register a handler for the given methods on a route pattern."""
        self._routes.append(_Route(_normalise_methods(methods), _compile(path), handler))

    def handle(
        self,
        method: str,
        raw_path: str,
        headers: Sequence[tuple[str, str]],
        body: bytes,
    ) -> Response:
        """Route one request and return the response its handler built."""
        method = method.upper()
        path, _, query = raw_path.partition("?")
        allowed: set[str] = set()
        for route in self._routes:
            match = route.pattern.match(path)
            if match is None:
                continue
            if method not in route.methods:
                allowed.update(route.methods)
                continue
            ctx = RequestContext(
                method=method,
                path=path,
                params={k: unquote(v) for k, v in match.groupdict().items() if v is not None},
                query_string=query,
                headers=list(headers),
                body=bytes(body),
            )
            route.handler(ctx)
            return ctx.response
        if allowed:
            allow = ", ".join(sorted(allowed | {"OPTIONS"}))
            if method == "OPTIONS":
                return Response(status_code=200, headers={"Allow": allow})
            return Response(
                status_code=405,
                headers={"Allow": allow, "Content-Type": "text/plain; charset=utf-8"},
                body=b"Method Not Allowed",
            )
        return Response(
            status_code=404,
            headers={"Content-Type": "text/plain; charset=utf-8"},
            body=b"Not Found",
        )


def build_router(endpoints: Iterable[Endpoint]) -> Router:
    """Return a router serving every endpoint at its versioned path."""
    router = Router()
    for endpoint in endpoints:
        router.add(endpoint.methods, endpoint.full_path(), endpoint.handler)
    return router


@dataclass
class CorsPolicy:
    """Which origins may make cross-origin calls; none listed means any."""

    allowed_origins: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.allowed_origins = [o.strip() for o in self.allowed_origins if o.strip()]

    def allows(self, origin: str) -> bool:
        """Tell whether requests from this origin are allowed."""
        if not self.allowed_origins or "*" in self.allowed_origins:
            return True
        return origin in self.allowed_origins

    def apply(self, origin: str, response: Response) -> Response:
        """Add CORS headers to a response for an allowed origin."""
        if origin and self.allows(origin):
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
        return response

    def _preflight(self, origin: str, headers: Sequence[tuple[str, str]]) -> Response:
        response = Response(status_code=200)
        if not origin or not self.allows(origin):
            return response
        lookup = {k.lower(): v for k, v in headers}
        response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Vary"] = "Origin"
        requested = lookup.get("access-control-request-method", "").upper()
        if requested:
            response.headers["Access-Control-Allow-Methods"] = requested
        requested_headers = lookup.get("access-control-request-headers", "")
        if requested_headers:
            response.headers["Access-Control-Allow-Headers"] = requested_headers
        return response


class _AppServer(ThreadingHTTPServer):
    daemon_threads = True

    def __init__(self, address: tuple[str, int], dispatch: Dispatch) -> None:
        self.dispatch = dispatch
        super().__init__(address, _RequestHandler)


class _RequestHandler(BaseHTTPRequestHandler):
    protocol_version = "HTTP/1.1"

    def _serve(self) -> None:
        length = int(self.headers.get("Content-Length") or 0)
        body = self.rfile.read(length) if length > 0 else b""
        server: _AppServer = self.server  # type: ignore[assignment]
        try:
            response = server.dispatch(self.command, self.path, list(self.headers.items()), body)
        except Exception:  # noqa: BLE001 - a failing handler must not kill the connection
            _log.exception("handler failed for %s %s", self.command, self.path)
            response = Response(status_code=500, body=b"Internal Server Error")
        self.send_response(response.status_code)
        for name, value in response.headers.items():
            if name.lower() != "content-length":
                self.send_header(name, value)
        self.send_header("Content-Length", str(len(response.body)))
        self.end_headers()
        if self.command != "HEAD" and response.body:
            self.wfile.write(response.body)

    do_GET = do_POST = do_PUT = do_DELETE = do_PATCH = do_HEAD = do_OPTIONS = _serve

    def log_message(self, format: str, *args: object) -> None:  # noqa: A002
        _log.debug("%s - %s", self.address_string(), format % args)


def _thread_dump(
    method: str, raw_path: str, headers: Sequence[tuple[str, str]], body: bytes
) -> Response:
    names = {t.ident: t.name for t in threading.enumerate()}
    sections = []
    for ident, frame in sys._current_frames().items():
        stack = "".join(traceback.format_stack(frame))
        sections.append(f"thread {names.get(ident, ident)}:\n{stack}")
    return Response(
        status_code=200,
        headers={"Content-Type": "text/plain; charset=utf-8"},
        body="\n".join(sections).encode("utf-8"),
    )


class HttpServer:
    """Serves the API's endpoints, and optionally a profiling endpoint."""

    def __init__(self, api, config: ServerConfig) -> None:
        self.api = api
        self.config = config
        self._servers: list[_AppServer] = []
        self._threads: list[threading.Thread] = []
        self._router: Router | None = None
        self._cors = CorsPolicy(config.allowed_origins.split(","))

    @property
    def address(self) -> tuple[str, int]:
        """The address the API server is bound to."""
        if not self._servers:
            raise RuntimeError("server is not running")
        host, port = self._servers[0].server_address[:2]
        return str(host), int(port)

    def _dispatch(
        self, method: str, raw_path: str, headers: Sequence[tuple[str, str]], body: bytes
    ) -> Response:
        origin = next((v for k, v in headers if k.lower() == "origin"), "")
        has_preflight = any(k.lower() == "access-control-request-method" for k, _ in headers)
        if method.upper() == "OPTIONS" and origin and has_preflight:
            return self._cors._preflight(origin, headers)
        assert self._router is not None
        response = self._router.handle(method, raw_path, headers, body)
        return self._cors.apply(origin, response)

    def _serve_in_background(self, port: int, dispatch: Dispatch, name: str) -> None:
        server = _AppServer(("", port), dispatch)
        thread = threading.Thread(target=server.serve_forever, name=name, daemon=True)
        self._servers.append(server)
        self._threads.append(thread)
        thread.start()

    def start_non_blocking(self) -> None:
        """Start serving in background threads and return at once."""
        if self._servers:
            raise RuntimeError("server already started")
        self._router = build_router(self.api.endpoints())
        try:
            self._serve_in_background(self.config.port, self._dispatch, "http-api")
            if self.config.enable_profiling:
                _log.info("starting profiling server on port %s", self.config.profile_port)
                self._serve_in_background(self.config.profile_port, _thread_dump, "http-profiling")
        except OSError:
            self.shutdown()
            raise

    def shutdown(self) -> None:
        """Stop every server that was started."""
        for server in self._servers:
            server.shutdown()
            server.server_close()
        for thread in self._threads:
            thread.join(timeout=5)
        self._servers.clear()
        self._threads.clear()