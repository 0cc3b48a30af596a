"""Route descriptions and the per-request context handed to handlers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable
from urllib.parse import parse_qsl


@dataclass
class Response:
    """The response a handler builds."""

    status_code: int = 200
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""


@dataclass
class RequestContext:
    """An incoming request together with the response being built for it."""

    method: str = "GET"
    path: str = "/"
    params: dict[str, str] = field(default_factory=dict)
    query_string: str = ""
    headers: list[tuple[str, str]] = field(default_factory=list)
    body: bytes = b""
    response: Response = field(default_factory=Response)

    def param(self, name: str) -> str:
        """Return a route parameter, or an empty string if absent."""
        return self.params.get(name, "")

    def query_arg(self, name: str) -> str:
        """Return the first value of a query argument, or an empty string."""
        for key, value in parse_qsl(self.query_string, keep_blank_values=True):
            if key == name:
                return value
        return ""

    def header(self, name: str) -> str:
        """Return the first request header with this name, ignoring case."""
        wanted = name.lower()
        for key, value in self.headers:
            if key.lower() == wanted:
                return value
        return ""


Handler = Callable[[RequestContext], None]


@dataclass
class Endpoint:
    """A versioned route, the methods it accepts and its handler."""

    methods: list[str]
    route: str
    version: str
    handler: Handler

    def full_path(self) -> str:
        """Return the path the endpoint is mounted at."""
        return f"/{self.version}/{self.route}"