"""Helpers that fill in a handler's response."""

from __future__ import annotations

import json
from typing import Any

from sidecar.httpapi.endpoint import RequestContext
from sidecar.httpapi.errors import ErrorResponse

_JSON_CONTENT_TYPE = "application/json"


def respond_with_json(ctx: RequestContext, code: int, body: bytes) -> None:
    """Send a JSON body with the given status."""
    ctx.response.headers["Content-Type"] = _JSON_CONTENT_TYPE
    ctx.response.status_code = code
    ctx.response.body = bytes(body)


def respond_with_etagged_json(
    ctx: RequestContext, code: int, body: bytes, etag: str
) -> None:
    """Send a JSON body with an ETag header."""
    ctx.response.headers["Content-Type"] = _JSON_CONTENT_TYPE
    ctx.response.headers["ETag"] = etag
    ctx.response.status_code = code
    ctx.response.body = bytes(body)


def respond_with_string(ctx: RequestContext, code: int, text: str) -> None:
    """Send a text body marked as JSON."""
    ctx.response.headers["Content-Type"] = _JSON_CONTENT_TYPE
    ctx.response.status_code = code
    ctx.response.body = text.encode("utf-8")


def respond_with_error(ctx: RequestContext, code: int, error: ErrorResponse) -> None:
    """Send an error body with the given status."""
    respond_with_json(ctx, code, error.to_json())


def respond_empty(ctx: RequestContext, code: int) -> None:
    """Send no body, only the status."""
    ctx.response.body = b""
    ctx.response.status_code = code


def serialize_to_json(obj: Any) -> bytes:
    """Encode without HTML escaping, followed by a newline.

    Raises TypeError when the object cannot be encoded.
    """
    text = json.dumps(obj, ensure_ascii=False, separators=(",", ":"))
    text = text.replace("\u2028", "\\u2028").replace("\u2029", "\\u2029")
    return (text + "\n").encode("utf-8")