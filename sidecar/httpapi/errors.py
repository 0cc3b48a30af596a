"""Error bodies returned to callers of the HTTP API."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

_ESCAPES = {
    "<": "\\u003c",
    ">": "\\u003e",
    "&": "\\u0026",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}


def _marshal(obj: Any) -> bytes:
    """Encode compactly, escaping HTML-significant characters."""
    text = json.dumps(obj, ensure_ascii=False, separators=(",", ":"))
    for raw, escaped in _ESCAPES.items():
        text = text.replace(raw, escaped)
    return text.encode("utf-8")


@dataclass(frozen=True)
class ErrorResponse:
    """An error code and a human readable message."""

    error_code: str
    message: str = ""

    def to_dict(self) -> dict[str, str]:
        """Return the wire form as a dictionary."""
        return {"errorCode": self.error_code, "message": self.message}

    def to_json(self) -> bytes:
        """Return the wire form as compact JSON bytes."""
        return _marshal(self.to_dict())